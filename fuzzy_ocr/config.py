"""
Configuration loader – reads the scanner settings YAML, resolves external
tool paths, and loads the global/personal wordlists from the config/
directory.

Every key has a built-in default so a missing or partial YAML file still
yields a usable configuration.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field, fields
from typing import Any

import yaml

log = logging.getLogger(__name__)

ENV_CONFIG_PATH = "FUZZYOCR_CONFIG"
ENV_LOGFILE = "FUZZYOCR_LOGFILE"
ENV_VERBOSE = "FUZZYOCR_VERBOSE"

# Every external program the chains, hashing and default scansets may call
KNOWN_TOOLS = (
    "giftext", "giffix", "gifinter", "giftopnm", "gifsicle",
    "jpegtopnm", "pngtopnm", "bmptopnm", "tifftopnm",
    "pdfinfo", "pdftops", "pstopnm",
    "ppmhist",
    "ocrad", "gocr", "tesseract",
)

DEFAULT_SCANSETS = [
    {"label": "ocrad", "command": "$ocrad -s 0.5 -T 0.5 $input"},
    {"label": "gocr", "command": "$gocr -i $input"},
    {"label": "tesseract", "command": "$tesseract $input stdout"},
]


def _config_path(filename):
    return os.path.join(os.path.dirname(__file__), '..', 'config', filename)


def _load_lines(path):
    if not path or not os.path.exists(path):
        return []
    with open(path, 'r', encoding='utf-8') as f:
        return [
            line.strip()
            for line in f
            if line.strip() and not line.strip().startswith('#')
        ]


@dataclass
class ScanConfig:
    # ---- gate ----
    min_width: int = 4
    min_height: int = 4
    max_width: int = 800
    max_height: int = 800
    skip_gif: bool = False
    skip_jpeg: bool = False
    skip_png: bool = False
    skip_bmp: bool = False
    skip_tiff: bool = False
    scan_pdfs: bool = True
    max_size_gif: int | None = None
    max_size_jpeg: int | None = None
    max_size_png: int | None = None
    max_size_bmp: int | None = None
    max_size_tiff: int | None = None
    pdf_maxpages: int = 1
    pdf_xsize: int = 1000

    # ---- timeouts (seconds) ----
    timeout: float = 10
    global_timeout: bool = True
    global_timeout_seconds: float = 30

    # ---- scoring ----
    base_score: float = 4
    add_score: float = 1
    counts_required: int = 2
    score_ham: bool = False
    twopass_scoring_factor: float = 0.667
    wrongctype_score: float = 1.5
    wrongext_score: float = 1.5
    corrupt_score: float = 2.5
    corrupt_unfixable_score: float = 5
    autodisable_score: float = 10
    autodisable_negative_score: float = -5

    # ---- matching ----
    threshold: float = 0.25
    strip_numbers: bool = True
    unique_matches: bool = False
    global_wordlist: str = field(default_factory=lambda: _config_path('fuzzyocr.words'))
    personal_wordlist: str = "~/.spamassassin/fuzzyocr.words"
    no_homedirs: bool = False

    # ---- scansets ----
    scansets: list[dict[str, Any]] = field(default_factory=lambda: [dict(s) for s in DEFAULT_SCANSETS])
    minimal_scanset: bool = True
    autosort_scanset: bool = True
    autosort_buffer: int = 10
    scansets_state: str | None = None

    # ---- hashing: 0 off, 1 local, 2 local + learn ham, 3 shared db ----
    enable_image_hashing: int = 0
    hashing_learn_scanned: bool = True
    digest_db: str = "/var/lib/fuzzyocr/known_spam.jsonl"
    safe_db: str = "/var/lib/fuzzyocr/known_good.jsonl"
    shared_db: str = "/var/lib/fuzzyocr/image_hashes.db"

    # ---- workspace / logging ----
    keep_bad_images: int = 0
    tmp_dir: str | None = None
    verbose: int = 1
    logfile: str | None = None
    log_stderr: bool = True
    log_pmsinfo: bool = False

    # ---- executables ----
    path_bin: str = "/usr/local/bin:/usr/bin:/bin"
    bins: dict[str, str | None] = field(default_factory=dict)

    def bin(self, name):
        """Return the configured executable path for *name*, or None."""
        return self.bins.get(name)

    def max_size_for(self, fmt_name):
        return getattr(self, f"max_size_{fmt_name.lower()}", None)


def resolve_binaries(cfg: ScanConfig) -> ScanConfig:
    """Fill ``cfg.bins`` for every known tool not explicitly configured."""
    for name in KNOWN_TOOLS:
        if cfg.bins.get(name):
            continue
        found = shutil.which(name, path=cfg.path_bin)
        cfg.bins[name] = found
        if found is None:
            log.debug("Tool %s not found in %s", name, cfg.path_bin)
    return cfg


def load_config(path=None, env=None, resolve=True) -> ScanConfig:
    """Build a ScanConfig from the YAML at *path*.

    *path* defaults to ``$FUZZYOCR_CONFIG`` and then config/fuzzyocr.yml.
    Unknown keys are logged and ignored.
    """
    if env is None:
        env = os.environ
    if path is None:
        path = env.get(ENV_CONFIG_PATH) or _config_path('fuzzyocr.yml')

    raw: dict[str, Any] = {}
    if path and os.path.exists(path):
        with open(path, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f) or {}
        log.debug("Loaded config %s (%d keys)", path, len(raw))
    else:
        log.info("Config file %s not found, using defaults", path)

    known = {f.name for f in fields(ScanConfig)}
    values = {}
    for key, value in raw.items():
        if key not in known:
            log.warning("Unknown config key %r in %s, ignoring", key, path)
            continue
        values[key] = value
    cfg = ScanConfig(**values)
    cfg.bins = dict(cfg.bins or {})

    if env.get(ENV_LOGFILE):
        cfg.logfile = env[ENV_LOGFILE]
    if env.get(ENV_VERBOSE):
        try:
            cfg.verbose = int(env[ENV_VERBOSE])
        except ValueError:
            log.warning("%s=%r is not an integer", ENV_VERBOSE, env[ENV_VERBOSE])

    if resolve:
        resolve_binaries(cfg)
    return cfg


# ------------------------------------------------------------------
# Wordlists
# ------------------------------------------------------------------

def parse_word_line(line, default_threshold):
    """Split ``word[:threshold]``; a bad or out-of-range threshold keeps the default."""
    word, sep, tail = line.rpartition(':')
    if not sep:
        return line, default_threshold
    try:
        threshold = float(tail)
    except ValueError:
        return line, default_threshold
    if not 0 <= threshold < 1:
        log.warning("Threshold %s for %r outside [0,1), using %s", tail, word, default_threshold)
        return word.strip(), default_threshold
    return word.strip(), threshold


def load_wordlist(path, default_threshold=0.25):
    words = {}
    for line in _load_lines(path):
        word, threshold = parse_word_line(line, default_threshold)
        if word:
            words[word] = threshold
    return words


def load_wordlists(cfg: ScanConfig):
    """Return the global wordlist merged with the personal one, if any."""
    words = load_wordlist(cfg.global_wordlist, cfg.threshold)
    if not words:
        log.warning("Global wordlist %s is empty or missing", cfg.global_wordlist)

    if cfg.no_homedirs or not cfg.personal_wordlist:
        return words
    personal = os.path.expanduser(cfg.personal_wordlist)
    if os.access(personal, os.R_OK):
        extra = load_wordlist(personal, cfg.threshold)
        log.debug("Personal wordlist %s: %d words", personal, len(extra))
        words.update(extra)
    elif os.path.exists(personal):
        log.error("Cannot read personal_wordlist: %s, skipping...", personal)
    return words
