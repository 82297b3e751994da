"""Unit tests for configuration loading, tool resolution and wordlists."""

import logging
import os
import stat
import sys

import pytest

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from fuzzy_ocr.config import (
    KNOWN_TOOLS,
    ScanConfig,
    load_config,
    load_wordlist,
    load_wordlists,
    parse_word_line,
    resolve_binaries,
)
from fuzzy_ocr.dep_check import check_tool_dependencies
from fuzzy_ocr.utils import level_for_verbosity, setup_logging


# =====================================================================
# 1. YAML loading
# =====================================================================

class TestLoadConfig:

    def test_defaults_when_file_missing(self, tmp_path):
        cfg = load_config(str(tmp_path / "missing.yml"), env={}, resolve=False)
        assert cfg.counts_required == 2
        assert cfg.base_score == 4
        assert cfg.twopass_scoring_factor == 0.667
        assert cfg.timeout == 10

    def test_yaml_values_override(self, tmp_path):
        path = tmp_path / "fuzzyocr.yml"
        path.write_text("counts_required: 1\nbase_score: 3.0\nskip_bmp: true\n")
        cfg = load_config(str(path), env={}, resolve=False)
        assert cfg.counts_required == 1
        assert cfg.base_score == 3.0
        assert cfg.skip_bmp is True

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "fuzzyocr.yml"
        path.write_text("no_such_option: 5\nverbose: 2\n")
        cfg = load_config(str(path), env={}, resolve=False)
        assert cfg.verbose == 2
        assert not hasattr(cfg, "no_such_option")

    def test_env_names_config_and_overrides_logging(self, tmp_path):
        path = tmp_path / "fuzzyocr.yml"
        path.write_text("verbose: 1\n")
        env = {
            "FUZZYOCR_CONFIG": str(path),
            "FUZZYOCR_VERBOSE": "3",
            "FUZZYOCR_LOGFILE": str(tmp_path / "fuzzyocr.log"),
        }
        cfg = load_config(env=env, resolve=False)
        assert cfg.verbose == 3
        assert cfg.logfile == str(tmp_path / "fuzzyocr.log")

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "fuzzyocr.yml"
        path.write_text("")
        assert load_config(str(path), env={}, resolve=False).min_width == 4

    def test_max_size_lookup(self):
        cfg = ScanConfig(max_size_gif=1000)
        assert cfg.max_size_for("GIF") == 1000
        assert cfg.max_size_for("JPEG") is None
        assert cfg.max_size_for("PDF") is None


# =====================================================================
# 2. Executables
# =====================================================================

class TestResolveBinaries:

    def test_found_on_path_bin(self, tmp_path):
        tool = tmp_path / "gocr"
        tool.write_text("#!/bin/sh\n")
        tool.chmod(tool.stat().st_mode | stat.S_IXUSR)
        cfg = resolve_binaries(ScanConfig(path_bin=str(tmp_path)))
        assert cfg.bin("gocr") == str(tool)
        assert cfg.bin("ocrad") is None

    def test_explicit_path_kept(self, tmp_path):
        cfg = ScanConfig(path_bin=str(tmp_path), bins={"tesseract": "/opt/tess/bin/tesseract"})
        resolve_binaries(cfg)
        assert cfg.bin("tesseract") == "/opt/tess/bin/tesseract"


# =====================================================================
# 3. Wordlists
# =====================================================================

class TestWordlists:

    def test_parse_plain_word(self):
        assert parse_word_line("viagra", 0.25) == ("viagra", 0.25)

    def test_parse_threshold(self):
        assert parse_word_line("penny stock:0.2", 0.25) == ("penny stock", 0.2)

    def test_parse_out_of_range_threshold_uses_default(self):
        assert parse_word_line("viagra:1.5", 0.25) == ("viagra", 0.25)

    def test_parse_non_numeric_suffix_is_part_of_word(self):
        assert parse_word_line("http://x", 0.25) == ("http://x", 0.25)

    def test_comments_and_blanks_skipped(self, tmp_path):
        path = tmp_path / "words"
        path.write_text("# comment\n\nviagra\ncialis:0.1\n")
        assert load_wordlist(str(path), 0.3) == {"viagra": 0.3, "cialis": 0.1}

    def test_personal_list_overrides_global(self, tmp_path, monkeypatch):
        glob_path = tmp_path / "global.words"
        glob_path.write_text("viagra:0.2\ncasino\n")
        home = tmp_path / "home"
        (home / ".spamassassin").mkdir(parents=True)
        (home / ".spamassassin" / "fuzzyocr.words").write_text("viagra:0.1\nrolex\n")
        monkeypatch.setenv("HOME", str(home))
        cfg = ScanConfig(global_wordlist=str(glob_path), threshold=0.25)
        words = load_wordlists(cfg)
        assert words == {"viagra": 0.1, "casino": 0.25, "rolex": 0.25}

    def test_no_homedirs_skips_personal(self, tmp_path, monkeypatch):
        glob_path = tmp_path / "global.words"
        glob_path.write_text("casino\n")
        home = tmp_path / "home"
        (home / ".spamassassin").mkdir(parents=True)
        (home / ".spamassassin" / "fuzzyocr.words").write_text("rolex\n")
        monkeypatch.setenv("HOME", str(home))
        cfg = ScanConfig(global_wordlist=str(glob_path), no_homedirs=True)
        assert load_wordlists(cfg) == {"casino": 0.25}


# =====================================================================
# 4. Logging setup
# =====================================================================

@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield root
    for h in root.handlers[:]:
        root.removeHandler(h)
        h.close()
    for h in saved_handlers:
        root.addHandler(h)
    root.setLevel(saved_level)


class TestLogging:

    def test_verbosity_ladder(self):
        assert level_for_verbosity(0) == logging.ERROR
        assert level_for_verbosity(1) == logging.WARNING
        assert level_for_verbosity(2) == logging.INFO
        assert level_for_verbosity(3) == logging.DEBUG
        assert level_for_verbosity(9) == logging.DEBUG

    def test_logfile_handler_follows_verbose(self, tmp_path, restore_root_logger):
        logfile = tmp_path / "logs" / "fuzzyocr.log"
        setup_logging(verbose=2, logfile=str(logfile), log_stderr=False)
        logging.getLogger("fuzzy_ocr.test").info("scan progress")
        logging.getLogger("fuzzy_ocr.test").debug("ocr dump")
        for h in restore_root_logger.handlers:
            h.flush()
        text = logfile.read_text(encoding="utf-8")
        assert "scan progress" in text
        assert "ocr dump" not in text

    def test_no_handlers_installs_null_handler(self, restore_root_logger):
        setup_logging(logfile=None, log_stderr=False)
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0], logging.NullHandler)


# =====================================================================
# 5. Dependency probe
# =====================================================================

class TestDependencyCheck:

    def test_reports_every_known_tool(self):
        cfg = ScanConfig()
        cfg.bins = {"giftext": "/usr/bin/giftext", "tesseract": "/usr/bin/tesseract"}
        status = check_tool_dependencies(cfg)
        assert set(status) == set(KNOWN_TOOLS)
        assert status["giftext"] is True
        assert status["tesseract"] is True
        assert status["ocrad"] is False

    def test_missing_chain_tools_logged(self, caplog):
        cfg = ScanConfig()
        cfg.bins = {"ocrad": "/usr/bin/ocrad"}
        with caplog.at_level(logging.WARNING, logger="fuzzy_ocr.dep_check"):
            check_tool_dependencies(cfg)
        assert "jpegtopnm" in caplog.text
        assert "scansets without an engine binary" in caplog.text

    def test_no_engine_at_all(self, caplog):
        cfg = ScanConfig()
        cfg.bins = {}
        with caplog.at_level(logging.WARNING, logger="fuzzy_ocr.dep_check"):
            check_tool_dependencies(cfg)
        assert "no OCR engine found" in caplog.text
