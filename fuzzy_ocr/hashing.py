"""
Image hashing and the known-spam / known-good cache.

Digest of a normalized PNM raster: its header dimensions and byte size
plus either the five most frequent colours reported by ``ppmhist`` (when
configured; survives re-encoding noise elsewhere in the file) or a SHA-1
over the pixel payload.  The final digest is the SHA-1 hex of that
signature.

Hashing modes (``enable_image_hashing``):
  0  disabled
  1  local flat-file store, learn spam only
  2  local store, also learn ham
  3  shared SQLite store, learn spam and ham
"""

import hashlib
import logging
import os
from dataclasses import dataclass

from fuzzy_ocr.config import ScanConfig
from fuzzy_ocr.errors import HashBackendUnavailable
from fuzzy_ocr.hash_store import KNOWN_GOOD, KNOWN_SPAM, FlatFileHashStore, SqliteHashStore

log = logging.getLogger(__name__)

_HIST_COLOURS = 5


@dataclass
class ScannedImage:
    """One OCR-scanned image, kept for the post-scan cache writes."""
    matches: int
    fname: str
    ctype: str
    ftype: str
    digest: str | None


def read_pnm_header(path: str):
    """Return (magic, width, height, payload_offset) of a PNM file, or None."""
    with open(path, "rb") as f:
        head = f.read(512)
    if len(head) < 2 or head[:1] != b"P" or head[1:2] not in b"123456":
        return None
    magic = head[:2].decode()
    need = 2 if magic in ("P1", "P4") else 3
    tokens = []
    pos = 2
    while len(tokens) < need and pos < len(head):
        ch = head[pos:pos + 1]
        if ch == b"#":
            nl = head.find(b"\n", pos)
            pos = len(head) if nl < 0 else nl + 1
            continue
        if ch.isspace():
            pos += 1
            continue
        start = pos
        while pos < len(head) and not head[pos:pos + 1].isspace():
            pos += 1
        tokens.append(head[start:pos])
    if len(tokens) < need:
        return None
    try:
        width, height = int(tokens[0]), int(tokens[1])
    except ValueError:
        return None
    # one whitespace byte separates the header from the raster
    return magic, width, height, pos + 1


class ImageHasher:
    def __init__(self, runner, ppmhist: str | None = None):
        self.runner = runner
        self.ppmhist = ppmhist

    def digest(self, pnm_path: str) -> str | None:
        """Digest for *pnm_path*, or None when it cannot be computed."""
        try:
            header = read_pnm_header(pnm_path)
            size = os.path.getsize(pnm_path)
        except OSError as exc:
            log.info("Error calculating the image hash: %s", exc)
            return None
        if header is None:
            log.info("Error calculating the image hash: %s is not a PNM raster", pnm_path)
            return None
        magic, width, height, offset = header
        signature = f"{magic}:{width}:{height}:{size}"

        if self.ppmhist:
            result = self.runner.invoke([self.ppmhist, "-noheader", pnm_path], capture=True)
            if result.retcode != 0 or not result.lines:
                log.info("ppmhist failed [%s], skipping hash check...", result.retcode)
                return None
            colours = [" ".join(line.split()) for line in result.lines[:_HIST_COLOURS]]
            signature += ":" + "::".join(colours)
        else:
            sha = hashlib.sha1()
            try:
                with open(pnm_path, "rb") as f:
                    f.seek(offset)
                    for chunk in iter(lambda: f.read(65536), b""):
                        sha.update(chunk)
            except OSError as exc:
                log.info("Error calculating the image hash: %s", exc)
                return None
            signature += ":" + sha.hexdigest()

        return hashlib.sha1(signature.encode()).hexdigest()


class HashCache:
    """Lookups and learning writes against the store the mode selects.

    Backend failures are logged and read as a miss; writes are best-effort.
    """

    def __init__(self, mode: int, store, learn_scanned: bool = True):
        self.mode = mode
        self.store = store
        self.learn_scanned = learn_scanned

    @property
    def enabled(self) -> bool:
        return self.mode > 0 and self.store is not None

    @property
    def learns_ham(self) -> bool:
        return self.mode > 1

    def known_spam(self, digest: str):
        """(score, description) for a positive known-spam entry, else None."""
        entry = self._get(digest, KNOWN_SPAM)
        if entry and entry[0] > 0:
            return entry
        return None

    def known_good(self, digest: str) -> bool:
        return self._get(digest, KNOWN_GOOD) is not None

    def _get(self, digest, partition):
        try:
            return self.store.get(digest, partition)
        except HashBackendUnavailable as exc:
            log.warning("Hash store lookup failed (%s), treating as miss", exc)
            return None

    def _put(self, digest, score, partition, metadata):
        try:
            self.store.put(digest, score, partition, metadata)
            return True
        except HashBackendUnavailable as exc:
            log.warning("Hash store write failed (%s)", exc)
            return False

    def learn(self, score: float, description: str, scanned: list[ScannedImage],
              cancel_check=None) -> int:
        """Write ham/spam entries after a scan; returns the number written.

        *cancel_check* is called before every write and aborts learning by raising.
        """
        if not self.enabled:
            return 0
        written = 0
        if score <= 0:
            if not self.learns_ham:
                return 0
            for img in scanned:
                if img.matches or not img.digest:
                    continue
                if self.known_good(img.digest):
                    continue
                if cancel_check is not None:
                    cancel_check()
                log.info("Message is ham, saving %s", img.fname)
                meta = {"fname": img.fname, "ctype": img.ctype, "ftype": img.ftype}
                written += self._put(img.digest, 0, KNOWN_GOOD, meta)
        elif self.learn_scanned:
            for img in scanned:
                if not img.matches or not img.digest:
                    continue
                if self.known_spam(img.digest) == (score, description):
                    continue
                if cancel_check is not None:
                    cancel_check()
                meta = {"fname": img.fname, "ctype": img.ctype, "ftype": img.ftype,
                        "description": description}
                written += self._put(img.digest, score, KNOWN_SPAM, meta)
        return written


def build_hash_cache(cfg: ScanConfig) -> HashCache:
    mode = cfg.enable_image_hashing
    if not mode:
        return HashCache(0, None)
    try:
        if mode == 3:
            store = SqliteHashStore(cfg.shared_db)
        else:
            store = FlatFileHashStore(cfg.digest_db, cfg.safe_db)
    except HashBackendUnavailable as exc:
        log.error("Hash store unavailable, hashing disabled for this run: %s", exc)
        return HashCache(0, None)
    return HashCache(mode, store, cfg.hashing_learn_scanned)
