"""
Runtime dependency self-check for the external conversion and OCR tools.

Checks:
  - every tool a conversion chain needs (netpbm, giflib, poppler)
  - gifsicle, used only to deanimate animated GIFs
  - the OCR engines referenced by the configured scansets
  - ppmhist, used for image digests when hashing is enabled

Logs warnings for anything missing. Never crashes.
"""

import logging

from fuzzy_ocr.config import KNOWN_TOOLS, ScanConfig
from fuzzy_ocr.pipelines import CHAINS

log = logging.getLogger(__name__)


def check_tool_dependencies(cfg: ScanConfig) -> dict[str, bool]:
    """Probe the configured executables and return an availability map.

    Returns dict like:
      {"giftext": True, "jpegtopnm": True, ..., "tesseract": False}
    """
    status = {name: bool(cfg.bin(name)) for name in KNOWN_TOOLS}

    for name, ok in status.items():
        if ok:
            log.debug("DEP CHECK: %s OK (%s)", name, cfg.bin(name))

    # ---- Conversion chains ----
    for fmt, chain_cls in CHAINS.items():
        missing = [t for t in chain_cls.tools if not status.get(t)]
        if missing:
            log.warning("DEP CHECK: %s images will be skipped, missing %s",
                        fmt.value, ", ".join(missing))

    if not status["gifsicle"]:
        log.warning("DEP CHECK: gifsicle not found, animated GIFs are scanned without deanimation")

    # ---- OCR engines ----
    engines = [s.get("label") for s in cfg.scansets
               if any(t in str(s.get("command", "")) and not status[t]
                      for t in ("ocrad", "gocr", "tesseract"))]
    if engines:
        log.warning("DEP CHECK: scansets without an engine binary: %s", ", ".join(engines))
    if not any(status[t] for t in ("ocrad", "gocr", "tesseract")):
        log.warning("DEP CHECK: no OCR engine found in %s, every image will score 0", cfg.path_bin)

    # ---- Hashing ----
    if cfg.enable_image_hashing and not status["ppmhist"]:
        log.info("DEP CHECK: ppmhist not found, image digests fall back to a raster SHA-1")

    return status
