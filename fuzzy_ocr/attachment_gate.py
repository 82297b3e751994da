"""
Attachment gate – deterministic pre-filter run before anything is written
to disk or any external tool is started.

Gate decisions:
  PASS            – candidate enters its format's conversion chain
  UNKNOWN_FORMAT  – no magic-byte match, or an unreadable header
  DISABLED        – the format is switched off in the configuration
  OUT_OF_BOUNDS   – width/height outside [min, max] (not applied to PDF)
  TOO_LARGE       – byte size above the format's max_size_<fmt>

Rejections have no score impact; they are only logged.  PDFs are gated
again later, by page count, inside their chain.

Usage in scanner.py:
    gate = evaluate_attachment_gate(candidate, cfg)
    if gate["decision"] != "PASS":
        ...  # skip this attachment
"""

import logging
from typing import Any

from fuzzy_ocr.attachments import CandidateImage
from fuzzy_ocr.config import ScanConfig
from fuzzy_ocr.sniffer import ImageFormat

log = logging.getLogger(__name__)

# Config flag that switches each format off
_DISABLE_FLAGS = {
    ImageFormat.GIF: "skip_gif",
    ImageFormat.JPEG: "skip_jpeg",
    ImageFormat.PNG: "skip_png",
    ImageFormat.BMP: "skip_bmp",
    ImageFormat.TIFF: "skip_tiff",
}


def evaluate_attachment_gate(candidate: CandidateImage, cfg: ScanConfig) -> dict[str, Any]:
    """Evaluate the gate for *candidate*.

    Returns
    -------
    dict with keys:
        decision : str – PASS | UNKNOWN_FORMAT | DISABLED | OUT_OF_BOUNDS | TOO_LARGE
        reason   : str – human-readable explanation
    """
    fmt = candidate.format

    # ---- Format ----
    if fmt is ImageFormat.UNKNOWN:
        detail = candidate.sniff_error or "no known header"
        return _result(
            "UNKNOWN_FORMAT",
            f'Skipping file with content-type="{candidate.content_type}" '
            f'name="{candidate.name}" ({detail})',
        )

    # ---- PDF: switch only, dimensions are not known yet ----
    if fmt is ImageFormat.PDF:
        if not cfg.scan_pdfs:
            return _result("DISABLED", "Skipping PDF file: PDF Scanning was disabled in config")
        return _result("PASS", f"PDF version {candidate.version}")

    if getattr(cfg, _DISABLE_FLAGS[fmt]):
        return _result("DISABLED", f"Skipping {fmt.value} image: disabled in config")

    # ---- Dimensions ----
    if candidate.height < cfg.min_height:
        return _result("OUT_OF_BOUNDS", f"Skipping image: height < {cfg.min_height}")
    if candidate.width < cfg.min_width:
        return _result("OUT_OF_BOUNDS", f"Skipping image: width < {cfg.min_width}")
    if candidate.height > cfg.max_height:
        return _result("OUT_OF_BOUNDS", f"Skipping image: height > {cfg.max_height}")
    if candidate.width > cfg.max_width:
        return _result("OUT_OF_BOUNDS", f"Skipping image: width > {cfg.max_width}")

    # ---- Byte size ----
    max_size = cfg.max_size_for(fmt.value)
    if max_size is not None and candidate.size > max_size:
        return _result(
            "TOO_LARGE",
            f"{fmt.value} file size ({candidate.size}) exceeds maximum file size "
            f"for this format, skipping...",
        )

    return _result("PASS", f"{fmt.value} [{candidate.height}x{candidate.width}]")


def _result(decision: str, reason: str) -> dict[str, Any]:
    return {
        "decision": decision,
        "reason": reason,
    }
