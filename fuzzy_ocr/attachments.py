"""
Candidate image construction – turns a host MessagePart into a
CandidateImage: derives a display name and a filesystem-safe name, and
sniffs the format and dimensions.
"""

import logging
import re
from dataclasses import dataclass

from fuzzy_ocr.errors import SniffError
from fuzzy_ocr.host import MessagePart
from fuzzy_ocr.sniffer import ImageFormat, sniff

log = logging.getLogger(__name__)

_UNSAFE_RUN = re.compile(r"[^A-Za-z0-9.\-]+")
_CID_BRACKETS = re.compile(r"[<>]")
_CID_SPECIALS = re.compile(r"[@$%&]+")
_SUFFIX_RE = re.compile(r"\.([\w-]+)$")

GENERIC_CTYPE_RE = re.compile(r"application/octet-stream", re.IGNORECASE)

# leaves room for the A. prefixes and the chain's derived file suffixes
MAX_SAFE_NAME = 100


@dataclass
class CandidateImage:
    data: bytes
    format: ImageFormat
    width: int
    height: int
    content_type: str
    name: str          # declared filename / content-id, for logs and hash metadata
    safe_name: str     # on-disk name
    version: str = ""  # PDF version
    sniff_error: str = ""
    path: str | None = None
    pages: int = 0

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def suffix(self) -> str:
        m = _SUFFIX_RE.search(self.name)
        return m.group(1) if m else ""

    @property
    def generic_ctype(self) -> bool:
        return bool(GENERIC_CTYPE_RE.search(self.content_type or ""))


def display_name(part: MessagePart) -> str:
    """Declared filename, else the cleaned Content-ID, else 'unknown'."""
    if part.filename:
        return part.filename
    if part.content_id:
        cid = _CID_BRACKETS.sub("", part.content_id)
        return _CID_SPECIALS.sub("_", cid)
    return "unknown"


def sanitize_filename(name: str) -> str:
    """Collapse every run of characters outside [A-Za-z0-9.-] into one '_'.

    Names longer than MAX_SAFE_NAME are cut, keeping a short extension.
    """
    safe = _UNSAFE_RUN.sub("_", name.strip()) or "unknown"
    if len(safe) > MAX_SAFE_NAME:
        stem, dot, ext = safe.rpartition(".")
        if dot and stem and len(ext) <= 16:
            safe = stem[:MAX_SAFE_NAME - len(ext) - 1] + "." + ext
        else:
            safe = safe[:MAX_SAFE_NAME]
    return safe


def build_candidate(part: MessagePart) -> CandidateImage:
    name = display_name(part)
    safe = sanitize_filename(name)
    log.debug('fname: "%s" => "%s"', name, safe)

    sniff_error = ""
    try:
        result = sniff(part.data)
    except SniffError as exc:
        log.error("%s: %s", name, exc)
        sniff_error = exc.reason
        fmt, width, height, extra = ImageFormat.UNKNOWN, 0, 0, ""
    else:
        fmt, width, height, extra = result.format, result.width, result.height, result.extra

    if fmt is ImageFormat.PDF:
        log.info("PDF: [version %s] %s (%d)", extra, safe, len(part.data))
    elif fmt is not ImageFormat.UNKNOWN:
        log.info("%s: [%dx%d] %s (%d)", fmt.value, height, width, safe, len(part.data))

    return CandidateImage(
        data=part.data,
        format=fmt,
        width=width,
        height=height,
        content_type=part.content_type or "",
        name=name,
        safe_name=safe,
        version=extra if fmt is ImageFormat.PDF else "",
        sniff_error=sniff_error,
    )
