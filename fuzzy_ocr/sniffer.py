"""
Format sniffer – classifies raw attachment bytes by magic number and reads
image dimensions straight out of the format headers.

Checked in priority order, first match wins:

  GIF   "GIF"                 w/h little-endian u16 at 6/8
  JPEG  FF D8                 walk segments up to the first SOF marker
  PNG   89 "PNG"              w/h big-endian u32 at 16/20
  BMP   "BM"                  w/h little-endian u32 at 18/22
  TIFF  "MM\\0*" | "II*\\0"    first IFD, tags 256/257
  PDF   "%PDF-"               3-byte version string, no dimensions

Pure functions only; nothing here touches the filesystem.
"""

import logging
import struct
from dataclasses import dataclass
from enum import Enum

from fuzzy_ocr.errors import SniffError

log = logging.getLogger(__name__)


class ImageFormat(Enum):
    GIF = "GIF"
    JPEG = "JPEG"
    PNG = "PNG"
    BMP = "BMP"
    TIFF = "TIFF"
    PDF = "PDF"
    UNKNOWN = "Unknown"


# Start-Of-Frame markers (C4, C8 and CC are DHT/JPG/DAC, not frames)
JPEG_SOF_MARKERS = frozenset(
    (0xC0, 0xC1, 0xC2, 0xC3, 0xC5, 0xC6, 0xC7, 0xC9, 0xCA, 0xCB, 0xCD, 0xCE, 0xCF)
)

TIFF_HEIGHT_TAG = 256
TIFF_WIDTH_TAG = 257


@dataclass(frozen=True)
class SniffResult:
    format: ImageFormat
    width: int = 0
    height: int = 0
    extra: str = ""  # PDF version, TIFF byte order


def sniff(data: bytes) -> SniffResult:
    """Classify *data* and extract its dimensions.

    Returns ``ImageFormat.UNKNOWN`` when nothing matches.  Raises
    ``SniffError`` for a JPEG whose frame header cannot be located.
    """
    if data[:3] == b"GIF":
        width, height = _unpack("<HH", data, 6)
        return SniffResult(ImageFormat.GIF, width, height)
    if data[:2] == b"\xff\xd8":
        return _sniff_jpeg(data)
    if data[:4] == b"\x89PNG":
        width, height = _unpack(">II", data, 16)
        return SniffResult(ImageFormat.PNG, width, height)
    if data[:2] == b"BM":
        width, height = _unpack("<II", data, 18)
        return SniffResult(ImageFormat.BMP, width, height)
    if data[:4] in (b"MM\x00\x2a", b"II\x2a\x00"):
        return _sniff_tiff(data)
    if data[:5] == b"%PDF-":
        version = data[5:8].decode("latin-1")
        return SniffResult(ImageFormat.PDF, 0, 0, extra=version)
    return SniffResult(ImageFormat.UNKNOWN)


def _unpack(fmt: str, data: bytes, offset: int) -> tuple:
    """struct.unpack_from that treats a short buffer as zeros."""
    size = struct.calcsize(fmt)
    chunk = data[offset:offset + size]
    if len(chunk) < size:
        chunk = chunk.ljust(size, b"\x00")
    return struct.unpack(fmt, chunk)


def _sniff_jpeg(data: bytes) -> SniffResult:
    pos = 2
    total = len(data)
    found = False
    while pos < total:
        flag, marker = _unpack("BB", data, pos)
        pos += 2
        if flag != 0xFF:
            log.info("Invalid JPEG image (marker flag 0x%02x at %d)", flag, pos - 2)
            break
        if marker in JPEG_SOF_MARKERS:
            found = True
            break
        (length,) = _unpack(">H", data, pos)
        pos += length
    if not found:
        raise SniffError("Cannot find JPEG image dimensions")
    height, width = _unpack(">HH", data, pos + 3)
    return SniffResult(ImageFormat.JPEG, width, height)


def _sniff_tiff(data: bytes) -> SniffResult:
    little = data[:2] == b"II"
    order = "<" if little else ">"
    (ifd_offset,) = _unpack(order + "I", data, 4)
    (entries,) = _unpack(order + "H", data, ifd_offset)

    width = height = 0
    for n in range(entries):
        entry = ifd_offset + 2 + n * 12
        if entry + 12 > len(data):
            break
        tag, field_type, count, value = _unpack(order + "HHII", data, entry)
        # SHORT values are left-justified in the 4-byte value field
        if field_type == 3 and count == 1:
            (value,) = _unpack(order + "H", data, entry + 8)
        if tag == TIFF_HEIGHT_TAG:
            height = value
        elif tag == TIFF_WIDTH_TAG:
            width = value
        if width and height:
            break

    if not width and not height:
        log.info("Cannot determine size of TIFF image, setting to '1x1'")
    return SniffResult(
        ImageFormat.TIFF,
        width or 1,
        height or 1,
        extra="II" if little else "MM",
    )
