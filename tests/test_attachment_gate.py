"""Unit tests for candidate construction and the attachment gate."""

import os
import sys

import pytest

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
sys.path.insert(0, os.path.dirname(__file__))

from fuzzy_ocr.attachment_gate import evaluate_attachment_gate
from fuzzy_ocr.attachments import build_candidate, display_name, sanitize_filename
from fuzzy_ocr.config import ScanConfig
from fuzzy_ocr.host import MessagePart
from fuzzy_ocr.sniffer import ImageFormat

from fakes import gif_bytes, jpeg_bytes, pdf_bytes, png_bytes


def _candidate(data, ctype="image/gif", filename="img.gif", content_id=None):
    return build_candidate(MessagePart(ctype, data, filename=filename, content_id=content_id))


# =====================================================================
# 1. Names
# =====================================================================

class TestNames:

    def test_filename_preferred(self):
        part = MessagePart("image/gif", b"", filename="a.gif", content_id="<x@y>")
        assert display_name(part) == "a.gif"

    def test_content_id_fallback(self):
        part = MessagePart("image/gif", b"", content_id="<part1.$abc%def&@example.com>")
        assert display_name(part) == "part1._abc_def_example.com"

    def test_unknown_fallback(self):
        assert display_name(MessagePart("image/gif", b"")) == "unknown"

    @pytest.mark.parametrize("name,expected", [
        ("my picture (1).gif", "my_picture_1_.gif"),
        ("../../etc/passwd", ".._.._etc_passwd"),
        ("ok-name.png", "ok-name.png"),
        ("", "unknown"),
    ])
    def test_sanitize(self, name, expected):
        assert sanitize_filename(name) == expected

    def test_sanitize_caps_long_names_keeping_extension(self):
        safe = sanitize_filename("a" * 300 + ".gif")
        assert len(safe) == 100
        assert safe.endswith(".gif")
        assert len(sanitize_filename("b" * 300)) == 100

    def test_suffix_and_generic_ctype(self):
        c = _candidate(gif_bytes(), ctype="application/octet-stream", filename="x.JPG")
        assert c.suffix == "JPG"
        assert c.generic_ctype


# =====================================================================
# 2. Gate decisions
# =====================================================================

class TestGate:

    def test_pass(self):
        gate = evaluate_attachment_gate(_candidate(gif_bytes(640, 480)), ScanConfig())
        assert gate["decision"] == "PASS"

    def test_unknown_format(self):
        c = _candidate(b"plain text", ctype="application/octet-stream")
        assert c.format is ImageFormat.UNKNOWN
        assert evaluate_attachment_gate(c, ScanConfig())["decision"] == "UNKNOWN_FORMAT"

    def test_unreadable_jpeg_is_unknown(self):
        c = _candidate(b"\xff\xd8\x00\x00", ctype="image/jpeg", filename="x.jpg")
        gate = evaluate_attachment_gate(c, ScanConfig())
        assert gate["decision"] == "UNKNOWN_FORMAT"
        assert "JPEG" in gate["reason"]

    @pytest.mark.parametrize("width,height", [(2, 100), (100, 2), (900, 100), (100, 900)])
    def test_out_of_bounds(self, width, height):
        c = _candidate(gif_bytes(width, height))
        assert evaluate_attachment_gate(c, ScanConfig())["decision"] == "OUT_OF_BOUNDS"

    def test_disabled_format(self):
        c = _candidate(png_bytes(), ctype="image/png", filename="x.png")
        assert evaluate_attachment_gate(c, ScanConfig(skip_png=True))["decision"] == "DISABLED"

    def test_too_large(self):
        c = _candidate(jpeg_bytes(), ctype="image/jpeg", filename="x.jpg")
        gate = evaluate_attachment_gate(c, ScanConfig(max_size_jpeg=10))
        assert gate["decision"] == "TOO_LARGE"

    def test_pdf_not_size_gated(self):
        c = _candidate(pdf_bytes(), ctype="application/pdf", filename="x.pdf")
        assert c.version == "1.4"
        assert evaluate_attachment_gate(c, ScanConfig(min_width=50))["decision"] == "PASS"

    def test_pdf_disabled(self):
        c = _candidate(pdf_bytes(), ctype="application/pdf", filename="x.pdf")
        assert evaluate_attachment_gate(c, ScanConfig(scan_pdfs=False))["decision"] == "DISABLED"
