"""Tests for the stdlib email adapter and the logging sink."""

import os
import sys
from email.message import EmailMessage

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
sys.path.insert(0, os.path.dirname(__file__))

from fuzzy_ocr.host import LoggingSink, is_scanned_ctype, request_from_bytes

from fakes import gif_bytes, pdf_bytes


def _message():
    msg = EmailMessage()
    msg["From"] = "sender@example.com"
    msg["To"] = "rcpt@example.com"
    msg["Message-Id"] = "<abc@example.com>"
    msg["Subject"] = "hello"
    msg.set_content("plain body")
    msg.add_attachment(gif_bytes(), maintype="image", subtype="gif", filename="offer.gif")
    msg.add_attachment(pdf_bytes(), maintype="application", subtype="pdf", filename="doc.pdf")
    msg.add_attachment(b"x,y\n", maintype="text", subtype="csv", filename="data.csv")
    return msg.as_bytes()


class TestRequestFromBytes:

    def test_only_scanned_parts_collected(self):
        request = request_from_bytes(_message(), current_score=1.5)
        assert [p.filename for p in request.parts] == ["offer.gif", "doc.pdf"]
        assert request.parts[0].content_type == "image/gif"
        assert request.parts[0].data == gif_bytes()
        assert request.current_score == 1.5

    def test_headers_and_raw_kept(self):
        raw = _message()
        request = request_from_bytes(raw)
        assert request.raw_message == raw
        assert request.headers["Message-Id"] == "<abc@example.com>"
        assert request.headers["From"] == "sender@example.com"

    def test_scanned_ctypes(self):
        assert is_scanned_ctype("image/png")
        assert is_scanned_ctype("application/octet-stream")
        assert is_scanned_ctype("Application/PDF")
        assert not is_scanned_ctype("text/plain")


class TestLoggingSink:

    def test_records_hits(self):
        sink = LoggingSink()
        sink.hit("FUZZY_OCR", 3.0, "Words found:\nviagra")
        assert sink.hits == [("FUZZY_OCR", 3.0, "Words found:\nviagra")]
