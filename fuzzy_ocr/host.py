"""
Host-side collaborators: the message parts handed to the scanner, the
score sink it reports to, and a stdlib ``email`` adapter that builds a
ScanRequest from a stored RFC 822 message.
"""

import logging
import re
from dataclasses import dataclass, field
from email import policy
from email.parser import BytesParser
from typing import Protocol

log = logging.getLogger(__name__)

SCANNED_CTYPES = (
    re.compile(r"^image\b", re.IGNORECASE),
    re.compile(r"application/octet-stream", re.IGNORECASE),
    re.compile(r"application/pdf", re.IGNORECASE),
)


@dataclass
class MessagePart:
    content_type: str
    data: bytes
    filename: str | None = None
    content_id: str | None = None


@dataclass
class ScanRequest:
    parts: list[MessagePart]
    current_score: float = 0.0
    raw_message: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)


class ScoreSink(Protocol):
    def hit(self, rule: str, score: float, description: str) -> None: ...


class LoggingSink:
    """Sink that only records and logs hits (CLI / debugging)."""

    def __init__(self):
        self.hits: list[tuple[str, float, str]] = []

    def hit(self, rule, score, description):
        self.hits.append((rule, score, description))
        log.info("HIT %s %.3f %s", rule, score, description.replace("\n", " | "))


def is_scanned_ctype(content_type: str) -> bool:
    return any(p.search(content_type or "") for p in SCANNED_CTYPES)


def request_from_bytes(raw: bytes, current_score: float = 0.0) -> ScanRequest:
    """Parse *raw* and collect the parts the scanner looks at."""
    msg = BytesParser(policy=policy.compat32).parsebytes(raw)
    parts = []
    for part in msg.walk():
        if part.is_multipart():
            continue
        ctype = part.get_content_type()
        if not is_scanned_ctype(ctype):
            continue
        data = part.get_payload(decode=True) or b""
        parts.append(MessagePart(
            content_type=ctype,
            data=data,
            filename=part.get_filename(),
            content_id=part.get("Content-ID"),
        ))
    headers = {name: str(msg.get(name, "")) for name in ("Message-Id", "From", "To")}
    log.debug("Message has %d candidate parts", len(parts))
    return ScanRequest(parts=parts, current_score=current_score,
                       raw_message=raw, headers=headers)
