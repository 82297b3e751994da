"""FuzzyOcr – OCR-based scoring of email image attachments."""

from fuzzy_ocr.config import ScanConfig, load_config
from fuzzy_ocr.host import MessagePart, ScanRequest
from fuzzy_ocr.scanner import FuzzyOcrScanner, ScanOutcome, report
from fuzzy_ocr.scansets import ScansetRegistry

__all__ = [
    "FuzzyOcrScanner",
    "MessagePart",
    "ScanConfig",
    "ScanOutcome",
    "ScanRequest",
    "ScansetRegistry",
    "load_config",
    "report",
]
