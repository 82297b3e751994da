"""
Smoke test: tool probe + one scan.

Usage:
  python scripts/smoke_test_scan.py [path/to/message.eml | path/to/image]

With an image path the file is wrapped in a one-part message.  Without
an argument only the dependency check runs.
"""

import os
import sys

# Ensure package is importable
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from fuzzy_ocr.config import load_config
from fuzzy_ocr.dep_check import check_tool_dependencies
from fuzzy_ocr.host import LoggingSink, MessagePart, ScanRequest, request_from_bytes
from fuzzy_ocr.scanner import FuzzyOcrScanner, report
from fuzzy_ocr.scansets import ScansetRegistry
from fuzzy_ocr.utils import load_env, setup_logging


def main():
    load_env()
    cfg = load_config()
    setup_logging(verbose=3, log_stderr=True, debug=True)

    # ---- Dep check ----
    print("\n--- Dependency Check ---")
    deps = check_tool_dependencies(cfg)
    for k, v in deps.items():
        status = "OK" if v else "MISSING"
        print(f"  {k}: {status}")

    if len(sys.argv) < 2:
        print("\nPass a message or image path to run a scan:")
        print("  python scripts/smoke_test_scan.py path/to/message.eml")
        return

    test_path = sys.argv[1]
    if not os.path.exists(test_path):
        print(f"ERROR: File not found: {test_path}")
        return
    with open(test_path, "rb") as f:
        data = f.read()

    if test_path.lower().endswith(".eml"):
        request = request_from_bytes(data)
    else:
        part = MessagePart("application/octet-stream", data, filename=os.path.basename(test_path))
        request = ScanRequest(parts=[part])

    # ---- Scan ----
    print("\n--- Scan ---")
    outcome = FuzzyOcrScanner(cfg).check(request, ScansetRegistry.load(cfg))
    sink = LoggingSink()
    report(outcome, sink)
    print(f"  aborted: {outcome.aborted or '-'}")
    print(f"  images scanned: {len(outcome.scanned)}")
    for rule, score, description in sink.hits:
        print(f"  {rule}: {score:.3f}")
        print(f"    {description}")
    print(f"  score: {outcome.score:.3f}")


if __name__ == "__main__":
    main()
