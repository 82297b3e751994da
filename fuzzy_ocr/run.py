"""
FuzzyOcr – command-line entry point.

Pipeline:
  1) Load env / config / logging
  2) Probe the external tools
  3) Load the scanset registry (hit counters from ``scansets_state``)
  4) Parse the stored message and scan it
  5) Print the rule hits and the final score
  6) Save the updated scanset counters

``--debug-attachment FILE`` instead sniffs and gates one file and prints
the result, without starting any external tool.
"""

import argparse
import logging
import os
import sys

from fuzzy_ocr.attachment_gate import evaluate_attachment_gate
from fuzzy_ocr.attachments import build_candidate
from fuzzy_ocr.config import load_config
from fuzzy_ocr.dep_check import check_tool_dependencies
from fuzzy_ocr.host import LoggingSink, MessagePart, request_from_bytes
from fuzzy_ocr.scanner import FuzzyOcrScanner, report
from fuzzy_ocr.scansets import ScansetRegistry
from fuzzy_ocr.utils import load_env, setup_logging

log = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Debug attachment mode (no external tools)
# ------------------------------------------------------------------

def _debug_attachment(file_path, cfg):
    print(f"\n{'='*60}")
    print(f"  DEBUG ATTACHMENT: {file_path}")
    print(f"{'='*60}")

    if not os.path.exists(file_path):
        print(f"ERROR: File not found: {file_path}")
        return 1

    with open(file_path, "rb") as f:
        data = f.read()
    part = MessagePart(content_type="application/octet-stream", data=data,
                       filename=os.path.basename(file_path))
    candidate = build_candidate(part)
    gate = evaluate_attachment_gate(candidate, cfg)

    print(f"  File: {candidate.name} (on disk as {candidate.safe_name})")
    print(f"  Size: {candidate.size:,} bytes")
    print(f"  Format: {candidate.format.value}")
    if candidate.version:
        print(f"  PDF version: {candidate.version}")
    else:
        print(f"  Dimensions: {candidate.width}x{candidate.height}")
    if candidate.sniff_error:
        print(f"  Sniff error: {candidate.sniff_error}")
    print(f"\n  Gate: {gate['decision']}")
    print(f"  Reason: {gate['reason']}")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="OCR the image attachments of a stored message and score them against a wordlist."
    )
    parser.add_argument("--eml", type=str, default=None, metavar="PATH",
                        help="RFC 822 message to scan")
    parser.add_argument("--config", type=str, default=None, metavar="PATH",
                        help="YAML config (default: $FUZZYOCR_CONFIG or config/fuzzyocr.yml)")
    parser.add_argument("--current-score", type=float, default=0.0,
                        help="Score the message already has from other rules")
    parser.add_argument("--verbose", type=int, default=None, choices=range(0, 4),
                        help="Log verbosity 0-3 (overrides config)")
    parser.add_argument("--debug", action="store_true", help="Enable debug output on stderr")
    parser.add_argument("--debug-attachment", type=str, default=None, metavar="PATH",
                        help="Sniff and gate a single attachment file, print the result and exit.")
    args = parser.parse_args(argv)

    env = load_env()
    cfg = load_config(args.config, env=env)
    if args.verbose is not None:
        cfg.verbose = args.verbose
    setup_logging(cfg.verbose, cfg.logfile, cfg.log_stderr, args.debug)

    if args.debug_attachment:
        return _debug_attachment(args.debug_attachment, cfg)

    if not args.eml:
        parser.error("one of --eml or --debug-attachment is required")
    if not os.path.exists(args.eml):
        log.error("Message file not found: %s", args.eml)
        return 1

    check_tool_dependencies(cfg)
    registry = ScansetRegistry.load(cfg)
    log.info("Scanset Order: %s", registry.order_text())

    with open(args.eml, "rb") as f:
        raw = f.read()
    request = request_from_bytes(raw, current_score=args.current_score)

    scanner = FuzzyOcrScanner(cfg)
    outcome = scanner.check(request, registry)
    sink = LoggingSink()
    report(outcome, sink)

    print(f"\n{'='*60}")
    print(f"  {args.eml}")
    print(f"{'='*60}")
    if outcome.aborted:
        print(f"  Aborted: {outcome.aborted}")
    for rule, score, description in sink.hits:
        print(f"  {rule:<24} {score:8.3f}")
        for line in description.splitlines():
            print(f"      {line}")
    print(f"\n  FuzzyOcr score: {sum(h[1] for h in sink.hits):.3f}")

    if cfg.scansets_state and outcome.registry is not None:
        try:
            outcome.registry.save(cfg.scansets_state)
        except OSError as exc:
            log.error("Cannot save scanset state %s: %s", cfg.scansets_state, exc)
    return 0


if __name__ == "__main__":
    sys.exit(main())
