"""
Utility functions: .env loading and logging setup.

Verbosity follows the scanner's ladder – 0 errors only, 1 warnings,
2 informational scan progress, 3 full debug including OCR output.
"""

import logging
import os
import sys

from dotenv import load_dotenv

VERBOSITY_LEVELS = {
    0: logging.ERROR,
    1: logging.WARNING,
    2: logging.INFO,
    3: logging.DEBUG,
}

LOG_FORMAT = "%(asctime)s %(levelname)s [%(process)d] %(name)s %(message)s"


def load_env():
    """Load .env from project root and return os.environ as a dict."""
    env_path = os.path.join(os.path.dirname(__file__), '..', '.env')
    load_dotenv(env_path)
    return dict(os.environ)


def level_for_verbosity(verbose: int) -> int:
    return VERBOSITY_LEVELS[max(0, min(int(verbose), 3))]


def setup_logging(verbose=1, logfile=None, log_stderr=True, debug=False):
    """Install handlers on the root logger.

    File handler (when *logfile* is set) follows *verbose*; the stderr
    handler stays at WARNING unless *debug*.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in root.handlers[:]:
        root.removeHandler(h)

    if logfile:
        os.makedirs(os.path.dirname(os.path.abspath(logfile)), exist_ok=True)
        fh = logging.FileHandler(logfile, encoding="utf-8")
        fh.setLevel(level_for_verbosity(verbose))
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(fh)

    if log_stderr:
        ch = logging.StreamHandler(sys.stderr)
        ch.setLevel(logging.DEBUG if debug else logging.WARNING)
        ch.setFormatter(logging.Formatter("%(levelname)s FuzzyOcr: %(message)s"))
        root.addHandler(ch)

    if not root.handlers:
        root.addHandler(logging.NullHandler())
    return logfile
