"""Test doubles: a scripted ToolRunner and synthetic image headers."""

import os
import struct

from fuzzy_ocr.config import KNOWN_TOOLS, ScanConfig
from fuzzy_ocr.tool_runner import RET_EXEC_FAILED, ToolResult

# What every fake *topnm converter writes
PNM_RASTER = b"P6\n640 480\n255\n" + bytes(range(256)) * 3

FAKE_BIN_DIR = "/fake/bin"


# ---------------------------------------------------------------------
# Synthetic headers
# ---------------------------------------------------------------------

def gif_bytes(width=640, height=480):
    return b"GIF89a" + struct.pack("<HH", width, height) + b"\x00" * 32


def png_bytes(width=100, height=50):
    return b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + struct.pack(">II", width, height) + b"\x08\x02\x00\x00\x00"


def bmp_bytes(width=120, height=60):
    return b"BM" + b"\x00" * 16 + struct.pack("<ii", width, height) + b"\x00" * 28


def jpeg_bytes(width=300, height=200):
    app0 = b"\xff\xe0" + struct.pack(">H", 16) + b"JFIF\x00" + b"\x00" * 9
    sof0 = b"\xff\xc0" + struct.pack(">HBHH", 17, 8, height, width) + b"\x00" * 10
    return b"\xff\xd8" + app0 + sof0 + b"\xff\xd9"


def tiff_bytes(width=64, height=32, little=True):
    order = "<" if little else ">"
    magic = b"II\x2a\x00" if little else b"MM\x00\x2a"
    entries = [
        struct.pack(order + "HHI", 256, 3, 1) + struct.pack(order + "HH", height, 0),
        struct.pack(order + "HHII", 257, 4, 1, width),
    ]
    return magic + struct.pack(order + "I", 8) + struct.pack(order + "H", len(entries)) + b"".join(entries) + b"\x00" * 4


def pdf_bytes(version="1.4"):
    return f"%PDF-{version}\n%\xe2\xe3\n1 0 obj\n<<>>\nendobj\n".encode("latin-1")


# ---------------------------------------------------------------------
# Fake tool handlers: (runner, argv) -> (retcode, stdout, stderr)
# ---------------------------------------------------------------------

def _read(path):
    with open(path, "rb") as f:
        return f.read()


def _giftext(runner, argv):
    return 0, "GIF89a\nScreen Size - Width = 640, Height = 480.\nImage #1:\n", ""


def _copy_input(runner, argv):
    return 0, _read(argv[1]), ""


def _to_pnm(runner, argv):
    return 0, PNM_RASTER, ""


def _gifsicle(runner, argv):
    if "--info" in argv:
        return 0, "* anim.gif 2 images\n  + image #0 10x10\n  + image #1 640x480\n", ""
    return 0, _read(argv[2]), ""


def _pdfinfo(runner, argv):
    return 0, "Producer:       test\nPages:          1\n", ""


def _pdftops(runner, argv):
    return 0, "%!PS-Adobe-3.0\n", ""


DEFAULT_HANDLERS = {
    "giftext": _giftext,
    "giffix": _copy_input,
    "gifinter": _copy_input,
    "gifsicle": _gifsicle,
    "giftopnm": _to_pnm,
    "jpegtopnm": _to_pnm,
    "pngtopnm": _to_pnm,
    "bmptopnm": _to_pnm,
    "tifftopnm": _to_pnm,
    "pdfinfo": _pdfinfo,
    "pdftops": _pdftops,
    "pstopnm": _to_pnm,
}


class FakeRunner:
    """Records every call; OCR engines answer from *ocr_text* (tool -> text)."""

    def __init__(self, ocr_text=None, handlers=None):
        self.calls = []
        self.controller = None
        self.ocr_text = dict(ocr_text or {})
        self.handlers = dict(DEFAULT_HANDLERS)
        self.handlers.update(handlers or {})

    def factory(self, timeout, controller=None):
        self.controller = controller
        return self

    def tools_called(self):
        return [os.path.basename(call[0]) for call in self.calls]

    def invoke(self, argv, stdin=None, stdout=None, stderr=None, capture=False):
        if self.controller is not None:
            self.controller.check()
        self.calls.append(list(argv))
        tool = os.path.basename(argv[0])
        handler = self.handlers.get(tool)
        if handler is not None:
            retcode, out, err = handler(self, argv)
        elif tool in self.ocr_text:
            retcode, out, err = 0, self.ocr_text[tool], ""
        else:
            return ToolResult(RET_EXEC_FAILED)

        if isinstance(out, str):
            out = out.encode()
        if stdout:
            with open(stdout, "wb") as f:
                f.write(out)
        if stderr and err:
            with open(stderr, "a", encoding="utf-8") as f:
                f.write(err)
        lines = out.decode("utf-8", errors="replace").splitlines() if capture else []
        return ToolResult(retcode, lines)


def make_config(tmp_path, words="viagra:0.2\n", **overrides):
    """ScanConfig with every tool 'installed' under /fake/bin and a tmp wordlist."""
    wordlist = tmp_path / "fuzzyocr.words"
    wordlist.write_text(words, encoding="utf-8")
    values = dict(
        global_wordlist=str(wordlist),
        no_homedirs=True,
        tmp_dir=str(tmp_path / "work"),
        global_timeout=False,
    )
    values.update(overrides)
    cfg = ScanConfig(**values)
    cfg.bins = {name: f"{FAKE_BIN_DIR}/{name}" for name in KNOWN_TOOLS if name != "ppmhist"}
    return cfg
