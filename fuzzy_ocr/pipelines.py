"""
Format-specific conversion chains.

Each chain turns a saved candidate into a PNM raster (``<file>.pnm``)
that the hashing step and the OCR scansets read.  A chain raises an
``ImageRejected`` subclass to drop the image; penalties for a declared
type that disagrees with the sniffed format are added to the message's
ScoreAccumulator as they are found.

  GIF               giftext -> [giffix] -> [deanimate] -> [gifinter] -> giftopnm
  JPEG/PNG/BMP/TIFF one <fmt>topnm call
  PDF               pdfinfo page gate -> pdftops -> pstopnm -xsize

Every step's stderr is appended to ``<file>.err``.
"""

import logging
import os
import re

from fuzzy_ocr import scoring
from fuzzy_ocr.attachments import CandidateImage
from fuzzy_ocr.config import ScanConfig
from fuzzy_ocr.deanimate import deanimate
from fuzzy_ocr.errors import (
    CorruptSource,
    FormatUnrecognized,
    OutOfBounds,
    ToolExecError,
    ToolNotConfigured,
    ToolTimeout,
)
from fuzzy_ocr.scoring import ScoreAccumulator
from fuzzy_ocr.sniffer import ImageFormat

log = logging.getLogger(__name__)

_CORRUPT_MARKER = re.compile(r"GIF-LIB error", re.IGNORECASE)
_INTERLACED = re.compile(r"Image is Interlaced", re.IGNORECASE)
_FRAME = re.compile(r"^Image #")
_PAGES = re.compile(r"^Pages:\s*([0-9]+)")


class ConversionChain:
    fmt: ImageFormat = ImageFormat.UNKNOWN
    ctype_re = None
    ext_re = None
    tools: tuple = ()

    def __init__(self, cfg: ScanConfig, runner, score: ScoreAccumulator):
        self.cfg = cfg
        self.runner = runner
        self.score = score

    @property
    def label(self):
        return self.fmt.value

    def convert(self, candidate: CandidateImage) -> str:
        """Run the chain on ``candidate.path``; return the PNM path."""
        raise NotImplementedError

    # ---- shared steps ----

    def require_tools(self):
        for tool in self.tools:
            if not self.cfg.bin(tool):
                log.error("Cannot exec %s, skipping image", tool)
                raise ToolNotConfigured(f"{tool} is not configured")

    def check_declared_type(self, candidate: CandidateImage):
        if not candidate.generic_ctype and not self.ctype_re.search(candidate.content_type):
            self.score.penalize(scoring.wrong_ctype(
                self.label, candidate.content_type, self.cfg.wrongctype_score))
        suffix = candidate.suffix
        if self.ext_re is not None and suffix and not self.ext_re.search(suffix):
            self.score.penalize(scoring.wrong_extension(
                self.label, suffix, self.cfg.wrongext_score))

    def check_size(self, path: str, what: str = "file"):
        max_size = self.cfg.max_size_for(self.fmt.value)
        if max_size is None:
            return
        size = os.path.getsize(path)
        if size > max_size:
            raise OutOfBounds(
                f"{what} size ({size}) exceeds maximum file size for this format")

    def execute(self, tool: str, args: list[str], stdout=None, stderr=None,
                capture=False, check_exit=True):
        """Run one chain step; timeouts always abort, nonzero exits when *check_exit*."""
        result = self.runner.invoke([self.cfg.bin(tool)] + args,
                                    stdout=stdout, stderr=stderr, capture=capture)
        if result.retcode < 0:
            log.error("%s: Timed out [%s], skipping...", tool, result.retcode)
            raise ToolTimeout(f"{tool} failed [{result.retcode}]")
        if check_exit and result.retcode > 0:
            log.warning("%s: Returned [%s], skipping... %s", tool, result.retcode,
                        " | ".join(result.lines))
            raise ToolExecError(f"{tool} returned [{result.retcode}]", result.lines)
        return result

    @staticmethod
    def pnm_path(candidate):
        return f"{candidate.path}.pnm"

    @staticmethod
    def err_path(candidate):
        return f"{candidate.path}.err"


class GifChain(ConversionChain):
    fmt = ImageFormat.GIF
    ctype_re = re.compile(r"gif", re.IGNORECASE)
    ext_re = re.compile(r"gif", re.IGNORECASE)
    tools = ("giftext", "giffix", "gifinter", "giftopnm")

    def convert(self, candidate):
        self.check_declared_type(candidate)
        self.require_tools()
        src = candidate.path
        efile = self.err_path(candidate)

        info = self.execute("giftext", [src], stdout=f"{src}.giftext.info",
                            stderr=f"{src}.giftext.err", capture=True, check_exit=False)
        interlaced = any(_INTERLACED.search(line) for line in info.lines)
        frames = sum(1 for line in info.lines if _FRAME.search(line))

        tfile = src
        corrupt = ""
        if interlaced or frames > 1:
            log.info("Image is interlaced or animated...")
        else:
            log.info("Image is single non-interlaced...")
            tfile = f"{src}-fixed.gif"
            self.execute("giffix", [src], stdout=tfile, stderr=efile, check_exit=False)
            corrupt = _find_corruption(efile)

        self.check_size(tfile, "Fixed GIF file")

        if corrupt:
            if os.path.getsize(tfile) == 0:
                log.info("Uncorrectable corruption detected, skipping non-interlaced image...")
                self.score.penalize(scoring.corrupt_img(self.cfg.corrupt_unfixable_score, corrupt))
                raise CorruptSource(corrupt.strip())
            log.info("Image is corrupt, but seems fixable, continuing...")
            self.score.penalize(scoring.corrupt_img(self.cfg.corrupt_score, corrupt))

        if frames > 1:
            log.info("File contains <%d> images, deanimating...", frames)
            tfile = deanimate(tfile, self.runner, self.cfg.bin("gifsicle"), stderr=efile)

        if interlaced:
            log.info("Processing interlaced_gif %s...", tfile)
            cfile = tfile
            if tfile.lower().endswith(".gif"):
                tfile = tfile[:-4] + "-fixed.gif"
            else:
                tfile += ".gif"
            self.execute("gifinter", [cfile], stdout=tfile, stderr=efile)

        pfile = self.pnm_path(candidate)
        self.execute("giftopnm", [tfile], stdout=pfile, stderr=efile)
        return pfile


class SimpleRasterChain(ConversionChain):
    """One ``<fmt>topnm`` call."""

    def convert(self, candidate):
        self.check_declared_type(candidate)
        self.require_tools()
        pfile = self.pnm_path(candidate)
        self.execute(self.tools[0], [candidate.path], stdout=pfile,
                     stderr=self.err_path(candidate))
        return pfile


class JpegChain(SimpleRasterChain):
    fmt = ImageFormat.JPEG
    ctype_re = re.compile(r"jpeg|jpg", re.IGNORECASE)
    ext_re = re.compile(r"jpeg|jpg|jfif", re.IGNORECASE)
    tools = ("jpegtopnm",)


class PngChain(SimpleRasterChain):
    fmt = ImageFormat.PNG
    ctype_re = re.compile(r"png", re.IGNORECASE)
    ext_re = re.compile(r"png", re.IGNORECASE)
    tools = ("pngtopnm",)


class BmpChain(SimpleRasterChain):
    fmt = ImageFormat.BMP
    ctype_re = re.compile(r"bmp", re.IGNORECASE)
    ext_re = re.compile(r"bmp", re.IGNORECASE)
    tools = ("bmptopnm",)


class TiffChain(SimpleRasterChain):
    fmt = ImageFormat.TIFF
    ctype_re = re.compile(r"tif", re.IGNORECASE)
    ext_re = re.compile(r"tif", re.IGNORECASE)
    tools = ("tifftopnm",)


class PdfChain(ConversionChain):
    fmt = ImageFormat.PDF
    ctype_re = re.compile(r"pdf", re.IGNORECASE)
    tools = ("pdftops", "pstopnm", "pdfinfo")

    @property
    def label(self):
        return "Application/PDF"

    def convert(self, candidate):
        self.require_tools()
        src = candidate.path
        efile = self.err_path(candidate)

        info = self.execute("pdfinfo", [src], stdout=f"{src}.pdfinfo.info",
                            stderr=f"{src}.pdfinfo.err", capture=True, check_exit=False)
        for line in info.lines:
            m = _PAGES.search(line)
            if m:
                candidate.pages = int(m.group(1))
        if not candidate.pages:
            log.info("Can't determine page count of PDF Document")
        if candidate.pages > self.cfg.pdf_maxpages:
            raise OutOfBounds(f"PDF has too many pages ({candidate.pages})")

        self.check_declared_type(candidate)

        ps = f"{src}.ps"
        self.execute("pdftops", [src, "-"], stdout=ps, stderr=efile)
        pfile = self.pnm_path(candidate)
        self.execute("pstopnm", ["-stdout", f"-xsize={self.cfg.pdf_xsize}", ps],
                     stdout=pfile, stderr=efile)
        return pfile


def _find_corruption(efile):
    """First line of *efile* carrying the GIF-LIB corruption marker, or ''."""
    if not os.path.exists(efile):
        return ""
    with open(efile, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            if _CORRUPT_MARKER.search(line):
                return line
    return ""


CHAINS = {
    ImageFormat.GIF: GifChain,
    ImageFormat.JPEG: JpegChain,
    ImageFormat.PNG: PngChain,
    ImageFormat.BMP: BmpChain,
    ImageFormat.TIFF: TiffChain,
    ImageFormat.PDF: PdfChain,
}


def chain_for(fmt: ImageFormat, cfg: ScanConfig, runner, score: ScoreAccumulator) -> ConversionChain:
    try:
        chain_cls = CHAINS[fmt]
    except KeyError:
        raise FormatUnrecognized(f"no conversion chain for {fmt.value}") from None
    return chain_cls(cfg, runner, score)
