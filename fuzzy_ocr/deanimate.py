"""
GIF deanimation – reduce an animated GIF to its single largest frame.

``gifsicle --info`` lists the frames as ``+ image #N WxH ...``; the frame
with the largest area (first one on ties) is extracted unoptimized so
that it is a complete picture rather than a delta against the previous
frame.  Any failure leaves the original file in place.
"""

import logging
import re

log = logging.getLogger(__name__)

_FRAME_RE = re.compile(r"\+\s+image\s+#(\d+)\s+(\d+)x(\d+)")


def parse_frames(lines):
    """Return [(index, width, height), ...] from ``gifsicle --info`` output."""
    frames = []
    for line in lines:
        m = _FRAME_RE.search(line)
        if m:
            frames.append((int(m.group(1)), int(m.group(2)), int(m.group(3))))
    return frames


def largest_frame(frames):
    best = None
    for index, width, height in frames:
        if best is None or width * height > best[1] * best[2]:
            best = (index, width, height)
    return best


def deanimate(path, runner, gifsicle, stderr=None):
    """Extract the largest frame of *path*; returns the path to scan next."""
    if not gifsicle:
        log.error("Cannot exec gifsicle, keeping animated image")
        return path

    info = runner.invoke([gifsicle, "--info", path], stderr=stderr, capture=True)
    if info.retcode != 0:
        log.warning("gifsicle --info returned [%s], keeping animated image", info.retcode)
        return path

    best = largest_frame(parse_frames(info.lines))
    if best is None:
        log.info("No frames listed for %s, keeping animated image", path)
        return path
    index, width, height = best
    log.info("Using frame #%d (%dx%d)", index, width, height)

    out = f"{path}-frame{index}.gif"
    result = runner.invoke([gifsicle, "--unoptimize", path, f"#{index}"],
                           stdout=out, stderr=stderr)
    if result.retcode != 0:
        log.warning("gifsicle frame extraction returned [%s], keeping animated image",
                    result.retcode)
        return path
    return out
