"""
Fuzzy wordlist matcher for OCR output.

Distance: approximate *substring* edit distance of the word inside the
line (the word may start anywhere in the line at no cost), divided by the
word length.  A word hits a line when that ratio is strictly below the
word's threshold.

Two passes per scanset output:
  pass 0  words and lines normalized, spaces kept
  pass 1  same, with every space removed (OCR often splits tokens)

Pass 1 only runs when pass 0 is short of ``counts_required``; the larger
count wins and ties go to pass 0.

OCR output is clipped to MAX_OCR_LINES lines of at most MAX_LINE_LENGTH
characters before matching.  An optional ``cancel_check`` callable is
called before every word and line and aborts the match by raising.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterator

log = logging.getLogger(__name__)

_NON_ALNUM_SPACE = re.compile(r"[^a-z0-9 ]")
_DIGITS = re.compile(r"[0-9]")

# common OCR confusions, punctuation (and digits when stripping numbers) to letters
_CONFUSABLES = str.maketrans("!;|(", "iiic")
_CONFUSABLES_NO_DIGITS = str.maketrans("!;|(0815", "iiicoals")

MAX_OCR_LINES = 2000
MAX_LINE_LENGTH = 512


@dataclass
class PassResult:
    pass_index: int
    count: int
    found: list[str] = field(default_factory=list)
    word_hits: dict[str, int] = field(default_factory=dict)


def approx_distance(pattern: str, text: str) -> int:
    """Fewest edits turning *pattern* into some substring of *text*."""
    m = len(pattern)
    if m == 0:
        return 0
    prev = list(range(m + 1))
    best = prev[m]
    for ch in text:
        cur = [0] * (m + 1)
        for i in range(1, m + 1):
            cost = 0 if pattern[i - 1] == ch else 1
            cur[i] = min(prev[i - 1] + cost, prev[i] + 1, cur[i - 1] + 1)
        if cur[m] < best:
            best = cur[m]
        prev = cur
    return best


def distance_ratio(word: str, line: str) -> float:
    if not word:
        return 0.0
    return approx_distance(word, line) / len(word)


def normalize_word(word: str, pass_index: int, strip_numbers: bool) -> str:
    w = _NON_ALNUM_SPACE.sub("", word.lower())
    if pass_index:
        w = w.replace(" ", "")
    if strip_numbers:
        w = _DIGITS.sub("", w)
    return w


def normalize_line(line: str, pass_index: int, strip_numbers: bool) -> str:
    s = line.lower()
    if pass_index:
        s = s.replace(" ", "")
    if strip_numbers:
        s = _DIGITS.sub("", s.translate(_CONFUSABLES_NO_DIGITS))
    else:
        s = s.translate(_CONFUSABLES)
    return _NON_ALNUM_SPACE.sub("", s)


def run_pass(
    words: dict[str, float],
    lines: list[str],
    pass_index: int,
    strip_numbers: bool = True,
    unique_matches: bool = False,
    label: str = "",
    cancel_check=None,
) -> PassResult:
    norm_lines = [normalize_line(line, pass_index, strip_numbers) for line in lines]
    result = PassResult(pass_index, 0)
    for raw_word, threshold in words.items():
        if cancel_check is not None:
            cancel_check()
        w = normalize_word(raw_word, pass_index, strip_numbers)
        if not w:
            continue
        wcnt = 0
        for line in norm_lines:
            if cancel_check is not None:
                cancel_check()
            ratio = distance_ratio(w, line)
            if ratio < threshold:
                wcnt += 1
                log.info('Scanset "%s" found word "%s" with fuzz of %0.4f line: "%s"',
                         label, w, ratio, line)
                if unique_matches:
                    break
        if wcnt:
            result.count += wcnt
            result.word_hits[w] = result.word_hits.get(w, 0) + wcnt
            result.found.append(f'"{w}" in {wcnt} lines')
    return result


def iter_passes(words, lines, counts_required, **kwargs) -> Iterator[PassResult]:
    """Yield pass 0, then pass 1 only if pass 0 fell short."""
    first = run_pass(words, lines, 0, **kwargs)
    yield first
    if first.count >= counts_required:
        log.debug("Enough OCR Hits without space stripping, skipping second matching pass...")
        return
    log.debug("Not enough OCR Hits without space stripping, doing second matching pass...")
    yield run_pass(words, lines, 1, **kwargs)


def clip_lines(lines: list[str], label: str = "") -> list[str]:
    """Cut OCR output down to MAX_OCR_LINES lines of MAX_LINE_LENGTH chars."""
    clipped = [line[:MAX_LINE_LENGTH] for line in lines[:MAX_OCR_LINES]]
    if len(lines) > MAX_OCR_LINES or any(len(line) > MAX_LINE_LENGTH for line in lines):
        log.warning('Scanset "%s" output clipped to %d lines of %d chars (had %d lines)',
                    label, MAX_OCR_LINES, MAX_LINE_LENGTH, len(lines))
    return clipped


def match_lines(words, lines, counts_required, **kwargs) -> PassResult:
    """Best pass for one scanset output (ties favour pass 0)."""
    lines = clip_lines(lines, kwargs.get("label", ""))
    best = None
    for result in iter_passes(words, lines, counts_required, **kwargs):
        if best is None or result.count > best.count:
            best = result
    return best
