"""
Score aggregation.

Penalty rules (reported to the host as separate hits and summed into the
internal score used by the OCR abort checkpoint):

  FUZZY_OCR_WRONG_CTYPE   declared content-type disagrees with the header
  FUZZY_OCR_WRONG_EXT     file extension disagrees with the header
  FUZZY_OCR_CORRUPT_IMG   repair tool reported corruption
  FUZZY_OCR_KNOWN_HASH    image digest found in the known-spam store

Fuzzy score (rule FUZZY_OCR), from the weighted occurrence total N:

  N >= counts_required   base_score + (N - counts_required) * add_score
  otherwise              add_score * N   if score_ham, else 0
"""

import logging
from dataclasses import dataclass, field

from fuzzy_ocr.config import ScanConfig

log = logging.getLogger(__name__)

RULE_MAIN = "FUZZY_OCR"
RULE_WRONG_CTYPE = "FUZZY_OCR_WRONG_CTYPE"
RULE_WRONG_EXT = "FUZZY_OCR_WRONG_EXT"
RULE_CORRUPT = "FUZZY_OCR_CORRUPT_IMG"
RULE_KNOWN_HASH = "FUZZY_OCR_KNOWN_HASH"


@dataclass(frozen=True)
class RuleHit:
    rule: str
    score: float
    description: str


@dataclass
class ScoreAccumulator:
    """Internal penalty score plus the weighted match total for one message."""
    internal_score: float = 0.0
    occurrences: float = 0.0
    hits: list[RuleHit] = field(default_factory=list)
    found: list[str] = field(default_factory=list)

    def penalize(self, hit: RuleHit):
        self.internal_score += hit.score
        self.hits.append(hit)

    def add_matches(self, count: int, weight: float, found: list[str]):
        self.occurrences += weight * count
        self.found.extend(found)


def wrong_ctype(fmt: str, ctype: str, score: float) -> RuleHit:
    log.info("Image has format \"%s\" but content-type is \"%s\"", fmt, ctype)
    return RuleHit(RULE_WRONG_CTYPE, score, f"Wrong Content-Type: {fmt} declared as {ctype}")


def wrong_extension(fmt: str, ext: str, score: float) -> RuleHit:
    log.info("Image has format \"%s\" but extension is \"%s\"", fmt, ext)
    return RuleHit(RULE_WRONG_EXT, score, f"Wrong extension: {fmt} named .{ext}")


def corrupt_img(score: float, detail: str) -> RuleHit:
    log.info("Corrupted image: %s", detail.strip())
    return RuleHit(RULE_CORRUPT, score, f"Corrupted image: {detail.strip()}")


def known_img_hash(score: float, description: str) -> RuleHit:
    return RuleHit(RULE_KNOWN_HASH, score, description or "Known spam image hash")


def pass_weight(pass_index: int, cfg: ScanConfig) -> float:
    """Full weight for a pass-0 win, the reduced factor for a pass-1 win."""
    return 1.0 if pass_index == 0 else cfg.twopass_scoring_factor


def final_score(occurrences: float, cfg: ScanConfig) -> float:
    if occurrences >= cfg.counts_required:
        score = cfg.base_score + (occurrences - cfg.counts_required) * cfg.add_score
    elif cfg.score_ham:
        score = cfg.add_score * occurrences
    else:
        score = 0.0
    return round(score, 3)


def describe(found: list[str], occurrences: float) -> str:
    return "Words found:\n" + "\n".join(found) + f"\n({occurrences:g} word occurrences found)"
