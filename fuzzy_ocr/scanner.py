"""
Per-message scan orchestration.

Flow for one message (strictly sequential, one image at a time):

  1. autodisable: skip everything when the host score is already above
     ``autodisable_score`` or below ``autodisable_negative_score``
  2. build a CandidateImage per part and run the attachment gate
     (no disk writes, no subprocesses for rejected parts)
  3. per image: save -> conversion chain -> hash lookups -> penalty
     checkpoint -> scansets + fuzzy matcher (best scanset wins)
  4. final score, FUZZY_OCR hit, hash learning
  5. workspace cleanup per ``keep_bad_images``

The whole of steps 1-5 runs under a GlobalTimeoutController.  Every
failure is contained here: ``check`` always returns a ScanOutcome, the
neutral one (score 0, no hits) on global timeout or unexpected errors.

Usage:
    scanner = FuzzyOcrScanner(cfg)
    outcome = scanner.check(request, registry)
    report(outcome, sink)
    registry = outcome.registry
"""

import logging
import time
from dataclasses import dataclass, field

from fuzzy_ocr import scoring
from fuzzy_ocr.attachment_gate import evaluate_attachment_gate
from fuzzy_ocr.attachments import CandidateImage, build_candidate
from fuzzy_ocr.config import ScanConfig, load_wordlists
from fuzzy_ocr.errors import ImageRejected
from fuzzy_ocr.hashing import HashCache, ImageHasher, ScannedImage, build_hash_cache
from fuzzy_ocr.host import ScanRequest
from fuzzy_ocr.matcher import match_lines
from fuzzy_ocr.pipelines import chain_for
from fuzzy_ocr.scansets import ScansetRegistry
from fuzzy_ocr.scoring import RuleHit, ScoreAccumulator
from fuzzy_ocr.sniffer import ImageFormat
from fuzzy_ocr.timeout import GlobalTimeoutController
from fuzzy_ocr.tool_runner import RET_EXEC_FAILED, RET_TIMEOUT, ToolRunner
from fuzzy_ocr.workspace import TempWorkspace

log = logging.getLogger(__name__)

# ocrad cannot read rasters smaller than this in either dimension
OCRAD_MIN_DIM = 16


@dataclass
class ScanOutcome:
    score: float = 0.0
    description: str = ""
    hits: list[RuleHit] = field(default_factory=list)
    registry: ScansetRegistry | None = None
    scanned: list[ScannedImage] = field(default_factory=list)
    aborted: str = ""


@dataclass
class _BestScan:
    count: int = 0
    pass_index: int = 0
    found: list[str] = field(default_factory=list)
    label: str = ""


class FuzzyOcrScanner:
    def __init__(self, cfg: ScanConfig, hash_cache: HashCache | None = None,
                 runner_factory=ToolRunner):
        self.cfg = cfg
        self.hash_cache = hash_cache if hash_cache is not None else build_hash_cache(cfg)
        self.runner_factory = runner_factory

    def check(self, request: ScanRequest, registry: ScansetRegistry) -> ScanOutcome:
        """Scan one message; never raises."""
        started = time.time()
        seconds = self.cfg.global_timeout_seconds if self.cfg.global_timeout else None
        controller = GlobalTimeoutController(seconds)
        neutral = ScanOutcome(registry=registry, aborted="timeout")
        try:
            outcome = controller.run(self._scan, request, registry, controller, neutral=neutral)
        except Exception:
            log.exception("FuzzyOcr scan failed, returning neutral score")
            outcome = ScanOutcome(registry=registry, aborted="error")
        log.debug("Processed in %.6f sec.", time.time() - started)
        return outcome

    # ---- pipeline ----

    def _scan(self, request: ScanRequest, registry: ScansetRegistry,
              controller: GlobalTimeoutController) -> ScanOutcome:
        cfg = self.cfg
        outcome = ScanOutcome(registry=registry)
        current = request.current_score

        if current > cfg.autodisable_score:
            log.info("Scan canceled, message has already more than %s points (%s).",
                     cfg.autodisable_score, current)
            outcome.aborted = "autodisable"
            return outcome
        if current < cfg.autodisable_negative_score:
            log.info("Scan canceled, message has less than %s points (%s).",
                     cfg.autodisable_negative_score, current)
            outcome.aborted = "autodisable"
            return outcome

        if cfg.log_pmsinfo:
            for name in ("Message-Id", "From", "To"):
                log.info("%s: %s", name, request.headers.get(name, ""))

        candidates = []
        for part in request.parts:
            candidate = build_candidate(part)
            gate = evaluate_attachment_gate(candidate, cfg)
            if gate["decision"] != "PASS":
                log.info("%s", gate["reason"])
                continue
            candidates.append(candidate)
        if not candidates:
            log.debug("No scannable images in message")
            return outcome

        runner = self.runner_factory(cfg.timeout, controller)
        hasher = ImageHasher(runner, cfg.bin("ppmhist"))
        workspace = TempWorkspace.create(cfg.keep_bad_images, cfg.tmp_dir)
        try:
            controller.register_workspace(workspace)
            if request.raw_message:
                workspace.write("raw.eml", request.raw_message)
            return self._scan_images(candidates, workspace, runner, hasher,
                                     registry, current, controller, outcome)
        finally:
            workspace.finish()

    def _scan_images(self, candidates, workspace, runner, hasher, registry,
                     current, controller, outcome):
        cfg = self.cfg
        words = load_wordlists(cfg)
        score = ScoreAccumulator()
        cache = self.hash_cache

        for candidate in candidates:
            controller.check()
            try:
                candidate.path = workspace.write(candidate.safe_name, candidate.data)
                chain = chain_for(candidate.format, cfg, runner, score)
                pfile = chain.convert(candidate)
                digest = None
                if cache.enabled:
                    log.info("Calculating image hash for: %s", pfile)
                    digest = hasher.digest(pfile)
            except ImageRejected as exc:
                log.info("Skipping %s: %s", candidate.name, exc.reason)
                if exc.bad_image:
                    workspace.mark_error()
                continue
            except OSError as exc:
                log.error("Cannot process %s, skipping: %s", candidate.name, exc)
                workspace.mark_error()
                continue

            if cache.enabled:
                if digest is None:
                    log.info("Error calculating the image hash, skipping hash check...")
                else:
                    known = cache.known_spam(digest)
                    if known is not None:
                        known_score, known_desc = known
                        log.info("Message is SPAM. %s", known_desc)
                        outcome.hits = score.hits + [scoring.known_img_hash(known_score, known_desc)]
                        outcome.score = known_score
                        outcome.description = known_desc
                        outcome.aborted = "known_hash"
                        return outcome
                    if cache.known_good(digest):
                        log.info("Image in KNOWN_GOOD. Skipping OCR checks...")
                        continue

            if score.internal_score + current > cfg.autodisable_score:
                log.warning("FuzzyOcr stopped, message got %s points by other FuzzyOcr tests (%s>%s).",
                            score.internal_score, score.internal_score + current,
                            cfg.autodisable_score)
                outcome.hits = list(score.hits)
                outcome.aborted = "penalty"
                return outcome

            best, registry = self._ocr_image(candidate, pfile, words, runner, registry,
                                             controller)
            controller.check()
            outcome.registry = registry
            outcome.scanned.append(ScannedImage(
                matches=best.count,
                fname=candidate.name,
                ctype=candidate.content_type,
                ftype=candidate.format.value,
                digest=digest,
            ))
            score.add_matches(best.count, scoring.pass_weight(best.pass_index, cfg), best.found)

        outcome.hits = list(score.hits)
        if score.occurrences > 0:
            outcome.score = scoring.final_score(score.occurrences, cfg)
            outcome.description = scoring.describe(score.found, score.occurrences)
            if score.occurrences >= cfg.counts_required:
                log.info("Message is spam, score = %.3f", outcome.score)
            else:
                log.info("Message is ham, score = %.3f", outcome.score)
            outcome.hits.append(RuleHit(scoring.RULE_MAIN, outcome.score, outcome.description))
            if cfg.verbose in (1, 2):
                log.info("%s", outcome.description)
        else:
            log.info("Message is ham")

        controller.check()
        if cache.enabled:
            cache.learn(outcome.score, outcome.description, outcome.scanned,
                        cancel_check=controller.check)
        return outcome

    def _ocr_image(self, candidate: CandidateImage, pfile, words, runner, registry,
                   controller: GlobalTimeoutController):
        """Run the scansets on one raster; return the best scan and the registry."""
        cfg = self.cfg
        best = _BestScan()
        log.info("Scanset Order: %s", registry.order_text())

        for scanset in registry:
            if not scanset.is_runnable(cfg.bins):
                log.warning("Skipping %s, invalid command '%s'", scanset.label, scanset.command)
                continue
            if (candidate.format is not ImageFormat.PDF and scanset.uses_tool("ocrad")
                    and (candidate.width < OCRAD_MIN_DIM or candidate.height < OCRAD_MIN_DIM)):
                log.warning("Skipping %s, image too small", scanset.label)
                continue

            result = registry.run(scanset, pfile, runner, cfg.bins,
                                  stderr=f"{candidate.path}.err")
            if result.retcode == RET_TIMEOUT:
                log.error('Timeout[%s]: took more than %s sec.', scanset.label, cfg.timeout)
                continue
            if result.retcode == RET_EXEC_FAILED:
                log.error('Cannot execute(%s): "%s"', scanset.label, scanset.command)
                continue
            if result.retcode > 0:
                log.warning('Errors in Scanset "%s", Return code: %s, Error: %s',
                            scanset.label, result.retcode, " ".join(result.lines))
                continue

            log.debug("ocrdata=>>%s<<=end", "\n".join(result.lines))
            match = match_lines(words, result.lines, cfg.counts_required,
                                strip_numbers=cfg.strip_numbers,
                                unique_matches=cfg.unique_matches,
                                label=scanset.label,
                                cancel_check=controller.check)
            if match.count > best.count:
                best = _BestScan(match.count, match.pass_index, match.found, scanset.label)

            if best.count >= cfg.counts_required and cfg.minimal_scanset:
                log.info('Scanset "%s" generates enough hits (%d), skipping further scansets...',
                         scanset.label, best.count)
                if cfg.autosort_scanset:
                    registry = registry.record_hit(scanset.label, cfg.autosort_buffer)
                break
        return best, registry


def report(outcome: ScanOutcome, sink):
    """Deliver the collected rule hits to the host's score sink."""
    for hit in outcome.hits:
        sink.hit(hit.rule, hit.score, hit.description)
