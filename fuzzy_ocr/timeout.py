"""
Global timeout controller – puts one outer deadline around a whole
message scan.

The scan runs in a daemon worker thread; the caller joins it with the
deadline.  On expiry the controller:

  1. flags the scan as cancelled (every ToolRunner call and pipeline step
     checks the flag and raises ScanCancelled),
  2. kills the child process currently registered by the ToolRunner,
  3. waits a short grace period for the worker to unwind,
  4. deletes every TempWorkspace registered for the message,
  5. hands the caller the neutral result.
"""

import logging
import threading

from fuzzy_ocr.errors import ScanCancelled

log = logging.getLogger(__name__)

# Seconds to let the worker unwind after its child has been killed
_UNWIND_GRACE = 5.0


class GlobalTimeoutController:
    def __init__(self, seconds: float | None, grace: float = _UNWIND_GRACE):
        self.seconds = seconds
        self.grace = grace
        self.timed_out = False
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._process = None
        self._workspaces = []

    # ---- cooperation hooks used by ToolRunner / scanner ----

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def check(self):
        if self._cancelled.is_set():
            raise ScanCancelled("global timeout expired")

    def track(self, process):
        with self._lock:
            self._process = process
        # deadline fired between check() and spawn
        if self._cancelled.is_set():
            process.terminate()

    def untrack(self, process):
        with self._lock:
            if self._process is process:
                self._process = None

    def register_workspace(self, workspace):
        with self._lock:
            self._workspaces.append(workspace)
        if self._cancelled.is_set():
            workspace.destroy()
            raise ScanCancelled("global timeout expired")

    # ---- driver ----

    def run(self, fn, *args, neutral=None):
        """Call ``fn(*args)`` under the deadline; *neutral* is returned on expiry."""
        if not self.seconds:
            try:
                return fn(*args)
            except ScanCancelled:
                return neutral

        result_box = [neutral]
        err_box = [None]

        def _do():
            try:
                result_box[0] = fn(*args)
            except ScanCancelled:
                log.debug("Scan worker unwound after cancellation")
            except Exception as e:
                err_box[0] = e

        log.debug("Global Timeout set at %s sec.", self.seconds)
        t = threading.Thread(target=_do, name="fuzzyocr-scan", daemon=True)
        t.start()
        t.join(timeout=self.seconds)
        if t.is_alive():
            self._expire()
            t.join(timeout=self.grace)
            if t.is_alive():
                log.error("Scan worker still running %.1fs after timeout", self.grace)
            self._discard_workspaces()
            return neutral
        if err_box[0] is not None:
            raise err_box[0]
        return result_box[0]

    def _expire(self):
        self.timed_out = True
        self._cancelled.set()
        log.info("Scan timed out after %s seconds.", self.seconds)
        with self._lock:
            process = self._process
        if process is None:
            log.info("No processes left... exiting")
        elif process.terminate():
            log.info("Successfully killed PID %s", process.pid)
        else:
            log.info("PID %s had already exited", process.pid)

    def _discard_workspaces(self):
        log.info("Removing possibly leftover tempdirs...")
        with self._lock:
            workspaces = list(self._workspaces)
        for ws in workspaces:
            ws.destroy()
