"""
Tool runner – invokes one external conversion/OCR program with a bounded
wall-clock timeout.

Result contract (``ToolResult.retcode``):
   0   success
  >0   the tool's own exit status
  -1   timed out (child killed)
  -2   executable missing, could not be started, or a redirect file
       could not be opened

The running child is wrapped in a ``ToolProcess`` handle and handed to the
owning ``GlobalTimeoutController`` for the duration of the call, so the
controller can kill it from outside.
"""

import logging
import subprocess
from dataclasses import dataclass, field

log = logging.getLogger(__name__)

RET_TIMEOUT = -1
RET_EXEC_FAILED = -2


@dataclass
class ToolResult:
    retcode: int
    lines: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.retcode == 0

    @property
    def timed_out(self) -> bool:
        return self.retcode == RET_TIMEOUT


class ToolProcess:
    """Handle on a running child process."""

    def __init__(self, popen: subprocess.Popen, argv: list[str]):
        self.popen = popen
        self.argv = argv

    @property
    def pid(self):
        return self.popen.pid

    def terminate(self) -> bool:
        """Best-effort kill.  Returns True if the child was still running."""
        if self.popen.poll() is not None:
            return False
        try:
            self.popen.kill()
        except ProcessLookupError:
            return False
        return True


class ToolRunner:
    def __init__(self, timeout: float, controller=None):
        self.timeout = timeout
        self.controller = controller

    def invoke(
        self,
        argv: list[str],
        stdin: str | None = None,
        stdout: str | None = None,
        stderr: str | None = None,
        capture: bool = False,
    ) -> ToolResult:
        """Run *argv*; redirect streams to the given file paths.

        stdout is truncated, stderr is appended.  With *capture* the stdout
        lines are returned (read back from the file when one was given).
        """
        if self.controller is not None:
            self.controller.check()

        log.debug("exec: %s", " ".join(argv))
        handles = []
        try:
            try:
                stdin_fh = open(stdin, "rb") if stdin else subprocess.DEVNULL
                if stdin:
                    handles.append(stdin_fh)
                if stdout:
                    stdout_fh = open(stdout, "wb")
                    handles.append(stdout_fh)
                else:
                    stdout_fh = subprocess.PIPE if capture else subprocess.DEVNULL
                if stderr:
                    stderr_fh = open(stderr, "ab")
                    handles.append(stderr_fh)
                else:
                    stderr_fh = subprocess.DEVNULL
            except OSError as exc:
                log.error("Cannot redirect %s: %s", argv[0], exc)
                return ToolResult(RET_EXEC_FAILED)

            try:
                popen = subprocess.Popen(
                    argv, stdin=stdin_fh, stdout=stdout_fh, stderr=stderr_fh,
                )
            except OSError as exc:
                log.error("Cannot execute %s: %s", argv[0], exc)
                return ToolResult(RET_EXEC_FAILED)

            proc = ToolProcess(popen, argv)
            if self.controller is not None:
                self.controller.track(proc)
            try:
                out, _ = popen.communicate(timeout=self.timeout)
            except subprocess.TimeoutExpired:
                proc.terminate()
                popen.communicate()
                log.debug("Timed out after %ss: %s", self.timeout, argv[0])
                return ToolResult(RET_TIMEOUT)
            finally:
                if self.controller is not None:
                    self.controller.untrack(proc)
        finally:
            for fh in handles:
                fh.close()

        if self.controller is not None:
            # a kill from the global deadline surfaces here, not as an exit code
            self.controller.check()

        lines: list[str] = []
        if capture:
            if stdout:
                with open(stdout, "r", encoding="utf-8", errors="replace") as f:
                    lines = f.read().splitlines()
            elif out:
                lines = out.decode("utf-8", errors="replace").splitlines()
        return ToolResult(popen.returncode, lines)
