"""
Error taxonomy for the scan pipeline.

Every failure is local to one image or one message; none of these ever
leave ``FuzzyOcrScanner.check``.

  ImageRejected            – drop the current image, continue with the next
    FormatUnrecognized     – no magic-byte match (or unreadable header)
    OutOfBounds            – dimension / byte size outside configured range
    ToolNotConfigured      – required executable path missing
    ToolTimeout            – external step exceeded its timeout
    ToolExecError          – external step returned nonzero
    CorruptSource          – repair tool reports unfixable corruption
  HashBackendUnavailable   – hash store read/write failed (cache miss)
  ScanCancelled            – global deadline hit, abandon the message
"""


class FuzzyOcrError(Exception):
    """Base class for all pipeline errors."""


class ImageRejected(FuzzyOcrError):
    """The current image contributes nothing; processing moves on.

    ``bad_image`` marks failures that count towards the workspace
    retention counter (see ``TempWorkspace``).
    """

    bad_image = False

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class FormatUnrecognized(ImageRejected):
    pass


class SniffError(FormatUnrecognized):
    """Header matched a known magic but its dimensions could not be read."""


class OutOfBounds(ImageRejected):
    pass


class ToolNotConfigured(ImageRejected):
    pass


class ToolTimeout(ImageRejected):
    bad_image = True


class ToolExecError(ImageRejected):
    bad_image = True

    def __init__(self, reason: str, output: list[str] | None = None):
        super().__init__(reason)
        self.output = output or []


class CorruptSource(ImageRejected):
    pass


class HashBackendUnavailable(FuzzyOcrError):
    pass


class ScanCancelled(FuzzyOcrError):
    """Raised inside the pipeline once the global deadline has fired."""
