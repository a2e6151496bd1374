"""Error kinds recorded on results and exceptions for job-level preconditions."""

from __future__ import annotations

INVALID_URL = "InvalidUrl"
PAGE_LOAD_TIMEOUT = "PageLoadTimeout"
PAGE_LOAD_FAILED = "PageLoadFailed"
PAGE_APPEARS_EMPTY = "PageAppearsEmpty"
CAPTURE_IO_ERROR = "CaptureIOError"
CAPTURE_FAILED = "CaptureFailed"
EXPORT_FAILED = "ExportFailed"
LINK_DISCOVERY_FAILED = "LinkDiscoveryFailed"
ANALYSIS_FAILED = "AnalysisFailed"
NO_SCREENSHOT_FOR_ANALYSIS = "NoScreenshotForAnalysis"
MISSING_CREDENTIAL = "MissingCredential"


class SnapfolioError(Exception):
    """Base class for errors raised by snapfolio."""


class InvalidUrl(SnapfolioError):
    """Input could not be parsed as an absolute http(s) URL."""

    kind = INVALID_URL

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{reason}: {url!r}")
        self.url = url
        self.reason = reason


class NoValidTargets(SnapfolioError):
    """None of the supplied inputs survived validation."""


class MissingCredential(SnapfolioError):
    """A requested stage needs a credential that is not configured."""

    kind = MISSING_CREDENTIAL

    def __init__(self, variable: str, stage: str) -> None:
        super().__init__(f"{variable} is required for the {stage} stage")
        self.variable = variable
        self.stage = stage
