"""Data models shared by the capture pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class TargetKind(str, Enum):
    WEB = "web"
    DESIGN = "design"
    STORE = "store"


class StorePlatform(str, Enum):
    ANDROID = "android"
    IOS = "ios"


@dataclass(frozen=True)
class CaptureTarget:
    """One URL to be photographed."""

    url: str
    kind: TargetKind
    project_id: str
    depth: int = 0
    platform: Optional[StorePlatform] = None

    def child(self, url: str) -> "CaptureTarget":
        """A discovered link inheriting this seed's classification."""
        return replace(self, url=url, depth=self.depth + 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "kind": self.kind.value,
            "projectId": self.project_id,
            "depth": self.depth,
            "platform": self.platform.value if self.platform else None,
        }


@dataclass(frozen=True)
class PageStats:
    """In-page measurements used by the content-validity predicate."""

    has_body: bool = False
    text_length: int = 0
    title: str = ""
    has_images: bool = False
    has_links: bool = False
    body_height: int = 0
    document_height: int = 0

    @classmethod
    def from_page(cls, payload: Optional[Dict[str, Any]]) -> "PageStats":
        payload = payload or {}
        return cls(
            has_body=bool(payload.get("hasBody")),
            text_length=int(payload.get("textLength") or 0),
            title=str(payload.get("title") or ""),
            has_images=bool(payload.get("hasImages")),
            has_links=bool(payload.get("hasLinks")),
            body_height=int(payload.get("bodyHeight") or 0),
            document_height=int(payload.get("documentHeight") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PageReadinessState:
    """Progress of one page through the stabilizer; discarded after the capture."""

    url: str
    navigated: bool = False
    anchor_selector: Optional[str] = None
    text_found: bool = False
    stats: Optional[PageStats] = None
    failure: Optional[str] = None
    detail: Optional[str] = None

    @property
    def content_detected(self) -> bool:
        return self.anchor_selector is not None or self.text_found

    @property
    def ready(self) -> bool:
        return self.navigated and self.stats is not None and self.failure is None


@dataclass(frozen=True)
class CaptureResult:
    """Outcome of one capture unit invocation."""

    url: str
    success: bool
    full_page_path: Optional[str] = None
    viewport_path: Optional[str] = None
    error: Optional[str] = None
    detail: Optional[str] = None
    page_stats: Optional[PageStats] = None
    method: str = "browser"
    extra_files: Tuple[str, ...] = ()
    anchor_selector: Optional[str] = None
    content_detected: Optional[bool] = None

    @classmethod
    def failed(
        cls,
        url: str,
        error: str,
        detail: Optional[str] = None,
        page_stats: Optional[PageStats] = None,
        method: str = "browser",
        anchor_selector: Optional[str] = None,
        content_detected: Optional[bool] = None,
    ) -> "CaptureResult":
        return cls(
            url=url,
            success=False,
            error=error,
            detail=detail,
            page_stats=page_stats,
            method=method,
            anchor_selector=anchor_selector,
            content_detected=content_detected,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "success": self.success,
            "fullPageFile": self.full_page_path,
            "viewportFile": self.viewport_path,
            "error": self.error,
            "detail": self.detail,
            "pageStats": self.page_stats.to_dict() if self.page_stats else None,
            "method": self.method,
            "files": list(self.extra_files),
            "anchorSelector": self.anchor_selector,
            "contentDetected": self.content_detected,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of sending one screenshot to the vision model."""

    url: str
    success: bool
    analysis: Optional[str] = None
    error: Optional[str] = None
    detail: Optional[str] = None
    screenshot_path: Optional[str] = None
    output_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "success": self.success,
            "analysis": self.analysis,
            "error": self.error,
            "detail": self.detail,
            "screenshot": self.screenshot_path,
            "filePath": self.output_path,
        }


@dataclass(frozen=True)
class TargetReport:
    """Everything recorded for one seed target."""

    target: CaptureTarget
    captures: Tuple[CaptureResult, ...] = ()
    analysis: Optional[AnalysisResult] = None
    capture_requested: bool = True
    analysis_requested: bool = False
    discovery_error: Optional[str] = None
    processed_at: Optional[str] = None

    @property
    def url(self) -> str:
        return self.target.url

    @property
    def success(self) -> bool:
        if self.capture_requested and not any(c.success for c in self.captures):
            return False
        if self.analysis_requested and not (self.analysis and self.analysis.success):
            return False
        return True

    @property
    def error(self) -> Optional[str]:
        if self.success:
            return None
        if self.capture_requested and not any(c.success for c in self.captures):
            for capture in self.captures:
                if capture.error:
                    return capture.error
        if self.analysis is not None:
            return self.analysis.error
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "target": self.target.to_dict(),
            "success": self.success,
            "error": self.error,
            "discoveryError": self.discovery_error,
            "screenshots": [capture.to_dict() for capture in self.captures],
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "processedAt": self.processed_at,
        }


@dataclass
class JobReport:
    """Aggregate of a run, returned by the job runner and written once."""

    job_id: str
    started_at: str
    options: Dict[str, Any] = field(default_factory=dict)
    entries: List[TargetReport] = field(default_factory=list)
    invalid_inputs: List[Dict[str, str]] = field(default_factory=list)
    completed_at: Optional[str] = None
    cancelled: bool = False

    @property
    def attempted(self) -> int:
        return len(self.entries)

    @property
    def succeeded(self) -> int:
        return sum(1 for entry in self.entries if entry.success)

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    def summary(self) -> Dict[str, int]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "invalid": len(self.invalid_inputs),
        }

    def merged_with(self, other: "JobReport") -> "JobReport":
        """Compose two reports; entries keep their original order, self first."""
        return JobReport(
            job_id=f"{self.job_id}+{other.job_id}",
            started_at=min(self.started_at, other.started_at),
            options={**other.options, **self.options},
            entries=[*self.entries, *other.entries],
            invalid_inputs=[*self.invalid_inputs, *other.invalid_inputs],
            completed_at=max(
                (ts for ts in (self.completed_at, other.completed_at) if ts),
                default=None,
            ),
            cancelled=self.cancelled or other.cancelled,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jobId": self.job_id,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "cancelled": self.cancelled,
            "options": self.options,
            "summary": self.summary(),
            "invalidInputs": list(self.invalid_inputs),
            "results": [entry.to_dict() for entry in self.entries],
        }
