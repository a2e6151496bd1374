"""High-level orchestration: seeds in, one JobReport out."""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple

import requests
from playwright.async_api import Browser
from playwright.async_api import Error as PlaywrightError

from .analysis import VisionAnalyzer, find_representative, save_analysis
from .capture import capture_target, launch_browser
from .config import Credentials, JobOptions
from .errors import (
    ANALYSIS_FAILED,
    CAPTURE_FAILED,
    NO_SCREENSHOT_FOR_ANALYSIS,
    MissingCredential,
    NoValidTargets,
)
from .links import discover
from .models import AnalysisResult, CaptureResult, CaptureTarget, JobReport, TargetKind, TargetReport
from .targets import validate_urls
from .utils import iso_now

logger = logging.getLogger("snapfolio")

EventSink = Callable[[str, Dict[str, Any]], None]
BrowserFactory = Callable[[], AsyncContextManager[Optional[Browser]]]


@asynccontextmanager
async def _no_browser() -> AsyncIterator[None]:
    yield None


class _JobContext:
    """Per-run collaborators, built once at job start and shared by all targets."""

    def __init__(
        self,
        options: JobOptions,
        credentials: Credentials,
        analyzer: Optional[VisionAnalyzer],
        session: Optional[requests.Session],
        cancel_event: Optional[asyncio.Event],
        on_event: Optional[EventSink],
    ) -> None:
        self.options = options
        self.credentials = credentials
        self.analyzer = analyzer
        self.session = session
        self.cancel_event = cancel_event
        self.on_event = on_event

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def emit(self, kind: str, payload: Dict[str, Any]) -> None:
        if self.on_event is None:
            return
        try:
            self.on_event(kind, payload)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Event sink failed for %s", kind)

    async def pause(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True if cancellation arrived meanwhile."""
        if self.cancel_event is None:
            if seconds > 0:
                await asyncio.sleep(seconds)
            return False
        try:
            await asyncio.wait_for(self.cancel_event.wait(), timeout=max(seconds, 0))
        except asyncio.TimeoutError:
            return False
        return True


def _options_summary(options: JobOptions) -> Dict[str, Any]:
    return {
        "capture": options.capture,
        "analyze": options.analyze,
        "discoverLinks": options.discover_links,
        "maxLinks": options.max_links,
        "outputRoot": str(options.output_root),
    }


async def _capture_seed(
    ctx: _JobContext,
    browser: Optional[Browser],
    seed: CaptureTarget,
) -> Tuple[List[CaptureResult], Optional[str]]:
    options = ctx.options
    site_dir = options.output_root / seed.project_id
    urls: List[str] = [seed.url]
    discovery_error = None
    if options.discover_links and seed.kind is TargetKind.WEB:
        discovery = await asyncio.to_thread(
            discover,
            seed.url,
            options.max_links,
            session=ctx.session,
            timeout=options.link_timeout,
        )
        discovery_error = discovery.error
        urls.extend(discovery.links)
        ctx.emit("stage-done", {"url": seed.url, "stage": "discover", "links": len(discovery.links)})

    captures: List[CaptureResult] = []
    for index, url in enumerate(urls):
        if index and (ctx.cancelled or await ctx.pause(options.link_delay)):
            logger.warning("Cancelled before %s; %d link(s) skipped", url, len(urls) - index)
            break
        target = seed if index == 0 else seed.child(url)
        try:
            result = await capture_target(
                browser,
                target,
                site_dir,
                options.capture_config,
                credentials=ctx.credentials,
                session=ctx.session,
                export_timeout=options.export_timeout,
            )
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected error capturing %s", url)
            result = CaptureResult.failed(url, CAPTURE_FAILED, str(exc))
        captures.append(result)
    ctx.emit(
        "stage-done",
        {
            "url": seed.url,
            "stage": "capture",
            "succeeded": sum(1 for c in captures if c.success),
            "total": len(captures),
        },
    )
    return captures, discovery_error


async def _analyze_seed(
    ctx: _JobContext,
    seed: CaptureTarget,
    captures: Sequence[CaptureResult],
) -> AnalysisResult:
    site_dir = ctx.options.output_root / seed.project_id
    representative = find_representative(seed, captures, site_dir)
    if representative is None or not representative.exists():
        logger.warning("No screenshot found for analysis of %s", seed.url)
        return AnalysisResult(
            url=seed.url,
            success=False,
            error=NO_SCREENSHOT_FOR_ANALYSIS,
            detail="No screenshot found for analysis",
        )
    result = await asyncio.to_thread(ctx.analyzer.analyze, representative, seed.url)
    saved = await asyncio.to_thread(save_analysis, result, seed, site_dir, ctx.options.job_id)
    if saved:
        result = replace(result, output_path=str(saved))
    ctx.emit("stage-done", {"url": seed.url, "stage": "analyze", "success": result.success})
    return result


async def process_seed(ctx: _JobContext, browser: Optional[Browser], seed: CaptureTarget) -> TargetReport:
    """Capture and optionally analyze one seed target."""
    options = ctx.options
    captures: Sequence[CaptureResult] = ()
    discovery_error = None
    if options.capture:
        captures, discovery_error = await _capture_seed(ctx, browser, seed)
    analysis = None
    if options.analyze:
        try:
            analysis = await _analyze_seed(ctx, seed, captures)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected error analyzing %s", seed.url)
            analysis = AnalysisResult(url=seed.url, success=False, error=ANALYSIS_FAILED, detail=str(exc))
    return TargetReport(
        target=seed,
        captures=tuple(captures),
        analysis=analysis,
        capture_requested=options.capture,
        analysis_requested=options.analyze,
        discovery_error=discovery_error,
        processed_at=iso_now(),
    )


async def _process_targets(
    ctx: _JobContext,
    browser: Optional[Browser],
    targets: Sequence[CaptureTarget],
    report: JobReport,
) -> None:
    options = ctx.options
    for index, seed in enumerate(targets):
        if ctx.cancelled:
            report.cancelled = True
            return
        if index and options.capture:
            delay = random.uniform(*options.seed_delay)
            logger.info("Waiting %.1fs before next site", delay)
            if await ctx.pause(delay):
                report.cancelled = True
                return
        logger.info("Processing site %d/%d: %s", index + 1, len(targets), seed.url)
        ctx.emit("target-start", {"url": seed.url, "index": index, "kind": seed.kind.value})
        entry = await process_seed(ctx, browser, seed)
        report.entries.append(entry)
        ctx.emit("target-done", {"url": seed.url, "success": entry.success, "error": entry.error})
        if ctx.cancelled:
            report.cancelled = True
            return


def _record_unreached(
    ctx: _JobContext,
    seeds: Sequence[CaptureTarget],
    report: JobReport,
    exc: Exception,
) -> None:
    """Record seeds that never reached the browser as failed captures."""
    detail = f"Browser unavailable: {exc}"
    for seed in seeds:
        entry = TargetReport(
            target=seed,
            captures=(CaptureResult.failed(seed.url, CAPTURE_FAILED, detail),),
            capture_requested=True,
            analysis_requested=ctx.options.analyze,
            processed_at=iso_now(),
        )
        report.entries.append(entry)
        ctx.emit("target-done", {"url": seed.url, "success": False, "error": CAPTURE_FAILED})


async def run_job(
    urls: Sequence[str],
    options: JobOptions,
    *,
    credentials: Optional[Credentials] = None,
    analyzer: Optional[VisionAnalyzer] = None,
    session: Optional[requests.Session] = None,
    cancel_event: Optional[asyncio.Event] = None,
    on_event: Optional[EventSink] = None,
    browser_factory: Optional[BrowserFactory] = None,
) -> JobReport:
    """Process seeds strictly in order and return the aggregate report.

    Raises only for precondition failures checked before any network activity:
    no stage selected, no valid targets, or a missing credential for a requested
    stage. Per-target failures are recorded on the report, including seeds left
    unprocessed because the browser could not be started.
    """
    if not options.capture and not options.analyze:
        raise ValueError("At least one of capture or analyze must be enabled")

    credentials = credentials or Credentials.from_env()
    targets, invalid = validate_urls(urls)
    if not targets:
        raise NoValidTargets(f"No valid URLs among {len(invalid)} input(s)")
    if options.analyze and analyzer is None:
        if not credentials.openai_api_key:
            raise MissingCredential("OPENAI_API_KEY", "analyze")
        analyzer = VisionAnalyzer(credentials.openai_api_key, options.analysis_config)

    if options.job_id is None:
        options = replace(options, job_id=uuid.uuid4().hex[:12])
    report = JobReport(
        job_id=options.job_id,
        started_at=iso_now(),
        options=_options_summary(options),
        invalid_inputs=invalid,
    )
    ctx = _JobContext(options, credentials, analyzer, session, cancel_event, on_event)
    ctx.emit("job-start", {"jobId": report.job_id, "targets": len(targets)})

    if browser_factory is None:
        headless = options.capture_config.headless
        browser_factory = (lambda: launch_browser(headless=headless)) if options.capture else _no_browser

    try:
        async with browser_factory() as browser:
            await _process_targets(ctx, browser, targets, report)
    except PlaywrightError as exc:
        logger.error("Browser session failed: %s", exc)
        if not report.cancelled:
            _record_unreached(ctx, targets[len(report.entries):], report, exc)

    if report.cancelled:
        logger.warning("Job %s cancelled after %d target(s)", report.job_id, len(report.entries))
    report.completed_at = iso_now()
    logger.info(
        "Job %s finished (%d/%d succeeded, %d failed)",
        report.job_id,
        report.succeeded,
        report.attempted,
        report.failed,
    )
    ctx.emit("job-done", {"jobId": report.job_id, "summary": report.summary()})
    return report
