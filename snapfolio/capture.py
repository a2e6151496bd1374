"""Capture unit: one isolated browser context per URL, two screenshots per success."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Tuple

import requests
from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from .config import CHROME_ARGS, CaptureConfig, Credentials
from .errors import CAPTURE_FAILED, CAPTURE_IO_ERROR, EXPORT_FAILED
from .figma import export_design
from .models import CaptureResult, CaptureTarget, TargetKind
from .stabilizer import stabilize_page
from .stores import export_listing
from .utils import free_timestamp, page_token

logger = logging.getLogger("snapfolio")

SCREENSHOT_SUFFIX = "jpg"

SMART_SCROLL_SCRIPT = """async () => {
  await new Promise((resolve) => {
    const scrollHeight = document.body ? document.body.scrollHeight : 0;
    const viewportHeight = window.innerHeight;
    const distance = Math.min(300, viewportHeight / 3);
    let position = 0;
    if (scrollHeight <= viewportHeight * 1.5) {
      resolve();
      return;
    }
    const timer = setInterval(() => {
      window.scrollBy(0, distance);
      position += distance;
      if (position >= scrollHeight - viewportHeight) {
        clearInterval(timer);
        setTimeout(() => {
          window.scrollTo({ top: 0, behavior: "instant" });
          setTimeout(resolve, 1000);
        }, 1000);
      }
    }, 300);
  });
}"""


@asynccontextmanager
async def launch_browser(headless: bool = True) -> AsyncIterator[Browser]:
    """Start one Chromium instance for a run and close it exactly once."""
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=headless, args=list(CHROME_ARGS))
        try:
            yield browser
        finally:
            await browser.close()


def screenshot_paths(output_dir: Path, url: str) -> Tuple[Path, Path]:
    """Full-page and viewport paths that do not collide with earlier captures."""
    token = page_token(url)
    timestamp = free_timestamp(output_dir, (f"{token}_full", f"{token}_viewport"))
    return (
        output_dir / f"{token}_full_{timestamp}.{SCREENSHOT_SUFFIX}",
        output_dir / f"{token}_viewport_{timestamp}.{SCREENSHOT_SUFFIX}",
    )


async def new_isolated_context(browser: Browser, config: CaptureConfig) -> BrowserContext:
    return await browser.new_context(
        viewport={"width": config.viewport_width, "height": config.viewport_height},
        user_agent=config.user_agent,
        extra_http_headers=dict(config.extra_headers),
    )


async def smart_scroll(page: Page, config: CaptureConfig) -> None:
    """Scroll to the bottom and back to trigger lazy-loaded content."""
    try:
        await asyncio.wait_for(page.evaluate(SMART_SCROLL_SCRIPT), config.scroll_timeout)
        await page.wait_for_timeout(1000)
    except (PlaywrightError, asyncio.TimeoutError) as exc:
        logger.debug("Smart scroll interrupted: %s", str(exc) or "timed out")


async def _take_screenshots(page: Page, url: str, output_dir: Path, config: CaptureConfig) -> Tuple[Path, Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    full, viewport = screenshot_paths(output_dir, url)
    timeout = max(1, int(config.screenshot_timeout * 1000))
    await page.screenshot(
        path=str(full), full_page=True, type="jpeg", quality=config.image_quality, timeout=timeout
    )
    try:
        await page.screenshot(
            path=str(viewport), full_page=False, type="jpeg", quality=config.image_quality, timeout=timeout
        )
    except BaseException:
        full.unlink(missing_ok=True)
        raise
    return full, viewport


async def capture_page(
    browser: Browser,
    target: CaptureTarget,
    output_dir: Path,
    config: CaptureConfig,
) -> CaptureResult:
    """Photograph one URL through the browser. Never raises for page-level failures."""
    url = target.url
    try:
        context = await new_isolated_context(browser, config)
    except PlaywrightError as exc:
        logger.error("Could not open a browser context for %s: %s", url, exc)
        return CaptureResult.failed(url, CAPTURE_FAILED, str(exc))

    try:
        page = await context.new_page()
        state = await stabilize_page(page, url, config.stabilizer)
        diagnostics = {
            "anchor_selector": state.anchor_selector,
            "content_detected": state.content_detected if state.navigated else None,
        }
        if not state.ready:
            return CaptureResult.failed(
                url, state.failure or CAPTURE_FAILED, state.detail, state.stats, **diagnostics
            )

        if config.smart_scroll and target.kind is not TargetKind.DESIGN:
            logger.debug("Performing smart scroll on %s", url)
            await smart_scroll(page, config)

        logger.info("Taking screenshots of %s", url)
        try:
            full, viewport = await _take_screenshots(page, url, output_dir, config)
        except OSError as exc:
            logger.error("Could not write screenshots for %s: %s", url, exc)
            return CaptureResult.failed(url, CAPTURE_IO_ERROR, str(exc), state.stats, **diagnostics)

        logger.info("Screenshots saved to %s", output_dir)
        return CaptureResult(
            url=url,
            success=True,
            full_page_path=str(full),
            viewport_path=str(viewport),
            page_stats=state.stats,
            **diagnostics,
        )
    except PlaywrightError as exc:
        logger.error("Failed to screenshot %s: %s", url, exc)
        return CaptureResult.failed(url, CAPTURE_FAILED, str(exc))
    finally:
        try:
            await context.close()
        except PlaywrightError as exc:
            logger.warning("Failed to close browser context for %s: %s", url, exc)


def _structured_result(url: str, files, method: str) -> CaptureResult:
    first = str(files[0])
    return CaptureResult(
        url=url,
        success=True,
        full_page_path=first,
        viewport_path=first,
        method=method,
        extra_files=tuple(str(path) for path in files),
    )


async def capture_design(
    browser: Optional[Browser],
    target: CaptureTarget,
    output_dir: Path,
    config: CaptureConfig,
    credentials: Credentials,
    session: Optional[requests.Session] = None,
    export_timeout: float = 60.0,
) -> CaptureResult:
    """Prefer the token-authenticated export; fall back to a browser capture."""
    if credentials.figma_token:
        logger.info("Attempting design export for %s", target.url)
        export = await asyncio.to_thread(
            export_design,
            target.url,
            credentials.figma_token,
            output_dir,
            session=session,
            timeout=export_timeout,
        )
        if export.success:
            return _structured_result(target.url, export.files, "api")
        logger.info("Design export unavailable (%s), falling back to browser", export.error)
        if browser is None:
            return CaptureResult.failed(target.url, EXPORT_FAILED, export.error, method="api")
    if browser is None:
        return CaptureResult.failed(target.url, CAPTURE_FAILED, "No browser session available")
    return await capture_page(browser, target, output_dir, config.for_design())


async def capture_store(
    browser: Optional[Browser],
    target: CaptureTarget,
    output_dir: Path,
    config: CaptureConfig,
    session: Optional[requests.Session] = None,
    export_timeout: float = 60.0,
) -> CaptureResult:
    """Use listing metadata where the store exposes it, else photograph the listing page."""
    export = await asyncio.to_thread(
        export_listing, target, output_dir, session=session, timeout=export_timeout
    )
    if export.success:
        return _structured_result(target.url, export.files, "listing")
    logger.info("Store listing export unavailable (%s), falling back to browser", export.error)
    if browser is None:
        return CaptureResult.failed(target.url, EXPORT_FAILED, export.error, method="listing")
    return await capture_page(browser, target, output_dir, config)


async def capture_target(
    browser: Optional[Browser],
    target: CaptureTarget,
    output_dir: Path,
    config: CaptureConfig,
    credentials: Optional[Credentials] = None,
    session: Optional[requests.Session] = None,
    export_timeout: float = 60.0,
) -> CaptureResult:
    """Dispatch a target to the capture path matching its kind."""
    credentials = credentials or Credentials()
    if target.kind is TargetKind.DESIGN:
        return await capture_design(
            browser, target, output_dir, config, credentials, session, export_timeout
        )
    if target.kind is TargetKind.STORE and target.depth == 0:
        return await capture_store(browser, target, output_dir, config, session, export_timeout)
    if browser is None:
        return CaptureResult.failed(target.url, CAPTURE_FAILED, "No browser session available")
    return await capture_page(browser, target, output_dir, config)
