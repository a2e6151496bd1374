"""Decide when a loaded page is ready to be photographed.

The stabilizer layers cheap, individually bounded heuristics on top of
Playwright: navigation (DOM ready plus network idle), a fixed settle delay,
an anchor selector search with a visible-text fallback, and finally an
in-page content-validity check. A page that passes the check is optionally
given extra time for framework renders, images and web fonts before the
caller takes its screenshot. Only navigation failures and the validity
check are terminal; everything else degrades to "capture anyway".
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import StabilizerConfig
from .errors import PAGE_APPEARS_EMPTY, PAGE_LOAD_FAILED, PAGE_LOAD_TIMEOUT
from .models import PageReadinessState, PageStats

logger = logging.getLogger("snapfolio")

MIN_VALID_TEXT_CHARS = 50
MIN_VALID_BODY_HEIGHT = 100

PAGE_STATS_SCRIPT = """() => {
  const body = document.body;
  const html = document.documentElement;
  const text = body && body.innerText ? body.innerText.trim() : "";
  return {
    hasBody: !!body,
    textLength: text.length,
    title: document.title || "",
    hasImages: document.images.length > 0,
    hasLinks: document.links.length > 0,
    bodyHeight: body ? body.scrollHeight : 0,
    documentHeight: html ? html.scrollHeight : 0,
  };
}"""

TEXT_READY_SCRIPT = """(minChars) => {
  const body = document.body;
  return !!body && !!body.innerText && body.innerText.trim().length > minChars;
}"""

CANVAS_READY_SCRIPT = """() => {
  const canvases = Array.from(document.querySelectorAll("canvas"));
  return canvases.some((canvas) => canvas.width > 0 && canvas.height > 0);
}"""

FRAMEWORK_SETTLE_SCRIPT = """async (settleMs) => {
  await new Promise((resolve) => {
    requestAnimationFrame(() => requestAnimationFrame(() => requestAnimationFrame(resolve)));
  });
  if (window.React || window.Vue || window.ng || window.angular) {
    await new Promise((resolve) => setTimeout(resolve, settleMs));
  }
}"""

IMAGES_READY_SCRIPT = """async (perImageMs) => {
  const pending = Array.from(document.images).filter((img) => !img.complete);
  await Promise.all(pending.map((img) => new Promise((resolve) => {
    img.addEventListener("load", resolve, { once: true });
    img.addEventListener("error", resolve, { once: true });
    setTimeout(resolve, perImageMs);
  })));
  return pending.length;
}"""

FONTS_READY_SCRIPT = "() => document.fonts.ready.then(() => true)"

ANIMATION_FRAMES_SCRIPT = """async () => {
  await new Promise((resolve) => {
    requestAnimationFrame(() => requestAnimationFrame(() => requestAnimationFrame(resolve)));
  });
}"""

QUICK_FRAMES_SCRIPT = """async () => {
  await new Promise((resolve) => requestAnimationFrame(() => requestAnimationFrame(resolve)));
}"""


def _ms(seconds: float) -> int:
    # Playwright treats a timeout of 0 as "wait forever".
    return max(1, int(seconds * 1000))


def is_valid_page(stats: PageStats) -> bool:
    """Content-validity predicate: a body, some content, and a non-trivial height."""
    has_content = stats.text_length > MIN_VALID_TEXT_CHARS or stats.has_images or stats.has_links
    return stats.has_body and has_content and stats.body_height > MIN_VALID_BODY_HEIGHT


async def navigate(page: Page, url: str, config: StabilizerConfig) -> None:
    """Load ``url`` until DOM-ready and network-idle, both within one hard timeout."""
    started = time.monotonic()
    await page.goto(url, wait_until="domcontentloaded", timeout=_ms(config.navigation_timeout))
    remaining = config.navigation_timeout - (time.monotonic() - started)
    await page.wait_for_load_state("networkidle", timeout=_ms(remaining))


async def find_anchor(page: Page, config: StabilizerConfig) -> Optional[str]:
    """Return the first selector from the priority list that attaches in time."""
    for selector in config.anchor_selectors:
        try:
            await page.wait_for_selector(
                selector, state="attached", timeout=_ms(config.selector_timeout)
            )
        except PlaywrightTimeoutError:
            continue
        except PlaywrightError as exc:
            logger.debug("Selector %s could not be evaluated: %s", selector, exc)
            continue
        return selector
    return None


async def wait_for_text(page: Page, config: StabilizerConfig) -> bool:
    try:
        await page.wait_for_function(
            TEXT_READY_SCRIPT, arg=config.min_text_chars, timeout=_ms(config.text_timeout)
        )
    except PlaywrightError as exc:
        logger.debug("Text content wait ended: %s", exc)
        return False
    return True


async def _best_effort(page: Page, script: str, timeout: float, arg: Any = None) -> bool:
    try:
        await asyncio.wait_for(page.evaluate(script, arg), timeout)
    except (PlaywrightError, asyncio.TimeoutError) as exc:
        logger.debug("Skipped settle step: %s", str(exc) or "timed out")
        return False
    return True


async def settle(page: Page, config: StabilizerConfig) -> None:
    """Give frameworks, images and fonts a bounded chance to finish."""
    if config.enhanced_loading:
        logger.debug("Waiting for JavaScript frameworks")
        await _best_effort(
            page, FRAMEWORK_SETTLE_SCRIPT, config.settle_timeout, _ms(config.framework_settle)
        )
        logger.debug("Waiting for images to load")
        await _best_effort(page, IMAGES_READY_SCRIPT, config.settle_timeout, _ms(config.image_timeout))
        if not await _best_effort(page, FONTS_READY_SCRIPT, config.settle_timeout):
            logger.debug("Font loading check failed, continuing")
    else:
        await _best_effort(page, QUICK_FRAMES_SCRIPT, config.settle_timeout)

    if config.pre_capture_delay > 0:
        await _best_effort(page, ANIMATION_FRAMES_SCRIPT, config.settle_timeout)
        await page.wait_for_timeout(_ms(config.pre_capture_delay))


async def stabilize_page(page: Page, url: str, config: StabilizerConfig) -> PageReadinessState:
    """Drive ``page`` from navigation to a ready (or terminally failed) state."""
    state = PageReadinessState(url=url)
    logger.info("Loading %s", url)
    try:
        await navigate(page, url, config)
    except PlaywrightTimeoutError as exc:
        logger.error("Page load timeout for %s: %s", url, exc)
        state.failure, state.detail = PAGE_LOAD_TIMEOUT, str(exc)
        return state
    except PlaywrightError as exc:
        logger.error("Page failed to load %s: %s", url, exc)
        state.failure, state.detail = PAGE_LOAD_FAILED, str(exc)
        return state
    state.navigated = True

    if config.settle_delay > 0:
        await page.wait_for_timeout(_ms(config.settle_delay))

    if config.wait_for_canvas:
        try:
            await page.wait_for_function(CANVAS_READY_SCRIPT, timeout=_ms(config.canvas_timeout))
        except PlaywrightError as exc:
            logger.info("Canvas content wait failed for %s: %s", url, exc)

    state.anchor_selector = await find_anchor(page, config)
    if state.anchor_selector:
        logger.debug("Found content with selector %s", state.anchor_selector)
    else:
        state.text_found = await wait_for_text(page, config)
        if not state.text_found:
            logger.warning("Could not detect meaningful content for %s", url)

    try:
        state.stats = PageStats.from_page(await page.evaluate(PAGE_STATS_SCRIPT))
    except PlaywrightError as exc:
        logger.error("Could not inspect %s: %s", url, exc)
        state.stats = PageStats()
    if not is_valid_page(state.stats):
        logger.error("Page appears to be empty or invalid: %s", url)
        state.failure = PAGE_APPEARS_EMPTY
        state.detail = "Page appears to be empty or invalid"
        return state

    logger.info(
        "Page validation passed for %s (text: %d chars, images: %s, links: %s, height: %dpx)",
        url,
        state.stats.text_length,
        state.stats.has_images,
        state.stats.has_links,
        state.stats.body_height,
    )
    await settle(page, config)
    return state
