import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from snapfolio.config import CaptureConfig, JobOptions, StabilizerConfig  # noqa: E402
from snapfolio.stabilizer import PAGE_STATS_SCRIPT  # noqa: E402

VALID_STATS = {
    "hasBody": True,
    "textLength": 1200,
    "title": "Example",
    "hasImages": True,
    "hasLinks": True,
    "bodyHeight": 2400,
    "documentHeight": 2400,
}

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 256


@dataclass
class PageBehaviour:
    """How a fake page reacts once navigated to a URL."""

    stats: Dict = field(default_factory=lambda: dict(VALID_STATS))
    load_timeout: bool = False
    load_error: bool = False
    selectors: Optional[List[str]] = None
    text_ready: bool = True
    sets_cookie: Optional[str] = None


class FakePage:
    def __init__(self, context: "FakeContext") -> None:
        self.context = context
        self.url = "about:blank"
        self.behaviour = PageBehaviour()
        self.calls: List[tuple] = []
        self.cookies_seen: List[str] = []
        self.screenshots: List[Dict] = []

    async def goto(self, url, wait_until=None, timeout=None):
        self.calls.append(("goto", url, wait_until, timeout))
        behaviour = self.context.browser.behaviour_for(url)
        self.cookies_seen = list(self.context.cookies)
        if behaviour.load_timeout:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")
        if behaviour.load_error:
            raise PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
        self.url = url
        self.behaviour = behaviour
        if behaviour.sets_cookie:
            self.context.cookies.append(behaviour.sets_cookie)

    async def wait_for_load_state(self, state=None, timeout=None):
        self.calls.append(("load_state", state, timeout))

    async def wait_for_timeout(self, timeout):
        self.calls.append(("sleep", timeout))

    async def wait_for_selector(self, selector, state=None, timeout=None):
        self.calls.append(("selector", selector, timeout))
        selectors = self.behaviour.selectors
        if selectors is None or selector in selectors:
            return object()
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def wait_for_function(self, expression, arg=None, timeout=None, polling=None):
        self.calls.append(("function", expression, arg, timeout))
        if self.behaviour.text_ready:
            return True
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")

    async def evaluate(self, expression, arg=None):
        self.calls.append(("evaluate", expression, arg))
        if expression == PAGE_STATS_SCRIPT:
            return dict(self.behaviour.stats)
        return None

    async def screenshot(self, path=None, full_page=False, type=None, quality=None, timeout=None):
        self.screenshots.append({"path": path, "full_page": full_page, "type": type, "quality": quality})
        if self.context.browser.fail_screenshots:
            raise PermissionError(13, "Permission denied", path)
        if self.context.browser.fail_viewport and not full_page:
            raise PlaywrightError("Target page, context or browser has been closed")
        Path(path).write_bytes(JPEG_BYTES)
        return JPEG_BYTES

    def evaluated(self, script) -> bool:
        return any(call[0] == "evaluate" and call[1] == script for call in self.calls)


class FakeContext:
    def __init__(self, browser: "FakeBrowser", options: Dict) -> None:
        self.browser = browser
        self.options = options
        self.cookies: List[str] = []
        self.pages: List[FakePage] = []
        self.closed = False

    async def new_page(self):
        page = FakePage(self)
        self.pages.append(page)
        return page

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, behaviours: Optional[Dict[str, PageBehaviour]] = None) -> None:
        self.behaviours = behaviours or {}
        self.contexts: List[FakeContext] = []
        self.fail_screenshots = False
        self.fail_viewport = False
        self.closed = 0

    def behaviour_for(self, url: str) -> PageBehaviour:
        return self.behaviours.get(url, PageBehaviour())

    async def new_context(self, **options):
        context = FakeContext(self, options)
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed += 1

    @property
    def pages(self) -> List[FakePage]:
        return [page for context in self.contexts for page in context.pages]


def browser_factory(browser: FakeBrowser):
    @asynccontextmanager
    async def factory():
        try:
            yield browser
        finally:
            await browser.close()

    return factory


class FakeResponse:
    def __init__(self, text="", status_code=200, json_data=None, content=b"", headers=None, url=""):
        self.text = text
        self.status_code = status_code
        self._json = json_data
        self.content = content
        self.headers = headers or {}
        self.url = url

    def raise_for_status(self):
        import requests

        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class FakeSession:
    """Maps URLs to responses (or exceptions) and records every request."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.requests: List[tuple] = []

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        outcome = self.routes.get(url)
        if outcome is None:
            return FakeResponse(status_code=404)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self):
        pass


@pytest.fixture
def fast_stabilizer():
    return StabilizerConfig(settle_delay=0, pre_capture_delay=0, selector_timeout=0.01, text_timeout=0.01)


@pytest.fixture
def capture_config(fast_stabilizer):
    return CaptureConfig(stabilizer=fast_stabilizer, scroll_timeout=1)


@pytest.fixture
def job_options(tmp_path, capture_config):
    return JobOptions(
        output_root=tmp_path / "screenshots",
        capture=True,
        analyze=False,
        discover_links=False,
        seed_delay=(0.0, 0.0),
        link_delay=0.0,
        capture_config=capture_config,
    )
