"""Configuration objects and constants for capture jobs."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional, Tuple

DEFAULT_OUTPUT_ROOT = Path("screenshots")

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_HEADERS: Mapping[str, str] = {
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}

CHROME_ARGS = (
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-dev-shm-usage",
)

DEFAULT_ANCHOR_SELECTORS: Tuple[str, ...] = (
    "body",
    "main",
    "div",
    "section",
    "article",
    "header",
    ".App",
    "#app",
    "#root",
    "#__next",
    "nav",
    "footer",
    "h1",
    "h2",
    ".container",
    ".content",
    "[class*='content']",
    "[class*='main']",
    "[id*='content']",
)

DESIGN_ANCHOR_SELECTORS: Tuple[str, ...] = (
    "canvas",
    ".figma-canvas",
    ".canvas-container",
    "[data-testid='canvas']",
    ".view-layers",
)

DEFAULT_ANALYSIS_MODEL = "gpt-4o"

DEFAULT_ANALYSIS_PROMPT = """Analyze this website homepage screenshot and provide a comprehensive analysis:

SHORT DESCRIPTION:
Provide a concise 1-2 sentence summary of what this website is about and who it's for.

LONG DESCRIPTION:
Provide a detailed 3-4 paragraph description covering the website's purpose, target audience, business model, and overall value proposition based on what's visible in the screenshot.

KEY FEATURES:
List the main features and functionalities visible on the homepage:
- Primary navigation options
- Key services or products offered
- Interactive elements (buttons, forms, search, etc.)
- Content sections and their purposes
- Social proof elements (testimonials, logos, etc.)
- Contact or conversion opportunities

TECH STACK ANALYSIS:
Based on visual clues, design patterns, and any visible elements, identify potential technologies:
- Frontend framework indicators (React/Vue/Angular patterns)
- UI library suggestions (Bootstrap, Material UI, custom design)
- CMS indicators (WordPress, Shopify, custom build)
- E-commerce platform clues (if applicable)
- Any visible third-party integrations

DESIGN & VISUAL ELEMENTS:
- Overall design style and aesthetic
- Color scheme and branding approach
- Layout structure and organization
- Typography choices and hierarchy

USER EXPERIENCE ASSESSMENT:
- Navigation clarity and accessibility
- Call-to-action effectiveness and placement
- Information architecture quality

PROFESSIONAL ASSESSMENT:
- Professional rating (1-10) with justification
- Strengths and areas for improvement
- Target audience alignment effectiveness

Keep the analysis detailed, well-structured, and professional."""


@dataclass(frozen=True)
class StabilizerConfig:
    """Timing budget for deciding when a page is ready to photograph.

    All durations are in seconds. Every wait is bounded by one of these values.
    """

    navigation_timeout: float = 90.0
    settle_delay: float = 3.0
    anchor_selectors: Tuple[str, ...] = DEFAULT_ANCHOR_SELECTORS
    selector_timeout: float = 8.0
    text_timeout: float = 10.0
    min_text_chars: int = 100
    enhanced_loading: bool = True
    framework_settle: float = 2.0
    image_timeout: float = 5.0
    settle_timeout: float = 30.0
    pre_capture_delay: float = 3.0
    wait_for_canvas: bool = False
    canvas_timeout: float = 10.0


@dataclass(frozen=True)
class CaptureConfig:
    """Browser context and screenshot settings for one capture."""

    viewport_width: int = 1440
    viewport_height: int = 900
    user_agent: str = DEFAULT_USER_AGENT
    extra_headers: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_HEADERS))
    image_quality: int = 85
    smart_scroll: bool = True
    scroll_timeout: float = 30.0
    screenshot_timeout: float = 60.0
    headless: bool = True
    stabilizer: StabilizerConfig = field(default_factory=StabilizerConfig)

    def for_design(self) -> "CaptureConfig":
        """Variant used when a design-tool canvas is captured through the browser."""
        stabilizer = replace(
            self.stabilizer,
            navigation_timeout=max(self.stabilizer.navigation_timeout, 120.0),
            settle_delay=max(self.stabilizer.settle_delay, 8.0),
            anchor_selectors=DESIGN_ANCHOR_SELECTORS + self.stabilizer.anchor_selectors,
            wait_for_canvas=True,
        )
        return replace(
            self,
            viewport_width=1920,
            viewport_height=1080,
            smart_scroll=False,
            stabilizer=stabilizer,
        )


@dataclass(frozen=True)
class AnalysisConfig:
    """Settings for the hosted vision model."""

    model: str = DEFAULT_ANALYSIS_MODEL
    max_tokens: int = 2000
    prompt: str = DEFAULT_ANALYSIS_PROMPT
    image_detail: str = "high"
    max_image_side: int = 2048
    request_timeout: float = 120.0


@dataclass(frozen=True)
class Credentials:
    """Secrets for the optional collaborators."""

    openai_api_key: Optional[str] = None
    figma_token: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Credentials":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            figma_token=os.getenv("FIGMA_PERSONAL_TOKEN") or None,
        )


@dataclass(frozen=True)
class JobOptions:
    """Top-level settings that control one capture/analysis run."""

    output_root: Path = DEFAULT_OUTPUT_ROOT
    capture: bool = True
    analyze: bool = False
    discover_links: bool = True
    max_links: int = 10
    seed_delay: Tuple[float, float] = (5.0, 10.0)
    link_delay: float = 1.0
    link_timeout: float = 30.0
    export_timeout: float = 60.0
    job_id: Optional[str] = None
    capture_config: CaptureConfig = field(default_factory=CaptureConfig)
    analysis_config: AnalysisConfig = field(default_factory=AnalysisConfig)
