"""Vision analysis of representative screenshots through a hosted model."""

from __future__ import annotations

import base64
import io
import logging
import time
from pathlib import Path
from typing import Any, Optional, Sequence

from openai import OpenAI, OpenAIError
from PIL import Image

from .config import AnalysisConfig
from .errors import ANALYSIS_FAILED
from .models import AnalysisResult, CaptureResult, CaptureTarget
from .utils import file_timestamp, page_token

logger = logging.getLogger("snapfolio.analysis")

SCREENSHOT_SUFFIXES = (".jpg", ".jpeg", ".png")


def encode_image(path: Path, max_side: int) -> str:
    """Return a JPEG data URL, downscaled so the longest edge is at most ``max_side``."""
    with Image.open(path) as image:
        image = image.convert("RGB")
        if max(image.size) > max_side:
            image.thumbnail((max_side, max_side))
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=85)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/jpeg;base64,{encoded}"


class VisionAnalyzer:
    """Thin wrapper around the OpenAI chat completions API for screenshot analysis."""

    def __init__(
        self,
        api_key: Optional[str],
        config: Optional[AnalysisConfig] = None,
        client: Any = None,
    ) -> None:
        self.config = config or AnalysisConfig()
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = OpenAI(api_key=self._api_key, timeout=self.config.request_timeout)
        return self._client

    def analyze(self, image_path: Path, url: str) -> AnalysisResult:
        """Describe one screenshot; failures are returned, not raised."""
        logger.info("Analyzing screenshot for %s", url)
        start = time.perf_counter()
        try:
            data_url = encode_image(Path(image_path), self.config.max_image_side)
            response = self.client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": f"{self.config.prompt}\n\nWebsite URL: {url}"},
                            {
                                "type": "image_url",
                                "image_url": {"url": data_url, "detail": self.config.image_detail},
                            },
                        ],
                    }
                ],
                max_tokens=self.config.max_tokens,
            )
        except (OpenAIError, OSError) as exc:
            logger.error("Analysis failed for %s: %s", url, exc)
            return AnalysisResult(
                url=url, success=False, error=ANALYSIS_FAILED, detail=str(exc),
                screenshot_path=str(image_path),
            )

        content = None
        if getattr(response, "choices", None):
            content = response.choices[0].message.content
        if not content or not content.strip():
            logger.error("Analysis for %s returned no content", url)
            return AnalysisResult(
                url=url, success=False, error=ANALYSIS_FAILED, detail="Empty response from model",
                screenshot_path=str(image_path),
            )
        logger.info("Analysis completed for %s in %.2fs", url, time.perf_counter() - start)
        return AnalysisResult(
            url=url, success=True, analysis=content.strip(), screenshot_path=str(image_path)
        )


def _is_full_capture(name: str) -> bool:
    return "_full_" in name and name.lower().endswith(SCREENSHOT_SUFFIXES)


def _matches_home(name: str, target: CaptureTarget) -> bool:
    tokens = {page_token(target.url), target.project_id, "home"}
    return any(name.startswith(f"{token}_") for token in tokens)


def find_representative(
    target: CaptureTarget,
    captures: Sequence[CaptureResult],
    site_dir: Optional[Path] = None,
) -> Optional[Path]:
    """Pick the screenshot that stands in for a seed target.

    Captures from this run are preferred: the seed URL's own capture, then one
    whose filename starts with the seed's page token or project id, then the first
    successful full-page capture. Without captures the project directory is
    searched for an earlier full-page screenshot using the same preference.
    """
    successful = [c for c in captures if c.success and c.full_page_path]
    for capture in successful:
        if capture.url == target.url:
            return Path(capture.full_page_path)
    for capture in successful:
        if _matches_home(Path(capture.full_page_path).name, target):
            return Path(capture.full_page_path)
    if successful:
        return Path(successful[0].full_page_path)

    if site_dir is None or not site_dir.is_dir():
        return None
    candidates = sorted(p for p in site_dir.iterdir() if p.is_file() and _is_full_capture(p.name))
    for path in candidates:
        if _matches_home(path.name, target):
            return path
    return candidates[0] if candidates else None


def save_analysis(
    result: AnalysisResult,
    target: CaptureTarget,
    output_dir: Path,
    job_id: Optional[str] = None,
) -> Optional[Path]:
    """Write a successful analysis next to the screenshots it describes."""
    if not result.success or not result.analysis:
        return None
    path = output_dir / f"{target.project_id}_analysis_{file_timestamp()}.txt"
    rule = "=" * 63
    lines = [
        "WEBSITE ANALYSIS REPORT",
        rule,
        "",
        f"Analysis Date: {time.strftime('%Y-%m-%d %H:%M:%S')}",
        f"Website URL: {target.url}",
        f"Screenshot: {Path(result.screenshot_path).name if result.screenshot_path else '-'}",
    ]
    if job_id:
        lines.append(f"Job ID: {job_id}")
    lines.extend(["", result.analysis, "", rule])
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as exc:
        logger.error("Failed to save analysis for %s: %s", target.url, exc)
        return None
    logger.info("Analysis saved to %s", path)
    return path
