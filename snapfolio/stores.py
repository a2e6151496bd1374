"""Store-listing capture through public listing metadata."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from google_play_scraper import app as play_app
from google_play_scraper.exceptions import ExtraHTTPError, NotFoundError

from .images import fetch_image
from .models import CaptureTarget, StorePlatform
from .targets import store_app_id
from .utils import free_timestamp

logger = logging.getLogger("snapfolio")

ITUNES_LOOKUP_URL = "https://itunes.apple.com/lookup"

# Any of these ends the structured path; the caller falls back to a browser capture.
LOOKUP_ERRORS = (requests.RequestException, ExtraHTTPError, OSError, ValueError, KeyError, IndexError, TypeError)


@dataclass
class ListingExport:
    """Screenshots and metadata pulled from a store listing."""

    url: str
    info: Dict[str, Any] = field(default_factory=dict)
    files: List[Path] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None and bool(self.files)


def lookup_app_store(app_id: str, session: requests.Session, timeout: float) -> Optional[Dict[str, Any]]:
    resp = session.get(ITUNES_LOOKUP_URL, params={"id": app_id}, timeout=timeout)
    resp.raise_for_status()
    results = resp.json().get("results") or []
    return results[0] if results else None


def lookup_play_store(app_id: str) -> Dict[str, Any]:
    return play_app(app_id, lang="en", country="us")


def _app_store_info(target: CaptureTarget, app_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
    screenshots = list(record.get("screenshotUrls") or []) + list(record.get("ipadScreenshotUrls") or [])
    return {
        "platform": "Apple Store",
        "title": record.get("trackName"),
        "developer": record.get("artistName"),
        "description": record.get("description"),
        "screenshots": screenshots,
        "appId": app_id,
        "url": target.url,
    }


def _play_store_info(target: CaptureTarget, app_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "platform": "Google Play",
        "title": record.get("title"),
        "developer": record.get("developer"),
        "description": record.get("description"),
        "screenshots": list(record.get("screenshots") or []),
        "appId": app_id,
        "url": target.url,
    }


def _save_listing(export: ListingExport, http: requests.Session, output_dir: Path, timeout: float) -> None:
    screenshots = export.info["screenshots"]
    stems = ["info"] + [f"screenshot_{index:02d}" for index in range(1, len(screenshots) + 1)]
    timestamp = free_timestamp(output_dir, stems)
    output_dir.mkdir(parents=True, exist_ok=True)
    (output_dir / f"info_{timestamp}.json").write_text(
        json.dumps(export.info, indent=2, ensure_ascii=False), encoding="utf-8"
    )
    for index, image_url in enumerate(screenshots, start=1):
        stem = output_dir / f"screenshot_{index:02d}_{timestamp}"
        saved = fetch_image(http, image_url, stem, timeout=timeout)
        if saved:
            export.files.append(saved)


def export_listing(
    target: CaptureTarget,
    output_dir: Path,
    session: Optional[requests.Session] = None,
    timeout: float = 60.0,
) -> ListingExport:
    """Write a listing's metadata and download its screenshots into ``output_dir``.

    Never raises for lookup or download problems; ``ListingExport.error`` carries
    the reason so the caller can fall back to a browser capture.
    """
    export = ListingExport(url=target.url)
    app_id = store_app_id(target.url, target.platform) if target.platform else None
    if not app_id:
        export.error = "Invalid store listing URL"
        return export

    http = session or requests.Session()
    try:
        if target.platform is StorePlatform.ANDROID:
            logger.info("Play Store listing %s", app_id)
            export.info = _play_store_info(target, app_id, lookup_play_store(app_id))
        else:
            logger.info("App Store listing %s", app_id)
            record = lookup_app_store(app_id, http, timeout)
            if record is None:
                export.error = f"App {app_id} not found"
                return export
            export.info = _app_store_info(target, app_id, record)
        _save_listing(export, http, output_dir, timeout)
    except NotFoundError:
        export.error = f"App {app_id} not found"
        return export
    except LOOKUP_ERRORS as exc:
        logger.warning("Store listing lookup failed for %s: %s", target.url, exc)
        export.error = str(exc) or type(exc).__name__
        return export
    finally:
        if session is None:
            http.close()

    if not export.files:
        export.error = "Listing has no downloadable screenshots"
    return export
