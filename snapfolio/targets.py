"""Classify input URLs and derive stable project identifiers."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

from .errors import InvalidUrl
from .models import CaptureTarget, StorePlatform, TargetKind
from .utils import sanitize_token

logger = logging.getLogger("snapfolio")

DESIGN_DOMAINS = ("figma.com", "figjam.com")
ANDROID_STORE_DOMAINS = ("play.google.com",)
IOS_STORE_DOMAINS = ("apps.apple.com", "itunes.apple.com")

# Everything from the first alphabetic label onwards (".com", ".co.uk/...").
TLD_TAIL_PATTERN = re.compile(r"\.[a-z]{2,}.*$")
DESIGN_PATH_PATTERN = re.compile(r"^/(?:file|proto|design|board)/([A-Za-z0-9]+)(?:/([^/?#]+))?")
IOS_ID_PATTERN = re.compile(r"/id(\d+)")


def _host_matches(host: str, domains: Iterable[str]) -> bool:
    return any(host == domain or host.endswith("." + domain) for domain in domains)


def _parse(url: str):
    if not isinstance(url, str) or not url.strip():
        raise InvalidUrl(str(url), "Empty URL")
    try:
        parsed = urlparse(url.strip())
        host = parsed.hostname
    except ValueError as exc:
        raise InvalidUrl(url, f"Invalid URL format ({exc})") from exc
    if parsed.scheme not in ("http", "https"):
        raise InvalidUrl(url, "Invalid protocol")
    if not host:
        raise InvalidUrl(url, "Invalid URL format")
    return parsed, host.lower()


def web_project_id(host: str) -> str:
    domain = host[4:] if host.startswith("www.") else host
    domain = TLD_TAIL_PATTERN.sub("", domain)
    return sanitize_token(domain, fallback="home")


def design_file_key(url: str) -> Optional[str]:
    match = DESIGN_PATH_PATTERN.match(urlparse(url).path)
    return match.group(1) if match else None


def store_app_id(url: str, platform: StorePlatform) -> Optional[str]:
    """App identifier from the ``id=`` query (Android) or ``id<digits>`` path (iOS)."""
    parsed = urlparse(url)
    if platform is StorePlatform.ANDROID:
        values = parse_qs(parsed.query).get("id")
        return values[0] if values and values[0] else None
    match = IOS_ID_PATTERN.search(parsed.path)
    return match.group(1) if match else None


def _design_project_id(path: str) -> str:
    match = DESIGN_PATH_PATTERN.match(path)
    if not match:
        return "figma_project"
    key, name = match.groups()
    if name:
        return sanitize_token(name, fallback="figma_project")
    return sanitize_token(f"figma_{key}")


def _store_project_id(url: str, platform: StorePlatform) -> str:
    prefix = "playstore" if platform is StorePlatform.ANDROID else "appstore"
    app_id = store_app_id(url, platform)
    if not app_id:
        return f"{prefix}_app"
    return sanitize_token(f"{prefix}_{app_id}")


def classify(url: str) -> CaptureTarget:
    """Classify a seed URL; raises ``InvalidUrl`` for anything but absolute http(s)."""
    parsed, host = _parse(url)
    url = url.strip()
    if _host_matches(host, DESIGN_DOMAINS):
        return CaptureTarget(url, TargetKind.DESIGN, _design_project_id(parsed.path))
    if _host_matches(host, ANDROID_STORE_DOMAINS):
        platform = StorePlatform.ANDROID
        return CaptureTarget(url, TargetKind.STORE, _store_project_id(url, platform), platform=platform)
    if _host_matches(host, IOS_STORE_DOMAINS):
        platform = StorePlatform.IOS
        return CaptureTarget(url, TargetKind.STORE, _store_project_id(url, platform), platform=platform)
    return CaptureTarget(url, TargetKind.WEB, web_project_id(host))


def validate_urls(urls: Iterable[str]) -> Tuple[List[CaptureTarget], List[Dict[str, str]]]:
    """Split inputs into classified seed targets and rejected entries."""
    targets: List[CaptureTarget] = []
    invalid: List[Dict[str, str]] = []
    seen = set()
    for url in urls:
        try:
            target = classify(url)
        except InvalidUrl as exc:
            logger.warning("Skipping %s: %s", exc.url, exc.reason)
            invalid.append({"url": exc.url, "reason": exc.reason, "error": exc.kind})
            continue
        if target.url in seen:
            logger.debug("Ignoring duplicate seed %s", target.url)
            continue
        seen.add(target.url)
        targets.append(target)
    return targets, invalid
