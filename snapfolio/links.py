"""Same-origin link discovery used to expand a seed URL into a crawl set."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urldefrag, urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from .config import DEFAULT_HEADERS, DEFAULT_USER_AGENT
from .errors import LINK_DISCOVERY_FAILED

logger = logging.getLogger("snapfolio")

DEFAULT_LINK_TIMEOUT = 30.0
IGNORED_SCHEMES = ("javascript:", "mailto:", "tel:", "data:")


@dataclass
class LinkDiscovery:
    """Links found on a seed page, or the reason none could be fetched."""

    seed_url: str
    links: List[str] = field(default_factory=list)
    error: Optional[str] = None
    detail: Optional[str] = None


def _origin(url: str) -> tuple:
    parsed = urlparse(url)
    return parsed.scheme.lower(), parsed.netloc.lower()


def _same_page(left: str, right: str) -> bool:
    return left.rstrip("/") == right.rstrip("/")


def extract_links(html: str, seed_url: str, max_count: Optional[int] = None) -> List[str]:
    """Resolve anchors against the seed and keep unique same-origin URLs in document order."""
    soup = BeautifulSoup(html, "html.parser")
    seed, _ = urldefrag(seed_url)
    origin = _origin(seed)
    links: List[str] = []
    seen = set()
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.lower().startswith(IGNORED_SCHEMES):
            continue
        absolute, _ = urldefrag(urljoin(seed, href))
        if _origin(absolute) != origin:
            continue
        if _same_page(absolute, seed) or absolute in seen:
            continue
        seen.add(absolute)
        links.append(absolute)
        if max_count is not None and len(links) >= max_count:
            break
    return links


def discover(
    seed_url: str,
    max_count: int = 10,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_LINK_TIMEOUT,
) -> LinkDiscovery:
    """Fetch the seed page and collect up to ``max_count`` internal links."""
    result = LinkDiscovery(seed_url=seed_url)
    if max_count <= 0:
        return result
    http = session or requests.Session()
    headers = {**DEFAULT_HEADERS, "User-Agent": DEFAULT_USER_AGENT}
    logger.info("Fetching internal links from %s", seed_url)
    try:
        resp = http.get(seed_url, timeout=timeout, headers=headers)
        resp.raise_for_status()
        html = resp.text
    except requests.RequestException as exc:
        logger.warning("Failed to fetch links from %s: %s", seed_url, exc)
        result.error, result.detail = LINK_DISCOVERY_FAILED, str(exc)
        return result
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Unexpected error fetching links from %s", seed_url)
        result.error, result.detail = LINK_DISCOVERY_FAILED, str(exc)
        return result
    finally:
        if session is None:
            http.close()

    result.links = extract_links(html or "", seed_url, max_count=max_count)
    logger.info("Found %d internal links on %s", len(result.links), seed_url)
    return result


def discover_links(
    seed_url: str,
    max_count: int = 10,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_LINK_TIMEOUT,
) -> List[str]:
    """Best-effort link list; network failures yield an empty list."""
    return discover(seed_url, max_count, session=session, timeout=timeout).links
