"""Utility helpers for string normalization and path handling."""

from __future__ import annotations

import datetime as dt
import re
import time
from pathlib import Path
from typing import Iterable, List
from urllib.parse import urlparse

NON_WORD_PATTERN = re.compile(r"\W", re.ASCII)


def sanitize_token(value: str, fallback: str = "home") -> str:
    """Replace every non-word character with ``_`` so the value is a safe path part."""
    normalized = value.encode("ascii", "ignore").decode("ascii")
    normalized = NON_WORD_PATTERN.sub("_", normalized)
    return normalized or fallback


def page_token(url: str) -> str:
    """Last path segment of a URL, or ``home`` for the site root."""
    path = urlparse(url).path.rstrip("/")
    last = path.split("/")[-1] if path else ""
    return sanitize_token(last, fallback="home")


def unix_timestamp() -> int:
    return int(time.time())


def free_timestamp(directory: Path, stems: Iterable[str]) -> int:
    """Unix timestamp for which no ``<stem>_<timestamp>.*`` file exists yet in ``directory``."""
    stems = list(stems) if directory.is_dir() else []
    timestamp = unix_timestamp()
    while any(next(directory.glob(f"{stem}_{timestamp}.*"), None) for stem in stems):
        timestamp += 1
    return timestamp


def iso_now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def file_timestamp() -> str:
    """ISO timestamp usable inside a filename."""
    return re.sub(r"[:.+]", "-", dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f"))


def parse_url_lines(text: str) -> List[str]:
    """Read a newline-delimited URL list, skipping blanks and ``#`` comments."""
    urls = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        urls.append(line)
    return urls


def read_url_file(path: Path) -> List[str]:
    return parse_url_lines(Path(path).read_text(encoding="utf-8"))
