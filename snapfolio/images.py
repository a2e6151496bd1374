"""Download and validate raster images fetched by the structured export paths."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import requests
from filetype import guess

logger = logging.getLogger("snapfolio")

MAX_IMAGE_BYTES = 25 * 1024 * 1024
MIN_IMAGE_BYTES = 512
ALLOWED_IMAGE_TYPES = {"png", "jpg", "gif", "webp", "bmp", "tiff"}


def detect_image_format(data: bytes) -> Optional[str]:
    """Detect image type using filetype; returns lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


def infer_image_extension(content_type: Optional[str], data: bytes) -> Optional[str]:
    """Guess an image file extension from the file signature, then HTTP metadata."""
    detected = detect_image_format(data)
    if detected:
        return detected
    if not content_type:
        return None
    parts = content_type.split(";")[0].split("/")
    if len(parts) == 2 and parts[0] == "image":
        ext = parts[1].strip().lower()
        return "jpg" if ext == "jpeg" else ext
    return None


def fetch_image(
    session: requests.Session,
    url: str,
    destination_stem: Path,
    timeout: float = 60.0,
) -> Optional[Path]:
    """Download ``url`` to ``destination_stem`` plus the detected extension.

    Returns ``None`` when the download fails or the payload is not a usable image.
    """
    try:
        resp = session.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Failed to fetch image %s: %s", url, exc)
        return None

    data = resp.content
    if len(data) < MIN_IMAGE_BYTES:
        logger.warning("Skipping %s: response too small", url)
        return None
    if len(data) > MAX_IMAGE_BYTES:
        logger.warning("Skipping %s: image larger than %s bytes", url, MAX_IMAGE_BYTES)
        return None

    content_type = resp.headers.get("Content-Type", "")
    extension = infer_image_extension(content_type, data)
    if not extension or extension not in ALLOWED_IMAGE_TYPES:
        logger.warning(
            "Skipping %s: unsupported image type (Content-Type=%s)", url, content_type
        )
        return None

    destination = destination_stem.with_name(f"{destination_stem.name}.{extension}")
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(data)
    except OSError as exc:
        logger.warning("Failed to write image %s: %s", destination, exc)
        return None
    logger.info("Saved %s", destination)
    return destination
