"""Structured export of design documents through the Figma REST API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from .images import fetch_image
from .targets import design_file_key
from .utils import free_timestamp, sanitize_token

logger = logging.getLogger("snapfolio")

FIGMA_API_ROOT = "https://api.figma.com/v1"
EXPORTABLE_TYPES = {"FRAME", "GROUP", "COMPONENT", "INSTANCE"}
DEFAULT_PAGE_NAME = "Page 1"


@dataclass
class DesignExport:
    """Files rasterized from a design document, or why the export did not happen."""

    url: str
    files: List[Path] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None and bool(self.files)


def _find_page(document: Dict[str, Any], page_name: str) -> Optional[Dict[str, Any]]:
    for page in document.get("children") or []:
        if page.get("name") == page_name:
            return page
    return None


def _layer_stems(page_token: str, nodes: List[Dict[str, Any]]) -> List[str]:
    """One file stem per node; layers sharing a name are told apart by node id."""
    stems: List[str] = []
    for node in nodes:
        stem = f"{page_token}_{sanitize_token(node.get('name') or node['id'], fallback='layer')}"
        if stem in stems:
            stem = f"{stem}_{sanitize_token(node['id'], fallback='layer')}"
        stems.append(stem)
    return stems


def _export(
    http: requests.Session,
    export: DesignExport,
    file_key: str,
    token: str,
    output_dir: Path,
    page_name: str,
    scale: int,
    timeout: float,
) -> None:
    headers = {"X-Figma-Token": token}
    logger.info("Processing design file %s", file_key)
    resp = http.get(f"{FIGMA_API_ROOT}/files/{file_key}", headers=headers, timeout=timeout)
    resp.raise_for_status()
    document = resp.json().get("document") or {}

    page = _find_page(document, page_name)
    if page is None:
        export.error = f"{page_name} not found in this file"
        return

    nodes = [
        node
        for node in page.get("children") or []
        if node.get("type") in EXPORTABLE_TYPES and node.get("id")
    ]
    logger.info("Found %d exportable layers in %s", len(nodes), page_name)
    if not nodes:
        export.error = f"No exportable layers in {page_name}"
        return

    resp = http.get(
        f"{FIGMA_API_ROOT}/images/{file_key}",
        headers=headers,
        params={"ids": ",".join(node["id"] for node in nodes), "format": "png", "scale": scale},
        timeout=timeout,
    )
    resp.raise_for_status()
    image_urls = resp.json().get("images") or {}

    stems = _layer_stems(sanitize_token(page_name, fallback="page"), nodes)
    timestamp = free_timestamp(output_dir, stems)
    for node, layer_stem in zip(nodes, stems):
        image_url = image_urls.get(node["id"])
        if not image_url:
            logger.warning("No image URL returned for layer %s", node.get("name"))
            continue
        stem = output_dir / f"{layer_stem}_{timestamp}"
        saved = fetch_image(http, image_url, stem, timeout=timeout)
        if saved:
            export.files.append(saved)

    if not export.files:
        export.error = "No layers could be downloaded"


def export_design(
    url: str,
    token: Optional[str],
    output_dir: Path,
    *,
    page_name: str = DEFAULT_PAGE_NAME,
    scale: int = 2,
    session: Optional[requests.Session] = None,
    timeout: float = 60.0,
) -> DesignExport:
    """Rasterize the top-level exportable nodes of ``page_name`` into ``output_dir``.

    Never raises for network or API problems; ``DesignExport.error`` carries the
    reason so the caller can fall back to a browser capture.
    """
    export = DesignExport(url=url)
    file_key = design_file_key(url)
    if not file_key:
        export.error = "Could not extract file key from URL"
        return export
    if not token:
        export.error = "FIGMA_PERSONAL_TOKEN not configured"
        return export

    http = session or requests.Session()
    try:
        _export(http, export, file_key, token, output_dir, page_name, scale, timeout)
    except (requests.RequestException, ValueError) as exc:
        logger.warning("Design export failed for %s: %s", url, exc)
        export.error = str(exc)
    finally:
        if session is None:
            http.close()
    return export
