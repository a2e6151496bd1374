"""Persist a JobReport as structured JSON and a flat CSV table."""

from __future__ import annotations

import csv
import io
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .models import JobReport
from .utils import free_timestamp, sanitize_token

logger = logging.getLogger("snapfolio")

CSV_COLUMNS = [
    "seed_url",
    "url",
    "success",
    "error",
    "full_page_file",
    "viewport_file",
    "analysis_present",
    "analysis_file",
]


@dataclass
class ReportFiles:
    """Where each format ended up, and which formats failed."""

    json_path: Optional[Path] = None
    csv_path: Optional[Path] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return not self.errors


def report_rows(report: JobReport) -> List[Dict[str, str]]:
    """One row per capture attempt; entries without captures get a single row."""
    rows = []
    for entry in report.entries:
        analysis = entry.analysis
        analysis_present = "yes" if analysis and analysis.success else "no"
        analysis_file = (analysis.output_path or "") if analysis else ""
        if not entry.captures:
            rows.append(
                {
                    "seed_url": entry.url,
                    "url": entry.url,
                    "success": str(entry.success).lower(),
                    "error": entry.error or "",
                    "full_page_file": "",
                    "viewport_file": "",
                    "analysis_present": analysis_present,
                    "analysis_file": analysis_file,
                }
            )
            continue
        for capture in entry.captures:
            is_seed = capture.url == entry.url
            rows.append(
                {
                    "seed_url": entry.url,
                    "url": capture.url,
                    "success": str(capture.success).lower(),
                    "error": capture.error or "",
                    "full_page_file": capture.full_page_path or "",
                    "viewport_file": capture.viewport_path or "",
                    "analysis_present": analysis_present if is_seed else "no",
                    "analysis_file": analysis_file if is_seed else "",
                }
            )
    return rows


def render_json(report: JobReport) -> str:
    return json.dumps(report.to_dict(), indent=2, ensure_ascii=False)


def render_csv(report: JobReport) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS)
    writer.writeheader()
    writer.writerows(report_rows(report))
    return buffer.getvalue()


def _write_atomic(path: Path, content: str) -> None:
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def write_report(report: JobReport, destination: Path) -> ReportFiles:
    """Write ``report_<job>_<ts>.json`` and ``.csv`` into ``destination``.

    Each format is written independently; a failure in one is recorded on the
    returned ``ReportFiles`` and does not stop the other.
    """
    files = ReportFiles()
    destination = Path(destination)
    try:
        destination.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error("Cannot create report directory %s: %s", destination, exc)
        files.errors = {"json": str(exc), "csv": str(exc)}
        return files

    stem = f"report_{sanitize_token(report.job_id, fallback='job')}"
    timestamp = free_timestamp(destination, (stem,))
    renderers = (("json", render_json), ("csv", render_csv))
    for name, render in renderers:
        path = destination / f"{stem}_{timestamp}.{name}"
        try:
            _write_atomic(path, render(report))
        except (OSError, ValueError, TypeError) as exc:
            logger.error("Failed to write %s report %s: %s", name, path, exc)
            files.errors[name] = str(exc)
            continue
        logger.info("Saved %s report to %s", name.upper(), path)
        setattr(files, f"{name}_path", path)
    return files
