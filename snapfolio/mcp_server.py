"""MCP server exposing snapfolio classification and capture tools."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

from mcp.server.fastmcp import FastMCP

from .config import JobOptions
from .runner import run_job
from .targets import classify

logger = logging.getLogger("snapfolio.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="snapfolio")


@mcp.tool()
def classify_url(url: str) -> Dict[str, Any]:
    """Return the target kind and project identifier derived from a URL."""
    return classify(url).to_dict()


@mcp.tool()
async def capture_site(
    url: str,
    analyze: bool = False,
    discover: bool = False,
    output: str = "screenshots",
) -> str:
    """Screenshot one site (and optionally analyze it); returns the job report as JSON."""
    options = JobOptions(
        output_root=Path(output).expanduser().resolve(),
        capture=True,
        analyze=analyze,
        discover_links=discover,
        seed_delay=(0.0, 0.0),
    )
    report = await run_job([url], options)
    return json.dumps(report.to_dict(), indent=2)


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
