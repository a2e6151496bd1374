"""Command-line entry point for snapfolio."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import time
from pathlib import Path
from typing import List, Optional, Sequence

from dotenv import load_dotenv

from .config import DEFAULT_OUTPUT_ROOT, CaptureConfig, Credentials, JobOptions, StabilizerConfig
from .errors import MissingCredential, NoValidTargets
from .models import JobReport
from .report import write_report
from .runner import run_job
from .utils import read_url_file

logger = logging.getLogger("snapfolio.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snapfolio",
        description=(
            "Screenshot websites, design files and store listings with Playwright and "
            "optionally analyze the homepage with a vision model."
        ),
    )
    parser.add_argument("urls", nargs="*", help="Seed URLs to process")
    parser.add_argument(
        "--url-file",
        type=Path,
        default=None,
        help="Newline-delimited list of seed URLs (lines starting with # are ignored)",
    )
    parser.add_argument("--capture", action="store_true", help="Take screenshots")
    parser.add_argument(
        "--analyze",
        action="store_true",
        help="Analyze each site's homepage screenshot (requires OPENAI_API_KEY)",
    )
    parser.add_argument(
        "--no-discover",
        dest="discover",
        action="store_false",
        help="Only capture the seed URLs, skip internal link discovery",
    )
    parser.add_argument(
        "--max-links",
        type=int,
        default=10,
        help="Maximum number of internal links captured per site",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=DEFAULT_OUTPUT_ROOT,
        help="Directory where screenshots are written, one folder per project",
    )
    parser.add_argument(
        "--report-dir",
        type=Path,
        default=None,
        help="Directory for the JSON/CSV reports (defaults to --output)",
    )
    parser.add_argument(
        "--min-delay",
        type=float,
        default=5.0,
        help="Minimum seconds to wait between sites",
    )
    parser.add_argument(
        "--max-delay",
        type=float,
        default=10.0,
        help="Maximum seconds to wait between sites",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=90.0,
        help="Navigation timeout in seconds",
    )
    parser.add_argument(
        "--pre-capture-delay",
        type=float,
        default=3.0,
        help="Seconds to wait after the page settles before taking screenshots",
    )
    parser.add_argument(
        "--fast",
        action="store_true",
        help="Skip framework, image and font settle waits",
    )
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return parser


def collect_urls(args: argparse.Namespace) -> List[str]:
    urls = list(args.urls)
    if args.url_file is not None:
        urls.extend(read_url_file(args.url_file))
    return urls


def build_options(args: argparse.Namespace) -> JobOptions:
    stabilizer = StabilizerConfig(
        navigation_timeout=args.timeout,
        enhanced_loading=not args.fast,
        pre_capture_delay=args.pre_capture_delay,
    )
    capture_config = CaptureConfig(headless=not args.headed, stabilizer=stabilizer)
    low, high = sorted((args.min_delay, args.max_delay))
    return JobOptions(
        output_root=Path(args.output).resolve(),
        capture=args.capture,
        analyze=args.analyze,
        discover_links=args.discover,
        max_links=args.max_links,
        seed_delay=(low, high),
        capture_config=capture_config,
    )


async def _run(urls: Sequence[str], options: JobOptions, credentials: Credentials) -> JobReport:
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable; Ctrl-C will abort immediately")
    try:
        return await run_job(urls, options, credentials=credentials, cancel_event=cancel_event)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    if not args.capture and not args.analyze:
        parser.error("select at least one stage: --capture and/or --analyze")
    try:
        urls = collect_urls(args)
    except OSError as exc:
        parser.error(f"cannot read URL file: {exc}")
    if not urls:
        parser.error("no URLs supplied (pass them as arguments or via --url-file)")

    load_dotenv()
    credentials = Credentials.from_env()
    options = build_options(args)

    overall_start = time.perf_counter()
    try:
        report = asyncio.run(_run(urls, options, credentials))
    except (MissingCredential, NoValidTargets) as exc:
        parser.error(str(exc))
    total_elapsed = time.perf_counter() - overall_start

    report_dir = args.report_dir or options.output_root
    files = write_report(report, report_dir)
    logger.info(
        "Finished in %.2fs (%d/%d succeeded, %d failed, %d invalid)",
        total_elapsed,
        report.succeeded,
        report.attempted,
        report.failed,
        len(report.invalid_inputs),
    )
    if args.verbose:
        for entry in report.entries:
            logger.debug("%s -> %s", entry.url, "ok" if entry.success else entry.error)
    if not files.complete:
        sys.exit(1)
    if report.cancelled:
        sys.exit(130)


if __name__ == "__main__":
    main()
