"""Command-line entry point for the student finder crawler."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .config import DEFAULT_BASE_HOST, DEFAULT_START_URL, ConfigError, CrawlConfig
from .crawler import run_crawler
from .report import process_crawl_results, write_raw_report
from .utils import report_timestamp
from .validator import NameValidator

logger = logging.getLogger("student_finder.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return ("crawl",)
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("crawl", *argv)


def _add_name_list_arguments(parser: argparse.ArgumentParser, required: bool) -> None:
    parser.add_argument(
        "--first-names",
        type=Path,
        required=required,
        help="Header-less CSV whose first column lists known first names",
    )
    parser.add_argument(
        "--last-names",
        type=Path,
        required=required,
        help="Header-less CSV whose first column lists known last names",
    )


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        default="reports",
        type=Path,
        help="Directory where raw and post-processed reports should be written",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_crawl_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "start_url",
        nargs="?",
        default=DEFAULT_START_URL,
        help=f"Page to start crawling from (default: {DEFAULT_START_URL})",
    )
    parser.add_argument(
        "--base-host",
        default=DEFAULT_BASE_HOST,
        help="Only hosts equal to (or under) this host are crawled",
    )
    parser.add_argument(
        "--no-subdomains",
        dest="include_subdomains",
        action="store_false",
        help="Stay on the base host itself instead of including its subdomains",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=4,
        help="Number of pages fetched in parallel",
    )
    parser.add_argument(
        "--deadline",
        type=float,
        default=30 * 60.0,
        help="Stop crawling after this many seconds",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Per-request HTTP timeout in seconds",
    )
    _add_name_list_arguments(parser, required=False)
    _add_common_arguments(parser)


def _add_postprocess_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("raw_csv", type=Path, help="Raw report written by a previous crawl")
    parser.add_argument(
        "--visited",
        type=Path,
        default=None,
        help="Text file with one visited URL per line, used for the page count",
    )
    _add_name_list_arguments(parser, required=True)
    _add_common_arguments(parser)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Crawl a domain for publicly exposed names and portrait photos.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    crawl_parser = subparsers.add_parser(
        "crawl", help="Crawl a site and write raw and validated reports"
    )
    _add_crawl_arguments(crawl_parser)

    postprocess_parser = subparsers.add_parser(
        "postprocess", help="Validate the names in an existing raw report"
    )
    _add_postprocess_arguments(postprocess_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        force=True,
    )
    # urllib3 logs every connection at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _load_validator(args: argparse.Namespace) -> Optional[NameValidator]:
    if args.first_names is None and args.last_names is None:
        return None
    if args.first_names is None or args.last_names is None:
        raise ConfigError("--first-names and --last-names must be given together")
    logger.info("Loading name lists...")
    return NameValidator.from_csv(args.first_names, args.last_names)


def _run_crawl(args: argparse.Namespace) -> int:
    config = CrawlConfig(
        start_url=args.start_url,
        base_host=args.base_host,
        include_subdomains=args.include_subdomains,
        concurrency=args.concurrency,
        deadline_seconds=args.deadline,
        request_timeout=args.timeout,
        output_root=Path(args.output).resolve(),
    )
    config.validate()
    validator = _load_validator(args)

    overall_start = time.perf_counter()
    result = asyncio.run(run_crawler(config))
    timestamp = report_timestamp()
    raw_path = write_raw_report(result, config.output_root, timestamp)

    if validator is None:
        logger.info("No name lists given; skipping post-processing")
    else:
        summary, paths = process_crawl_results(
            raw_path, validator, result.visited_urls, config.output_root, timestamp
        )
        logger.info(
            "Validated %d of %d findings (%d with image) over %d pages; summary at %s",
            summary.validated_findings,
            summary.total_findings,
            summary.validated_with_image,
            summary.pages_visited,
            paths.markdown_path,
        )

    logger.info(
        "Finished in %.2fs (%d pages, %d raw findings%s)",
        time.perf_counter() - overall_start,
        result.pages_processed,
        len(result.findings),
        ", stopped early" if result.cancelled else "",
    )
    return 0


def _read_visited(path: Optional[Path]) -> List[str]:
    if path is None:
        return []
    return [line.strip() for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def _run_postprocess(args: argparse.Namespace) -> int:
    validator = _load_validator(args)
    summary, paths = process_crawl_results(
        args.raw_csv,
        validator,
        _read_visited(args.visited),
        Path(args.output).resolve(),
    )
    logger.info(
        "Validated %d of %d findings; summary at %s",
        summary.validated_findings,
        summary.total_findings,
        paths.markdown_path,
    )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    try:
        if args.command == "crawl":
            return _run_crawl(args)
        return _run_postprocess(args)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return 2
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
