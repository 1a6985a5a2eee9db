"""CSV and Markdown reports for raw and validated crawl findings."""

from __future__ import annotations

import csv
import dataclasses
import datetime as dt
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import CrawlResult, Finding
from .utils import report_timestamp
from .validator import NameValidator

logger = logging.getLogger("student_finder.report")

CSV_FIELDS = ("Url", "Name", "ImageUrl", "ImageAlt", "NameValidated")


@dataclass
class ReportSummary:
    """Headline numbers for the post-processed report."""

    pages_visited: int
    total_findings: int
    validated_findings: int
    validated_with_image: int


@dataclass
class ReportPaths:
    csv_path: Path
    markdown_path: Path
    visited_path: Path


def _finding_row(finding: Finding) -> List[str]:
    return [
        finding.url,
        finding.name,
        finding.image_url,
        finding.image_alt,
        str(finding.name_validated),
    ]


def write_findings_csv(findings: Iterable[Finding], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle, quoting=csv.QUOTE_ALL)
        writer.writerow(CSV_FIELDS)
        for finding in findings:
            writer.writerow(_finding_row(finding))
    return path


def load_findings(path: Path) -> List[Finding]:
    """Read a report CSV written by :func:`write_findings_csv`."""
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Raw report not found: {path}")
    findings: List[Finding] = []
    with path.open(newline="", encoding="utf-8") as handle:
        for row in csv.DictReader(handle):
            findings.append(
                Finding(
                    url=row.get("Url") or "",
                    name=row.get("Name") or "",
                    image_url=row.get("ImageUrl") or "",
                    image_alt=row.get("ImageAlt") or "",
                    name_validated=(row.get("NameValidated") or "").strip().lower() == "true",
                )
            )
    return findings


def write_raw_report(
    result: CrawlResult,
    output_root: Path,
    timestamp: Optional[str] = None,
) -> Path:
    """Persist every raw finding of a run as ``raw/crawl_raw_<timestamp>.csv``."""
    timestamp = timestamp or report_timestamp()
    path = write_findings_csv(result.findings, Path(output_root) / "raw" / f"crawl_raw_{timestamp}.csv")
    logger.info("Raw crawl report saved at %s", path)
    return path


def postprocess(
    findings: Sequence[Finding],
    validator: NameValidator,
    visited_urls: Iterable[str],
) -> Tuple[List[Finding], ReportSummary]:
    """Validate every finding's name and summarize the outcome."""
    checked = [
        dataclasses.replace(finding, name_validated=validator.is_valid(finding.name))
        for finding in findings
    ]
    validated = [finding for finding in checked if finding.name_validated]
    summary = ReportSummary(
        pages_visited=len(set(visited_urls)),
        total_findings=len(checked),
        validated_findings=len(validated),
        validated_with_image=sum(1 for finding in validated if finding.image_url.strip()),
    )
    logger.info(
        "Filtered %d validated records from %d",
        summary.validated_findings,
        summary.total_findings,
    )
    return validated, summary


def compose_summary_markdown(
    validated: Sequence[Finding],
    summary: ReportSummary,
    generated_at: Optional[dt.datetime] = None,
) -> str:
    """Human-readable summary; each image is shown only the first time it appears."""
    generated_at = generated_at or dt.datetime.now()
    lines = [
        f"# Crawl Summary - {generated_at:%Y-%m-%d %H:%M}",
        "",
        f"**Pages visited:** {summary.pages_visited}",
        f"**Total raw findings:** {summary.total_findings}",
        f"**Total validated names:** {summary.validated_findings}",
        f"**Total images found (validated):** {summary.validated_with_image}",
        "",
        "## Validated Names",
        "",
    ]

    seen_images = set()
    for index, finding in enumerate(validated, start=1):
        logger.debug("Processing record %d/%d: %s", index, len(validated), finding.name)
        lines.append(f"**Gevonden op URL:** {finding.url}")
        if finding.image_url.strip() and finding.image_url not in seen_images:
            lines.append(f"**Image:** ![{finding.name}]({finding.image_url})")
            seen_images.add(finding.image_url)
        else:
            lines.append("**Image:** Geen afbeelding geassocieerd")
        lines.append(f"**Geassocieerde namen:** {finding.name}")
        lines.append("")
    return "\n".join(lines) + "\n"


def write_postprocessed_report(
    validated: Sequence[Finding],
    summary: ReportSummary,
    visited_urls: Iterable[str],
    output_root: Path,
    timestamp: Optional[str] = None,
) -> ReportPaths:
    timestamp = timestamp or report_timestamp()
    post_dir = Path(output_root) / "postprocessed"
    csv_path = write_findings_csv(validated, post_dir / f"crawl_postprocessed_{timestamp}.csv")
    logger.info("Saved post-processed CSV to %s", csv_path)

    markdown_path = csv_path.with_suffix(".md")
    markdown_path.write_text(compose_summary_markdown(validated, summary), encoding="utf-8")
    logger.info("Saved Markdown summary to %s", markdown_path)

    visited_path = post_dir / f"crawl_visited_urls_{timestamp}.txt"
    visited = sorted(set(visited_urls))
    visited_path.write_text("".join(f"{url}\n" for url in visited), encoding="utf-8")
    logger.info("Saved list of visited URLs to %s", visited_path)
    return ReportPaths(csv_path=csv_path, markdown_path=markdown_path, visited_path=visited_path)


def process_crawl_results(
    raw_csv_path: Path,
    validator: NameValidator,
    visited_urls: Iterable[str],
    output_root: Path,
    timestamp: Optional[str] = None,
) -> Tuple[ReportSummary, ReportPaths]:
    """Reload a raw report, validate its names and write the filtered reports."""
    findings = load_findings(raw_csv_path)
    logger.info("Loaded %d raw records from %s", len(findings), raw_csv_path)
    visited_urls = list(visited_urls)
    validated, summary = postprocess(findings, validator, visited_urls)
    paths = write_postprocessed_report(validated, summary, visited_urls, output_root, timestamp)
    return summary, paths
