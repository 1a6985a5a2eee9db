"""Data models used throughout the crawler pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Set


@dataclass(frozen=True)
class Finding:
    """One observed (candidate name, candidate image) association on a page."""

    url: str
    name: str = ""
    image_url: str = ""
    image_alt: str = ""
    name_validated: bool = False


@dataclass(frozen=True)
class ImageCandidate:
    """Image reference discovered while parsing a page."""

    absolute_url: str
    alt_text: str


@dataclass
class FetchedPage:
    """HTML body of a successfully fetched page."""

    requested_url: str
    final_url: str
    status: int
    html: str


@dataclass
class PageExtraction:
    """Everything the extractor pulled out of a single page."""

    names: List[str]
    images: List[ImageCandidate]
    links: List[str]
    findings: List[Finding]


@dataclass
class CrawlResult:
    """Raw output of one crawl run, handed to the report writer."""

    findings: List[Finding] = field(default_factory=list)
    visited_urls: Set[str] = field(default_factory=set)
    pages_processed: int = 0
    cancelled: bool = False
    elapsed_seconds: float = 0.0

    def sorted_visited(self) -> List[str]:
        return sorted(self.visited_urls)
