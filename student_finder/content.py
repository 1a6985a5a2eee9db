"""HTML extraction of candidate names, personal photos and outbound links."""

from __future__ import annotations

import re
from typing import Iterable, List, Sequence

from bs4 import BeautifulSoup

from .admission import is_non_document
from .config import IMAGE_KEYWORDS, MAX_ALT_LENGTH, NAME_TAGS
from .models import Finding, ImageCandidate, PageExtraction
from .utils import absolute_url, is_http_url, strip_fragment

# Lowercase surname particles allowed between capitalized tokens ("Jan de Vries").
NAME_PARTICLES = ("van", "de", "den", "der", "ter", "ten", "te", "het", "von", "du", "la", "le")

_CAPITALIZED = r"[A-Z][a-z]+"
_PARTICLES = r"(?:(?:%s)\s)*" % "|".join(NAME_PARTICLES)

NAME_PATTERN = re.compile(rf"\b{_CAPITALIZED}(?:\s{_PARTICLES}{_CAPITALIZED}){{1,3}}\b")


def _unique_texts(soup: BeautifulSoup) -> List[str]:
    """Stripped text of every name-bearing element, exact duplicates removed."""
    seen = set()
    texts: List[str] = []
    for node in soup.find_all(list(NAME_TAGS)):
        text = node.get_text().strip()
        if not text or text in seen:
            continue
        seen.add(text)
        texts.append(text)
    return texts


def extract_names(soup: BeautifulSoup) -> List[str]:
    names: List[str] = []
    for text in _unique_texts(soup):
        match = NAME_PATTERN.search(text)
        if match:
            names.append(match.group(0))
    return names


def is_candidate_photo(image: ImageCandidate, keywords: Sequence[str] = IMAGE_KEYWORDS) -> bool:
    """Keyword heuristic on the image URL or its (short) alt text."""
    url = image.absolute_url.lower()
    if any(keyword in url for keyword in keywords):
        return True
    alt = image.alt_text.strip()
    if alt and len(alt) < MAX_ALT_LENGTH:
        alt = alt.lower()
        return any(keyword in alt for keyword in keywords)
    return False


def extract_images(soup: BeautifulSoup, final_url: str) -> List[ImageCandidate]:
    images: List[ImageCandidate] = []
    for img in soup.find_all("img"):
        src = (img.get("src") or "").strip()
        if not src or src.startswith("data:"):
            continue
        abs_url = absolute_url(final_url, src)
        if not abs_url:
            continue
        images.append(ImageCandidate(abs_url, img.get("alt") or ""))
    return images


def extract_links(soup: BeautifulSoup, final_url: str) -> List[str]:
    links: List[str] = []
    for anchor in soup.find_all("a", href=True):
        abs_url = absolute_url(final_url, anchor["href"])
        if not abs_url or not is_http_url(abs_url):
            continue
        if is_non_document(abs_url):
            continue
        links.append(strip_fragment(abs_url))
    return links


def pair_findings(
    page_url: str,
    names: Iterable[str],
    images: Iterable[ImageCandidate],
) -> List[Finding]:
    """Combine names and candidate photos found on one page.

    Both present: the full cross product, one finding per (name, image).
    Otherwise one finding per name, or one per image, or nothing.
    """
    names = list(names)
    images = list(images)
    if names and images:
        return [
            Finding(
                url=page_url,
                name=name,
                image_url=image.absolute_url,
                image_alt=image.alt_text,
            )
            for name in names
            for image in images
        ]
    if names:
        return [Finding(url=page_url, name=name) for name in names]
    return [
        Finding(url=page_url, image_url=image.absolute_url, image_alt=image.alt_text)
        for image in images
    ]


def extract_page(html: str, final_url: str) -> PageExtraction:
    """Parse a fetched page into names, candidate photos, links and findings."""
    soup = BeautifulSoup(html, "html.parser")
    names = extract_names(soup)
    photos = [image for image in extract_images(soup, final_url) if is_candidate_photo(image)]
    links = extract_links(soup, final_url)
    return PageExtraction(
        names=names,
        images=photos,
        links=links,
        findings=pair_findings(final_url, names, photos),
    )
