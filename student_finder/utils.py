"""Utility helpers for URL normalization and path handling."""

from __future__ import annotations

import datetime as dt
from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

HTTP_SCHEMES = ("http", "https")


def report_timestamp(moment: Optional[dt.datetime] = None) -> str:
    """Timestamp fragment used in report file names, e.g. ``2024-05-01_1330``."""
    return (moment or dt.datetime.now()).strftime("%Y-%m-%d_%H%M")


def normalize_url(url: str) -> str:
    """Reduce a URL to scheme, host and path for de-duplication.

    Query string and fragment are dropped along with a single trailing slash.
    Case is preserved; see :func:`url_key` for the comparison form.
    """
    parts = urlsplit(url.strip())
    normalized = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    if normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized


def url_key(url: str) -> str:
    """Comparison key for a normalized URL: scheme and host are case-insensitive."""
    parts = urlsplit(normalize_url(url))
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, "", ""))


def absolute_url(base_url: str, link: str) -> Optional[str]:
    """Resolve ``link`` against ``base_url``; ``None`` when nothing usable remains."""
    link = (link or "").strip()
    if not link:
        return None
    try:
        resolved = urljoin(base_url, link)
    except ValueError:
        return None
    return resolved or None


def is_http_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme.lower() in HTTP_SCHEMES and bool(parts.netloc)


def strip_fragment(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))
