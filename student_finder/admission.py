"""Host and file-type eligibility checks applied before a URL is fetched."""

from __future__ import annotations

import re
from typing import Iterable
from urllib.parse import urlsplit

from .config import NON_DOCUMENT_EXTENSIONS, CrawlConfig, host_from_base


def build_extension_pattern(extensions: Iterable[str]) -> re.Pattern:
    joined = "|".join(re.escape(ext) for ext in extensions)
    return re.compile(rf"\.(?:{joined})$", re.IGNORECASE)


NON_DOCUMENT_PATTERN = build_extension_pattern(NON_DOCUMENT_EXTENSIONS)


def is_non_document(url: str) -> bool:
    """True when the URL path ends in a known binary/media extension."""
    try:
        path = urlsplit(url).path
    except ValueError:
        return False
    return bool(NON_DOCUMENT_PATTERN.search(path))


class AdmissionFilter:
    """Pure predicate over (url, configuration) deciding fetch eligibility."""

    def __init__(self, base_host: str, include_subdomains: bool = True) -> None:
        self.base_host = host_from_base(base_host)
        self.include_subdomains = include_subdomains

    @classmethod
    def from_config(cls, config: CrawlConfig) -> "AdmissionFilter":
        return cls(config.base_host, config.include_subdomains)

    def host_allowed(self, host: str) -> bool:
        host = (host or "").lower().rstrip(".")
        if not host or not self.base_host:
            return False
        if host == self.base_host:
            return True
        return self.include_subdomains and host.endswith("." + self.base_host)

    def admit(self, url: str) -> bool:
        try:
            parts = urlsplit(url)
            host = parts.hostname
        except ValueError:
            return False
        if parts.scheme.lower() not in ("http", "https") or not host:
            return False
        if NON_DOCUMENT_PATTERN.search(parts.path):
            return False
        return self.host_allowed(host)

    __call__ = admit
