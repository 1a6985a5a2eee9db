"""Configuration objects and constants for the crawler."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

DEFAULT_START_URL = "https://project.cmd.hr.nl"
DEFAULT_BASE_HOST = "hr.nl"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

NON_DOCUMENT_EXTENSIONS = (
    "jpg", "jpeg", "png", "gif", "bmp", "svg",
    "pdf", "doc", "docx", "xls", "xlsx",
    "zip", "rar", "7z", "tar", "gz",
    "mp3", "mp4", "avi", "mov", "mkv", "mts", "flv", "mpg", "mpeg",
    "exe", "bin", "iso",
)

IMAGE_KEYWORDS = (
    "student",
    "students",
    "profile",
    "portrait",
    "foto",
    "photo",
    "person",
    "avatar",
    "headshot",
    "face",
)

NAME_TAGS = ("h1", "h2", "h3", "h4", "p", "span", "li")

# Alt text at or above this length is prose, not a caption.
MAX_ALT_LENGTH = 100

MAX_CONTENT_LENGTH = 5_000_000


class ConfigError(ValueError):
    """Raised when crawl settings cannot be used to start a run."""


def host_from_base(base_host: str) -> str:
    """Return the bare host name for ``hr.nl`` or ``https://hr.nl/`` style input."""
    value = (base_host or "").strip().rstrip("/")
    if not value:
        return ""
    if not value.lower().startswith(("http://", "https://")):
        value = "https://" + value
    return (urlparse(value).hostname or "").lower()


@dataclass
class CrawlConfig:
    """Top-level settings that control a single crawl run."""

    start_url: str = DEFAULT_START_URL
    base_host: str = DEFAULT_BASE_HOST
    include_subdomains: bool = True
    concurrency: int = 4
    deadline_seconds: float = 30 * 60.0
    request_timeout: float = 30.0
    probe_timeout: float = 10.0
    max_retries: int = 2
    backoff_base: float = 1.0
    max_content_length: int = MAX_CONTENT_LENGTH
    idle_wait: float = 0.2
    drain_timeout: float = 2.0
    user_agent: str = DEFAULT_USER_AGENT
    output_root: Path = field(default_factory=lambda: Path("reports"))

    @property
    def base_hostname(self) -> str:
        return host_from_base(self.base_host)

    def validate(self) -> None:
        """Reject settings that would make the run meaningless."""
        parsed = urlparse(self.start_url or "")
        if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
            raise ConfigError(f"Start URL must be an absolute http(s) URL: {self.start_url!r}")
        if not self.base_hostname:
            raise ConfigError(f"Base host is empty or invalid: {self.base_host!r}")
        if self.concurrency < 1:
            raise ConfigError(f"Concurrency must be at least 1, got {self.concurrency}")
        if self.deadline_seconds <= 0:
            raise ConfigError(f"Deadline must be positive, got {self.deadline_seconds}")
        if self.max_retries < 0:
            raise ConfigError(f"Retry count cannot be negative, got {self.max_retries}")
