"""Crawl a domain for publicly reachable names and portrait photos."""

__version__ = "0.1.0"
