import asyncio
import threading
import time

import pytest
import responses

from student_finder import crawler
from student_finder.config import ConfigError
from student_finder.content import extract_page
from student_finder.crawler import CrawlCoordinator, CrawlState, run_crawler
from student_finder.fetcher import Fetcher
from student_finder.utils import url_key

from conftest import FakeSite

BASE = "https://project.cmd.hr.nl"


def _page(*names, images=(), links=()):
    parts = [f"<h2>{name}</h2>" for name in names]
    parts += [f'<img src="{src}" alt="">' for src in images]
    parts += [f'<a href="{href}">link</a>' for href in links]
    return "<html><body>" + "".join(parts) + "</body></html>"


def _run(coordinator):
    return asyncio.run(coordinator.run())


@responses.activate
def test_end_to_end_single_page_stays_on_host(make_config):
    html = """
    <html><body>
      <h1>Jan Bakker</h1>
      <img src="/images/student-jan.jpg" alt="Portret">
      <a href="https://other.org/team">Partner</a>
    </body></html>
    """
    responses.add(responses.HEAD, BASE + "/", content_type="text/html")
    responses.add(responses.GET, BASE + "/", body=html, content_type="text/html; charset=utf-8")

    coordinator = CrawlCoordinator(make_config(start_url=BASE, concurrency=1, deadline_seconds=5.0))
    result = _run(coordinator)

    assert len(result.findings) == 1
    finding = result.findings[0]
    assert finding.name == "Jan Bakker"
    assert finding.image_url == BASE + "/images/student-jan.jpg"
    assert finding.name_validated is False
    assert result.visited_urls == {BASE + "/"}
    assert result.pages_processed == 1
    assert not result.cancelled
    assert not coordinator.frontier.seen("https://other.org/team")
    assert all("other.org" not in call.request.url for call in responses.calls)
    assert coordinator.state is CrawlState.DONE


@responses.activate
def test_relative_links_resolve_against_final_url(make_config):
    moved = "https://www.hr.nl/nieuw/"
    responses.add(responses.HEAD, BASE + "/", content_type="text/html")
    responses.add(responses.GET, BASE + "/", status=302, headers={"Location": moved})
    responses.add(responses.HEAD, moved, content_type="text/html")
    responses.add(responses.GET, moved, body=_page(links=["team"]), content_type="text/html")
    responses.add(responses.HEAD, moved + "team", content_type="text/html")
    responses.add(responses.GET, moved + "team", body=_page("Lisa Jansen"), content_type="text/html")

    result = asyncio.run(run_crawler(make_config(start_url=BASE)))

    assert result.visited_urls == {moved, moved + "team"}
    assert [f.name for f in result.findings] == ["Lisa Jansen"]


def test_no_url_is_fetched_twice(make_config):
    site = FakeSite(
        {
            BASE: _page("Jan Bakker", links=["/a", "/b/", "/a?x=1", "/a#top", BASE + "/"]),
            BASE + "/a": _page("Piet Smit", links=["/b", "/c", "/"]),
            BASE + "/b": _page(links=["/a", "/c/", "https://HR.nl/d"]),
            BASE + "/c": _page("Lisa Jansen", links=["/a", "/b", "/c"]),
            "https://HR.nl/d": _page(links=["https://project.cmd.hr.nl/c"]),
        }
    )
    coordinator = CrawlCoordinator(make_config(concurrency=3), fetcher_factory=site.factory)

    result = _run(coordinator)

    keys = [url_key(url) for url in site.fetched]
    assert len(keys) == len(set(keys))
    assert len(site.fetched) == 5
    assert result.pages_processed == 5
    assert sorted(f.name for f in result.findings) == ["Jan Bakker", "Lisa Jansen", "Piet Smit"]
    assert not result.cancelled


def test_deadline_keeps_only_completed_pages(make_config):
    site = FakeSite(
        {
            BASE: _page("Jan Bakker", links=["/a", "/slow", "/b"]),
            BASE + "/a": _page("Piet Smit"),
            BASE + "/b": _page("Lisa Jansen"),
        }
    )
    site.slow.add(BASE + "/slow")
    config = make_config(concurrency=1, deadline_seconds=0.5, drain_timeout=2.0)
    coordinator = CrawlCoordinator(config, fetcher_factory=site.factory)

    started = time.perf_counter()
    result = _run(coordinator)
    elapsed = time.perf_counter() - started

    assert result.cancelled
    assert result.pages_processed == 2
    assert [f.name for f in result.findings] == ["Jan Bakker", "Piet Smit"]
    assert BASE + "/b" not in site.fetched
    assert elapsed < 5
    assert coordinator.state is CrawlState.DONE


def test_explicit_cancel_stops_new_work(make_config):
    site = FakeSite(
        {
            BASE: _page("Jan Bakker", links=["/stop", "/after"]),
            BASE + "/stop": _page("Piet Smit", links=["/later"]),
            BASE + "/after": _page("Lisa Jansen"),
            BASE + "/later": _page("Kees Visser"),
        }
    )
    coordinator = CrawlCoordinator(make_config(concurrency=1), fetcher_factory=site.factory)
    site.hooks[BASE + "/stop"] = coordinator.cancel

    result = _run(coordinator)

    assert result.cancelled
    assert site.fetched == [BASE, BASE + "/stop"]
    assert [f.name for f in result.findings] == ["Jan Bakker", "Piet Smit"]


def test_failing_page_does_not_abort_run(make_config):
    site = FakeSite(
        {
            BASE: _page(links=["/boom", "/ok"]),
            BASE + "/ok": _page("Lisa Jansen"),
        }
    )
    site.failing.add(BASE + "/boom")
    coordinator = CrawlCoordinator(make_config(concurrency=2), fetcher_factory=site.factory)

    result = _run(coordinator)

    assert not result.cancelled
    assert BASE + "/boom" in site.fetched
    assert [f.name for f in result.findings] == ["Lisa Jansen"]
    assert result.visited_urls == {BASE, BASE + "/ok"}
    assert coordinator.in_flight == 0


def test_start_url_outside_base_host_fetches_nothing(make_config):
    site = FakeSite({"https://other.org": _page("Jan Bakker")})
    coordinator = CrawlCoordinator(
        make_config(start_url="https://other.org"), fetcher_factory=site.factory
    )

    result = _run(coordinator)

    assert site.fetched == []
    assert result.findings == []
    assert result.pages_processed == 0


@pytest.mark.parametrize("start_url", ["", "project.cmd.hr.nl", "ftp://hr.nl/", "/team"])
def test_malformed_start_url_is_fatal(make_config, start_url):
    site = FakeSite({})
    with pytest.raises(ConfigError):
        asyncio.run(run_crawler(make_config(start_url=start_url), fetcher_factory=site.factory))
    assert site.fetched == []


def test_separate_runs_do_not_share_state(make_config):
    site = FakeSite({BASE: _page("Jan Bakker")})
    first = _run(CrawlCoordinator(make_config(), fetcher_factory=site.factory))
    second = _run(CrawlCoordinator(make_config(), fetcher_factory=site.factory))

    assert len(first.findings) == len(second.findings) == 1
    assert site.fetched == [BASE, BASE]


def _live_fetcher(config, cancel_event, deadline):
    fetcher = Fetcher(config, cancel_event, deadline)
    fetcher.session.trust_env = False
    return fetcher


def _worker_threads():
    return [t for t in threading.enumerate() if t.name.startswith("student-finder-worker")]


def test_deadline_releases_worker_threads(make_config, slow_server):
    config = make_config(
        start_url=slow_server + "/stall",
        base_host="127.0.0.1",
        deadline_seconds=1.0,
        drain_timeout=0.5,
        request_timeout=30.0,
        probe_timeout=30.0,
    )

    started = time.monotonic()
    result = asyncio.run(run_crawler(config, fetcher_factory=_live_fetcher))

    assert result.cancelled
    assert result.findings == []
    assert time.monotonic() - started < 3
    released_by = time.monotonic() + 3
    while _worker_threads() and time.monotonic() < released_by:
        time.sleep(0.05)
    assert _worker_threads() == []


def test_pages_are_parsed_off_the_event_loop(make_config, monkeypatch):
    threads = []

    def recording_extract(html, final_url):
        threads.append(threading.current_thread().name)
        return extract_page(html, final_url)

    monkeypatch.setattr(crawler, "extract_page", recording_extract)
    site = FakeSite({BASE: _page("Jan Bakker", links=["/a"]), BASE + "/a": _page("Lisa Jansen")})

    result = _run(CrawlCoordinator(make_config(concurrency=2), fetcher_factory=site.factory))

    assert sorted(f.name for f in result.findings) == ["Jan Bakker", "Lisa Jansen"]
    assert len(threads) == 2
    assert all(name.startswith("student-finder-worker") for name in threads)


def test_failing_page_is_logged_with_traceback(make_config, caplog):
    site = FakeSite({BASE: _page(links=["/boom"])})
    site.failing.add(BASE + "/boom")

    with caplog.at_level("DEBUG", logger="student_finder.crawler"):
        _run(CrawlCoordinator(make_config(), fetcher_factory=site.factory))

    errors = [r for r in caplog.records if r.levelname == "ERROR"]
    assert len(errors) == 1
    assert errors[0].getMessage() == f"Error processing {BASE}/boom"
    assert errors[0].exc_info is not None
