"""Tests for the crawl, scan and bulk download drivers."""

import asyncio

from universal_downloader.crawler.options import CrawlOptions
from universal_downloader.crawler.state import RunMode
from universal_downloader.crawler.store import ScannedFile

from tests.fakes import (
    FakeDownloadService,
    FakeExtractor,
    FakeRenderer,
    HtmlExtractor,
    make_crawler,
    make_page,
)


START = "https://ex.com/"
PAGE_A = "https://ex.com/a"
PAGE_B = "https://ex.com/b"
PAGE_C = "https://ex.com/c"
DOC = "https://ex.com/doc.pdf"

SITE = {
    START: make_page(START, links=[PAGE_A, PAGE_B], files=[(DOC, "Doc")], title="Home"),
    PAGE_A: make_page(PAGE_A, links=[PAGE_C], title="A"),
    PAGE_B: make_page(PAGE_B, files=[("https://ex.com/b.pdf", "B file")], title="B"),
    PAGE_C: make_page(PAGE_C, title="C"),
}


def options(**kwargs):
    kwargs.setdefault("start_url", START)
    kwargs.setdefault("file_types", ["pdf"])
    kwargs.setdefault("folder", "out")
    kwargs.setdefault("render_wait_ms", 0)
    kwargs.setdefault("slow_pause_ms", 0)
    return CrawlOptions(**kwargs)


def record(crawler):
    snapshots = []
    crawler.subscribe(snapshots.append)
    return snapshots


# ----------------------------------------------------------------------
# Site crawl
# ----------------------------------------------------------------------

def test_crawl_visits_breadth_first_and_downloads(tmp_path):
    crawler, renderer, _, service = make_crawler(tmp_path, SITE)
    snapshots = record(crawler)

    state = asyncio.run(crawler.crawl_site(options(max_depth=1)))

    assert renderer.navigated == [START, PAGE_A, PAGE_B]
    assert any(
        s.visited_count == 1 and s.found_count == 1 and s.queue_length == 2
        for s in snapshots
    )
    assert state.mode is RunMode.SITE_CRAWL
    assert not state.running
    assert state.last_message == "done"
    assert state.visited_count == 3
    assert state.queue_length == 0
    assert state.found_count == 2
    assert state.done_count == 2
    assert state.failed_count == 0
    assert [c[0] for c in service.calls] == [DOC, "https://ex.com/b.pdf"]

    rows = crawler.get_rows()
    assert [r.file_url for r in rows] == [DOC, "https://ex.com/b.pdf"]
    assert rows[0].download_filename == "out/Doc.pdf"
    assert rows[0].parent_page_url == START
    assert renderer.closed == 1
    assert renderer.stopped == 1


def test_depth_zero_visits_only_start(tmp_path):
    crawler, renderer, _, _ = make_crawler(tmp_path, SITE)
    state = asyncio.run(crawler.crawl_site(options(max_depth=0)))

    assert renderer.navigated == [START]
    assert state.queue_length == 0


def test_deeper_crawl_reaches_grandchildren(tmp_path):
    crawler, renderer, _, _ = make_crawler(tmp_path, SITE)
    asyncio.run(crawler.crawl_site(options(max_depth=2)))
    assert renderer.navigated == [START, PAGE_A, PAGE_B, PAGE_C]


def test_queue_capacity_is_respected(tmp_path):
    links = [f"https://ex.com/p{i}" for i in range(10)]
    site = {START: make_page(START, links=links)}
    crawler, renderer, _, _ = make_crawler(tmp_path, site)
    snapshots = record(crawler)

    asyncio.run(crawler.crawl_site(options(max_queue=3)))

    assert max(s.queue_length for s in snapshots) <= 3
    assert renderer.navigated == [START] + links[:3]


def test_max_pages_stops_the_crawl(tmp_path):
    crawler, renderer, _, _ = make_crawler(tmp_path, SITE)
    state = asyncio.run(crawler.crawl_site(options(max_pages=2, max_depth=1)))

    assert renderer.navigated == [START, PAGE_A]
    assert state.visited_count == 2
    assert state.last_message == "done"
    assert state.queue_length == 1


def test_same_origin_only_skips_foreign_pages(tmp_path):
    site = {START: make_page(START, links=["https://other.org/x", PAGE_A])}
    crawler, renderer, _, _ = make_crawler(tmp_path, site)
    asyncio.run(crawler.crawl_site(options()))
    assert renderer.navigated == [START, PAGE_A]

    crawler, renderer, _, _ = make_crawler(tmp_path / "any", site)
    asyncio.run(crawler.crawl_site(options(same_origin_only=False)))
    assert renderer.navigated == [START, "https://other.org/x", PAGE_A]


def test_second_crawl_skips_downloaded_files(tmp_path):
    crawler, _, _, service = make_crawler(tmp_path, SITE)
    asyncio.run(crawler.crawl_site(options(max_depth=0)))
    state = asyncio.run(crawler.crawl_site(options(max_depth=0)))

    assert len(service.calls) == 1
    assert state.done_count == 0
    assert state.skipped_count == 1
    assert state.found_count == 1
    assert len(crawler.get_rows()) == 1


def test_dedup_survives_a_new_crawler(tmp_path):
    crawler, _, _, _ = make_crawler(tmp_path, SITE)
    asyncio.run(crawler.crawl_site(options(max_depth=0)))

    crawler, _, _, service = make_crawler(tmp_path, SITE)
    state = asyncio.run(crawler.crawl_site(options(max_depth=0)))
    assert service.calls == []
    assert state.skipped_count == 1


def test_rejected_download_is_retried_next_run(tmp_path):
    service = FakeDownloadService(reject_urls={DOC})
    crawler, _, _, _ = make_crawler(tmp_path, SITE, service=service)

    state = asyncio.run(crawler.crawl_site(options(max_depth=0)))
    assert state.failed_count == 1
    assert state.last_message == "done"
    assert crawler.get_rows() == []

    service.reject_urls.clear()
    state = asyncio.run(crawler.crawl_site(options(max_depth=0)))
    assert state.done_count == 1
    assert state.failed_count == 0


def test_failed_download_message(tmp_path):
    service = FakeDownloadService(reject_urls={DOC})
    crawler, _, _, _ = make_crawler(tmp_path, SITE, service=service)
    snapshots = record(crawler)
    asyncio.run(crawler.crawl_site(options(max_depth=0)))
    assert any(s.last_message == "failed download: HTTP 500" for s in snapshots)


def test_page_load_failure_continues_with_next_page(tmp_path):
    renderer = FakeRenderer(fail_urls={PAGE_A})
    crawler, _, _, _ = make_crawler(tmp_path, SITE, renderer=renderer)
    snapshots = record(crawler)

    state = asyncio.run(crawler.crawl_site(options(max_depth=1)))

    assert renderer.navigated == [START, PAGE_A, PAGE_B]
    assert state.failed_count == 1
    assert state.visited_count == 3
    assert any(s.last_message.startswith("failed page: HTTP 404") for s in snapshots)


def test_load_timeout_counts_as_failed_page(tmp_path):
    renderer = FakeRenderer(timeout_urls={PAGE_B})
    crawler, _, _, service = make_crawler(tmp_path, SITE, renderer=renderer)

    state = asyncio.run(crawler.crawl_site(options(max_depth=1)))

    assert state.failed_count == 1
    assert [c[0] for c in service.calls] == [DOC]


def test_extraction_is_retried(tmp_path):
    extractor = FakeExtractor(SITE, failures=2)
    crawler, _, _, _ = make_crawler(tmp_path, extractor=extractor)

    state = asyncio.run(crawler.crawl_site(options(max_depth=0)))

    assert extractor.calls == 3
    assert state.failed_count == 0
    assert state.done_count == 1


def test_extraction_gives_up_after_attempts(tmp_path):
    extractor = FakeExtractor(SITE, failures=100)
    crawler, _, _, _ = make_crawler(
        tmp_path, extractor=extractor, crawl_extract_attempts=4
    )
    snapshots = record(crawler)

    state = asyncio.run(crawler.crawl_site(options(max_depth=0)))

    assert extractor.calls == 4
    assert state.failed_count == 1
    assert any("not readable after 4 attempts" in s.last_message for s in snapshots)


def test_stop_finishes_current_page_only(tmp_path):
    crawler, renderer, _, _ = make_crawler(tmp_path, SITE)

    def stop_on_start(state):
        if state.last_message == f"visiting: {START}":
            crawler.stop()

    crawler.subscribe(stop_on_start)
    state = asyncio.run(crawler.crawl_site(options(max_depth=1)))

    assert renderer.navigated == [START]
    assert state.last_message == "stopped"
    assert not state.running
    assert state.done_count == 1


def test_unexpected_error_ends_run_with_fault(tmp_path):
    service = FakeDownloadService(error=RuntimeError("boom"))
    crawler, renderer, _, _ = make_crawler(tmp_path, SITE, service=service)

    state = asyncio.run(crawler.crawl_site(options(max_depth=1)))

    assert not state.running
    assert state.last_message == "site-crawl ERROR: boom"
    assert state.failed_count == 1
    assert renderer.stopped == 1


def test_include_and_exclude_filters(tmp_path):
    files = [
        ("https://ex.com/annual-2023.pdf", "Annual report"),
        ("https://ex.com/annual-2023-draft.pdf", "Annual draft"),
        ("https://ex.com/menu.pdf", "Menu"),
    ]
    site = {START: make_page(START, files=files, title="Reports")}
    crawler, _, _, service = make_crawler(tmp_path, site)

    asyncio.run(crawler.crawl_site(options(include="/annual-\\d{4}/", exclude="draft")))

    assert [c[0] for c in service.calls] == ["https://ex.com/annual-2023.pdf"]


def test_invalid_filter_matches_everything(tmp_path):
    site = {START: make_page(START, files=[(DOC, "Doc")])}
    crawler, _, _, service = make_crawler(tmp_path, site)
    asyncio.run(crawler.crawl_site(options(include="/([/")))
    assert len(service.calls) == 1


def test_crawl_persists_last_options(tmp_path):
    crawler, _, _, _ = make_crawler(tmp_path, SITE)
    asyncio.run(crawler.crawl_site(options(max_depth=0, include="doc")))

    saved = crawler.get_options()
    assert saved["startUrl"] == START
    assert saved["include"] == "doc"
    assert saved["maxDepth"] == 0


# ----------------------------------------------------------------------
# Single page scan
# ----------------------------------------------------------------------

def test_scan_records_files_once(tmp_path):
    crawler, renderer, _, service = make_crawler(tmp_path, SITE)

    added = asyncio.run(crawler.scan_single_page(options(start_url=PAGE_B)))
    state = crawler.get_state()

    assert added == 1
    assert state.mode is RunMode.SINGLE_PAGE_SCAN
    assert state.last_message == "done. added: 1"
    assert state.found_count == 1
    assert state.visited_count == 1
    assert service.calls == []
    assert renderer.navigated == [PAGE_B]

    added = asyncio.run(crawler.scan_single_page(options(start_url=PAGE_B)))
    assert added == 0
    assert crawler.get_state().last_message == "done. added: 0"
    assert crawler.get_state().found_count == 1

    stored = crawler.store.scanned[0]
    assert stored.url == "https://ex.com/b.pdf"
    assert stored.text == "B file"
    assert stored.from_page == PAGE_B


def test_scan_failure_reports_message(tmp_path):
    renderer = FakeRenderer(fail_urls={PAGE_A})
    crawler, _, _, _ = make_crawler(tmp_path, SITE, renderer=renderer)

    added = asyncio.run(crawler.scan_single_page(options(start_url=PAGE_A)))
    state = crawler.get_state()

    assert added == 0
    assert not state.running
    assert state.failed_count == 1
    assert state.last_message.startswith("scan failed: HTTP 404")
    assert renderer.stopped == 1


# ----------------------------------------------------------------------
# Download of scanned files
# ----------------------------------------------------------------------

def seed_scanned(crawler, urls):
    crawler.store.add_scanned(
        ScannedFile(url=u, text=u.rsplit("/", 1)[-1], from_page=START, discovered_at="t")
        for u in urls
    )


def test_download_scanned_then_skip_then_force(tmp_path):
    urls = ["https://ex.com/1.pdf", "https://ex.com/2.pdf"]
    crawler, _, _, service = make_crawler(tmp_path)
    seed_scanned(crawler, urls)

    state = asyncio.run(crawler.download_scanned("bulk"))
    assert state.mode is RunMode.DOWNLOAD_SCANNED
    assert state.done_count == 2
    assert state.found_count == 2
    assert state.last_message == "done"
    assert service.calls[0][1] == "bulk/1.pdf"

    state = asyncio.run(crawler.download_scanned("bulk"))
    assert state.done_count == 0
    assert state.skipped_count == 2

    state = asyncio.run(crawler.download_scanned("bulk", force=True))
    assert state.done_count == 2
    assert len(service.calls) == 4
    assert len(crawler.get_rows()) == 4


def test_download_scanned_counts_failures(tmp_path):
    service = FakeDownloadService(reject_urls={"https://ex.com/1.pdf"})
    crawler, _, _, _ = make_crawler(tmp_path, service=service)
    seed_scanned(crawler, ["https://ex.com/1.pdf", "https://ex.com/2.pdf"])

    state = asyncio.run(crawler.download_scanned("bulk"))
    assert state.failed_count == 1
    assert state.done_count == 1


def test_download_scanned_stops_between_files(tmp_path):
    crawler, _, _, service = make_crawler(tmp_path)
    seed_scanned(crawler, [f"https://ex.com/{i}.pdf" for i in range(5)])

    def stop_after_first(state):
        if state.done_count == 1 and not crawler.state_machine.stop_requested:
            crawler.stop()

    crawler.subscribe(stop_after_first)
    state = asyncio.run(crawler.download_scanned("bulk"))

    assert len(service.calls) == 1
    assert state.last_message == "stopped"
    assert not state.running


# ----------------------------------------------------------------------
# Clearing
# ----------------------------------------------------------------------

def test_clear_results_keeps_download_dedup(tmp_path):
    crawler, _, _, service = make_crawler(tmp_path, SITE)
    asyncio.run(crawler.crawl_site(options(max_depth=0)))
    seed_scanned(crawler, ["https://ex.com/x.pdf"])

    crawler.clear_results()
    crawler.clear_results()

    state = crawler.get_state()
    assert state.mode is RunMode.IDLE
    assert state.last_message == "cleared"
    assert crawler.get_rows() == []
    assert crawler.store.scanned == []

    state = asyncio.run(crawler.crawl_site(options(max_depth=0)))
    assert state.skipped_count == 1
    assert len(service.calls) == 1


def test_crawl_with_any_type_follows_html_pages(tmp_path):
    pages = {
        START: '<a href="/about.html">About</a><a href="/news.php">News</a>',
        "https://ex.com/about.html": '<a href="/report.pdf">Report</a>',
    }
    crawler, renderer, _, service = make_crawler(tmp_path, extractor=HtmlExtractor(pages))

    state = asyncio.run(crawler.crawl_site(options(file_types=[], max_depth=1)))

    assert renderer.navigated == [
        START, "https://ex.com/about.html", "https://ex.com/news.php",
    ]
    assert state.visited_count == 3
    assert "https://ex.com/report.pdf" in [c[0] for c in service.calls]


def test_teardown_failure_keeps_run_result(tmp_path):
    renderer = FakeRenderer(stop_error=RuntimeError("browser gone"))
    crawler, _, _, _ = make_crawler(tmp_path, SITE, renderer=renderer)

    state = asyncio.run(crawler.crawl_site(options(max_depth=0)))

    assert state.last_message == "done"
    assert state.failed_count == 0
    assert renderer.stopped == 1

    added = asyncio.run(crawler.scan_single_page(options(start_url=PAGE_B)))
    assert added == 1
    assert crawler.get_state().last_message == "done. added: 1"
