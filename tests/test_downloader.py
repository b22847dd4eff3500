"""Tests for the download orchestrator and the download service."""

import asyncio
import os

import pytest
from aiohttp import web

from universal_downloader.crawler.downloader import (
    CONFLICT_OVERWRITE,
    CONFLICT_UNIQUIFY,
    DownloadOrchestrator,
    DownloadService,
    unique_path,
)
from universal_downloader.crawler.errors import DownloadRejected
from universal_downloader.crawler.store import JsonFileStore, ResultStore

from tests.fakes import FakeDownloadService


def make_orchestrator(tmp_path, service=None):
    store = ResultStore(JsonFileStore(str(tmp_path / "state")))
    service = service or FakeDownloadService()
    return DownloadOrchestrator(store, service), store, service


def test_successful_download_marks_seen_and_appends_row(tmp_path):
    orchestrator, store, service = make_orchestrator(tmp_path)

    outcome = asyncio.run(orchestrator.download_file(
        "https://ex.com/doc.pdf", "Doc", "out", "https://ex.com/page"
    ))

    assert not outcome.skipped
    assert service.calls == [("https://ex.com/doc.pdf", "out/Doc.pdf", CONFLICT_UNIQUIFY)]
    assert store.is_seen("https://ex.com/doc.pdf")
    assert len(store.rows) == 1
    row = store.rows[0]
    assert row.file_name == "Doc.pdf"
    assert row.download_filename == "out/Doc.pdf"
    assert row.parent_page_url == "https://ex.com/page"
    assert row.discovered_at.endswith("Z")


def test_seen_url_is_skipped_without_contacting_service(tmp_path):
    orchestrator, store, service = make_orchestrator(tmp_path)
    store.mark_seen("https://ex.com/doc.pdf")

    outcome = asyncio.run(orchestrator.download_file(
        "https://ex.com/doc.pdf", "Doc", "out", ""
    ))

    assert outcome.skipped
    assert service.calls == []
    assert store.rows == []


def test_force_downloads_seen_url_again(tmp_path):
    orchestrator, store, service = make_orchestrator(tmp_path)
    store.mark_seen("https://ex.com/doc.pdf")

    outcome = asyncio.run(orchestrator.download_file(
        "https://ex.com/doc.pdf", "Doc", "out", "", force=True
    ))

    assert not outcome.skipped
    assert len(service.calls) == 1
    assert len(store.rows) == 1


def test_title_without_url_extension(tmp_path):
    orchestrator, store, service = make_orchestrator(tmp_path)
    asyncio.run(orchestrator.download_file(
        "https://ex.com/a/b/report?x=1", "Q1 Report", "out", ""
    ))
    assert service.calls[0][1] == "out/Q1 Report"


def test_folder_is_normalized(tmp_path):
    orchestrator, store, service = make_orchestrator(tmp_path)
    asyncio.run(orchestrator.download_file(
        "https://ex.com/doc.pdf", "Doc", "\\reports\\2024", ""
    ))
    assert service.calls[0][1] == "reports/2024/Doc.pdf"


def test_rejected_download_leaves_store_untouched(tmp_path):
    service = FakeDownloadService(reject_urls={"https://ex.com/doc.pdf"})
    orchestrator, store, _ = make_orchestrator(tmp_path, service)

    with pytest.raises(DownloadRejected):
        asyncio.run(orchestrator.download_file("https://ex.com/doc.pdf", "Doc", "out", ""))

    assert not store.is_seen("https://ex.com/doc.pdf")
    assert store.rows == []

    # Still retryable
    service.reject_urls.clear()
    outcome = asyncio.run(orchestrator.download_file("https://ex.com/doc.pdf", "Doc", "out", ""))
    assert not outcome.skipped


def test_unique_path_counts_up(tmp_path):
    target = tmp_path / "Doc.pdf"
    assert unique_path(str(target)) == str(target)

    target.write_bytes(b"x")
    assert unique_path(str(target)) == str(tmp_path / "Doc (1).pdf")

    (tmp_path / "Doc (1).pdf").write_bytes(b"x")
    assert unique_path(str(target)) == str(tmp_path / "Doc (2).pdf")


def test_resolve_destination_policies(tmp_path):
    service = DownloadService(str(tmp_path))
    (tmp_path / "out").mkdir()
    (tmp_path / "out" / "Doc.pdf").write_bytes(b"x")

    assert service.resolve_destination("out/Doc.pdf", CONFLICT_UNIQUIFY) == \
        str(tmp_path / "out" / "Doc (1).pdf")
    assert service.resolve_destination("out/Doc.pdf", CONFLICT_OVERWRITE) == \
        str(tmp_path / "out" / "Doc.pdf")


def test_destination_outside_root_is_rejected(tmp_path):
    service = DownloadService(str(tmp_path / "downloads"))
    with pytest.raises(DownloadRejected):
        asyncio.run(service.submit("https://ex.com/doc.pdf", "../escape.pdf"))


def test_unreachable_source_is_rejected_without_leftovers(tmp_path):
    service = DownloadService(str(tmp_path), timeout=5)
    with pytest.raises(DownloadRejected):
        asyncio.run(service.submit("http://127.0.0.1:9/doc.pdf", "out/doc.pdf"))

    out_dir = tmp_path / "out"
    leftovers = os.listdir(out_dir) if out_dir.exists() else []
    assert leftovers == []


async def _fetch_from_local_server(root, path, destination):
    """Serve a couple of canned answers and submit one download against them."""

    async def non_authoritative(request):
        return web.Response(status=203, body=b"%PDF-1.4 mirror copy")

    async def missing(request):
        return web.Response(status=404, text="not here")

    app = web.Application()
    app.router.add_get("/mirror.pdf", non_authoritative)
    app.router.add_get("/missing.pdf", missing)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = runner.addresses[0][1]
    try:
        service = DownloadService(str(root), timeout=10)
        return await service.submit(f"http://127.0.0.1:{port}{path}", destination)
    finally:
        await runner.cleanup()


def test_successful_non_200_answer_is_saved(tmp_path):
    target = asyncio.run(_fetch_from_local_server(tmp_path, "/mirror.pdf", "out/mirror.pdf"))

    assert target == str(tmp_path / "out" / "mirror.pdf")
    assert (tmp_path / "out" / "mirror.pdf").read_bytes() == b"%PDF-1.4 mirror copy"


def test_error_answer_is_rejected(tmp_path):
    with pytest.raises(DownloadRejected, match="HTTP 404"):
        asyncio.run(_fetch_from_local_server(tmp_path, "/missing.pdf", "out/missing.pdf"))

    assert os.listdir(tmp_path / "out") == []
