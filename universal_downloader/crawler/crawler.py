"""
Crawl and scan drivers.

Orchestrates page rendering, link extraction, filtering and downloading
for the three run modes: site crawl, single page scan and download of
previously scanned files.
"""

import asyncio
from typing import Any, Dict, List, Optional, Set

from .downloader import DownloadOrchestrator, DownloadService
from .errors import DownloadRejected, ExtractionUnavailable, PageError, RenderTimeout
from .extractor import PageExtractor, PageScan
from .frontier import Frontier, FrontierTask
from .matcher import compile_matcher, matches_filters
from .options import CrawlOptions
from .renderer import PageRenderer
from .state import RunMode, RunState, RunStateMachine, StateObserver
from .store import JsonFileStore, ResultRow, ResultStore, ScannedFile, utc_timestamp
from ..utils.constants import (
    BULK_DOWNLOAD_PAUSE,
    CRAWL_EXTRACT_ATTEMPTS,
    CRAWL_EXTRACT_RETRY_DELAY,
    MAX_MESSAGE_LENGTH,
    SCAN_EXTRACT_ATTEMPTS,
    SCAN_EXTRACT_RETRY_DELAY,
)
from ..utils.log import get_logger


def _reason(error: BaseException) -> str:
    return (str(error) or error.__class__.__name__)[:MAX_MESSAGE_LENGTH]


class FileCrawler:
    """
    Finds and downloads files linked from web pages.

    Only one driver may run at a time; the running flag of the state is
    the signal callers use to avoid overlapping runs.
    """

    def __init__(
        self,
        store: ResultStore,
        service: DownloadService,
        renderer: Optional[PageRenderer] = None,
        extractor: Optional[PageExtractor] = None,
        crawl_extract_attempts: int = CRAWL_EXTRACT_ATTEMPTS,
        crawl_extract_delay: float = CRAWL_EXTRACT_RETRY_DELAY,
        scan_extract_attempts: int = SCAN_EXTRACT_ATTEMPTS,
        scan_extract_delay: float = SCAN_EXTRACT_RETRY_DELAY,
        bulk_pause: float = BULK_DOWNLOAD_PAUSE
    ):
        """
        Initialize the crawler.

        Args:
            store: Persisted seen URLs, result rows and scanned files
            service: Service performing the actual downloads
            renderer: Page renderer (Playwright by default)
            extractor: DOM extractor
            crawl_extract_attempts: Extraction attempts per crawled page
            crawl_extract_delay: Seconds between crawl extraction attempts
            scan_extract_attempts: Extraction attempts for a single page scan
            scan_extract_delay: Seconds between scan extraction attempts
            bulk_pause: Seconds to pause between scanned file downloads
        """
        self.store = store
        self.orchestrator = DownloadOrchestrator(store, service)
        self.renderer = renderer or PageRenderer()
        self.extractor = extractor or PageExtractor()
        self.crawl_extract_attempts = crawl_extract_attempts
        self.crawl_extract_delay = crawl_extract_delay
        self.scan_extract_attempts = scan_extract_attempts
        self.scan_extract_delay = scan_extract_delay
        self.bulk_pause = bulk_pause

        self.logger = get_logger("crawler")
        self.state_machine = RunStateMachine()
        self.frontier = Frontier()

        # Matched file URLs of the current crawl
        self._found_urls: Set[str] = set()

        # Render context handle of the active run
        self._page = None

    # ------------------------------------------------------------------
    # Inspection and control
    # ------------------------------------------------------------------

    def get_state(self) -> RunState:
        """Get an immutable snapshot of the run state."""
        return self.state_machine.state

    def subscribe(self, observer: StateObserver) -> None:
        """Register a callable receiving every state snapshot."""
        self.state_machine.subscribe(observer)

    def unsubscribe(self, observer: StateObserver) -> None:
        self.state_machine.unsubscribe(observer)

    def stop(self) -> None:
        """Ask the active driver to stop after its in-flight item."""
        self.logger.info("Stop requested")
        self.state_machine.request_stop()

    def get_rows(self) -> List[ResultRow]:
        """Get all persisted result rows."""
        if not self.state_machine.state.running:
            self.store.load()
        return list(self.store.rows)

    def get_options(self) -> Dict[str, Any]:
        """Get the options of the last site crawl."""
        return self.store.load_options()

    def clear_results(self) -> None:
        """Forget result rows and scanned files, keeping download dedup."""
        self.store.load()
        self.store.clear_results()
        self._found_urls.clear()
        self.state_machine.reset("cleared")
        self.logger.info("Results cleared")

    # ------------------------------------------------------------------
    # Drivers
    # ------------------------------------------------------------------

    async def crawl_site(self, options: CrawlOptions) -> RunState:
        """
        Crawl a site breadth-first from options.start_url, downloading
        every matching file on the way.

        Returns:
            Final state snapshot
        """
        self.state_machine.begin(
            RunMode.SITE_CRAWL,
            current_url=options.start_url,
            last_message="starting"
        )
        self.logger.info(f"Starting crawl of {options.start_url}")
        self.logger.info(f"Max pages: {options.max_pages}, Max depth: {options.max_depth}")

        try:
            self.store.load()
            self.store.save_options(options.to_dict())

            self.frontier.reset()
            self._found_urls.clear()
            self.frontier.enqueue(
                options.start_url, 0, "", options.same_origin_only, options.start_url
            )
            self.state_machine.update(queue_length=len(self.frontier))

            await self._crawl_loop(options)
        except Exception as e:
            self._fault("site-crawl", e)
        finally:
            await self._close_render_context()

        state = self.state_machine.state
        self.logger.info(
            f"Crawl {state.last_message}: {state.visited_count} pages, "
            f"{state.done_count} downloaded, {state.skipped_count} skipped, "
            f"{state.failed_count} failed"
        )
        return state

    async def scan_single_page(self, options: CrawlOptions) -> int:
        """
        Record the matching files of one page for a later download.

        Returns:
            Number of files newly added to the scanned list
        """
        self.state_machine.begin(
            RunMode.SINGLE_PAGE_SCAN,
            current_url=options.start_url,
            visited_count=1,
            last_message="scanning current page..."
        )

        added = 0
        try:
            self.store.load()
            include = compile_matcher(options.include)
            exclude = compile_matcher(options.exclude)

            try:
                scan = await self._render_and_scan(
                    options.start_url,
                    options,
                    self.scan_extract_attempts,
                    self.scan_extract_delay
                )
            except PageError as e:
                self.logger.warning(f"Scan of {options.start_url} failed: {e}")
                self.state_machine.finish(f"scan failed: {_reason(e)}", failed_count=1)
                return 0

            now = utc_timestamp()
            added = self.store.add_scanned(
                ScannedFile(url=f.url, text=f.text, from_page=scan.page_url, discovered_at=now)
                for f in scan.files
                if matches_filters(self._haystack(f.url, f.text, scan), include, exclude)
            )

            self.logger.info(f"Scanned {scan.page_url}: {added} new files")
            self.state_machine.finish(
                f"done. added: {added}",
                found_count=len(self.store.scanned)
            )
        except Exception as e:
            self._fault("single-page-scan", e)
        finally:
            await self._close_render_context()

        return added

    async def download_scanned(self, folder: str, force: bool = False) -> RunState:
        """
        Download every file of the scanned list in stored order.

        Args:
            folder: Destination folder below the download root
            force: Download files even if they were downloaded before

        Returns:
            Final state snapshot
        """
        self.state_machine.begin(
            RunMode.DOWNLOAD_SCANNED,
            last_message=f"download-scanned start (force={force})"
        )

        try:
            self.store.load()
            items = list(self.store.scanned)
            self.state_machine.update(
                found_count=len(items),
                last_message=f"downloading {len(items)} scanned files... (force={force})"
            )

            for item in items:
                if self.state_machine.stop_requested:
                    break

                self.state_machine.update(current_url=item.url)
                try:
                    outcome = await self.orchestrator.download_file(
                        item.url, item.text or "file", folder, item.from_page, force
                    )
                except DownloadRejected as e:
                    self.logger.warning(f"Download failed for {item.url}: {e}")
                    self.state_machine.increment(
                        "failed_count", last_message=f"failed: {_reason(e)}"
                    )
                    continue

                self.state_machine.increment(
                    "skipped_count" if outcome.skipped else "done_count",
                    last_message=f"file: {item.url}"
                )
                await asyncio.sleep(self.bulk_pause)

            self.state_machine.finish()
        except Exception as e:
            self._fault("download-scanned", e)

        return self.state_machine.state

    # ------------------------------------------------------------------
    # Crawl internals
    # ------------------------------------------------------------------

    async def _crawl_loop(self, options: CrawlOptions) -> None:
        """Visit queued pages until the frontier drains, a limit hits or a stop."""
        include = compile_matcher(options.include)
        exclude = compile_matcher(options.exclude)
        state = self.state_machine

        while self.frontier and not state.stop_requested:
            if self.frontier.visited_count >= options.max_pages:
                break

            task = self.frontier.dequeue()
            state.update(queue_length=len(self.frontier))

            if self.frontier.is_visited(task.url):
                continue

            self.frontier.mark_visited(task.url)
            state.update(
                visited_count=self.frontier.visited_count,
                current_url=task.url,
                last_message=f"visiting: {task.url}"
            )
            self.logger.info(
                f"[{self.frontier.visited_count}/{options.max_pages}] Visiting: {task.url}"
            )

            try:
                scan = await self._render_and_scan(
                    task.url,
                    options,
                    self.crawl_extract_attempts,
                    self.crawl_extract_delay
                )
            except PageError as e:
                self.logger.warning(f"Error crawling {task.url}: {e}")
                state.increment("failed_count", last_message=f"failed page: {_reason(e)}")
                continue

            await self._download_matches(scan, options, include, exclude)
            self._enqueue_links(scan, task, options)

        state.finish(queue_length=len(self.frontier))

    async def _download_matches(self, scan: PageScan, options: CrawlOptions, include, exclude) -> None:
        state = self.state_machine

        for f in scan.files:
            if not matches_filters(self._haystack(f.url, f.text, scan), include, exclude):
                continue

            if f.url not in self._found_urls:
                self._found_urls.add(f.url)
                state.update(found_count=len(self._found_urls))

            try:
                outcome = await self.orchestrator.download_file(
                    f.url,
                    f.text or scan.page_title or "file",
                    options.folder,
                    scan.page_url
                )
            except DownloadRejected as e:
                self.logger.warning(f"Download failed for {f.url}: {e}")
                state.increment("failed_count", last_message=f"failed download: {_reason(e)}")
                continue

            state.increment(
                "skipped_count" if outcome.skipped else "done_count",
                last_message=f"file: {f.url}"
            )
            await asyncio.sleep(options.slow_pause_ms / 1000)

    def _enqueue_links(self, scan: PageScan, task: FrontierTask, options: CrawlOptions) -> None:
        next_depth = task.depth + 1
        if next_depth > options.max_depth:
            return

        for link in scan.internal_links:
            if len(self.frontier) >= options.max_queue:
                self.logger.debug(f"Queue full ({options.max_queue}), dropping links of {task.url}")
                break
            self.frontier.enqueue(
                link, next_depth, task.url, options.same_origin_only, options.start_url
            )

        self.state_machine.update(queue_length=len(self.frontier))

    @staticmethod
    def _haystack(url: str, text: str, scan: PageScan) -> str:
        return f"{url} {text or ''} {scan.page_title or ''}"

    async def _render_and_scan(
        self,
        url: str,
        options: CrawlOptions,
        attempts: int,
        delay: float
    ) -> PageScan:
        """
        Load a page in the render context and extract its links.

        Raises:
            PageError: If the page failed to load or could not be scanned
        """
        if self._page is None:
            self._page = await self.renderer.open(url, hidden=options.hide_tab)

        await self.renderer.navigate(self._page, url, options.nav_timeout_ms)
        if not await self.renderer.wait_until_loaded(self._page, options.nav_timeout_ms):
            raise RenderTimeout(f"timeout waiting for {url} to load")

        # Give late scripts a moment
        await asyncio.sleep(options.render_wait_ms / 1000)

        for attempt in range(1, attempts + 1):
            try:
                return await self.extractor.extract(
                    self._page, options.file_types, options.same_origin_only
                )
            except ExtractionUnavailable as e:
                self.logger.debug(f"Extraction attempt {attempt}/{attempts} for {url} failed: {e}")
                if attempt < attempts:
                    await asyncio.sleep(delay)

        raise ExtractionUnavailable(f"page content not readable after {attempts} attempts")

    async def _close_render_context(self) -> None:
        # Teardown errors never change the run outcome
        page, self._page = self._page, None
        if page is not None:
            try:
                await self.renderer.close(page)
            except Exception as e:
                self.logger.warning(f"Error closing render context: {e}")
        try:
            await self.renderer.stop()
        except Exception as e:
            self.logger.warning(f"Error stopping renderer: {e}")

    def _fault(self, label: str, error: Exception) -> None:
        self.logger.exception(f"{label} failed: {error}")
        self.state_machine.increment(
            "failed_count",
            running=False,
            last_message=f"{label} ERROR: {_reason(error)}"
        )


def build_crawler(state_dir: str, download_dir: str) -> FileCrawler:
    """
    Create a crawler persisting to state_dir and downloading to download_dir.
    """
    store = ResultStore(JsonFileStore(state_dir))
    store.load()
    return FileCrawler(store, DownloadService(download_dir))
