"""
Background runner for the crawl drivers.

Drivers run on one dedicated asyncio loop thread so entry points can
return immediately while progress is reported through state snapshots.
"""

import asyncio
import threading
from concurrent.futures import Future
from typing import Any, Dict, List, Optional

from .crawler import FileCrawler
from .options import CrawlOptions
from .state import RunState
from .store import ResultRow
from ..utils.log import get_logger


class CrawlService:
    """
    Thread-safe facade over a FileCrawler.

    The browser and every driver live on the service's own event loop;
    other threads only start drivers, request a stop or read snapshots.
    """

    def __init__(self, crawler: FileCrawler):
        self.crawler = crawler
        self.logger = get_logger("service")

        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="universal-downloader-loop",
            daemon=True
        )
        self._thread.start()

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def _submit(self, coro) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    @property
    def running(self) -> bool:
        return self.crawler.get_state().running

    def start_site_crawl(self, options: CrawlOptions) -> Future:
        """
        Start a site crawl in the background.

        Raises:
            ValueError: If the options are invalid

        Returns:
            Future resolving to the final state snapshot
        """
        options.validate()
        self.logger.info(f"Site crawl requested for {options.start_url}")
        return self._submit(self.crawler.crawl_site(options))

    def scan_single_page(self, options: CrawlOptions, timeout: Optional[float] = None) -> int:
        """
        Scan one page and wait for the result.

        Raises:
            ValueError: If the options are invalid

        Returns:
            Number of newly recorded files
        """
        options.validate()
        if timeout is None:
            # Navigation, load wait and extraction retries, with slack
            timeout = 2 * options.nav_timeout_ms / 1000 + 30
        return self._submit(self.crawler.scan_single_page(options)).result(timeout)

    def download_scanned(self, folder: str, force: bool = False) -> Future:
        """
        Start downloading the scanned list in the background.

        Returns:
            Future resolving to the final state snapshot
        """
        self.logger.info(f"Download of scanned files requested (force={force})")
        return self._submit(self.crawler.download_scanned(folder, force))

    def stop(self) -> None:
        self.crawler.stop()

    def get_state(self) -> RunState:
        return self.crawler.get_state()

    def get_rows(self) -> List[ResultRow]:
        return self.crawler.get_rows()

    def get_options(self) -> Dict[str, Any]:
        return self.crawler.get_options()

    def clear_results(self) -> None:
        self.crawler.clear_results()

    def shutdown(self, timeout: float = 10) -> None:
        """Stop any active run and the loop thread."""
        self.crawler.stop()
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
