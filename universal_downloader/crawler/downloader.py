"""
File downloading for discovered links.

DownloadService performs the byte transfer with aiohttp.
DownloadOrchestrator decides whether a file is fetched at all, names it
and records the result.
"""

import asyncio
import os
from dataclasses import dataclass
from typing import Optional

import aiohttp
from aiohttp import ClientTimeout, ClientError

from .errors import DownloadRejected
from .store import ResultRow, ResultStore, utc_timestamp
from ..utils.constants import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT
from ..utils.log import get_logger
from ..utils.paths import (
    build_download_name,
    ensure_parent_dir,
    normalize_folder,
    resolve_inside,
)


CONFLICT_UNIQUIFY = "uniquify"
CONFLICT_OVERWRITE = "overwrite"


def unique_path(path: str) -> str:
    """
    Find a free file name next to path.

    Args:
        path: Desired file path

    Returns:
        path itself if unused, otherwise 'name (1).ext', 'name (2).ext', ...
    """
    if not os.path.exists(path):
        return path
    base, ext = os.path.splitext(path)
    counter = 1
    while os.path.exists(f"{base} ({counter}){ext}"):
        counter += 1
    return f"{base} ({counter}){ext}"


class DownloadService:
    """
    Streams files to disk below a download root.

    A file either lands completely under its final name or not at all.
    """

    # Size of chunks read from the response body
    CHUNK_SIZE = 64 * 1024

    def __init__(
        self,
        download_root: str,
        timeout: int = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT
    ):
        """
        Initialize the download service.

        Args:
            download_root: Directory all destination paths are relative to
            timeout: Request timeout in seconds
            user_agent: User agent string for requests
        """
        self.download_root = os.path.abspath(download_root)
        self.timeout = ClientTimeout(total=timeout)
        self.user_agent = user_agent
        self.logger = get_logger("downloader")

    def resolve_destination(self, destination_path: str, conflict_policy: str) -> str:
        """
        Map a relative destination to an absolute, collision-free path.

        Raises:
            DownloadRejected: If the path escapes the download root
        """
        target = resolve_inside(self.download_root, destination_path)
        if target is None:
            raise DownloadRejected(f"invalid destination path: {destination_path}")
        if conflict_policy == CONFLICT_UNIQUIFY:
            target = unique_path(target)
        return target

    async def submit(
        self,
        source_url: str,
        destination_path: str,
        conflict_policy: str = CONFLICT_UNIQUIFY
    ) -> str:
        """
        Download a file.

        Args:
            source_url: URL to fetch
            destination_path: Forward-slash path relative to the download root
            conflict_policy: 'uniquify' or 'overwrite'

        Returns:
            Absolute path of the saved file

        Raises:
            DownloadRejected: If the file could not be fetched or saved
        """
        target = self.resolve_destination(destination_path, conflict_policy)
        part_path = f"{target}.part"

        try:
            ensure_parent_dir(target)
            async with aiohttp.ClientSession(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent}
            ) as session:
                async with session.get(source_url, allow_redirects=True) as response:
                    if response.status >= 400:
                        raise DownloadRejected(f"HTTP {response.status}")

                    with open(part_path, 'wb') as f:
                        async for chunk in response.content.iter_chunked(self.CHUNK_SIZE):
                            f.write(chunk)

            os.replace(part_path, target)

        except DownloadRejected:
            self._discard(part_path)
            raise
        except ClientError as e:
            self._discard(part_path)
            raise DownloadRejected(f"client error: {e}") from e
        except asyncio.TimeoutError as e:
            self._discard(part_path)
            raise DownloadRejected("timeout") from e
        except OSError as e:
            self._discard(part_path)
            raise DownloadRejected(f"cannot save file: {e}") from e

        self.logger.debug(f"Downloaded: {source_url} -> {target}")
        return target

    def _discard(self, path: str) -> None:
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            self.logger.debug(f"Could not remove partial file {path}: {e}")


@dataclass(frozen=True)
class DownloadOutcome:
    """Result of one download request."""

    skipped: bool
    destination: Optional[str] = None


class DownloadOrchestrator:
    """
    Gatekeeper between discovered files and the download service.

    A URL is marked as seen only after the service accepted it, so failed
    downloads stay retryable in later runs.
    """

    def __init__(self, store: ResultStore, service: DownloadService):
        self.store = store
        self.service = service
        self.logger = get_logger("downloader")

    async def download_file(
        self,
        file_url: str,
        title_hint: Optional[str],
        folder: Optional[str],
        from_page_url: Optional[str],
        force: bool = False
    ) -> DownloadOutcome:
        """
        Download a file unless it was downloaded in an earlier run.

        Args:
            file_url: URL of the file
            title_hint: Link text or page title used to name the file
            folder: Destination folder below the download root
            from_page_url: Page the link was found on
            force: Download even if the URL was seen before

        Returns:
            DownloadOutcome with skipped=True when deduplicated

        Raises:
            DownloadRejected: If the download service failed
        """
        if not force and self.store.is_seen(file_url):
            self.logger.debug(f"Already downloaded, skipping: {file_url}")
            return DownloadOutcome(skipped=True)

        filename = build_download_name(file_url, title_hint)
        final_name = f"{normalize_folder(folder)}/{filename}"

        destination = await self.service.submit(
            file_url, final_name, CONFLICT_UNIQUIFY
        )

        self.store.mark_seen(file_url)
        self.store.append_row(ResultRow(
            file_name=filename,
            download_filename=final_name,
            file_url=file_url,
            parent_page_url=from_page_url or "",
            discovered_at=utc_timestamp(),
        ))

        self.logger.info(f"Downloaded {file_url} -> {final_name}")
        return DownloadOutcome(skipped=False, destination=destination)
