"""
Crawl frontier: the breadth-first queue of pages still to visit.
"""

from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional, Set

from ..utils.paths import to_absolute, is_same_origin


@dataclass(frozen=True)
class FrontierTask:
    """A page waiting to be visited."""

    url: str
    depth: int
    origin_page: str = ""


class Frontier:
    """
    FIFO queue of pages plus the set of pages visited in the current run.

    Links are only rejected here for being malformed, already visited or
    off-origin. Depth and capacity limits are applied by the caller.
    """

    def __init__(self):
        self._queue: Deque[FrontierTask] = deque()
        self._visited: Set[str] = set()

    def __len__(self) -> int:
        return len(self._queue)

    def __bool__(self) -> bool:
        return bool(self._queue)

    @property
    def visited_count(self) -> int:
        return len(self._visited)

    def reset(self) -> None:
        """Forget all queued and visited pages."""
        self._queue.clear()
        self._visited.clear()

    def enqueue(
        self,
        url: str,
        depth: int,
        from_url: str = "",
        same_origin_only: bool = False,
        start_origin: str = ""
    ) -> bool:
        """
        Append a page to the end of the queue.

        Args:
            url: Page URL
            depth: Link distance from the start page
            from_url: Page the link was found on
            same_origin_only: Drop links whose origin differs from start_origin
            start_origin: URL whose origin bounds the crawl

        Returns:
            True if the page was queued
        """
        abs_url = to_absolute(url)
        if not abs_url:
            return False
        if abs_url in self._visited:
            return False
        if same_origin_only and start_origin and not is_same_origin(abs_url, start_origin):
            return False

        self._queue.append(FrontierTask(abs_url, depth, from_url))
        return True

    def dequeue(self) -> Optional[FrontierTask]:
        """Remove and return the oldest task, or None if the queue is empty."""
        if not self._queue:
            return None
        return self._queue.popleft()

    def is_visited(self, url: str) -> bool:
        return url in self._visited

    def mark_visited(self, url: str) -> None:
        self._visited.add(url)

    def pending(self):
        """Snapshot of the queued tasks in order."""
        return list(self._queue)
