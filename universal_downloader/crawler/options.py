"""
Options recognized by the crawl and scan drivers.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from ..utils.constants import (
    DEFAULT_FOLDER,
    DEFAULT_MAX_PAGES,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_QUEUE,
    DEFAULT_NAV_TIMEOUT_MS,
    DEFAULT_RENDER_WAIT_MS,
    DEFAULT_SLOW_PAUSE_MS,
)


def parse_file_types(value) -> List[str]:
    """
    Normalize a file type list.

    Args:
        value: List of extensions or a comma separated string ("pdf, .docx")

    Returns:
        Lower-case extensions without leading dots
    """
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(',')
    types = []
    for item in value:
        ext = str(item).strip().lower().lstrip('.')
        if ext and ext not in types:
            types.append(ext)
    return types


def _int_option(data: Dict[str, Any], key: str, default: int) -> int:
    # Falsy values (missing, 0, "") mean "use the default"
    return int(data.get(key) or default)


@dataclass
class CrawlOptions:
    """Options for a site crawl or single page scan."""

    start_url: str = ""
    file_types: List[str] = field(default_factory=list)
    include: str = ""
    exclude: str = ""
    same_origin_only: bool = True
    folder: str = DEFAULT_FOLDER
    max_pages: int = DEFAULT_MAX_PAGES
    max_depth: int = DEFAULT_MAX_DEPTH
    max_queue: int = DEFAULT_MAX_QUEUE
    nav_timeout_ms: int = DEFAULT_NAV_TIMEOUT_MS
    render_wait_ms: int = DEFAULT_RENDER_WAIT_MS
    slow_pause_ms: int = DEFAULT_SLOW_PAUSE_MS
    hide_tab: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CrawlOptions":
        """
        Build options from the camelCase mapping used by the web API.

        Raises:
            ValueError: If a numeric option is not a number
        """
        data = data or {}
        return cls(
            start_url=str(data.get("startUrl") or "").strip(),
            file_types=parse_file_types(data.get("fileTypes")),
            include=str(data.get("include") or ""),
            exclude=str(data.get("exclude") or ""),
            same_origin_only=bool(data.get("sameOriginOnly", True)),
            folder=str(data.get("folder") or DEFAULT_FOLDER),
            max_pages=_int_option(data, "maxPages", DEFAULT_MAX_PAGES),
            max_depth=_int_option(data, "maxDepth", DEFAULT_MAX_DEPTH),
            max_queue=_int_option(data, "maxQueue", DEFAULT_MAX_QUEUE),
            nav_timeout_ms=_int_option(data, "navTimeoutMs", DEFAULT_NAV_TIMEOUT_MS),
            render_wait_ms=_int_option(data, "renderWaitMs", DEFAULT_RENDER_WAIT_MS),
            slow_pause_ms=_int_option(data, "slowPauseMs", DEFAULT_SLOW_PAUSE_MS),
            hide_tab=bool(data.get("hideTab", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase mapping used by the web API and storage."""
        return {
            "startUrl": self.start_url,
            "fileTypes": list(self.file_types),
            "include": self.include,
            "exclude": self.exclude,
            "sameOriginOnly": self.same_origin_only,
            "folder": self.folder,
            "maxPages": self.max_pages,
            "maxDepth": self.max_depth,
            "maxQueue": self.max_queue,
            "navTimeoutMs": self.nav_timeout_ms,
            "renderWaitMs": self.render_wait_ms,
            "slowPauseMs": self.slow_pause_ms,
            "hideTab": self.hide_tab,
        }

    def validate(self) -> None:
        """
        Check the options before starting a driver.

        Raises:
            ValueError: If the start URL or a bound is invalid
        """
        parsed = urlparse(self.start_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid start URL: {self.start_url!r}")
        if self.max_pages < 1 or self.max_pages > 100000:
            raise ValueError("Max pages must be between 1 and 100000")
        if self.max_depth < 0 or self.max_depth > 100:
            raise ValueError("Max depth must be between 0 and 100")
        if self.max_queue < 1:
            raise ValueError("Max queue must be at least 1")
        if self.nav_timeout_ms < 1:
            raise ValueError("Navigation timeout must be positive")
        if self.render_wait_ms < 0 or self.slow_pause_ms < 0:
            raise ValueError("Wait times must not be negative")
