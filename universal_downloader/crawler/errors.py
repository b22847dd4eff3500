"""
Exceptions raised by the crawler components.

Page level errors abort a single page, download errors a single file.
Neither ends a run.
"""


class CrawlError(Exception):
    """Base class for recoverable crawl failures."""


class PageError(CrawlError):
    """A page could not be rendered or scanned."""


class PageLoadError(PageError):
    """Navigation to a page failed."""


class RenderTimeout(PageError):
    """A page did not reach the loaded state in time."""


class ExtractionUnavailable(PageError):
    """The rendered DOM could not be read."""


class DownloadRejected(CrawlError):
    """The download service refused or failed a file."""
