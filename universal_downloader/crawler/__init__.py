"""
Crawler module for the universal downloader.

Contains components for filtering, queueing, rendering, extracting,
downloading and tracking run state.
"""

from .crawler import FileCrawler, build_crawler
from .downloader import DownloadOrchestrator, DownloadService
from .extractor import PageExtractor
from .frontier import Frontier, FrontierTask
from .matcher import compile_matcher, matches_filters
from .options import CrawlOptions
from .renderer import PageRenderer
from .service import CrawlService
from .state import RunMode, RunState, RunStateMachine
from .store import JsonFileStore, ResultStore

__all__ = [
    "FileCrawler",
    "build_crawler",
    "DownloadOrchestrator",
    "DownloadService",
    "PageExtractor",
    "Frontier",
    "FrontierTask",
    "compile_matcher",
    "matches_filters",
    "CrawlOptions",
    "PageRenderer",
    "CrawlService",
    "RunMode",
    "RunState",
    "RunStateMachine",
    "JsonFileStore",
    "ResultStore",
]
