"""
Utility modules for the universal downloader.

Contains logging, URL and path handling utilities, and constants.
"""

from .log import setup_logger, get_logger
from .paths import (
    to_absolute,
    get_origin,
    is_same_origin,
    sanitize_file_name,
    normalize_folder,
    build_download_name,
)
from .constants import (
    DEFAULT_USER_AGENT,
    DEFAULT_FOLDER,
    DEFAULT_MAX_PAGES,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_QUEUE,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "to_absolute",
    "get_origin",
    "is_same_origin",
    "sanitize_file_name",
    "normalize_folder",
    "build_download_name",
    "DEFAULT_USER_AGENT",
    "DEFAULT_FOLDER",
    "DEFAULT_MAX_PAGES",
    "DEFAULT_MAX_DEPTH",
    "DEFAULT_MAX_QUEUE",
]
