"""
Path and URL utilities for the universal downloader.

Provides URL normalization, origin comparison, file name sanitizing and
destination path handling.
"""

import os
import re
from typing import Optional
from urllib.parse import urlparse, urlunparse, unquote

from .constants import DEFAULT_FOLDER, MAX_FILENAME_LENGTH


# Control characters and characters that are illegal in file names
_ILLEGAL_FILENAME_CHARS = re.compile(r'[\x00-\x1f<>:"/\\|?*]')

# Trailing extension of a URL path, e.g. ".pdf"
_URL_EXTENSION = re.compile(r'\.([a-z0-9]{1,8})$', re.IGNORECASE)

_DEFAULT_PORTS = {"http": 80, "https": 443}


def to_absolute(url: str) -> str:
    """
    Normalize an absolute http(s) URL.

    Lower-cases scheme and host and drops the fragment. Anything that is
    not an absolute http(s) URL yields an empty string.

    Args:
        url: URL to normalize

    Returns:
        Normalized URL string, or "" when the URL is malformed
    """
    if not url:
        return ""

    try:
        parsed = urlparse(url.strip())
        # Accessing port validates it
        parsed.port
    except ValueError:
        return ""

    if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
        return ""

    return urlunparse((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        parsed.path or '/',
        parsed.params,
        parsed.query,
        ''  # Remove fragment
    ))


def get_origin(url: str) -> str:
    """
    Get the origin (scheme, host and non-default port) of a URL.

    Args:
        url: URL to extract the origin from

    Returns:
        Origin string such as 'https://example.com', or "" if malformed
    """
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError:
        return ""

    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    if not scheme or not host:
        return ""

    if ':' in host:
        host = f"[{host}]"
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


def is_same_origin(url: str, base_url: str) -> bool:
    """
    Check if two URLs share the same origin.

    Args:
        url: URL to check
        base_url: URL to compare against

    Returns:
        True if both parse and their origins match, False otherwise
    """
    origin = get_origin(url)
    return bool(origin) and origin == get_origin(base_url)


def url_extension(url: str) -> str:
    """
    Get the trailing extension of a URL path, including the dot.

    Args:
        url: URL to inspect

    Returns:
        Extension such as '.pdf', or "" if the path has none
    """
    try:
        path = urlparse(url).path
    except ValueError:
        return ""
    match = _URL_EXTENSION.search(path)
    return match.group(0) if match else ""


def last_path_segment(url: str) -> str:
    """Get the decoded last segment of a URL path."""
    try:
        path = urlparse(url).path
    except ValueError:
        return ""
    return unquote(path.split('/')[-1])


def sanitize_file_name(raw: Optional[str], fallback: str = "file") -> str:
    """
    Turn arbitrary text into a safe file name.

    Control characters and characters that are illegal in file names
    become spaces, whitespace runs collapse and the result is truncated.

    Args:
        raw: Text to sanitize (link title, path segment, ...)
        fallback: Name used when nothing usable remains

    Returns:
        Sanitized file name
    """
    base = _ILLEGAL_FILENAME_CHARS.sub(' ', raw or fallback)
    base = re.sub(r'\s+', ' ', base).strip()
    return (base or fallback)[:MAX_FILENAME_LENGTH]


def normalize_folder(folder: Optional[str]) -> str:
    """
    Normalize a destination folder to a relative forward-slash path.

    Args:
        folder: Folder as entered by the user

    Returns:
        Folder with backslashes converted and leading slashes stripped
    """
    sub = (folder or DEFAULT_FOLDER).replace('\\', '/')
    return sub.lstrip('/')


def build_download_name(file_url: str, title_hint: Optional[str]) -> str:
    """
    Derive the output file name for a file URL.

    The URL's extension is appended unless the sanitized name already
    ends with it. A name ending in some other extension is left alone.

    Args:
        file_url: Source URL of the file
        title_hint: Human readable name, usually the link text

    Returns:
        File name
    """
    filename = sanitize_file_name(title_hint or last_path_segment(file_url) or "file")

    ext = url_extension(file_url)
    if ext and not filename.lower().endswith(ext.lower()):
        filename += ext

    return filename


def ensure_dir(path: str) -> None:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists
    """
    os.makedirs(path, exist_ok=True)


def ensure_parent_dir(file_path: str) -> None:
    """
    Ensure the parent directory of a file exists.

    Args:
        file_path: File path whose parent directory should exist
    """
    parent = os.path.dirname(file_path)
    if parent:
        ensure_dir(parent)


def resolve_inside(root: str, relative_path: str) -> Optional[str]:
    """
    Resolve a relative path against a root directory.

    Args:
        root: Root directory
        relative_path: Forward-slash path relative to the root

    Returns:
        Absolute path, or None if it would escape the root
    """
    root = os.path.abspath(root)
    target = os.path.abspath(os.path.join(root, *relative_path.split('/')))
    if os.path.commonpath([root, target]) != root or target == root:
        return None
    return target
