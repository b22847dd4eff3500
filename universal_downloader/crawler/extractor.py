"""
Link and file extractor for rendered pages.

Uses BeautifulSoup to parse the rendered DOM and find crawlable links and
downloadable file links.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional
from urllib.parse import parse_qs, unquote, urljoin, urlparse

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError, Page

from .errors import ExtractionUnavailable
from ..utils.constants import FILE_QUERY_KEYS
from ..utils.log import get_logger
from ..utils.paths import to_absolute, is_same_origin


_PATH_EXTENSION = re.compile(r'\.([a-z0-9]{1,8})$', re.IGNORECASE)
_VALUE_EXTENSION = re.compile(r'\.([a-z0-9]{1,8})(\?|$)', re.IGNORECASE)


@dataclass(frozen=True)
class FileLink:
    """A link that points at a downloadable file."""

    url: str
    text: str
    ext: str


@dataclass
class PageScan:
    """Links and files found on one rendered page."""

    page_url: str
    page_title: str = ""
    internal_links: List[str] = field(default_factory=list)
    files: List[FileLink] = field(default_factory=list)


def file_extension(url: str) -> str:
    """
    Detect the file extension of a URL.

    Looks at the URL path first, then at query parameters that usually
    carry a file name (?file=report.pdf).

    Args:
        url: Absolute URL

    Returns:
        Lower-case extension without the dot, or "" if none is found
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return ""

    match = _PATH_EXTENSION.search(parsed.path or "")
    if match:
        return match.group(1).lower()

    params = parse_qs(parsed.query)
    for key in FILE_QUERY_KEYS:
        values = params.get(key)
        if not values or not values[0]:
            continue
        match = _VALUE_EXTENSION.search(unquote(values[0]))
        if match:
            return match.group(1).lower()

    return ""


def scan_html(
    html: str,
    page_url: str,
    page_title: str = "",
    file_types: Optional[Iterable[str]] = None,
    same_origin_only: bool = False
) -> PageScan:
    """
    Extract crawlable links and file links from page HTML.

    Args:
        html: Rendered HTML
        page_url: URL of the page (for resolving relative URLs)
        page_title: Document title
        file_types: Accepted extensions; empty accepts any extension
        same_origin_only: Only report links on the page's own origin

    Returns:
        PageScan with unique internal links and unique files
    """
    types = [t.lower() for t in (file_types or [])]

    try:
        soup = BeautifulSoup(html, 'lxml')
    except Exception:
        # Fallback to html.parser if lxml fails
        soup = BeautifulSoup(html, 'html.parser')

    # (url, text) pairs in document order
    candidates = []

    for el in soup.select('a[href], link[href]'):
        abs_url = to_absolute(urljoin(page_url, el.get('href', '').strip()))
        if abs_url:
            candidates.append((abs_url, el.get_text(" ", strip=True)))

    for el in soup.select('embed[src], iframe[src], object[data], source[src]'):
        attr = el.get('src') or el.get('data') or ''
        abs_url = to_absolute(urljoin(page_url, attr.strip()))
        if abs_url:
            candidates.append((abs_url, "[embedded]"))

    files = {}
    for url, text in candidates:
        ext = file_extension(url)
        if not ext:
            continue
        if types and ext not in types:
            continue
        if url not in files:
            files[url] = FileLink(url=url, text=text, ext=ext)

    # Only links of an explicitly requested file type are kept out of the
    # crawl; with no types every candidate may still be a page
    internal_links = []
    seen = set()
    for url, _ in candidates:
        if url in seen:
            continue
        seen.add(url)
        if types and url in files:
            continue
        if same_origin_only and not is_same_origin(url, page_url):
            continue
        internal_links.append(url)

    return PageScan(
        page_url=page_url,
        page_title=page_title,
        internal_links=internal_links,
        files=list(files.values()),
    )


class PageExtractor:
    """
    Reads the DOM of a rendered page and scans it for links and files.
    """

    def __init__(self):
        self.logger = get_logger("extractor")

    async def extract(
        self,
        page: Page,
        file_types: Optional[Iterable[str]] = None,
        same_origin_only: bool = False
    ) -> PageScan:
        """
        Scan the page currently shown in a render context.

        Raises:
            ExtractionUnavailable: If the DOM could not be read yet
        """
        try:
            html = await page.content()
            title = await page.title()
        except PlaywrightError as e:
            raise ExtractionUnavailable(str(e)) from e

        scan = scan_html(html, page.url, title, file_types, same_origin_only)

        self.logger.debug(
            f"Extracted from {scan.page_url}: "
            f"{len(scan.internal_links)} links, {len(scan.files)} files"
        )
        return scan
