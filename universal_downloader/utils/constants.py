"""
Shared constants for the universal downloader.

Contains default crawl options, retry bounds and persistence keys used
across multiple modules.
"""

# Default user agent string for all HTTP requests
# Used by both the browser renderer and file downloader
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

# Default download request timeout in seconds
DEFAULT_TIMEOUT = 120

# Destination folder (relative to the download root)
DEFAULT_FOLDER = "UniversalDownloader"

# Crawl bounds
DEFAULT_MAX_PAGES = 200
DEFAULT_MAX_DEPTH = 2
DEFAULT_MAX_QUEUE = 5000

# Timing knobs in milliseconds
DEFAULT_NAV_TIMEOUT_MS = 45000
DEFAULT_RENDER_WAIT_MS = 500
DEFAULT_SLOW_PAUSE_MS = 150

# Content extraction handshake during a site crawl
CRAWL_EXTRACT_ATTEMPTS = 8
CRAWL_EXTRACT_RETRY_DELAY = 0.25

# Content extraction handshake during a single page scan
SCAN_EXTRACT_ATTEMPTS = 6
SCAN_EXTRACT_RETRY_DELAY = 0.2

# Interval between document.readyState polls in seconds
LOAD_POLL_INTERVAL = 0.2

# Pause between files when downloading the scanned list, in seconds
BULK_DOWNLOAD_PAUSE = 0.12

# Maximum length of file names and of error reasons in status messages
MAX_FILENAME_LENGTH = 180
MAX_MESSAGE_LENGTH = 180

# Query parameters that commonly carry the real file name
FILE_QUERY_KEYS = ("file", "url", "document", "doc", "pdf", "uri")

# Keys of the persisted blobs
STORE_KEYS = {
    "OPTS": "opts",
    "ROWS": "csv_rows",
    "SEEN_URLS": "seen_urls",
    "SCANNED": "scanned_files",
}

# Column order of the exported CSV
CSV_HEADERS = (
    "file_name",
    "download_filename",
    "file_url",
    "parent_page_url",
    "discovered_at",
)

# Default runtime locations
DEFAULT_STATE_DIR = "./.universal_downloader"
DEFAULT_DOWNLOAD_DIR = "./downloads"
