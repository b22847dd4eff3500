"""
Persistent dedup and result storage.

JsonFileStore keeps each named blob in its own JSON file. ResultStore
mirrors the seen URLs, result rows and scanned files in memory and
writes the full structure back after every mutation.
"""

import csv
import io
import json
import os
import tempfile
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

from ..utils.constants import CSV_HEADERS, STORE_KEYS
from ..utils.log import get_logger
from ..utils.paths import ensure_dir


def utc_timestamp() -> str:
    """Current time as an ISO 8601 string with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _from_record(cls, record: Dict[str, Any]):
    # Unknown keys are ignored, missing ones become empty strings
    names = {f.name for f in fields(cls)}
    values = {name: str(record.get(name) or "") for name in names}
    return cls(**values)


@dataclass(frozen=True)
class ResultRow:
    """One successfully submitted download."""

    file_name: str
    download_filename: str
    file_url: str
    parent_page_url: str
    discovered_at: str

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "ResultRow":
        return _from_record(cls, record)

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class ScannedFile:
    """A file link recorded by a single page scan, awaiting download."""

    url: str
    text: str
    from_page: str
    discovered_at: str

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "ScannedFile":
        return _from_record(cls, record)

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


class JsonFileStore:
    """
    Key/value store backed by one JSON file per key.
    """

    def __init__(self, directory: str):
        """
        Initialize the store.

        Args:
            directory: Directory holding the JSON files
        """
        self.directory = os.path.abspath(directory)
        self.logger = get_logger("store")

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.json")

    def get(self, key: str) -> Optional[Any]:
        """Load a blob, or None if it is missing or unreadable."""
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            self.logger.warning(f"Ignoring unreadable store file {path}: {e}")
            return None

    def set(self, key: str, blob: Any) -> None:
        """Replace a blob atomically."""
        ensure_dir(self.directory)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{key}.", suffix=".tmp", dir=self.directory
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(blob, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self._path(key))
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


class ResultStore:
    """
    In-memory mirrors of the persisted download state.

    The mirrors are authoritative while a run is active; each mutation is
    written through to the backing store before it returns.
    """

    def __init__(self, backend: JsonFileStore):
        self.backend = backend
        self.logger = get_logger("store")
        self.seen_urls: Set[str] = set()
        self.rows: List[ResultRow] = []
        self.scanned: List[ScannedFile] = []

    def load(self) -> Dict[str, Any]:
        """
        Reload every mirror from the backing store.

        Returns:
            The last used options (empty dict if none were saved)
        """
        seen = self.backend.get(STORE_KEYS["SEEN_URLS"])
        self.seen_urls = set(seen) if isinstance(seen, list) else set()

        rows = self.backend.get(STORE_KEYS["ROWS"])
        self.rows = [
            ResultRow.from_dict(r) for r in rows if isinstance(r, dict)
        ] if isinstance(rows, list) else []

        scanned = self.backend.get(STORE_KEYS["SCANNED"])
        self.scanned = [
            ScannedFile.from_dict(s) for s in scanned if isinstance(s, dict)
        ] if isinstance(scanned, list) else []

        self.logger.debug(
            f"Loaded {len(self.seen_urls)} seen URLs, {len(self.rows)} rows, "
            f"{len(self.scanned)} scanned files"
        )
        return self.load_options()

    def load_options(self) -> Dict[str, Any]:
        opts = self.backend.get(STORE_KEYS["OPTS"])
        return opts if isinstance(opts, dict) else {}

    def save_options(self, options: Dict[str, Any]) -> None:
        self.backend.set(STORE_KEYS["OPTS"], options)

    def save_seen_urls(self) -> None:
        self.backend.set(STORE_KEYS["SEEN_URLS"], sorted(self.seen_urls))

    def save_rows(self) -> None:
        self.backend.set(STORE_KEYS["ROWS"], [r.to_dict() for r in self.rows])

    def save_scanned(self) -> None:
        self.backend.set(STORE_KEYS["SCANNED"], [s.to_dict() for s in self.scanned])

    def is_seen(self, url: str) -> bool:
        return url in self.seen_urls

    def mark_seen(self, url: str) -> None:
        self.seen_urls.add(url)
        self.save_seen_urls()

    def append_row(self, row: ResultRow) -> None:
        self.rows.append(row)
        self.save_rows()

    def add_scanned(self, items: Iterable[ScannedFile]) -> int:
        """
        Append scanned files whose URL is not listed yet, then persist.

        Returns:
            Number of files added
        """
        existing = {s.url for s in self.scanned}
        added = 0
        for item in items:
            if item.url in existing:
                continue
            self.scanned.append(item)
            existing.add(item.url)
            added += 1
        self.save_scanned()
        return added

    def clear_results(self) -> None:
        """Empty the result rows and scanned list. Seen URLs are kept."""
        self.rows = []
        self.scanned = []
        self.save_scanned()
        self.save_rows()


def rows_to_csv(rows: Iterable[ResultRow]) -> str:
    """
    Render result rows as CSV text.

    Every field is quoted and the text starts with a UTF-8 byte order mark
    so spreadsheet applications pick the right encoding.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    buffer.write("\ufeff")
    buffer.write(",".join(CSV_HEADERS) + "\n")
    for row in rows:
        record = row.to_dict()
        writer.writerow([record.get(h, "") for h in CSV_HEADERS])
    return buffer.getvalue()
