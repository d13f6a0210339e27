import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Literal, Optional
from urllib.parse import quote

from sqlalchemy.exc import SQLAlchemyError

from .db import DownloadStore
from .errors import AccessDeniedError, DirectoryAccessError, InvalidFilenameError, WorldNotFoundError
from .files import SecureFileServer
from .parser import parse_filename
from .schemas import Statistics, WorldRecord
from .validation import validate_filename

logger = logging.getLogger(__name__)

SortMode = Literal["name", "modified"]
SORT_MODES = ("name", "modified")

SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def format_size(num_bytes: int) -> str:
    if num_bytes == 0:
        return "0 Bytes"
    size = float(num_bytes)
    unit = 0
    while size >= 1024 and unit < len(SIZE_UNITS) - 1:
        size /= 1024
        unit += 1
    return f"{round(size, 2):g} {SIZE_UNITS[unit]}"


def format_modified(dt: datetime) -> str:
    # e.g. "Jan 5, 2024, 10:00 AM"
    hour = dt.hour % 12 or 12
    meridiem = "AM" if dt.hour < 12 else "PM"
    return f"{dt:%b} {dt.day}, {dt.year}, {hour}:{dt:%M} {meridiem}"


def download_url_for(filename: str) -> str:
    return f"/api/download/{quote(filename)}"


@dataclass
class ScanResult:
    worlds: List[WorldRecord]
    statistics: Statistics


class ArchiveScanner:
    """
    Lists the archive root and turns every acceptable file into a WorldRecord.
    Entries that fail validation or are not regular files are skipped quietly;
    entries that fail to stat are logged and skipped.
    """
    def __init__(self, files: SecureFileServer, downloads: Optional[DownloadStore] = None):
        self.files = files
        self.downloads = downloads

    def _download_counts(self) -> Dict[str, int]:
        if self.downloads is None:
            return {}
        try:
            return self.downloads.counts()
        except SQLAlchemyError:
            logger.exception("Failed to read download counts; listing without them")
            return {}

    def _list_names(self) -> List[str]:
        try:
            with os.scandir(self.files.root) as it:
                return [entry.name for entry in it]
        except OSError:
            logger.exception("Failed to scan worlds directory")
            raise DirectoryAccessError("Failed to access worlds directory.")

    def _build_record(self, filename: str, counts: Dict[str, int]) -> Optional[WorldRecord]:
        st = self.files.stat(filename)
        if not st.exists:
            return None

        meta = parse_filename(filename)
        if meta.naming == "nonconforming":
            logger.info("World file %s does not follow the category__group__name naming", filename)

        return WorldRecord(
            filename=filename,
            display_name=meta.display_name,
            size_bytes=st.size_bytes,
            formatted_size=format_size(st.size_bytes),
            modified_at=st.modified_at,
            formatted_modified=format_modified(st.modified_at),
            download_count=counts.get(filename, 0),
            category=meta.category,
            category_name=meta.category_name,
            group=meta.group,
            version=meta.version,
            description=meta.description,
            tags=list(meta.tags),
            download_url=download_url_for(filename),
            naming=meta.naming,
        )

    def scan_all(self, sort: SortMode = "name") -> ScanResult:
        names = self._list_names()
        counts = self._download_counts()

        worlds: List[WorldRecord] = []
        statistics = Statistics()
        for name in names:
            if not validate_filename(name):
                continue
            try:
                record = self._build_record(name, counts)
            except (OSError, AccessDeniedError) as exc:
                logger.warning("Failed to scan world file %s: %s", name, exc)
                continue
            if record is None:
                continue

            worlds.append(record)
            statistics.total_worlds += 1
            statistics.total_size_bytes += record.size_bytes
            statistics.total_downloads += record.download_count
            statistics.categories[record.category_name] = statistics.categories.get(record.category_name, 0) + 1

        if sort == "modified":
            worlds.sort(key=lambda w: w.filename)
            worlds.sort(key=lambda w: w.modified_at, reverse=True)
        else:
            worlds.sort(key=lambda w: (w.display_name.casefold(), w.filename))

        return ScanResult(worlds=worlds, statistics=statistics)

    def scan_world(self, filename: str) -> WorldRecord:
        if not validate_filename(filename):
            raise InvalidFilenameError("Invalid filename.")
        record = self._build_record(filename, self._download_counts())
        if record is None:
            raise WorldNotFoundError("World file not found.")
        return record
