import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .guardrails import TTLCache
from .scanner import SORT_MODES, ArchiveScanner, SortMode
from .schemas import Statistics, WorldRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogSnapshot:
    worlds: List[WorldRecord]
    statistics: Statistics
    generated_at: datetime
    cache_expires: datetime


class WorldCatalog:
    """
    Cached view over the archive scanner.

    Misses are single-flight: one thread rescans while the others wait on
    the lock and then pick up the freshly cached snapshot.
    """
    def __init__(self, scanner: ArchiveScanner, cache: TTLCache):
        self.scanner = scanner
        self.cache = cache
        self._scan_lock = threading.Lock()

    @staticmethod
    def _listing_key(sort: SortMode) -> tuple:
        return ("worlds", sort)

    def _rescan(self, sort: SortMode) -> CatalogSnapshot:
        result = self.scanner.scan_all(sort=sort)
        generated_at = datetime.now(timezone.utc)
        snapshot = CatalogSnapshot(
            worlds=result.worlds,
            statistics=result.statistics,
            generated_at=generated_at,
            cache_expires=generated_at + timedelta(seconds=self.cache.ttl),
        )
        # one key per scan; statistics ride along in the snapshot
        self.cache.set(self._listing_key(sort), snapshot)
        logger.info("Scanned archive: %d worlds", result.statistics.total_worlds)
        return snapshot

    def listing(self, sort: SortMode = "name", refresh: bool = False) -> CatalogSnapshot:
        key = self._listing_key(sort)
        if not refresh:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        with self._scan_lock:
            if not refresh:
                cached = self.cache.get(key)
                if cached is not None:
                    return cached
            return self._rescan(sort)

    def is_cached(self, sort: SortMode = "name") -> bool:
        return self.cache.has(self._listing_key(sort))

    def _cached_snapshot(self) -> Optional[CatalogSnapshot]:
        for sort in SORT_MODES:
            cached = self.cache.get(self._listing_key(sort))
            if cached is not None:
                return cached
        return None

    def statistics(self) -> Statistics:
        """Statistics from any cached listing; sort order does not affect them."""
        cached = self._cached_snapshot()
        if cached is not None:
            return cached.statistics

        with self._scan_lock:
            cached = self._cached_snapshot()
            if cached is not None:
                return cached.statistics
            return self._rescan("name").statistics

    def invalidate(self) -> None:
        self.cache.clear()
