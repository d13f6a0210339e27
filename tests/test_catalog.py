import threading
import time
import unittest
from concurrent.futures import ThreadPoolExecutor

from api.app.catalog import WorldCatalog
from api.app.guardrails import TTLCache
from api.app.scanner import ScanResult
from api.app.schemas import Statistics


class CountingScanner:
    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def scan_all(self, sort="name"):
        with self._lock:
            self.calls += 1
        time.sleep(self.delay)
        return ScanResult(worlds=[], statistics=Statistics(total_worlds=self.calls))


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class CatalogTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.scanner = CountingScanner()
        self.catalog = WorldCatalog(self.scanner, TTLCache(ttl_seconds=300, max_items=10, clock=self.clock))

    def test_listing_is_cached_within_ttl(self):
        first = self.catalog.listing()
        second = self.catalog.listing()
        self.assertIs(first, second)
        self.assertEqual(self.scanner.calls, 1)

    def test_listing_rescans_after_ttl(self):
        self.catalog.listing()
        self.clock.now = 300
        self.catalog.listing()
        self.assertEqual(self.scanner.calls, 2)

    def test_refresh_bypasses_cache_and_repopulates_it(self):
        self.catalog.listing()
        refreshed = self.catalog.listing(refresh=True)
        self.assertEqual(self.scanner.calls, 2)
        self.assertIs(self.catalog.listing(), refreshed)

    def test_sort_modes_are_cached_separately(self):
        self.catalog.listing(sort="name")
        self.catalog.listing(sort="modified")
        self.catalog.listing(sort="modified")
        self.assertEqual(self.scanner.calls, 2)

    def test_statistics_reuse_listing_scan(self):
        self.catalog.listing()
        stats = self.catalog.statistics()
        self.assertEqual(stats.total_worlds, 1)
        self.assertEqual(self.scanner.calls, 1)

    def test_statistics_from_other_sort_mode(self):
        self.catalog.listing(sort="modified")
        self.catalog.statistics()
        self.assertEqual(self.scanner.calls, 1)

    def test_single_slot_cache_still_serves_repeat_listings(self):
        catalog = WorldCatalog(self.scanner, TTLCache(ttl_seconds=300, max_items=1, clock=self.clock))
        for _ in range(5):
            catalog.listing()
        catalog.statistics()
        self.assertEqual(self.scanner.calls, 1)

    def test_concurrent_listing_requests_scan_once(self):
        scanner = CountingScanner(delay=0.2)
        catalog = WorldCatalog(scanner, TTLCache(ttl_seconds=300, max_items=10))

        with ThreadPoolExecutor(max_workers=8) as pool:
            snapshots = list(pool.map(lambda _: catalog.listing(), range(8)))

        self.assertEqual(scanner.calls, 1)
        self.assertTrue(all(s is snapshots[0] for s in snapshots))

    def test_invalidate_forces_rescan(self):
        self.catalog.listing()
        self.catalog.invalidate()
        self.catalog.listing()
        self.assertEqual(self.scanner.calls, 2)


if __name__ == "__main__":
    unittest.main()
