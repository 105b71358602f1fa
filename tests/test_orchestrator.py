import tempfile
import unittest
from pathlib import Path

from vault_analytics.cache_layer import CacheLayer
from vault_analytics.pipeline.models import PeriodSummary
from vault_analytics.pipeline.orchestrator import (
    UpstreamUnavailable,
    build_allocation_view,
    build_apr_view,
    load_allocations_with_fallback,
)

E18 = 10 ** 18
DAY = 86400
HOUR_MS = 3600 * 1000
T0 = 1_700_000_000_000


def _portfolio(value="100"):
    return {
        "address": "0xcurator",
        "assetByProtocols": {
            "wallet": {"name": "Wallet", "chains": {"hyperevm": {"protocolPositions": {"WALLET": {"assets": [
                {"balance": "1.5", "decimal": "6", "chainContract": "hyperevm:0xUSD", "contract": "0xUSD", "symbol": "usd", "value": value},
                {"balance": "2", "decimal": "18", "chainContract": "hyperevm:0xHYPE", "contract": "0xHYPE", "symbol": "hype", "value": value},
            ]}}}}},
        },
    }


def _daily_periods(days, start=0, daily_gain=E18 // 1000):
    periods = []
    assets = 1000 * E18
    for i in range(days):
        end_assets = assets + 1000 * daily_gain
        periods.append(PeriodSummary(
            start_timestamp=start + i * DAY,
            duration=DAY,
            total_assets_at_start=assets,
            total_supply_at_start=1000 * E18,
            total_assets_at_end=end_assets,
            total_supply_at_end=1000 * E18,
            net_supply_at_end=1000 * E18,
        ))
        assets = end_assets
    return periods


class AprViewTests(unittest.TestCase):
    def test_view_over_window(self):
        periods = _daily_periods(60)
        now = 60 * DAY
        view = build_apr_view(periods, 18, 18, "30D", now, max_points=400, rolling_window=3, lookback=10)
        self.assertEqual(view["window"], {"start": 30 * DAY, "end": 60 * DAY})
        self.assertEqual(view["period_count"], 60)
        self.assertTrue(view["validation"]["ok"])
        self.assertGreater(view["interpolated_apr"], 0.0)
        self.assertGreater(view["twrr"], 0.0)
        timestamps = [p["timestamp"] for p in view["history"]]
        self.assertEqual(timestamps, sorted(set(timestamps)))
        self.assertGreaterEqual(timestamps[0], 30 * DAY)
        self.assertEqual(view["price_at_end"]["effective_timestamp"], 60 * DAY)
        self.assertIsInstance(view["price_at_end"]["price"], str)

    def test_empty_periods(self):
        view = build_apr_view([], 18, 18, "7D", 10 * DAY)
        self.assertEqual(view["interpolated_apr"], 0.0)
        self.assertEqual(view["twrr"], 0.0)
        self.assertIsNone(view["latest_period_apr"])
        self.assertIsNone(view["price_at_start"])
        self.assertEqual(view["history"], [])
        self.assertEqual(view["stats"], {"avg": 0.0, "min": 0.0, "max": 0.0})

    def test_unknown_range(self):
        with self.assertRaises(ValueError):
            build_apr_view([], 18, 18, "2W", 0)


class AllocationViewTests(unittest.TestCase):
    def test_report_and_grouping(self):
        view = build_allocation_view([_portfolio()])
        self.assertEqual(len(view["report"].items), 2)
        self.assertEqual(view["grouping"].groups[0].protocol_key, "wallet")


class FallbackTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.cache = CacheLayer(str(root / "blobs"), str(root / "cache.sqlite3"))
        self.calls = []

    def tearDown(self):
        self._tmp.cleanup()

    def _fetch_ok(self, curator):
        self.calls.append(curator)
        return [_portfolio()]

    def _fetch_fail(self, curator):
        self.calls.append(curator)
        raise TimeoutError("upstream timed out")

    def test_fetches_and_caches(self):
        out = load_allocations_with_fallback(self.cache, "vault-1", "0xCURATOR", self._fetch_ok, now_ms=T0)
        self.assertEqual(out["source"], "upstream")
        self.assertFalse(out["stale"])
        self.assertEqual(len(out["items"]), 2)
        self.assertEqual(self.calls, ["0xCURATOR"])

    def test_fresh_cache_skips_fetch(self):
        load_allocations_with_fallback(self.cache, "vault-1", "0xCURATOR", self._fetch_ok, now_ms=T0)
        out = load_allocations_with_fallback(self.cache, "vault-1", "0xcurator", self._fetch_fail, now_ms=T0 + HOUR_MS)
        self.assertEqual(out["source"], "cache")
        self.assertFalse(out["stale"])
        self.assertEqual(len(self.calls), 1)

    def test_upstream_failure_serves_stale_cache(self):
        first = load_allocations_with_fallback(self.cache, "vault-1", "0xCURATOR", self._fetch_ok, now_ms=T0)
        out = load_allocations_with_fallback(self.cache, "vault-1", "0xCURATOR", self._fetch_fail, now_ms=T0 + 48 * HOUR_MS)
        self.assertEqual(out["source"], "cache")
        self.assertTrue(out["stale"])
        self.assertEqual(out["timestamp_ms"], T0)
        self.assertEqual(out["items"], first["items"])

    def test_stale_cache_refreshed_when_upstream_ok(self):
        load_allocations_with_fallback(self.cache, "vault-1", "0xCURATOR", self._fetch_ok, now_ms=T0)
        out = load_allocations_with_fallback(self.cache, "vault-1", "0xCURATOR", self._fetch_ok, now_ms=T0 + 48 * HOUR_MS)
        self.assertEqual(out["source"], "upstream")
        self.assertEqual(out["timestamp_ms"], T0 + 48 * HOUR_MS)

    def test_upstream_failure_without_cache_raises(self):
        with self.assertRaises(UpstreamUnavailable):
            load_allocations_with_fallback(self.cache, "vault-1", "0xCURATOR", self._fetch_fail, now_ms=T0)


if __name__ == "__main__":
    unittest.main()
