import threading
import unittest

from vault_analytics.pipeline.freshness import RequestGate
from vault_analytics.pipeline.models import PeriodSummary
from vault_analytics.pipeline.validation import parse_period_summaries, validate_period_summaries


def _row(start, duration, net_supply="1000", **extra):
    row = {
        "id": f"p{start}",
        "blockTimestamp": str(start),
        "duration": str(duration),
        "totalAssetsAtStart": "1000",
        "totalSupplyAtStart": "1000",
        "totalAssetsAtEnd": "1010",
        "totalSupplyAtEnd": "1000",
        "netTotalSupplyAtEnd": net_supply,
    }
    row.update(extra)
    return row


class RequestGateTests(unittest.TestCase):
    def test_only_latest_ticket_delivers(self):
        gate = RequestGate("apr")
        received = []
        old = gate.issue({"range": "7D"})
        new = gate.issue({"range": "30D"})
        self.assertFalse(gate.deliver(old, "late 7D result", received.append))
        self.assertTrue(gate.deliver(new, "30D result", received.append))
        self.assertEqual(received, ["30D result"])
        self.assertFalse(gate.is_current(old))
        self.assertTrue(gate.is_current(new))

    def test_concurrent_issue_is_unique(self):
        gate = RequestGate()
        tickets = []
        lock = threading.Lock()

        def worker():
            t = gate.issue()
            with lock:
                tickets.append(t.seq)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(sorted(tickets), list(range(1, 21)))


class PeriodParsingTests(unittest.TestCase):
    def test_invalid_rows_dropped(self):
        rows = [_row(0, 100), _row(100, -5), _row(200, 100, totalAssetsAtEnd="12.5"), _row(300, 100)]
        periods = parse_period_summaries(rows)
        self.assertEqual([p.id for p in periods], ["p0", "p300"])

    def test_regular_series_is_ok(self):
        periods = parse_period_summaries([_row(0, 100), _row(100, 100)])
        self.assertEqual(validate_period_summaries(periods), (True, []))

    def test_overlap_and_order_reported(self):
        periods = parse_period_summaries([_row(0, 100), _row(50, 100), _row(10, 10)])
        ok, reasons = validate_period_summaries(periods)
        self.assertFalse(ok)
        self.assertTrue(any("overlaps" in r for r in reasons))
        self.assertTrue(any("out of order" in r for r in reasons))

    def test_net_supply_above_total_reported(self):
        period = PeriodSummary.model_validate(_row(0, 100, net_supply="2000"))
        ok, reasons = validate_period_summaries([period])
        self.assertFalse(ok)
        self.assertIn("net supply", reasons[0])


if __name__ == "__main__":
    unittest.main()
