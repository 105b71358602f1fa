import unittest

from fastapi.testclient import TestClient

from vault_analytics.main import app

E18 = 10 ** 18
DAY = 86400


def _period(start, assets_end):
    return {
        "blockTimestamp": str(start),
        "duration": str(DAY),
        "totalAssetsAtStart": str(1000 * E18),
        "totalSupplyAtStart": str(1000 * E18),
        "totalAssetsAtEnd": str(assets_end),
        "totalSupplyAtEnd": str(1000 * E18),
        "netTotalSupplyAtEnd": str(1000 * E18),
    }


class ApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.client = TestClient(app)

    def test_health(self):
        r = self.client.get("/health")
        self.assertEqual(r.status_code, 200)
        self.assertTrue(r.json()["ok"])

    def test_apr_summary(self):
        body = {
            "periods": [_period(0, 1010 * E18)],
            "vault_decimals": 18,
            "asset_decimals": 18,
            "time_range": "7D",
            "now": DAY,
        }
        r = self.client.post("/apr/summary", json=body)
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertAlmostEqual(data["twrr"], 3.65, places=6)
        self.assertEqual(data["period_count"], 1)

    def test_apr_summary_bad_range(self):
        body = {"periods": [], "asset_decimals": 18, "time_range": "2W"}
        self.assertEqual(self.client.post("/apr/summary", json=body).status_code, 400)

    def test_negative_field_rejected(self):
        bad = _period(0, 1010 * E18)
        bad["totalAssetsAtEnd"] = "-1"
        body = {"periods": [bad], "asset_decimals": 18}
        self.assertEqual(self.client.post("/apr/summary", json=body).status_code, 422)

    def test_price_reference(self):
        body = {"periods": [_period(0, 1100 * E18)], "timestamp": DAY // 2, "vault_decimals": 18, "asset_decimals": 18}
        r = self.client.post("/apr/price-reference", json=body)
        self.assertEqual(r.status_code, 200)
        self.assertAlmostEqual(r.json()["price_display"], 1.05, places=9)
        self.assertEqual(r.json()["effective_timestamp"], DAY // 2)

    def test_price_reference_empty(self):
        body = {"periods": [], "timestamp": 0, "asset_decimals": 18}
        self.assertEqual(self.client.post("/apr/price-reference", json=body).status_code, 404)

    def test_allocations_amount_is_string(self):
        portfolio = {"assetByProtocols": {"wallet": {"chains": {"hyperevm": {"protocolPositions": {"WALLET": {"assets": [
            {"balance": "100.5", "decimal": "6", "chainContract": "hyperevm:0xabc", "contract": "0xabc", "value": "100.5"},
            {"balance": "100.5", "decimal": "6", "chainContract": "hyperevm:0xABC", "contract": "0xABC", "value": "100.5"},
        ]}}}}}}}
        r = self.client.post("/allocations/aggregate", json={"portfolios": [portfolio]})
        self.assertEqual(r.status_code, 200)
        report = r.json()["report"]
        self.assertEqual(len(report["items"]), 1)
        self.assertEqual(report["items"][0]["amount"], "100500000")
        self.assertEqual(report["duplicates_dropped"], 1)

    def test_allocations_malformed_tree(self):
        portfolio = {"assetByProtocols": {
            "x": None,
            "wallet": {"chains": {"c": None, "hyperevm": {"protocolPositions": {"WALLET": {"assets": [
                {"balance": "1", "decimal": "6", "chainContract": "hyperevm:0xabc", "value": "1"},
            ]}}}}},
        }}
        r = self.client.post("/allocations/aggregate", json={"portfolios": [portfolio]})
        self.assertEqual(r.status_code, 200)
        self.assertEqual([i["contract_key"] for i in r.json()["report"]["items"]], ["hyperevm:0xabc"])

    def test_asset_decimals_above_vault_decimals(self):
        body = {"periods": [_period(0, 1010 * E18)], "vault_decimals": 6, "asset_decimals": 18}
        self.assertEqual(self.client.post("/apr/summary", json=body).status_code, 400)
        body = {"periods": [_period(0, 1010 * E18)], "timestamp": 10, "vault_decimals": 6, "asset_decimals": 18}
        self.assertEqual(self.client.post("/apr/price-reference", json=body).status_code, 400)

    def test_series_shape(self):
        points = [{"timestamp": i * 10, "value": float(i)} for i in range(50)]
        body = {"points": points, "time_range": "7D", "now": 490, "max_points": 10, "rolling_window": 2}
        r = self.client.post("/series/shape", json=body)
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertEqual(len(data["points"]), 10)
        self.assertEqual(data["points"][1]["rolling_avg"], 2.5)
        self.assertNotIn("merged", data)

    def test_series_shape_with_comparison(self):
        body = {
            "points": [{"timestamp": t, "value": float(t)} for t in (0, 10, 20)],
            "compare_points": [{"timestamp": 10, "value": 5.0}, {"timestamp": 30, "value": 7.0}],
            "names": ["since", "tvl"],
            "time_range": "7D",
            "now": 30,
        }
        r = self.client.post("/series/shape", json=body)
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["merged"], [
            {"timestamp": 0, "since": 0.0, "tvl": None},
            {"timestamp": 10, "since": 10.0, "tvl": 5.0},
            {"timestamp": 20, "since": 20.0, "tvl": None},
            {"timestamp": 30, "since": None, "tvl": 7.0},
        ])

    def test_series_shape_duplicate_names(self):
        body = {"points": [], "compare_points": [], "names": ["a", "a"], "time_range": "7D", "now": 0}
        self.assertEqual(self.client.post("/series/shape", json=body).status_code, 400)


if __name__ == "__main__":
    unittest.main()
