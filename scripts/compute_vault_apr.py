#!/usr/bin/env python3
"""
Compute APR figures for a vault from a JSON dump of indexer period summaries.

Usage:
    python scripts/compute_vault_apr.py <periods.json> <asset_decimals> [time_range=30D] [now=unix_seconds]
"""
from pathlib import Path
import json
import os
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.chdir(ROOT)

from vault_analytics.config import settings
from vault_analytics.logging import setup_logging
from vault_analytics.pipeline.orchestrator import build_apr_view
from vault_analytics.pipeline.validation import parse_period_summaries
from vault_analytics.utils import now_ts


def main(path: str, asset_decimals: int, time_range: str, now: int):
    with open(path) as f:
        raw = json.load(f)
    # accept either a bare list or a GraphQL response body
    rows = raw if isinstance(raw, list) else (raw.get("data") or {}).get("periodSummaries") or []
    periods = parse_period_summaries(rows)
    view = build_apr_view(periods, settings.vault_decimals, asset_decimals, time_range, now)
    print(f"periods:          {view['period_count']}")
    print(f"interpolated APR: {view['interpolated_apr'] * 100:.2f}% ({time_range})")
    print(f"TWRR:             {view['twrr'] * 100:.2f}%")
    if view["latest_period_apr"] is not None:
        print(f"latest period:    {view['latest_period_apr'] * 100:.2f}%")
    for reason in view["validation"]["reasons"]:
        print("warning:", reason)


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print("Usage: python scripts/compute_vault_apr.py <periods.json> <asset_decimals> [time_range=30D] [now=unix_seconds]")
        raise SystemExit(2)
    setup_logging()
    time_range = sys.argv[3] if len(sys.argv) > 3 else settings.default_time_range
    now = int(sys.argv[4]) if len(sys.argv) > 4 else now_ts()
    main(sys.argv[1], int(sys.argv[2]), time_range, now)
