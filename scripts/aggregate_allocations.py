#!/usr/bin/env python3
"""
Aggregate a saved portfolio response into allocation items.

With --cache the items are loaded through the allocation cache: a fresh
cached result is reused, otherwise the file is read, aggregated and stored,
and an unreadable file falls back to the last cached result.

Usage:
    python scripts/aggregate_allocations.py <portfolio.json> [--cache VAULT_ID CURATOR_ADDRESS]
"""
from pathlib import Path
import argparse
import json
import os
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.chdir(ROOT)

from vault_analytics.cache_layer import CacheLayer
from vault_analytics.config import settings
from vault_analytics.logging import bind_vault_context, setup_logging
from vault_analytics.pipeline.orchestrator import build_allocation_view, load_allocations_with_fallback
from vault_analytics.utils import ms_to_iso


def _read_portfolios(path: str) -> list[dict]:
    with open(path) as f:
        raw = json.load(f)
    return raw if isinstance(raw, list) else [raw]


def _print_items(items):
    for item in items:
        usd = f"${item.usd_value:,.2f}" if item.usd_value is not None else "-"
        print(f"{item.label:<20} {item.percent_of_total:6.2f}%  {usd:>16}  {item.protocol_name or ''}")


def main():
    parser = argparse.ArgumentParser(description="Aggregate portfolio allocations")
    parser.add_argument("path")
    parser.add_argument("--cache", nargs=2, metavar=("VAULT_ID", "CURATOR"))
    args = parser.parse_args()

    if not args.cache:
        report = build_allocation_view(_read_portfolios(args.path))["report"]
        _print_items(report.items)
        print(f"total ${report.total_value:,.2f}; {len(report.items)} items, "
              f"{report.duplicates_dropped} duplicates dropped, {len(report.skipped)} skipped")
        return

    vault_id, curator = args.cache
    bind_vault_context(vault_id, curator=curator.lower())
    cache = CacheLayer(settings.cache_dir, settings.cache_db_path, settings.cache_ttl_seconds, settings.cache_stale_hours)
    result = load_allocations_with_fallback(cache, vault_id, curator, lambda _curator: _read_portfolios(args.path))
    _print_items(result["items"])
    print(f"{len(result['items'])} items from {result['source']}"
          f"{' (stale)' if result['stale'] else ''}, written {ms_to_iso(result['timestamp_ms'])}")


if __name__ == "__main__":
    setup_logging()
    main()
