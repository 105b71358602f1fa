from typing import Callable, Iterable, Sequence

import structlog

from ..cache_layer import CacheLayer, load_allocations, make_key, store_allocations
from ..config import settings
from ..utils import now_ms as wall_clock_ms, range_bounds
from .allocations import aggregate_with_report, extract_portfolio_assets, group_by_protocol
from .apr import apr_history, compute_single_period_net_apr, compute_twrr
from .interpolation import compute_interpolated_apr, price_reference_at
from .models import PeriodSummary
from .series import range_stats, shape_series
from .share_price import to_display_price
from .validation import validate_period_summaries

log = structlog.get_logger()


class UpstreamUnavailable(RuntimeError):
    """Upstream fetch failed and there is no cached output to fall back on."""


def _price_ref(periods, ts, vault_decimals, asset_decimals):
    ref = price_reference_at(periods, ts, vault_decimals, asset_decimals)
    if ref is None:
        return None
    return {
        "price": str(ref.price),
        "price_display": to_display_price(ref.price, asset_decimals),
        "effective_timestamp": ref.effective_timestamp,
    }


def build_apr_view(
    periods: Sequence[PeriodSummary],
    vault_decimals: int,
    asset_decimals: int,
    time_range: str,
    now: int,
    max_points: int | None = None,
    rolling_window: int | None = None,
    lookback: int | None = None,
) -> dict:
    start_ts, end_ts = range_bounds(time_range, now)
    ok, reasons = validate_period_summaries(periods)
    if not ok:
        log.warning("period_summaries_irregular", reasons=reasons[:5], count=len(reasons))

    history = shape_series(
        apr_history(periods, vault_decimals, asset_decimals),
        end_ts - start_ts,
        now,
        max_points or settings.chart_max_points,
        rolling_window or settings.rolling_window,
    )
    latest = max(periods, key=lambda p: p.start_timestamp) if periods else None
    view = {
        "time_range": time_range,
        "window": {"start": start_ts, "end": end_ts},
        "period_count": len(periods),
        "interpolated_apr": compute_interpolated_apr(periods, start_ts, end_ts, vault_decimals, asset_decimals),
        "twrr": compute_twrr(periods, vault_decimals, asset_decimals),
        "latest_period_apr": compute_single_period_net_apr(latest, vault_decimals, asset_decimals) if latest else None,
        "price_at_start": _price_ref(periods, start_ts, vault_decimals, asset_decimals),
        "price_at_end": _price_ref(periods, end_ts, vault_decimals, asset_decimals),
        "history": [p.model_dump() for p in history],
        "stats": range_stats(history, lookback or settings.stats_lookback).model_dump(),
        "validation": {"ok": ok, "reasons": reasons},
    }
    log.info(
        "apr_view_built",
        time_range=time_range,
        periods=len(periods),
        points=len(history),
        interpolated_apr=round(view["interpolated_apr"], 6),
    )
    return view


def build_allocation_view(portfolios: Iterable[dict]) -> dict:
    report = aggregate_with_report(extract_portfolio_assets(portfolios))
    grouping = group_by_protocol(report.items)
    return {
        "report": report,
        "grouping": grouping,
    }


def load_allocations_with_fallback(
    cache: CacheLayer,
    vault_id: str,
    curator_address: str,
    fetch_portfolios: Callable[[str], list[dict]],
    now_ms: int | None = None,
) -> dict:
    """Serve fresh cache, else fetch + aggregate + cache, else fall back to stale cache."""
    now_ms = wall_clock_ms() if now_ms is None else now_ms
    if not settings.cache_enabled:
        report = aggregate_with_report(extract_portfolio_assets(fetch_portfolios(curator_address)))
        return {"items": report.items, "source": "upstream", "stale": False, "timestamp_ms": now_ms}

    key = make_key(settings.allocations_namespace, vault_id, curator_address)

    cached, entry = load_allocations(cache, key, now=now_ms)
    if cached is not None and not entry.is_stale:
        return {"items": cached, "source": "cache", "stale": False, "timestamp_ms": entry.timestamp_ms}

    try:
        portfolios = fetch_portfolios(curator_address)
    except Exception as exc:
        log.error("portfolio_fetch_failed", vault=vault_id, curator=curator_address.lower(), error=str(exc))
        if cached is None:
            raise UpstreamUnavailable(f"portfolio fetch failed for {vault_id} and no cached allocations") from exc
        return {"items": cached, "source": "cache", "stale": True, "timestamp_ms": entry.timestamp_ms}

    report = aggregate_with_report(extract_portfolio_assets(portfolios))
    ts = store_allocations(cache, key, report.items, now=now_ms)
    return {"items": report.items, "source": "upstream", "stale": False, "timestamp_ms": ts}
