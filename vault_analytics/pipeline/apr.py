from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Sequence

import structlog

from .models import ChartPoint, PeriodSummary
from .share_price import period_prices

log = structlog.get_logger()

SECONDS_PER_YEAR = 365 * 24 * 60 * 60
APR_DECIMALS = 18
# Annualization runs at this scale so the final division does not truncate the yield away.
APR_SCALE = 10 ** (APR_DECIMALS + 2)


def annualize(gain: int, duration: int, start_price: int) -> float:
    """Annualized return of ``gain`` over ``duration`` seconds, as a decimal fraction."""
    if duration <= 0 or start_price == 0:
        return 0.0
    scaled = gain * SECONDS_PER_YEAR * APR_SCALE // (duration * start_price)
    return float(Decimal(scaled) / Decimal(APR_SCALE))


def compute_single_period_net_apr(period: PeriodSummary, vault_decimals: int, asset_decimals: int) -> float:
    # No shares outstanding at the start means no investor return to measure,
    # even though the virtual offset still yields a nonzero start price.
    if period.total_supply_at_start == 0:
        return 0.0
    pps_start, pps_end_net = period_prices(period, vault_decimals, asset_decimals)
    if period.duration == 0 or pps_start == 0:
        return 0.0
    return annualize(pps_end_net - pps_start, period.duration, pps_start)


def compute_twrr(periods: Iterable[PeriodSummary], vault_decimals: int, asset_decimals: int) -> float:
    periods = list(periods)
    return weighted_apr(
        [period.duration for period in periods],
        [compute_single_period_net_apr(period, vault_decimals, asset_decimals) for period in periods],
    )


def apr_history(periods: Sequence[PeriodSummary], vault_decimals: int, asset_decimals: int) -> list[ChartPoint]:
    """Step series: each period contributes its APR at both its start and its end."""
    points: list[ChartPoint] = []
    for period in sorted(periods, key=lambda p: p.start_timestamp):
        apr = compute_single_period_net_apr(period, vault_decimals, asset_decimals)
        points.append(ChartPoint(timestamp=period.start_timestamp, value=apr))
        points.append(ChartPoint(timestamp=period.end_timestamp, value=apr))
    # stable, so at a shared boundary the earlier period's end point stays first
    points.sort(key=lambda p: p.timestamp)

    out: list[ChartPoint] = []
    for point in points:
        if out and out[-1].timestamp == point.timestamp:
            continue
        out.append(point)
    log.debug("apr_history_built", periods=len(periods), points=len(out))
    return out


def weighted_apr(values: Sequence[float], aprs: Sequence[float]) -> float:
    if len(values) != len(aprs):
        raise ValueError("values and aprs must have the same length")
    total = sum(values)
    if total == 0:
        return 0.0
    return sum(v * a for v, a in zip(values, aprs)) / total
