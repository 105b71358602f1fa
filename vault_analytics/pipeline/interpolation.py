from __future__ import annotations

from bisect import bisect_right
from typing import Sequence

from .apr import annualize
from .models import PeriodSummary, PriceReference
from .share_price import period_prices


def _sorted_periods(periods: Sequence[PeriodSummary]) -> list[PeriodSummary]:
    # sorted() is stable, so equal start times keep their input order
    return sorted(periods, key=lambda p: p.start_timestamp)


def price_reference_at(
    periods: Sequence[PeriodSummary],
    timestamp: int,
    vault_decimals: int,
    asset_decimals: int,
) -> PriceReference | None:
    """Share price at ``timestamp``, interpolated inside the covering period.

    Before the first period the first start price is returned (history is not
    extrapolated backwards). Past the end of the covering period, its net end
    price is returned with the period end as the effective timestamp.
    """
    if not periods:
        return None
    ordered = _sorted_periods(periods)
    starts = [p.start_timestamp for p in ordered]

    idx = bisect_right(starts, timestamp) - 1
    if idx < 0:
        first = ordered[0]
        start_price, _ = period_prices(first, vault_decimals, asset_decimals)
        return PriceReference(price=start_price, effective_timestamp=first.start_timestamp)

    period = ordered[idx]
    start_price, end_price = period_prices(period, vault_decimals, asset_decimals)
    if timestamp > period.end_timestamp:
        return PriceReference(price=end_price, effective_timestamp=period.end_timestamp)
    if period.duration == 0:
        return PriceReference(price=start_price, effective_timestamp=timestamp)

    elapsed = timestamp - period.start_timestamp
    price = start_price + (end_price - start_price) * elapsed // period.duration
    return PriceReference(price=price, effective_timestamp=timestamp)


def compute_interpolated_apr(
    periods: Sequence[PeriodSummary],
    start_ts: int,
    end_ts: int,
    vault_decimals: int,
    asset_decimals: int,
) -> float:
    start_ref = price_reference_at(periods, start_ts, vault_decimals, asset_decimals)
    end_ref = price_reference_at(periods, end_ts, vault_decimals, asset_decimals)
    if start_ref is None or end_ref is None:
        return 0.0
    duration = end_ts - start_ts
    if duration <= 0 or start_ref.price == 0:
        return 0.0
    return annualize(end_ref.price - start_ref.price, duration, start_ref.price)
