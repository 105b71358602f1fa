from fastapi import APIRouter, HTTPException
from .schemas import AllocationRequest, AprSummaryRequest, PriceReferenceRequest, PriceReferenceResponse, SeriesShapeRequest
from ..pipeline.interpolation import price_reference_at
from ..pipeline.orchestrator import build_allocation_view, build_apr_view
from ..pipeline.series import merge_series, range_stats, shape_series
from ..pipeline.share_price import decimals_offset, to_display_price
from ..config import settings
from ..cache_layer import CacheLayer
from ..utils import now_ts, range_seconds

router = APIRouter()


def _decimals(vault_decimals: int | None, asset_decimals: int) -> tuple[int, int]:
    vault_decimals = settings.vault_decimals if vault_decimals is None else vault_decimals
    if decimals_offset(vault_decimals, asset_decimals) < 0:
        raise HTTPException(400, f"asset_decimals {asset_decimals} exceeds vault_decimals {vault_decimals}")
    return vault_decimals, asset_decimals


def _window(time_range: str | None) -> tuple[str, int]:
    name = (time_range or settings.default_time_range).upper()
    try:
        return name, range_seconds(name)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get(
    '/health',
    summary="Health check",
    description="Returns service liveness and the active chart defaults.",
    tags=["Health"],
)
def health():
    return {
        'ok': True,
        'vault_decimals': settings.vault_decimals,
        'default_time_range': settings.default_time_range,
    }

@router.post(
    '/apr/summary',
    summary="APR summary",
    description="Per-period net APR, TWRR, interpolated APR over the window and the shaped APR history.",
    tags=["APR"],
)
def apr_summary(req: AprSummaryRequest):
    time_range, _ = _window(req.time_range)
    vault_decimals, asset_decimals = _decimals(req.vault_decimals, req.asset_decimals)
    return build_apr_view(
        req.periods,
        vault_decimals,
        asset_decimals,
        time_range,
        req.now if req.now is not None else now_ts(),
    )

@router.post(
    '/apr/price-reference',
    response_model=PriceReferenceResponse,
    summary="Price per share at a timestamp",
    description="Interpolated share price at an arbitrary timestamp.",
    tags=["APR"],
)
def price_reference(req: PriceReferenceRequest):
    vault_decimals, asset_decimals = _decimals(req.vault_decimals, req.asset_decimals)
    ref = price_reference_at(req.periods, req.timestamp, vault_decimals, asset_decimals)
    if ref is None:
        raise HTTPException(404, 'no period summaries')
    return PriceReferenceResponse(
        price=str(ref.price),
        price_display=to_display_price(ref.price, asset_decimals),
        effective_timestamp=ref.effective_timestamp,
    )

@router.post(
    '/allocations/aggregate',
    summary="Aggregate allocations",
    description="Flattens portfolio responses into deduplicated allocation items with protocol groups.",
    tags=["Allocations"],
)
def allocations_aggregate(req: AllocationRequest):
    view = build_allocation_view(req.portfolios)
    return {
        'report': view['report'].model_dump(mode='json'),
        'grouping': view['grouping'].model_dump(mode='json'),
    }

@router.post(
    '/series/shape',
    summary="Shape a chart series",
    description="Range filter, decimation and rolling average over a point series. "
                "With compare_points, both series are also outer-joined on timestamp.",
    tags=["Series"],
)
def series_shape(req: SeriesShapeRequest):
    _, window_seconds = _window(req.time_range)
    left_name, right_name = req.names
    if left_name == right_name or 'timestamp' in req.names:
        raise HTTPException(400, 'series names must differ and not be "timestamp"')
    now = req.now if req.now is not None else now_ts()
    max_points = req.max_points or settings.chart_max_points
    rolling_window = req.rolling_window or settings.rolling_window

    points = shape_series(req.points, window_seconds, now, max_points, rolling_window)
    stats = range_stats(points, req.lookback or settings.stats_lookback)
    out = {'points': [p.model_dump() for p in points], 'stats': stats.model_dump()}
    if req.compare_points is not None:
        compare = shape_series(req.compare_points, window_seconds, now, max_points, rolling_window)
        out['merged'] = merge_series(points, compare, left_name, right_name)
    return out

@router.post(
    '/cache/invalidate',
    summary="Cache admin",
    description="Drop every cached allocation payload.",
    tags=["Admin"],
)
def cache_invalidate():
    cache = CacheLayer(settings.cache_dir, settings.cache_db_path, settings.cache_ttl_seconds, settings.cache_stale_hours)
    return {'ok': True, 'cleared': cache.invalidate_all()}
