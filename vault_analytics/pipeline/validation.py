from typing import Iterable, List, Sequence, Tuple

import structlog
from pydantic import ValidationError

from .models import PeriodSummary

log = structlog.get_logger()


def parse_period_summaries(rows: Iterable[dict]) -> List[PeriodSummary]:
    """Build PeriodSummary models from indexer rows, dropping rows that fail validation."""
    out = []
    for row in rows:
        try:
            out.append(PeriodSummary.model_validate(row))
        except ValidationError as exc:
            log.warning(
                "period_summary_invalid",
                period_id=row.get("id") if isinstance(row, dict) else None,
                errors=exc.error_count(),
                detail=exc.errors(include_url=False)[0]["msg"],
            )
    return out


def validate_period_summaries(periods: Sequence[PeriodSummary]) -> Tuple[bool, List[str]]:
    reasons = []
    prev = None
    for period in periods:
        label = period.id or str(period.start_timestamp)
        if period.net_supply_at_end > period.total_supply_at_end:
            reasons.append(f"{label}: net supply {period.net_supply_at_end} > total supply {period.total_supply_at_end}")
        if prev is not None:
            if period.start_timestamp < prev.start_timestamp:
                reasons.append(f"{label}: out of order after {prev.id or prev.start_timestamp}")
            elif period.start_timestamp < prev.end_timestamp:
                reasons.append(f"{label}: overlaps previous period ending {prev.end_timestamp}")
        prev = period
    return (len(reasons) == 0), reasons
