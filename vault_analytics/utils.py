import hashlib, json
import time as time_module
from datetime import datetime, timezone

SECONDS_PER_DAY = 24 * 60 * 60

# Chart window presets, in seconds.
TIME_RANGES = {
    "7D": 7 * SECONDS_PER_DAY,
    "30D": 30 * SECONDS_PER_DAY,
    "90D": 90 * SECONDS_PER_DAY,
    "1Y": 365 * SECONDS_PER_DAY,
}

def sha256_json(obj) -> str:
    return hashlib.sha256(json.dumps(obj, sort_keys=True, default=str).encode()).hexdigest()

def now_ts() -> int:
    return int(time_module.time())

def now_ms() -> int:
    return int(time_module.time() * 1000)

def ms_to_iso(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).isoformat()

def range_seconds(time_range: str) -> int:
    try:
        return TIME_RANGES[time_range.upper()]
    except KeyError:
        raise ValueError(f"unknown time range {time_range!r}; expected one of {', '.join(TIME_RANGES)}") from None

def range_bounds(time_range: str, now: int) -> tuple[int, int]:
    return now - range_seconds(time_range), now
