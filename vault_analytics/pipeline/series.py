from __future__ import annotations

import math
from typing import Sequence

import numpy as np
import pandas as pd

from .models import ChartPoint, RangeStats


def _values(points: Sequence[ChartPoint]) -> pd.Series:
    return pd.Series([p.value for p in points], dtype=float)


def filter_range(points: Sequence[ChartPoint], window_seconds: int, now: int) -> list[ChartPoint]:
    cutoff = now - window_seconds
    return [p for p in points if p.timestamp >= cutoff]


def decimate(points: Sequence[ChartPoint], max_points: int) -> list[ChartPoint]:
    # Keeps index 0; the final point survives only when it lands on the stride.
    if max_points < 1:
        raise ValueError(f"max_points must be >= 1, got {max_points}")
    if len(points) <= max_points:
        return list(points)
    step = math.ceil(len(points) / max_points)
    return [points[i] for i in np.arange(0, len(points), step)]


def rolling_average(points: Sequence[ChartPoint], window: int) -> list[ChartPoint]:
    if not points:
        return []
    if window < 1:
        raise ValueError(f"window must be >= 1, got {window}")
    avgs = _values(points).rolling(window=window, min_periods=1).mean()
    return [p.model_copy(update={"rolling_avg": float(avg)}) for p, avg in zip(points, avgs)]


def range_stats(points: Sequence[ChartPoint], lookback: int) -> RangeStats:
    if not points or lookback <= 0:
        return RangeStats()
    tail = _values(points).tail(lookback)
    return RangeStats(avg=float(tail.mean()), min=float(tail.min()), max=float(tail.max()))


def dedupe_timestamps(points: Sequence[ChartPoint]) -> list[ChartPoint]:
    out: list[ChartPoint] = []
    for point in sorted(points, key=lambda p: p.timestamp):
        if out and out[-1].timestamp == point.timestamp:
            continue
        out.append(point)
    return out


def _frame(points: Sequence[ChartPoint], name: str) -> pd.DataFrame:
    frame = pd.DataFrame({
        "timestamp": pd.Series([p.timestamp for p in points], dtype="int64"),
        name: pd.Series([p.value for p in points], dtype=float),
    })
    return frame.drop_duplicates("timestamp", keep="first")


def merge_series(
    left: Sequence[ChartPoint],
    right: Sequence[ChartPoint],
    left_name: str = "left",
    right_name: str = "right",
) -> list[dict]:
    """Outer-join two series on timestamp; a side with no point at a timestamp is None."""
    merged = _frame(left, left_name).merge(_frame(right, right_name), on="timestamp", how="outer").sort_values("timestamp")
    rows = []
    for rec in merged.to_dict(orient="records"):
        rows.append({
            "timestamp": int(rec["timestamp"]),
            left_name: None if pd.isna(rec[left_name]) else float(rec[left_name]),
            right_name: None if pd.isna(rec[right_name]) else float(rec[right_name]),
        })
    return rows


def shape_series(
    points: Sequence[ChartPoint],
    window_seconds: int,
    now: int,
    max_points: int,
    rolling_window: int,
) -> list[ChartPoint]:
    shaped = dedupe_timestamps(filter_range(points, window_seconds, now))
    shaped = decimate(shaped, max_points)
    return rolling_average(shaped, rolling_window)
