"""Time-series downsampling and leaderboard ordering for the dashboard."""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping

from holewatch.models import TimeSeries


def squash_series(series: Iterable[tuple[int, int]], factor: int) -> TimeSeries:
    """Merge every *factor* consecutive samples into one bucket.

    Each bucket is ``(leading_timestamp, sum_of_counts)`` where the leading
    timestamp is the first sample of the group in input order. A trailing
    group shorter than *factor* is kept. ``factor == 1`` returns the samples
    unchanged.
    """
    if factor < 1:
        raise ValueError(f"squash factor must be >= 1, got {factor}")

    squashed: TimeSeries = []
    count = 0
    total = 0
    leading = 0

    for timestamp, value in series:
        if count == 0:
            leading = timestamp
        count += 1
        total += value
        if count >= factor:
            squashed.append((leading, total))
            count = 0
            total = 0

    if count > 0:
        squashed.append((leading, total))
    return squashed


def sort_ranking(
    ranking: Mapping[str, int], limit: int | None = None
) -> list[tuple[str, int]]:
    """Order a ranking by count descending, ties broken by label ascending."""
    rows = sorted(ranking.items(), key=lambda item: (-item[1], item[0]))
    if limit is not None:
        rows = rows[:limit]
    return rows


def chart_rows(series: Iterable[tuple[int, int]], factor: int) -> list[tuple[str, int]]:
    """Prepare bar-chart rows: newest bucket first, labelled ``HH:MM`` (UTC)."""
    # Newest bucket is drawn leftmost
    newest_first = sorted(series, key=lambda sample: sample[0], reverse=True)
    return [
        (time.strftime("%H:%M", time.gmtime(ts)), total)
        for ts, total in squash_series(newest_first, factor)
    ]
