"""Latency percentiles and histogram merging."""

import math
from collections.abc import Iterable, Mapping, Sequence

from .models import LatencyStats


def percentile(values: Sequence[float], pct: float) -> float:
    """Nearest-rank percentile.

    ``idx = ceil(pct / 100 * n) - 1`` clamped to ``[0, n - 1]``; an empty
    sample set yields 0.
    """
    if not values:
        return 0
    ordered = sorted(values)
    idx = math.ceil((pct / 100.0) * len(ordered)) - 1
    idx = min(len(ordered) - 1, max(0, idx))
    return ordered[idx]


def merge_counters(target: dict[str, int], source: Mapping[str, int]) -> dict[str, int]:
    """Add every count of *source* into *target* and return *target*."""
    for key, value in source.items():
        target[key] = target.get(key, 0) + value
    return target


def merge_all(counters: Iterable[Mapping[str, int]]) -> dict[str, int]:
    merged: dict[str, int] = {}
    for counter in counters:
        merge_counters(merged, counter)
    return merged


def summarize_latencies(
    latencies: Sequence[float],
    first_token_latencies: Sequence[float] = (),
) -> LatencyStats:
    first_token_p95 = percentile(first_token_latencies, 95) if first_token_latencies else None
    if not latencies:
        return LatencyStats(first_token_p95_ms=first_token_p95)
    return LatencyStats(
        min_ms=min(latencies),
        p50_ms=percentile(latencies, 50),
        p95_ms=percentile(latencies, 95),
        p99_ms=percentile(latencies, 99),
        max_ms=max(latencies),
        avg_ms=round(sum(latencies) / len(latencies), 2),
        first_token_p95_ms=first_token_p95,
    )
