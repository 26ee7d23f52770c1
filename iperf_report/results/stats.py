"""Order statistics over a windowed metric series."""

from __future__ import annotations

import math
import statistics
from typing import Dict, Optional, Sequence

from .models import MergedStream, MetricSummary

MIN_SAMPLES = 5
PERCENTILES = (10, 25, 75, 90)
# metrics where a low value is the favorable outcome
LOW_BETTER_METRICS = ("jitter", "loss")


def percentile(values: Sequence[float], pct: float, low_better: bool = False) -> Optional[float]:
    """Nearest-rank percentile of ``values``.

    With ``low_better`` the rank is taken from the opposite tail, so the 10th
    percentile of jitter is the value only 10% of samples exceed.
    """
    if not values or not 0 <= pct <= 100:
        return None
    ordered = sorted(values)
    if low_better:
        pct = 100 - pct
    index = int(math.floor((pct / 100) * (len(ordered) - 1) + 0.5))
    return ordered[index]


def median(ordered: Sequence[float]) -> float:
    count = len(ordered)
    middle = count // 2
    if count % 2:
        return ordered[middle]
    return (ordered[middle - 1] + ordered[middle]) / 2


def summarize(values: Sequence[float], low_better: bool = False) -> Optional[MetricSummary]:
    if not values:
        return None
    ordered = sorted(float(value) for value in values)
    return MetricSummary(
        min=ordered[0],
        max=ordered[-1],
        mean=statistics.fmean(ordered),
        median=median(ordered),
        p10=percentile(ordered, 10, low_better),
        p25=percentile(ordered, 25, low_better),
        p75=percentile(ordered, 75, low_better),
        p90=percentile(ordered, 90, low_better),
        stdev=statistics.pstdev(ordered),
    )


def summarize_stream(stream: MergedStream, udp: bool) -> Optional[Dict[str, MetricSummary]]:
    """Summaries per metric, or None when the stream has too few bandwidth samples."""
    if len(stream.samples) < MIN_SAMPLES:
        return None

    summaries: Dict[str, MetricSummary] = {}
    metrics = ("bandwidth",) + (LOW_BETTER_METRICS if udp else ())
    for metric in metrics:
        summary = summarize(stream.values(metric), low_better=metric in LOW_BETTER_METRICS)
        if summary is not None:
            summaries[metric] = summary
    return summaries
