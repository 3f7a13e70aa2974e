"""Query engine over the sample log."""

from .queries import (
    DeltaResult,
    OffenderStat,
    TrendPoint,
    aggregate,
    bucketed_trend,
    delta,
    point_lookup,
    recent,
    resolve_period,
    summarize,
    top_offenders,
)
from .stats import RunningStats, resolve_field

__all__ = [
    "DeltaResult",
    "OffenderStat",
    "RunningStats",
    "TrendPoint",
    "aggregate",
    "bucketed_trend",
    "delta",
    "point_lookup",
    "recent",
    "resolve_field",
    "resolve_period",
    "summarize",
    "top_offenders",
]
