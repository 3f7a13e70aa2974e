"""Streaming accumulators and sample field resolution."""

from __future__ import annotations

from operator import attrgetter
from typing import Callable

from ..models import Sample

AGGREGATE_OPS = ("avg", "max", "min", "count")

# Report shorthands used by the summary, trends and compare commands.
FIELD_SHORTHANDS = {
    "cpu": "cpu.total_pct",
    "mem": "memory.used_mb",
    "memory": "memory.used_mb",
    "disk": "disk.usage_pct",
    "net": "network.cumulative_in_mb",
    "network": "network.cumulative_in_mb",
    "swap": "memory.swap_used_mb",
    "temp": "temperature.cpu_c",
}

_SECTIONS = ("cpu", "memory", "disk", "network", "temperature")


class RunningStats:
    """Count, sum, min and max in O(1) memory. Empty stats report zeros."""

    __slots__ = ("count", "total", "min_val", "max_val")

    def __init__(self):
        self.count = 0
        self.total = 0.0
        self.min_val = float("inf")
        self.max_val = float("-inf")

    def update(self, value: float) -> None:
        self.count += 1
        self.total += value
        if value < self.min_val:
            self.min_val = value
        if value > self.max_val:
            self.max_val = value

    @property
    def avg(self) -> float:
        return self.total / self.count if self.count else 0.0

    @property
    def min(self) -> float:
        return self.min_val if self.count else 0.0

    @property
    def max(self) -> float:
        return self.max_val if self.count else 0.0

    def result(self, op: str) -> float:
        if op == "avg":
            return self.avg
        if op == "min":
            return self.min
        if op == "max":
            return self.max
        if op == "count":
            return self.count
        raise ValueError(f"unknown aggregate op {op!r}, expected one of {AGGREGATE_OPS}")

    def to_dict(self) -> dict:
        return {"count": self.count, "avg": self.avg, "min": self.min, "max": self.max}


def resolve_field(name: str) -> Callable[[Sample], float]:
    """Return a getter for a numeric sample field.

    Accepts a dotted path such as ``memory.used_mb`` or one of the
    shorthands in FIELD_SHORTHANDS. Raises ValueError for anything else.
    """
    path = FIELD_SHORTHANDS.get(name.strip().lower(), name.strip())
    section, _, attr = path.partition(".")
    if section not in _SECTIONS or not attr:
        raise ValueError(f"unknown field {name!r}")

    model = Sample.model_fields[section].annotation
    field_info = model.model_fields.get(attr)
    if field_info is None or field_info.annotation is not float:
        raise ValueError(f"unknown numeric field {name!r}")
    return attrgetter(path)
