"""Attributor: ranks processes into the top-K lists embedded in each sample.

Open-file ranking is a frequency count of file-table owners grouped by
command name. It is a proxy for disk activity, not a per-process I/O
measurement.
"""

from enum import Enum
from typing import Iterable, Sequence

from ..models import ProcessEntry
from .source import ProcessInfo

DEFAULT_TOP_N = 10


class Dimension(str, Enum):
    CPU = "cpu"
    MEMORY = "memory"
    OPEN_FILES = "open_files"

    @classmethod
    def parse(cls, name: str) -> "Dimension":
        aliases = {"mem": cls.MEMORY, "rss": cls.MEMORY, "files": cls.OPEN_FILES, "disk": cls.OPEN_FILES}
        key = name.strip().lower()
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"unknown dimension {name!r}") from None


def _rss_mb(proc: ProcessInfo) -> float:
    return round(proc.rss_kb / 1024, 1)


def _open_file_owners(processes: Iterable[ProcessInfo]) -> list[tuple[str, int]]:
    """Sum open-file counts per command, ordered by first appearance."""
    counts: dict[str, int] = {}
    for proc in processes:
        if not proc.command:
            continue
        counts[proc.command] = counts.get(proc.command, 0) + proc.open_file_count
    return list(counts.items())


def rank(processes: Sequence[ProcessInfo], dimension: Dimension, k: int = DEFAULT_TOP_N) -> list[ProcessEntry]:
    """Return at most ``k`` entries ranked descending on ``dimension``.

    Ties keep the source's enumeration order (stable sort, no secondary key).
    """
    if k < 0:
        raise ValueError("k cannot be negative")
    if k == 0 or not processes:
        return []

    if dimension == Dimension.CPU:
        ranked = sorted(processes, key=lambda p: p.cpu_pct, reverse=True)[:k]
        return [
            ProcessEntry(pid=p.pid, cpu_pct=p.cpu_pct, rss_mb=_rss_mb(p), command_name=p.command)
            for p in ranked
        ]

    if dimension == Dimension.MEMORY:
        ranked = sorted(processes, key=lambda p: p.rss_kb, reverse=True)[:k]
        return [
            ProcessEntry(pid=p.pid, rss_mb=_rss_mb(p), mem_pct=p.mem_pct, command_name=p.command)
            for p in ranked
        ]

    owners = sorted(_open_file_owners(processes), key=lambda item: item[1], reverse=True)[:k]
    return [ProcessEntry(open_file_count=count, command_name=cmd) for cmd, count in owners]
