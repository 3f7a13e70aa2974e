"""Sampler: drives one collection cycle and assembles the canonical Sample.

Each MetricsSource call is bounded by a timeout. A reading that fails or
times out degrades to its zero default and is reported in
``CycleResult.unavailable``; only a clock failure aborts the cycle.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable, NamedTuple, Optional, TypeVar

from ..errors import ClockFailure
from ..models import (
    CpuStats,
    DiskStats,
    MemoryStats,
    NetworkState,
    NetworkStats,
    Sample,
    TemperatureStats,
)
from ..models.sample import to_utc_second
from ..utils.logging import get_logger
from .attributor import DEFAULT_TOP_N, Dimension, rank
from .source import (
    CpuReading,
    DiskReading,
    MemoryReading,
    MetricsSource,
    NetworkCounters,
    TemperatureReading,
)

logger = get_logger("collectors.sampler")

MIB = 1024 * 1024
T = TypeVar("T")


class CycleResult(NamedTuple):
    sample: Sample
    network_state: Optional[NetworkState]
    unavailable: list[str]


def compute_rate(
    prev: Optional[NetworkState],
    now: NetworkState,
    policy: str = "clamp",
) -> tuple[tuple[float, float], NetworkState]:
    """Derive (in, out) KB/s from two counter readings.

    No previous state or a non-positive elapsed time yields zero rates. A
    negative delta (interface counter reset) is clamped to zero unless the
    policy is ``passthrough``. The returned state is ``now``.
    """
    if prev is None:
        return (0.0, 0.0), now

    elapsed = (now.timestamp - prev.timestamp).total_seconds()
    if elapsed <= 0:
        return (0.0, 0.0), now

    rate_in = (now.cumulative_in_bytes - prev.cumulative_in_bytes) / 1024 / elapsed
    rate_out = (now.cumulative_out_bytes - prev.cumulative_out_bytes) / 1024 / elapsed
    if policy == "clamp":
        rate_in = max(rate_in, 0.0)
        rate_out = max(rate_out, 0.0)

    return (round(rate_in, 2), round(rate_out, 2)), now


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Sampler:
    """Collects one Sample from a MetricsSource."""

    def __init__(
        self,
        source: MetricsSource,
        top_n: int = DEFAULT_TOP_N,
        timeout: float = 5.0,
        rate_policy: str = "clamp",
        clock: Callable[[], datetime] | None = None,
    ):
        self._source = source
        self._top_n = top_n
        self._timeout = timeout
        self._rate_policy = rate_policy
        self._clock = clock or _utc_now

    def _now(self) -> datetime:
        try:
            value = self._clock()
        except Exception as e:
            raise ClockFailure(f"clock raised: {e}") from e
        if not isinstance(value, datetime):
            raise ClockFailure(f"clock returned {type(value).__name__}, not datetime")
        return to_utc_second(value)

    def _read(
        self,
        reading: str,
        fn: Callable[[], T],
        default: T,
        unavailable: list[str],
    ) -> T:
        outcome: dict = {}

        def run():
            try:
                outcome["value"] = fn()
            except Exception as e:
                outcome["error"] = e

        # Daemon, so a call that never returns cannot hold the process open at exit.
        worker = threading.Thread(target=run, name=f"hostmetrics_source_{reading}", daemon=True)
        worker.start()
        worker.join(self._timeout)

        if worker.is_alive():
            logger.warning("measurement_unavailable", reading=reading, error="timeout", timeout=self._timeout)
        elif "value" in outcome:
            return outcome["value"]
        else:
            logger.warning("measurement_unavailable", reading=reading, error=str(outcome.get("error")))
        unavailable.append(reading)
        return default

    def collect(self, prev_state: Optional[NetworkState] = None) -> CycleResult:
        timestamp = self._now()
        unavailable: list[str] = []
        source = self._source

        cpu = self._read("cpu", source.read_cpu, CpuReading(idle=100.0), unavailable)
        mem = self._read("memory", source.read_memory, MemoryReading(), unavailable)
        disk = self._read("disk_io", source.read_disk_io, DiskReading(), unavailable)
        counters = self._read("network", source.read_network_counters, None, unavailable)
        temp = self._read("temperature", source.read_temperature, TemperatureReading(), unavailable)
        processes = self._read("processes", source.list_processes, [], unavailable)

        if counters is None:
            # Keep the old state; a zero counter would poison the next delta.
            network = NetworkStats()
            next_state = prev_state
        else:
            current = NetworkState(
                timestamp=timestamp,
                cumulative_in_bytes=counters.cumulative_in_bytes,
                cumulative_out_bytes=counters.cumulative_out_bytes,
            )
            (rate_in, rate_out), next_state = compute_rate(prev_state, current, self._rate_policy)
            network = NetworkStats(
                cumulative_in_mb=round(counters.cumulative_in_bytes / MIB, 2),
                cumulative_out_mb=round(counters.cumulative_out_bytes / MIB, 2),
                rate_in_kbs=rate_in,
                rate_out_kbs=rate_out,
            )

        sample = Sample(
            timestamp=timestamp,
            cpu=CpuStats(
                total_pct=100.0 - cpu.idle,
                user_pct=cpu.user,
                system_pct=cpu.sys,
                idle_pct=cpu.idle,
            ),
            memory=self._memory_stats(mem),
            disk=DiskStats(
                read_kbs=disk.read_rate_kbs,
                write_kbs=disk.write_rate_kbs,
                transfers_per_sec=disk.transfers_per_sec,
                usage_pct=disk.usage_pct,
            ),
            network=network,
            temperature=TemperatureStats(cpu_c=temp.cpu_c, gpu_c=temp.gpu_c),
            top_by_cpu=rank(processes, Dimension.CPU, self._top_n),
            top_by_memory=rank(processes, Dimension.MEMORY, self._top_n),
            top_by_open_files=rank(processes, Dimension.OPEN_FILES, self._top_n),
        )

        logger.debug(
            "sample_collected",
            timestamp=timestamp.isoformat(),
            processes=len(processes),
            unavailable=unavailable,
        )
        return CycleResult(sample=sample, network_state=next_state, unavailable=unavailable)

    @staticmethod
    def _memory_stats(mem: MemoryReading) -> MemoryStats:
        # used and free need not sum to total; other page classes are in neither
        page = mem.page_size_bytes
        used = (mem.active_pages + mem.wired_pages + mem.compressed_pages) * page
        free = (mem.free_pages + mem.inactive_pages + mem.speculative_pages) * page
        return MemoryStats(
            total_mb=round(mem.total_pages * page / MIB, 1),
            used_mb=round(used / MIB, 1),
            free_mb=round(free / MIB, 1),
            swap_used_mb=round(mem.swap_used_bytes / MIB, 1),
            swap_total_mb=round(mem.swap_total_bytes / MIB, 1),
            pressure_level=mem.pressure_level,
        )
