"""MetricsSource capability: raw instantaneous readings consumed by the sampler.

Implementations may raise from any method (or hang); the sampler bounds each
call with a timeout and falls back to the reading's zero default.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from ..models import PressureLevel


class CpuReading(BaseModel):
    user: float = 0.0
    sys: float = 0.0
    idle: float = 0.0


class MemoryReading(BaseModel):
    total_pages: int = 0
    free_pages: int = 0
    active_pages: int = 0
    inactive_pages: int = 0
    speculative_pages: int = 0
    wired_pages: int = 0
    compressed_pages: int = 0
    page_size_bytes: int = 4096
    swap_used_bytes: int = 0
    swap_total_bytes: int = 0
    pressure_level: PressureLevel = PressureLevel.NORMAL


class DiskReading(BaseModel):
    read_rate_kbs: float = 0.0
    write_rate_kbs: float = 0.0
    transfers_per_sec: float = 0.0
    usage_pct: float = 0.0


class NetworkCounters(BaseModel):
    cumulative_in_bytes: int = 0
    cumulative_out_bytes: int = 0


class TemperatureReading(BaseModel):
    cpu_c: float = 0.0
    gpu_c: float = 0.0


class ProcessInfo(BaseModel):
    pid: int
    cpu_pct: float = 0.0
    rss_kb: int = 0
    mem_pct: float = 0.0
    open_file_count: int = 0
    command: str = ""


class MetricsSource(ABC):
    """Supplier of raw OS readings. Not responsible for derivation or storage."""

    name = "source"

    @abstractmethod
    def read_cpu(self) -> CpuReading:
        ...

    @abstractmethod
    def read_memory(self) -> MemoryReading:
        ...

    @abstractmethod
    def read_disk_io(self) -> DiskReading:
        ...

    @abstractmethod
    def read_network_counters(self) -> NetworkCounters:
        ...

    def read_temperature(self) -> TemperatureReading:
        """Optional capability; sources without sensors report unknown (0)."""
        return TemperatureReading()

    @abstractmethod
    def list_processes(self) -> list[ProcessInfo]:
        ...
