"""Sample model: one timestamped snapshot of system and process metrics."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def to_utc_second(value: datetime) -> datetime:
    """Normalize a datetime to an aware UTC instant with second resolution."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0)


class PressureLevel(str, Enum):
    NORMAL = "Normal"
    WARNING = "Warning"
    CRITICAL = "Critical"

    @classmethod
    def parse(cls, text: str) -> "PressureLevel":
        """Map free-form pressure text onto a level, Normal when unrecognized."""
        lowered = (text or "").strip().lower()
        if "critical" in lowered:
            return cls.CRITICAL
        if "warn" in lowered:
            return cls.WARNING
        return cls.NORMAL


class CpuStats(BaseModel):
    total_pct: float = 0.0
    user_pct: float = 0.0
    system_pct: float = 0.0
    idle_pct: float = 0.0


class MemoryStats(BaseModel):
    total_mb: float = 0.0
    used_mb: float = 0.0
    free_mb: float = 0.0
    swap_used_mb: float = 0.0
    swap_total_mb: float = 0.0
    pressure_level: PressureLevel = PressureLevel.NORMAL


class DiskStats(BaseModel):
    read_kbs: float = 0.0
    write_kbs: float = 0.0
    transfers_per_sec: float = 0.0
    usage_pct: float = 0.0


class NetworkStats(BaseModel):
    cumulative_in_mb: float = 0.0
    cumulative_out_mb: float = 0.0
    rate_in_kbs: float = 0.0
    rate_out_kbs: float = 0.0


class TemperatureStats(BaseModel):
    """Celsius readings; 0 means unknown, not a measurement."""

    cpu_c: float = 0.0
    gpu_c: float = 0.0


class ProcessEntry(BaseModel):
    """One ranked process. Which metric fields are set depends on the ranking.

    Serialized with the compact keys used inside the log's embedded columns.
    """

    model_config = ConfigDict(populate_by_name=True)

    pid: Optional[int] = None
    cpu_pct: Optional[float] = Field(default=None, alias="cpu")
    rss_mb: Optional[float] = None
    mem_pct: Optional[float] = None
    open_file_count: Optional[int] = Field(default=None, alias="open_files")
    command_name: str = Field(alias="cmd")

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class Sample(BaseModel):
    timestamp: datetime
    cpu: CpuStats = Field(default_factory=CpuStats)
    memory: MemoryStats = Field(default_factory=MemoryStats)
    disk: DiskStats = Field(default_factory=DiskStats)
    network: NetworkStats = Field(default_factory=NetworkStats)
    temperature: TemperatureStats = Field(default_factory=TemperatureStats)
    top_by_cpu: list[ProcessEntry] = Field(default_factory=list)
    top_by_memory: list[ProcessEntry] = Field(default_factory=list)
    top_by_open_files: list[ProcessEntry] = Field(default_factory=list)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return to_utc_second(v)

    @property
    def partition_key(self) -> tuple[int, int]:
        return (self.timestamp.year, self.timestamp.month)


class NetworkState(BaseModel):
    """Cumulative interface counters remembered between collection cycles."""

    timestamp: datetime
    cumulative_in_bytes: int = 0
    cumulative_out_bytes: int = 0

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return to_utc_second(v)
