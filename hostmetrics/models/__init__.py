"""Data model for samples, process attribution and rate state."""

from .sample import (
    CpuStats,
    DiskStats,
    MemoryStats,
    NetworkState,
    NetworkStats,
    PressureLevel,
    ProcessEntry,
    Sample,
    TemperatureStats,
)

__all__ = [
    "CpuStats",
    "DiskStats",
    "MemoryStats",
    "NetworkState",
    "NetworkStats",
    "PressureLevel",
    "ProcessEntry",
    "Sample",
    "TemperatureStats",
]
