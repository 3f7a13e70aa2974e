"""Shared test fixtures."""

from datetime import datetime, timezone

import pytest

from hostmetrics.collectors.source import (
    CpuReading,
    DiskReading,
    MemoryReading,
    MetricsSource,
    NetworkCounters,
    ProcessInfo,
    TemperatureReading,
)
from hostmetrics.config import HostMetricsConfig
from hostmetrics.models import CpuStats, MemoryStats, ProcessEntry, Sample


class FakeMetricsSource(MetricsSource):
    """Scripted source. Set an attribute to an Exception instance to make that reading fail."""

    name = "fake"

    def __init__(self, **overrides):
        self.cpu = CpuReading(user=20.0, sys=10.0, idle=70.0)
        self.memory = MemoryReading(
            total_pages=4096,
            free_pages=512,
            active_pages=1024,
            inactive_pages=256,
            speculative_pages=256,
            wired_pages=512,
            compressed_pages=512,
            page_size_bytes=4096,
            swap_used_bytes=2 * 1024 * 1024,
            swap_total_bytes=8 * 1024 * 1024,
        )
        self.disk = DiskReading(read_rate_kbs=12.5, write_rate_kbs=4.0, transfers_per_sec=3.0, usage_pct=55.0)
        self.network = NetworkCounters(cumulative_in_bytes=10 * 1024 * 1024, cumulative_out_bytes=5 * 1024 * 1024)
        self.temperature = TemperatureReading(cpu_c=48.0, gpu_c=0.0)
        self.processes = [
            ProcessInfo(pid=1, cpu_pct=5.0, rss_kb=10240, mem_pct=1.0, open_file_count=3, command="launchd"),
            ProcessInfo(pid=200, cpu_pct=40.0, rss_kb=512000, mem_pct=12.5, open_file_count=40, command="chrome"),
            ProcessInfo(pid=201, cpu_pct=12.0, rss_kb=204800, mem_pct=5.0, open_file_count=25, command="chrome"),
            ProcessInfo(pid=300, cpu_pct=0.5, rss_kb=4096, mem_pct=0.1, open_file_count=1, command="sshd"),
        ]
        for key, value in overrides.items():
            setattr(self, key, value)

    def _answer(self, value):
        if isinstance(value, Exception):
            raise value
        return value

    def read_cpu(self):
        return self._answer(self.cpu)

    def read_memory(self):
        return self._answer(self.memory)

    def read_disk_io(self):
        return self._answer(self.disk)

    def read_network_counters(self):
        return self._answer(self.network)

    def read_temperature(self):
        return self._answer(self.temperature)

    def list_processes(self):
        return self._answer(self.processes)


class FixedClock:
    """Callable clock that can be moved forward by tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_sample(ts: datetime, cpu: float = 10.0, used_mb: float = 1000.0, top_cpu=None, top_mem=None, top_files=None) -> Sample:
    return Sample(
        timestamp=ts,
        cpu=CpuStats(total_pct=cpu, user_pct=cpu / 2, system_pct=cpu / 2, idle_pct=100.0 - cpu),
        memory=MemoryStats(total_mb=16384.0, used_mb=used_mb, free_mb=16384.0 - used_mb),
        top_by_cpu=top_cpu or [],
        top_by_memory=top_mem or [],
        top_by_open_files=top_files or [],
    )


def cpu_entry(cmd: str, cpu: float, pid: int = 100) -> ProcessEntry:
    return ProcessEntry(pid=pid, cpu_pct=cpu, rss_mb=50.0, command_name=cmd)


@pytest.fixture
def fake_source():
    return FakeMetricsSource()


@pytest.fixture
def log_dir(tmp_path):
    path = tmp_path / "host-metrics"
    path.mkdir()
    return path


@pytest.fixture
def config(log_dir):
    return HostMetricsConfig(_env_file=None, log_dir=log_dir)
