"""psutil-backed MetricsSource.

Reads CPU tick percentages, virtual memory pages, disk and interface counters,
temperature sensors and the process table through psutil. Rates that psutil
only exposes as cumulative counters (disk I/O) are measured over a short
interval inside the call, the way iostat reports its second sample.
"""

import mmap
import time

import psutil

from ..errors import MeasurementUnavailable
from ..models import PressureLevel
from ..utils.logging import get_logger
from .source import (
    CpuReading,
    DiskReading,
    MemoryReading,
    MetricsSource,
    NetworkCounters,
    ProcessInfo,
    TemperatureReading,
)

logger = get_logger("collectors.psutil_source")

CPU_SENSOR_NAMES = ("coretemp", "k10temp", "zenpower", "cpu_thermal", "cpu-thermal", "acpitz")
GPU_SENSOR_NAMES = ("amdgpu", "nouveau", "radeon", "nvidia")


def _pressure_from_available(available: int, total: int) -> PressureLevel:
    if total <= 0:
        return PressureLevel.NORMAL
    free_pct = available * 100.0 / total
    if free_pct < 10:
        return PressureLevel.CRITICAL
    if free_pct < 30:
        return PressureLevel.WARNING
    return PressureLevel.NORMAL


def _first_current(sensors: dict, names: tuple[str, ...]) -> float:
    for name in names:
        for entry in sensors.get(name, []):
            current = getattr(entry, "current", None)
            if current:
                try:
                    return float(current)
                except (TypeError, ValueError):
                    continue
    return 0.0


class PsutilMetricsSource(MetricsSource):
    """Reads the local host through psutil."""

    name = "psutil"

    def __init__(self, config: dict | None = None):
        cfg = config or {}
        self._cpu_interval: float = cfg.get("cpu_sample_interval", 0.5)
        self._disk_interval: float = cfg.get("disk_sample_interval", 1.0)
        self._process_interval: float = cfg.get("process_sample_interval", 0.2)
        self._disk_path: str = cfg.get("disk_usage_path", "/")
        self._interfaces: list[str] = list(cfg.get("network_interfaces", []))
        self._page_size: int = mmap.PAGESIZE

    def read_cpu(self) -> CpuReading:
        times = psutil.cpu_times_percent(interval=self._cpu_interval)
        return CpuReading(user=times.user, sys=times.system, idle=times.idle)

    def read_memory(self) -> MemoryReading:
        vm = psutil.virtual_memory()
        swap = psutil.swap_memory()
        page = self._page_size

        def pages(attr: str) -> int:
            return int(getattr(vm, attr, 0) or 0) // page

        return MemoryReading(
            total_pages=pages("total"),
            free_pages=pages("free"),
            active_pages=pages("active"),
            inactive_pages=pages("inactive"),
            speculative_pages=pages("speculative"),
            wired_pages=pages("wired"),
            compressed_pages=pages("compressed"),
            page_size_bytes=page,
            swap_used_bytes=int(swap.used),
            swap_total_bytes=int(swap.total),
            pressure_level=_pressure_from_available(vm.available, vm.total),
        )

    def read_disk_io(self) -> DiskReading:
        before = psutil.disk_io_counters()
        if before is None:
            raise MeasurementUnavailable("disk_io", "no disk counters")
        started = time.monotonic()
        time.sleep(self._disk_interval)
        after = psutil.disk_io_counters()
        elapsed = max(time.monotonic() - started, 1e-6)
        if after is None:
            raise MeasurementUnavailable("disk_io", "no disk counters")

        transfers = (after.read_count - before.read_count) + (after.write_count - before.write_count)
        try:
            usage_pct = psutil.disk_usage(self._disk_path).percent
        except OSError as e:
            logger.warning("disk_usage_unavailable", path=self._disk_path, error=str(e))
            usage_pct = 0.0

        return DiskReading(
            read_rate_kbs=round((after.read_bytes - before.read_bytes) / 1024 / elapsed, 2),
            write_rate_kbs=round((after.write_bytes - before.write_bytes) / 1024 / elapsed, 2),
            transfers_per_sec=round(transfers / elapsed, 2),
            usage_pct=usage_pct,
        )

    def read_network_counters(self) -> NetworkCounters:
        if self._interfaces:
            per_nic = psutil.net_io_counters(pernic=True) or {}
            selected = [per_nic[name] for name in self._interfaces if name in per_nic]
            if not selected:
                raise MeasurementUnavailable("network", f"interfaces not found: {self._interfaces}")
            return NetworkCounters(
                cumulative_in_bytes=sum(n.bytes_recv for n in selected),
                cumulative_out_bytes=sum(n.bytes_sent for n in selected),
            )

        net = psutil.net_io_counters()
        if net is None:
            raise MeasurementUnavailable("network", "no interface counters")
        return NetworkCounters(cumulative_in_bytes=net.bytes_recv, cumulative_out_bytes=net.bytes_sent)

    def read_temperature(self) -> TemperatureReading:
        try:
            sensors = psutil.sensors_temperatures(fahrenheit=False)
        except (AttributeError, NotImplementedError):  # platform without sensors
            sensors = {}
        return TemperatureReading(
            cpu_c=_first_current(sensors, CPU_SENSOR_NAMES),
            gpu_c=_first_current(sensors, GPU_SENSOR_NAMES),
        )

    def list_processes(self) -> list[ProcessInfo]:
        # First cpu_percent call per process returns 0.0; prime, wait, read.
        for proc in psutil.process_iter():
            try:
                proc.cpu_percent(interval=None)
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        time.sleep(self._process_interval)

        attrs = ["pid", "name", "cpu_percent", "memory_info", "memory_percent"]
        if hasattr(psutil.Process, "num_fds"):
            attrs.append("num_fds")

        processes = []
        for proc in psutil.process_iter(attrs=attrs):
            try:
                info = proc.info
                mem_info = info.get("memory_info")
                processes.append(ProcessInfo(
                    pid=info["pid"],
                    cpu_pct=info.get("cpu_percent") or 0.0,
                    rss_kb=(mem_info.rss // 1024) if mem_info else 0,
                    mem_pct=round(info.get("memory_percent") or 0.0, 2),
                    open_file_count=info.get("num_fds") or 0,
                    command=info.get("name") or "",
                ))
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        return processes
