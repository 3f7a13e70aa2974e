"""HostMetrics facade: the calls the report commands and scheduler use.

Wires the sampler, recorder, state store, retention manager and query
engine to one configuration. Collection has side effects (a row appended,
the network state replaced). Live snapshots and queries only read.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Sequence

from .analytics import queries
from .analytics.queries import DeltaResult, OffenderStat, TrendPoint
from .analytics.stats import RunningStats, resolve_field
from .collectors.attributor import Dimension
from .collectors.network_state import NetworkStateStore
from .collectors.psutil_source import PsutilMetricsSource
from .collectors.sampler import CycleResult, Sampler
from .collectors.source import MetricsSource
from .config import HostMetricsConfig, get_config
from .maintenance.retention import RetentionManager, SweepSummary
from .models import PressureLevel, ProcessEntry, Sample
from .models.sample import to_utc_second
from .storage.partitions import Partition, count_rows, iter_samples, list_partitions
from .storage.recorder import Recorder
from .storage.schema import ScanStats
from .utils.logging import get_logger

logger = get_logger("service")

DEFAULT_SUMMARY_FIELDS = ("cpu", "memory", "swap", "disk", "temp")


@dataclass(frozen=True)
class PartitionInfo:
    name: str
    path: Path
    size_bytes: int
    samples: int


class HealthVerdict(str, Enum):
    HEALTHY = "healthy"
    SWAPPING = "swap"
    PRESSURE = "pressure"


@dataclass(frozen=True)
class HealthReport:
    sample: Sample
    verdict: HealthVerdict
    top_memory: list[ProcessEntry]

    @classmethod
    def from_sample(cls, sample: Sample, top: int = 3) -> "HealthReport":
        if sample.memory.pressure_level != PressureLevel.NORMAL:
            verdict = HealthVerdict.PRESSURE
        elif sample.memory.swap_used_mb > 0:
            verdict = HealthVerdict.SWAPPING
        else:
            verdict = HealthVerdict.HEALTHY
        return cls(sample=sample, verdict=verdict, top_memory=sample.top_by_memory[:top])


class HostMetrics:
    def __init__(
        self,
        config: Optional[HostMetricsConfig] = None,
        source: Optional[MetricsSource] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or get_config()
        self._source = source
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.recorder = Recorder(self.config.log_dir)
        self.state_store = NetworkStateStore(self.config.state_file)
        self.last_cycle: Optional[CycleResult] = None
        self.last_scan = ScanStats()

    @property
    def log_dir(self) -> Path:
        return self.config.log_dir

    @property
    def source(self) -> MetricsSource:
        if self._source is None:
            self._source = PsutilMetricsSource(self.config.model_dump())
        return self._source

    def _now(self) -> datetime:
        now = self._clock()
        return now if now.tzinfo is not None else now.replace(tzinfo=timezone.utc)

    def _scan(self, start: Optional[datetime] = None, end: Optional[datetime] = None, partitions=None):
        self.last_scan = ScanStats()
        source = self.log_dir if partitions is None else partitions
        return iter_samples(source, start=start, end=end, stats=self.last_scan)

    def _sampler(self, top_n: Optional[int] = None) -> Sampler:
        return Sampler(
            self.source,
            top_n=self.config.top_n if top_n is None else top_n,
            timeout=self.config.source_timeout_seconds,
            rate_policy=self.config.network_rate_policy,
            clock=self._clock,
        )

    # -- collection -------------------------------------------------------

    def collect_once(self) -> Sample:
        """Run one cycle: load state, sample, append, then persist the new state.

        StorageWriteFailure propagates and leaves the old state in place.
        ClockFailure propagates before anything is written.
        """
        prev_state = self.state_store.load()
        result = self._sampler().collect(prev_state)
        path = self.recorder.append(result.sample)

        if result.network_state is not None and result.network_state != prev_state:
            try:
                self.state_store.save(result.network_state)
            except OSError as e:
                logger.warning("network_state_save_failed", path=str(self.state_store.path), error=str(e))

        self.last_cycle = result
        logger.info(
            "collection_cycle_complete",
            partition=path.name,
            timestamp=result.sample.timestamp.isoformat(),
            unavailable=result.unavailable,
        )
        return result.sample

    def current_snapshot(self, top_n: Optional[int] = None) -> Sample:
        """Take a live sample without appending it or replacing the network state."""
        result = self._sampler(top_n).collect(self.state_store.load())
        self.last_cycle = result
        return result.sample

    def health(self, top: int = 3) -> HealthReport:
        return HealthReport.from_sample(self.current_snapshot(), top)

    # -- queries ----------------------------------------------------------

    def query_aggregate(
        self,
        field: str,
        op: str = "avg",
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> float:
        return queries.aggregate(self._scan(start, end), field, op)

    def query_summary(
        self,
        period: str = "today",
        fields: Sequence[str] = DEFAULT_SUMMARY_FIELDS,
    ) -> dict[str, RunningStats]:
        start, end = queries.resolve_period(period, self._now())
        return queries.summarize(self._scan(start, end), fields)

    def query_trend(
        self,
        field: str = "cpu",
        bucket: str = "hourly",
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[TrendPoint]:
        return queries.bucketed_trend(self._scan(start, end), field, bucket)

    def query_top_offenders(
        self,
        dimension: Dimension | str = Dimension.CPU,
        hours: Optional[float] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[OffenderStat]:
        if hours is not None:
            start = self._now() - timedelta(hours=hours)
        if isinstance(dimension, str):
            dimension = Dimension.parse(dimension)
        limit = self.config.offender_limit if limit is None else limit
        return queries.top_offenders(self._scan(start, end), dimension, limit)

    def _newest_at_or_before(self, target: datetime) -> Optional[Sample]:
        # Partitions are month-ordered, so the newest one with a match wins.
        for partition in reversed(list_partitions(self.log_dir)):
            if partition.start > target:
                continue
            found = queries.point_lookup(self._scan(end=target + timedelta(seconds=1), partitions=[partition]), target)
            if found is not None:
                return found
        return None

    def query_delta(
        self,
        target_time: Optional[datetime] = None,
        minutes: float = 30,
        field: str = "memory",
        current: Optional[float] = None,
    ) -> DeltaResult:
        """Compare ``field`` now against the last sample at or before the target.

        Without ``current`` the newest stored sample supplies the current value.
        """
        getter = resolve_field(field)
        now = self._now()
        target = to_utc_second(target_time) if target_time is not None else now - timedelta(minutes=minutes)

        baseline = self._newest_at_or_before(target)
        if current is None:
            latest = self._newest_at_or_before(now)
            current = getter(latest) if latest is not None else None

        return DeltaResult(
            field=field,
            target_time=target,
            baseline=baseline,
            baseline_value=getter(baseline) if baseline is not None else None,
            current_value=current,
        )

    def query_recent(self, n: int = 10) -> list[Sample]:
        if n < 0:
            raise ValueError("n cannot be negative")
        collected: list[Sample] = []
        for partition in reversed(list_partitions(self.log_dir)):
            if len(collected) >= n:
                break
            collected = queries.recent(self._scan(partitions=[partition]), n - len(collected)) + collected
        return collected

    # -- maintenance ------------------------------------------------------

    def sweep_retention(self, retention_days: Optional[int] = None) -> SweepSummary:
        days = self.config.retention_days if retention_days is None else retention_days
        manager = RetentionManager(
            self.log_dir,
            aux_log_files=self.config.aux_log_files,
            max_bytes=self.config.aux_log_max_bytes,
            keep_bytes=self.config.aux_log_keep_bytes,
            clock=self._clock,
        )
        return manager.sweep(days)

    def partitions(self) -> list[PartitionInfo]:
        infos = []
        for partition in list_partitions(self.log_dir):
            infos.append(self._partition_info(partition))
        return infos

    @staticmethod
    def _partition_info(partition: Partition) -> PartitionInfo:
        return PartitionInfo(
            name=partition.name,
            path=partition.path,
            size_bytes=partition.path.stat().st_size,
            samples=count_rows(partition.path),
        )
