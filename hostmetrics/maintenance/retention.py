"""Retention manager: removes aged partitions and trims operational logs."""

import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional

from ..storage.partitions import list_partitions
from ..utils.logging import get_logger

logger = get_logger("maintenance.retention")


@dataclass
class SweepSummary:
    removed_partitions: int = 0
    bytes_freed: int = 0
    removed: list[str] = field(default_factory=list)
    truncated_logs: int = 0
    log_bytes_trimmed: int = 0


class RetentionManager:
    """Deletes whole monthly partitions once they fall out of the retention window.

    Granularity is monthly: a partition goes only when the first instant of
    the following month is at or before ``now - retention_days``. A 30-day
    window can therefore keep up to about 60 days of samples. The current
    month is never removed for any non-negative window.
    """

    def __init__(
        self,
        log_dir: str | Path,
        aux_log_files: Iterable[str] = (),
        max_bytes: int = 1_048_576,
        keep_bytes: int = 102_400,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if keep_bytes >= max_bytes:
            raise ValueError("keep_bytes must be smaller than max_bytes")
        self._log_dir = Path(log_dir)
        self._aux_log_files = list(aux_log_files)
        self._max_bytes = max_bytes
        self._keep_bytes = keep_bytes
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def sweep(self, retention_days: int) -> SweepSummary:
        """Run one retention pass. Safe to repeat; a second pass finds nothing to do."""
        if retention_days < 0:
            raise ValueError("retention_days cannot be negative")

        summary = SweepSummary()
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        cutoff = now - timedelta(days=retention_days)

        for partition in list_partitions(self._log_dir):
            if partition.end > cutoff:
                continue
            try:
                size = partition.path.stat().st_size
                partition.path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("retention_partition_delete_failed", partition=partition.name, error=str(e))
                continue
            summary.removed_partitions += 1
            summary.bytes_freed += size
            summary.removed.append(partition.name)
            logger.info("retention_partition_removed", partition=partition.name, bytes=size)

        for name in self._aux_log_files:
            trimmed = self._truncate_tail(self._log_dir / name)
            if trimmed:
                summary.truncated_logs += 1
                summary.log_bytes_trimmed += trimmed

        logger.info(
            "retention_sweep_complete",
            retention_days=retention_days,
            removed_partitions=summary.removed_partitions,
            bytes_freed=summary.bytes_freed,
            truncated_logs=summary.truncated_logs,
        )
        return summary

    def _truncate_tail(self, path: Path) -> int:
        """Keep the last ``keep_bytes`` of a log above ``max_bytes``. Returns bytes dropped."""
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            return 0
        if size <= self._max_bytes:
            return 0

        try:
            with open(path, "rb") as f:
                f.seek(-self._keep_bytes, os.SEEK_END)
                tail = f.read()
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}-")
            try:
                with os.fdopen(fd, "wb") as out:
                    out.write(tail)
                os.replace(tmp_path, path)
            except OSError:
                os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.warning("retention_log_truncate_failed", log=path.name, error=str(e))
            return 0

        trimmed = size - len(tail)
        logger.info("retention_log_truncated", log=path.name, bytes_trimmed=trimmed, kept=len(tail))
        return trimmed
