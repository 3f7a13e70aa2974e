"""Monthly partitions: naming, discovery and streaming reads.

Reads never materialize a whole file; samples are decoded and yielded one
row at a time so multi-year logs can be scanned in constant memory.
"""

from __future__ import annotations

import csv
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional

from ..errors import MalformedRecord, SchemaMismatch
from ..models import Sample
from ..utils.logging import get_logger
from .schema import COLUMNS, ScanStats, check_header, decode_row, parse_version, split_legacy_line

logger = get_logger("storage.partitions")

PARTITION_RE = re.compile(r"^(\d{4})-(\d{2})\.csv$")


def month_start(year: int, month: int) -> datetime:
    return datetime(year, month, 1, tzinfo=timezone.utc)


def next_month(year: int, month: int) -> tuple[int, int]:
    return (year + 1, 1) if month == 12 else (year, month + 1)


def partition_name(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}.csv"


def partition_path(log_dir: str | Path, year: int, month: int) -> Path:
    return Path(log_dir) / partition_name(year, month)


@dataclass(frozen=True, order=True)
class Partition:
    year: int
    month: int
    path: Path = field(compare=False)

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def key(self) -> tuple[int, int]:
        return (self.year, self.month)

    @property
    def start(self) -> datetime:
        return month_start(self.year, self.month)

    @property
    def end(self) -> datetime:
        """First instant after the partition's month (exclusive bound)."""
        return month_start(*next_month(self.year, self.month))

    def overlaps(self, start: Optional[datetime], end: Optional[datetime]) -> bool:
        if start is not None and self.end <= start:
            return False
        if end is not None and self.start >= end:
            return False
        return True


def list_partitions(log_dir: str | Path) -> list[Partition]:
    """All partition files in ``log_dir``, oldest month first."""
    directory = Path(log_dir)
    if not directory.is_dir():
        return []

    partitions = []
    for path in directory.iterdir():
        match = PARTITION_RE.match(path.name)
        if match is None or not path.is_file():
            continue
        year, month = int(match.group(1)), int(match.group(2))
        if 1 <= month <= 12:
            partitions.append(Partition(year=year, month=month, path=path))
    return sorted(partitions)


def _versioned_rows(reader) -> Iterator[tuple[int, list[str]]]:
    for row in reader:
        yield reader.line_num, row


def _unversioned_rows(f) -> Iterator[tuple[int, list[str]]]:
    # One physical line per row: neither writer puts raw newlines in a row.
    for line_num, line in enumerate(f, start=2):
        row = next(csv.reader([line]), [])
        if len(row) > len(COLUMNS):
            row = split_legacy_line(line) or row
        yield line_num, row


def iter_partition(
    path: str | Path,
    stats: Optional[ScanStats] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Iterator[Sample]:
    """Yield the samples of one partition with ``start <= timestamp < end``.

    Raises SchemaMismatch if the file's version or header is unknown.
    Malformed rows (including a partially written last row) are skipped.
    """
    stats = stats if stats is not None else ScanStats()
    with open(path, newline="", encoding="utf-8") as f:
        first = f.readline()
        if not first:
            return
        version = parse_version(first)
        if version is None:
            check_header(1, next(csv.reader([first])))
            rows = _unversioned_rows(f)
        else:
            reader = csv.reader(f)
            header = next(reader, None)
            if header is None:
                return
            check_header(version, header)
            rows = _versioned_rows(reader)
        stats.partitions_read += 1

        while True:
            try:
                line_num, row = next(rows)
            except StopIteration:
                break
            except csv.Error as e:
                stats.rows_skipped += 1
                logger.warning("malformed_row_skipped", path=str(path), error=str(e))
                break
            if not row:
                continue
            stats.rows_read += 1
            try:
                sample = decode_row(row, stats)
            except MalformedRecord as e:
                stats.rows_skipped += 1
                logger.warning("malformed_row_skipped", path=str(path), line=line_num, error=str(e))
                continue
            if start is not None and sample.timestamp < start:
                continue
            if end is not None and sample.timestamp >= end:
                continue
            yield sample


def iter_samples(
    source: str | Path | Iterable[Partition],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    stats: Optional[ScanStats] = None,
) -> Iterator[Sample]:
    """Stream samples across partitions in month order.

    ``source`` is a log directory or an explicit sequence of partitions.
    Partitions outside ``[start, end)`` are not opened.
    """
    stats = stats if stats is not None else ScanStats()
    partitions = list_partitions(source) if isinstance(source, (str, Path)) else list(source)

    for partition in partitions:
        if not partition.overlaps(start, end):
            continue
        try:
            yield from iter_partition(partition.path, stats, start, end)
        except SchemaMismatch as e:
            stats.partitions_skipped += 1
            logger.warning("partition_schema_mismatch", partition=partition.name, error=str(e))
        except FileNotFoundError:
            # removed by a concurrent retention sweep
            stats.partitions_skipped += 1


def count_rows(path: str | Path) -> int:
    """Number of data rows in a partition, not counting version and header lines."""
    count = 0
    with open(path, "rb") as f:
        for line in f:
            if line.startswith(b"#") or line.startswith(b"timestamp,"):
                continue
            if line.strip():
                count += 1
    return count
