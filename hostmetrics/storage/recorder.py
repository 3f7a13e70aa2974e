"""Recorder: appends samples to their monthly partition.

Each row is rendered fully in memory and written with one ``os.write`` on
an ``O_APPEND`` descriptor, so rows from concurrent writers never
interleave. Row order across processes is not guaranteed.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from ..errors import StorageWriteFailure
from ..models import Sample
from ..utils.logging import get_logger
from .partitions import partition_path
from .schema import encode_row, preamble

logger = get_logger("storage.recorder")

FILE_MODE = 0o644


class Recorder:
    def __init__(self, log_dir: str | Path):
        self._log_dir = Path(log_dir)

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def partition_for(self, sample: Sample) -> Path:
        return partition_path(self._log_dir, *sample.partition_key)

    def _create(self, path: Path) -> bool:
        """Create the partition with its preamble. False if it already exists.

        The preamble is written to a temp file that is hard-linked into
        place, so no writer ever sees a partition without its header.
        """
        if path.exists():
            return False
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}-")
        try:
            try:
                os.write(fd, preamble().encode("utf-8"))
                os.fchmod(fd, FILE_MODE)
            finally:
                os.close(fd)
            try:
                os.link(tmp_path, path)
            except FileExistsError:
                return False
        finally:
            os.unlink(tmp_path)
        logger.info("partition_created", partition=path.name)
        return True

    @staticmethod
    def _ends_mid_row(fd: int) -> bool:
        size = os.fstat(fd).st_size
        return size > 0 and os.pread(fd, 1, size - 1) != b"\n"

    def append(self, sample: Sample) -> Path:
        """Append one sample; returns the partition path written to.

        Raises StorageWriteFailure on any OS-level error. Nothing is retried.
        A fragment left by an earlier failed write is closed off with a
        newline first, so it stays one malformed line instead of swallowing
        this row.
        """
        path = self.partition_for(sample)
        data = encode_row(sample).encode("utf-8")
        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
            self._create(path)
            fd = os.open(path, os.O_RDWR | os.O_APPEND)
            try:
                if self._ends_mid_row(fd):
                    logger.warning("partial_row_terminated", partition=path.name)
                    data = b"\n" + data
                written = os.write(fd, data)
            finally:
                os.close(fd)
        except OSError as e:
            logger.error("sample_write_failed", partition=path.name, error=str(e))
            raise StorageWriteFailure(str(path), str(e)) from e

        if written != len(data):
            logger.error("sample_write_failed", partition=path.name, error="short write")
            raise StorageWriteFailure(str(path), f"short write: {written} of {len(data)} bytes")

        logger.debug("sample_recorded", partition=path.name, bytes=written)
        return path
