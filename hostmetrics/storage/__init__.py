"""Append-only, monthly-partitioned sample log."""

from .partitions import Partition, iter_samples, list_partitions, partition_path
from .recorder import Recorder
from .schema import SCHEMA_VERSION, ScanStats

__all__ = [
    "Partition",
    "Recorder",
    "SCHEMA_VERSION",
    "ScanStats",
    "iter_samples",
    "list_partitions",
    "partition_path",
]
