"""Partition row schema: column contract, versioning and the row codec.

A partition starts with a version line and a header row. Changing column
order, count or the embedded record shape is a breaking change and needs a
new SCHEMA_VERSION. Files without a version line are read as version 1,
which has the same columns but may hold rows in the shell monitor's
unescaped layout (see ``split_legacy_line``).
"""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import ValidationError

from ..errors import MalformedRecord, SchemaMismatch
from ..models import (
    CpuStats,
    DiskStats,
    MemoryStats,
    NetworkStats,
    PressureLevel,
    ProcessEntry,
    Sample,
    TemperatureStats,
)

SCHEMA_VERSION = 2
VERSION_PREFIX = "#schema_version="
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

COLUMNS = (
    "timestamp",
    "total_cpu",
    "user_cpu",
    "sys_cpu",
    "idle_cpu",
    "cpu_temp",
    "gpu_temp",
    "total_mem_mb",
    "used_mem_mb",
    "free_mem_mb",
    "swap_used_mb",
    "swap_total_mb",
    "mem_pressure",
    "disk_read_kbs",
    "disk_write_kbs",
    "disk_tps",
    "disk_usage_pct",
    "net_in_mb",
    "net_out_mb",
    "net_rate_in_kbs",
    "net_rate_out_kbs",
    "top_cpu_procs",
    "top_mem_procs",
    "top_disk_procs",
)

KNOWN_SCHEMAS: dict[int, tuple[str, ...]] = {1: COLUMNS, 2: COLUMNS}


@dataclass
class ScanStats:
    """Counters for one streaming read over the log."""

    rows_read: int = 0
    rows_skipped: int = 0
    malformed_records: int = 0
    partitions_read: int = 0
    partitions_skipped: int = 0


def _csv_line(values) -> str:
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(values)
    return buf.getvalue()


def _num(value: float) -> str:
    return repr(round(float(value), 2))


def format_timestamp(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(text: str) -> datetime:
    try:
        return datetime.strptime(text, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)


def preamble() -> str:
    """Version line plus header row written once when a partition is created."""
    return f"{VERSION_PREFIX}{SCHEMA_VERSION}\n" + _csv_line(COLUMNS)


def parse_version(first_line: str) -> int | None:
    """Return the version from a version line, or None if the line is not one."""
    line = first_line.strip()
    if not line.startswith(VERSION_PREFIX):
        return None
    try:
        return int(line[len(VERSION_PREFIX):])
    except ValueError:
        raise SchemaMismatch(f"unreadable schema version line: {line!r}") from None


def check_header(version: int, header: list[str]) -> None:
    expected = KNOWN_SCHEMAS.get(version)
    if expected is None:
        raise SchemaMismatch(f"unknown schema version {version}")
    if tuple(header) != expected:
        raise SchemaMismatch(f"header does not match schema version {version}")


def encode_entries(entries: list[ProcessEntry]) -> str:
    return json.dumps([e.to_record() for e in entries], separators=(",", ":"), ensure_ascii=False)


def encode_row(sample: Sample) -> str:
    """Render a Sample as one complete CSV line, ready for a single write."""
    return _csv_line([
        format_timestamp(sample.timestamp),
        _num(sample.cpu.total_pct),
        _num(sample.cpu.user_pct),
        _num(sample.cpu.system_pct),
        _num(sample.cpu.idle_pct),
        _num(sample.temperature.cpu_c),
        _num(sample.temperature.gpu_c),
        _num(sample.memory.total_mb),
        _num(sample.memory.used_mb),
        _num(sample.memory.free_mb),
        _num(sample.memory.swap_used_mb),
        _num(sample.memory.swap_total_mb),
        sample.memory.pressure_level.value,
        _num(sample.disk.read_kbs),
        _num(sample.disk.write_kbs),
        _num(sample.disk.transfers_per_sec),
        _num(sample.disk.usage_pct),
        _num(sample.network.cumulative_in_mb),
        _num(sample.network.cumulative_out_mb),
        _num(sample.network.rate_in_kbs),
        _num(sample.network.rate_out_kbs),
        encode_entries(sample.top_by_cpu),
        encode_entries(sample.top_by_memory),
        encode_entries(sample.top_by_open_files),
    ])


LEGACY_SCALAR_COLUMNS = len(COLUMNS) - 3
_json_decoder = json.JSONDecoder()


def split_legacy_line(line: str) -> list[str] | None:
    """Split a row written by the original shell monitor, or None if it is not one.

    That writer wrapped each process array in double quotes without
    escaping the quotes inside, so csv splits the arrays apart. The scalar
    columns never contain commas; each array is then read with a JSON
    decoder so commas and escaped quotes in command names survive.
    """
    parts = line.rstrip("\r\n").split(",", LEGACY_SCALAR_COLUMNS)
    if len(parts) != LEGACY_SCALAR_COLUMNS + 1:
        return None
    fields, rest = parts[:LEGACY_SCALAR_COLUMNS], parts[-1]

    pos = 0
    for i in range(3):
        if i:
            if rest[pos:pos + 1] != ",":
                return None
            pos += 1
        if rest[pos:pos + 1] != '"':
            return None
        try:
            _, end = _json_decoder.raw_decode(rest, pos + 1)
        except json.JSONDecodeError:
            return None
        if rest[end:end + 1] != '"':
            return None
        fields.append(rest[pos + 1:end])
        pos = end + 1
    if rest[pos:].strip():
        return None
    return fields


def decode_entries(text: str, stats: ScanStats | None = None) -> list[ProcessEntry]:
    """Parse one embedded array, dropping whatever part of it is malformed.

    An unparseable array yields no entries; an invalid item is dropped from
    an otherwise valid array. Each drop counts as one malformed record.
    """
    if not text.strip():
        return []
    try:
        items = json.loads(text)
    except json.JSONDecodeError:
        items = None
    if not isinstance(items, list):
        if stats is not None:
            stats.malformed_records += 1
        return []

    entries = []
    for item in items:
        try:
            entries.append(ProcessEntry.model_validate(item))
        except ValidationError:
            if stats is not None:
                stats.malformed_records += 1
    return entries


def _pressure(text: str) -> PressureLevel:
    try:
        return PressureLevel(text)
    except ValueError:
        return PressureLevel.parse(text)


def decode_row(row: list[str], stats: ScanStats | None = None) -> Sample:
    """Build a Sample from one CSV row; raises MalformedRecord for bad scalars."""
    if len(row) != len(COLUMNS):
        raise MalformedRecord(f"expected {len(COLUMNS)} columns, got {len(row)}")
    values = dict(zip(COLUMNS, row))

    def num(column: str) -> float:
        text = values[column]
        return float(text) if text else 0.0

    try:
        return Sample(
            timestamp=parse_timestamp(values["timestamp"]),
            cpu=CpuStats(
                total_pct=num("total_cpu"),
                user_pct=num("user_cpu"),
                system_pct=num("sys_cpu"),
                idle_pct=num("idle_cpu"),
            ),
            temperature=TemperatureStats(cpu_c=num("cpu_temp"), gpu_c=num("gpu_temp")),
            memory=MemoryStats(
                total_mb=num("total_mem_mb"),
                used_mb=num("used_mem_mb"),
                free_mb=num("free_mem_mb"),
                swap_used_mb=num("swap_used_mb"),
                swap_total_mb=num("swap_total_mb"),
                pressure_level=_pressure(values["mem_pressure"]),
            ),
            disk=DiskStats(
                read_kbs=num("disk_read_kbs"),
                write_kbs=num("disk_write_kbs"),
                transfers_per_sec=num("disk_tps"),
                usage_pct=num("disk_usage_pct"),
            ),
            network=NetworkStats(
                cumulative_in_mb=num("net_in_mb"),
                cumulative_out_mb=num("net_out_mb"),
                rate_in_kbs=num("net_rate_in_kbs"),
                rate_out_kbs=num("net_rate_out_kbs"),
            ),
            top_by_cpu=decode_entries(values["top_cpu_procs"], stats),
            top_by_memory=decode_entries(values["top_mem_procs"], stats),
            top_by_open_files=decode_entries(values["top_disk_procs"], stats),
        )
    except ValueError as e:
        # pydantic's ValidationError is a ValueError too
        raise MalformedRecord(str(e)) from e
