"""Tests for process ranking."""

import pytest

from hostmetrics.collectors.attributor import Dimension, rank
from hostmetrics.collectors.source import ProcessInfo


def _proc(pid, cmd, cpu=0.0, rss_kb=0, mem_pct=0.0, files=0):
    return ProcessInfo(pid=pid, cpu_pct=cpu, rss_kb=rss_kb, mem_pct=mem_pct, open_file_count=files, command=cmd)


class TestRankCpu:
    def test_descending_and_truncated(self):
        procs = [_proc(i, f"p{i}", cpu=float(i)) for i in range(15)]
        ranked = rank(procs, Dimension.CPU, 10)
        assert len(ranked) == 10
        assert [e.pid for e in ranked] == list(range(14, 4, -1))

    def test_ties_keep_input_order(self):
        procs = [_proc(3, "c", cpu=5.0), _proc(1, "a", cpu=5.0), _proc(2, "b", cpu=5.0)]
        assert [e.pid for e in rank(procs, Dimension.CPU, 3)] == [3, 1, 2]

    def test_entry_fields(self):
        entry = rank([_proc(7, "python3", cpu=12.5, rss_kb=2048)], Dimension.CPU)[0]
        assert entry.pid == 7
        assert entry.cpu_pct == 12.5
        assert entry.rss_mb == 2.0
        assert entry.command_name == "python3"
        assert entry.mem_pct is None


class TestRankMemory:
    def test_orders_by_rss(self):
        procs = [_proc(1, "small", rss_kb=100), _proc(2, "big", rss_kb=900_000, mem_pct=9.5), _proc(3, "mid", rss_kb=5000)]
        ranked = rank(procs, Dimension.MEMORY, 2)
        assert [e.command_name for e in ranked] == ["big", "mid"]
        assert ranked[0].mem_pct == 9.5
        assert ranked[0].cpu_pct is None


class TestRankOpenFiles:
    def test_counts_are_summed_per_command(self):
        procs = [
            _proc(1, "postgres", files=10),
            _proc(2, "nginx", files=30),
            _proc(3, "postgres", files=25),
        ]
        ranked = rank(procs, Dimension.OPEN_FILES)
        assert [(e.command_name, e.open_file_count) for e in ranked] == [("postgres", 35), ("nginx", 30)]
        assert ranked[0].pid is None

    def test_ties_keep_first_seen_command(self):
        procs = [_proc(1, "b", files=4), _proc(2, "a", files=4)]
        assert [e.command_name for e in rank(procs, Dimension.OPEN_FILES)] == ["b", "a"]


class TestRankEdgeCases:
    def test_empty_input(self):
        assert rank([], Dimension.CPU, 10) == []

    def test_zero_k(self):
        assert rank([_proc(1, "a", cpu=1.0)], Dimension.MEMORY, 0) == []

    def test_negative_k_rejected(self):
        with pytest.raises(ValueError):
            rank([_proc(1, "a")], Dimension.CPU, -1)

    def test_fewer_than_k(self):
        assert len(rank([_proc(1, "a"), _proc(2, "b")], Dimension.CPU, 10)) == 2


class TestDimensionParse:
    @pytest.mark.parametrize("text,expected", [
        ("cpu", Dimension.CPU),
        ("MEM", Dimension.MEMORY),
        ("memory", Dimension.MEMORY),
        ("files", Dimension.OPEN_FILES),
        ("disk", Dimension.OPEN_FILES),
    ])
    def test_aliases(self, text, expected):
        assert Dimension.parse(text) == expected

    def test_unknown(self):
        with pytest.raises(ValueError):
            Dimension.parse("gpu")
