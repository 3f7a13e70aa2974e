"""Tests for the HostMetrics facade."""

from datetime import datetime, timedelta

import pytest

from conftest import FakeMetricsSource, FixedClock, cpu_entry, make_sample, utc
from hostmetrics.collectors.source import NetworkCounters
from hostmetrics.errors import StorageWriteFailure
from hostmetrics.models import PressureLevel
from hostmetrics.service import HealthVerdict, HostMetrics


@pytest.fixture
def clock():
    return FixedClock(utc(2026, 3, 10, 12, 0))


@pytest.fixture
def hm(config, clock):
    return HostMetrics(config, source=FakeMetricsSource(), clock=clock)


class TestCollectOnce:
    def test_appends_and_saves_state(self, hm, config):
        sample = hm.collect_once()
        assert sample.timestamp == utc(2026, 3, 10, 12, 0)
        assert (config.log_dir / "2026-03.csv").exists()
        assert hm.state_store.load().cumulative_in_bytes == 10 * 1024 * 1024
        assert hm.query_aggregate("cpu", "count") == 1

    def test_first_cycle_rates_are_zero(self, hm):
        sample = hm.collect_once()
        assert sample.network.rate_in_kbs == 0
        assert sample.network.rate_out_kbs == 0

    def test_second_cycle_derives_rate(self, hm, clock):
        hm.collect_once()
        clock.now += timedelta(minutes=5)
        hm.source.network = NetworkCounters(
            cumulative_in_bytes=10 * 1024 * 1024 + 307200,
            cumulative_out_bytes=5 * 1024 * 1024,
        )
        sample = hm.collect_once()
        assert sample.network.rate_in_kbs == 1.0
        assert hm.query_aggregate("cpu", "count") == 2

    def test_storage_failure_leaves_state_untouched(self, hm, monkeypatch):
        def fail(sample):
            raise StorageWriteFailure("2026-03.csv", "disk full")

        monkeypatch.setattr(hm.recorder, "append", fail)
        with pytest.raises(StorageWriteFailure):
            hm.collect_once()
        assert hm.state_store.load() is None

    def test_degraded_cycle_still_records(self, config, clock):
        source = FakeMetricsSource(memory=RuntimeError("boom"))
        hm = HostMetrics(config, source=source, clock=clock)
        sample = hm.collect_once()
        assert sample.memory.used_mb == 0
        assert hm.last_cycle.unavailable == ["memory"]
        assert hm.query_aggregate("cpu", "count") == 1


class TestQueries:
    def test_summary_for_today(self, hm):
        hm.recorder.append(make_sample(utc(2026, 3, 9, 23, 0), cpu=90.0))
        hm.recorder.append(make_sample(utc(2026, 3, 10, 8, 0), cpu=10.0))
        hm.recorder.append(make_sample(utc(2026, 3, 10, 9, 0), cpu=30.0))
        summary = hm.query_summary("today", ["cpu"])
        assert summary["cpu"].count == 2
        assert summary["cpu"].avg == 20.0

    def test_summary_empty_log(self, hm):
        assert hm.query_summary("week", ["cpu"])["cpu"].count == 0

    def test_trend(self, hm):
        for minute, cpu in ((5, 10.0), (40, 30.0)):
            hm.recorder.append(make_sample(utc(2026, 3, 10, 10, minute), cpu=cpu))
        [point] = hm.query_trend("cpu", "hourly")
        assert point.average == 20.0

    def test_top_offenders_by_hours(self, hm):
        hm.recorder.append(make_sample(utc(2026, 3, 8, 12, 0), top_cpu=[cpu_entry("old", 99.0)]))
        hm.recorder.append(make_sample(utc(2026, 3, 10, 11, 0), top_cpu=[cpu_entry("new", 5.0)]))
        stats = hm.query_top_offenders("cpu", hours=24)
        assert [s.command_name for s in stats] == ["new"]

    def test_delta_against_latest_sample(self, hm, clock):
        clock.now = utc(2026, 3, 10, 10, 40)
        hm.recorder.append(make_sample(utc(2026, 3, 10, 10, 0), used_mb=1000.0))
        hm.recorder.append(make_sample(utc(2026, 3, 10, 10, 30), used_mb=1600.0))
        result = hm.query_delta(minutes=30, field="memory")
        assert result.target_time == utc(2026, 3, 10, 10, 10)
        assert result.baseline_value == 1000.0
        assert result.current_value == 1600.0
        assert result.change == 600.0

    def test_delta_reaches_previous_partition(self, hm):
        hm.recorder.append(make_sample(utc(2026, 2, 28, 23, 50), used_mb=500.0))
        hm.recorder.append(make_sample(utc(2026, 3, 1, 0, 30), used_mb=700.0))
        result = hm.query_delta(target_time=utc(2026, 3, 1, 0, 10), field="memory", current=900.0)
        assert result.baseline.timestamp == utc(2026, 2, 28, 23, 50)
        assert result.change == 400.0

    def test_delta_before_all_data(self, hm):
        hm.recorder.append(make_sample(utc(2026, 3, 10, 11, 50)))
        result = hm.query_delta(minutes=30)
        assert not result.found
        assert result.change is None

    def test_delta_accepts_naive_target(self, hm):
        hm.recorder.append(make_sample(utc(2026, 3, 10, 10, 0), used_mb=1000.0))
        result = hm.query_delta(target_time=datetime(2026, 3, 10, 10, 5), current=1200.0)
        assert result.target_time == utc(2026, 3, 10, 10, 5)
        assert result.change == 200.0

    def test_recent_spans_partitions(self, hm):
        hm.recorder.append(make_sample(utc(2026, 2, 27)))
        hm.recorder.append(make_sample(utc(2026, 2, 28)))
        hm.recorder.append(make_sample(utc(2026, 3, 1)))
        assert [s.timestamp for s in hm.query_recent(2)] == [utc(2026, 2, 28), utc(2026, 3, 1)]
        assert len(hm.query_recent(10)) == 3
        assert hm.query_recent(0) == []

    def test_partitions_listing(self, hm):
        hm.recorder.append(make_sample(utc(2026, 2, 27)))
        hm.recorder.append(make_sample(utc(2026, 3, 1)))
        hm.recorder.append(make_sample(utc(2026, 3, 2)))
        infos = hm.partitions()
        assert [(i.name, i.samples) for i in infos] == [("2026-02.csv", 1), ("2026-03.csv", 2)]
        assert all(i.size_bytes > 0 for i in infos)


class TestSweepRetention:
    def test_uses_configured_window(self, hm):
        hm.recorder.append(make_sample(utc(2025, 12, 1)))
        hm.recorder.append(make_sample(utc(2026, 3, 1)))
        summary = hm.sweep_retention()
        assert summary.removed == ["2025-12.csv"]
        assert hm.sweep_retention().removed_partitions == 0

    def test_explicit_window(self, hm):
        hm.recorder.append(make_sample(utc(2026, 2, 1)))
        assert hm.sweep_retention(7).removed_partitions == 1


class TestLiveReadings:
    def test_snapshot_records_nothing(self, hm, config):
        sample = hm.current_snapshot()
        assert sample.memory.used_mb == 8.0
        assert list(config.log_dir.glob("*.csv")) == []
        assert hm.state_store.load() is None

    def test_snapshot_uses_stored_network_state(self, hm, clock):
        hm.collect_once()
        clock.now += timedelta(minutes=5)
        hm.source.network = NetworkCounters(
            cumulative_in_bytes=10 * 1024 * 1024 + 307200,
            cumulative_out_bytes=5 * 1024 * 1024,
        )
        assert hm.current_snapshot().network.rate_in_kbs == 1.0
        assert hm.state_store.load().timestamp == utc(2026, 3, 10, 12, 0)
        assert hm.query_aggregate("cpu", "count") == 1

    def test_snapshot_top_n(self, hm):
        assert len(hm.current_snapshot(top_n=2).top_by_memory) == 2

    def test_health_swapping(self, hm):
        report = hm.health()
        assert report.verdict == HealthVerdict.SWAPPING
        assert [e.rss_mb for e in report.top_memory] == [500.0, 200.0, 10.0]

    def test_health_healthy_without_swap(self, config, clock):
        source = FakeMetricsSource()
        source.memory = source.memory.model_copy(update={"swap_used_bytes": 0})
        report = HostMetrics(config, source=source, clock=clock).health()
        assert report.verdict == HealthVerdict.HEALTHY

    def test_health_under_pressure(self, config, clock):
        source = FakeMetricsSource()
        source.memory = source.memory.model_copy(update={"pressure_level": PressureLevel.WARNING})
        report = HostMetrics(config, source=source, clock=clock).health(top=1)
        assert report.verdict == HealthVerdict.PRESSURE
        assert len(report.top_memory) == 1
