"""hostmetrics command line: collect one sample, report on the log, run retention.

The scheduler runs ``hostmetrics collect`` every five minutes and
``hostmetrics cleanup`` weekly. Reports are plain text on stdout; ``health``
and the first half of ``offenders`` read the host live without recording.
"""

import argparse
import sys
from typing import Optional, Sequence

from .config import get_config
from .errors import HostMetricsError
from .service import DEFAULT_SUMMARY_FIELDS, HealthVerdict, HostMetrics
from .utils.logging import get_logger, setup_logging

logger = get_logger("cli")


def _fmt_mb(mb: float) -> str:
    if mb >= 1024:
        return f"{mb / 1024:.1f} GB"
    return f"{mb:.0f} MB"


def cmd_collect(hm: HostMetrics, args) -> int:
    sample = hm.collect_once()
    if args.json:
        print(sample.model_dump_json())
    else:
        print(
            f"{sample.timestamp.isoformat()} cpu={sample.cpu.total_pct:.1f}% "
            f"mem={_fmt_mb(sample.memory.used_mb)} disk={sample.disk.usage_pct:.1f}% "
            f"net_in={sample.network.rate_in_kbs:.1f}KB/s net_out={sample.network.rate_out_kbs:.1f}KB/s"
        )
    if hm.last_cycle is not None and hm.last_cycle.unavailable:
        print(f"unavailable: {', '.join(hm.last_cycle.unavailable)}", file=sys.stderr)
    return 0


def cmd_summary(hm: HostMetrics, args) -> int:
    stats = hm.query_summary(args.period, DEFAULT_SUMMARY_FIELDS)
    samples = next(iter(stats.values())).count if stats else 0
    print(f"Summary ({args.period}): {samples} samples")
    if not samples:
        return 0
    for name, s in stats.items():
        print(f"  {name:<8} avg={s.avg:10.1f}  min={s.min:10.1f}  max={s.max:10.1f}")
    if hm.last_scan.rows_skipped:
        print(f"  ({hm.last_scan.rows_skipped} malformed rows skipped)")
    return 0


def cmd_trends(hm: HostMetrics, args) -> int:
    points = hm.query_trend(args.metric, args.interval)
    print(f"{args.metric} trend ({args.interval})")
    if not points:
        print("  no data")
        return 0
    peak = max(p.average for p in points) or 1.0
    for p in points:
        label = p.bucket_start.strftime("%Y-%m-%d %H:00" if args.interval == "hourly" else "%Y-%m-%d")
        bar = "#" * max(0, int(round(p.average / peak * 40)))
        print(f"  {label}  {p.average:10.1f}  {bar}")
    return 0


def cmd_offenders(hm: HostMetrics, args) -> int:
    limit = hm.config.offender_limit if args.limit is None else args.limit
    if not args.history_only:
        now = hm.current_snapshot(top_n=limit)
        print(f"Current memory usage (pressure: {now.memory.pressure_level.value})")
        for entry in now.top_by_memory:
            print(f"  {entry.command_name[:40]:<40} {_fmt_mb(entry.rss_mb or 0.0):>10}")
        total = sum(entry.rss_mb or 0.0 for entry in now.top_by_memory)
        print(f"  Total (top {len(now.top_by_memory)}): {_fmt_mb(total)}")
        print()

    stats = hm.query_top_offenders(args.by, hours=args.hours, limit=limit)
    print(f"Top offenders by {args.by} (last {args.hours:g}h)")
    if not stats:
        print("  no data")
        return 0
    for s in stats:
        print(f"  {s.command_name[:40]:<40} total={s.total:12.1f}  avg={s.average:10.1f}  samples={s.count}")
    return 0


HEALTH_MESSAGES = {
    HealthVerdict.HEALTHY: "System is healthy",
    HealthVerdict.SWAPPING: "System healthy, but using swap",
    HealthVerdict.PRESSURE: "Memory pressure detected",
}


def cmd_health(hm: HostMetrics, args) -> int:
    report = hm.health()
    memory = report.sample.memory
    print(f"Memory:  {memory.pressure_level.value} ({_fmt_mb(memory.used_mb)} of {_fmt_mb(memory.total_mb)} used)")
    print(f"Swap:    {_fmt_mb(memory.swap_used_mb)} used")
    print("Top memory consumers:")
    for entry in report.top_memory:
        print(f"  {entry.command_name[:35]:<35} {_fmt_mb(entry.rss_mb or 0.0)}")
    print(HEALTH_MESSAGES[report.verdict])
    return 0


def cmd_compare(hm: HostMetrics, args) -> int:
    result = hm.query_delta(minutes=args.minutes, field=args.metric)
    if not result.found or result.change is None:
        print("No historical sample found for comparison.")
        return 0
    print(f"{args.metric} now={result.current_value:.1f} then={result.baseline_value:.1f} change={result.change:+.1f}")
    print(f"  baseline sample: {result.baseline.timestamp.isoformat()}")
    return 0


def cmd_recent(hm: HostMetrics, args) -> int:
    print(f"{'timestamp':<22}{'cpu%':>8}{'mem_mb':>10}{'disk%':>8}")
    for s in hm.query_recent(args.count):
        print(f"{s.timestamp.isoformat():<22}{s.cpu.total_pct:>8.1f}{s.memory.used_mb:>10.0f}{s.disk.usage_pct:>8.1f}")
    return 0


def cmd_files(hm: HostMetrics, args) -> int:
    infos = hm.partitions()
    if not infos:
        print(f"No log files in {hm.log_dir}")
        return 0
    for info in infos:
        print(f"  {info.name}  {info.size_bytes:>10} bytes  {info.samples:>7} samples")
    return 0


def cmd_cleanup(hm: HostMetrics, args) -> int:
    summary = hm.sweep_retention(args.days)
    print(
        f"Removed {summary.removed_partitions} partition(s), freed {summary.bytes_freed} bytes; "
        f"truncated {summary.truncated_logs} log(s)"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hostmetrics", description="Host metrics sampler and log analyzer")
    parser.add_argument("--log-dir", default=None, help="Directory holding the monthly logs")
    parser.add_argument("--debug", action="store_true", help="Human-readable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("collect", help="Take one sample and append it to the log")
    p.add_argument("--json", action="store_true", help="Print the sample as JSON")
    p.set_defaults(func=cmd_collect)

    p = sub.add_parser("summary", help="Averages and extremes over a period")
    p.add_argument("period", nargs="?", default="today", choices=["today", "yesterday", "week", "month", "all"])
    p.set_defaults(func=cmd_summary)

    p = sub.add_parser("trends", help="Hourly or daily averages of one metric")
    p.add_argument("metric", nargs="?", default="cpu")
    p.add_argument("--interval", default="hourly", choices=["hourly", "daily"])
    p.set_defaults(func=cmd_trends)

    p = sub.add_parser("offenders", help="Commands with the highest attributed usage")
    p.add_argument("--hours", type=float, default=24.0)
    p.add_argument("--by", default="cpu", choices=["cpu", "memory", "files"])
    p.add_argument("--limit", type=int, default=None)
    p.add_argument("--history-only", action="store_true", help="Skip the live memory snapshot")
    p.set_defaults(func=cmd_offenders)

    p = sub.add_parser("compare", help="Compare a metric against N minutes ago")
    p.add_argument("minutes", nargs="?", type=float, default=30.0)
    p.add_argument("--metric", default="memory")
    p.set_defaults(func=cmd_compare)

    p = sub.add_parser("recent", help="Show the last N samples")
    p.add_argument("count", nargs="?", type=int, default=10)
    p.set_defaults(func=cmd_recent)

    p = sub.add_parser("health", help="Live memory pressure, swap and top consumers")
    p.set_defaults(func=cmd_health)

    p = sub.add_parser("files", help="List log partitions")
    p.set_defaults(func=cmd_files)

    p = sub.add_parser("cleanup", help="Apply retention to partitions and operational logs")
    p.add_argument("--days", type=int, default=None)
    p.set_defaults(func=cmd_cleanup)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.log_dir:
        overrides["log_dir"] = args.log_dir
    if args.debug:
        overrides["debug"] = True
    config = get_config(**overrides)
    setup_logging(
        debug=config.debug,
        log_dir=str(config.log_dir),
        log_max_bytes=config.log_max_bytes,
        log_backup_count=config.log_backup_count,
    )

    hm = HostMetrics(config)
    try:
        return args.func(hm, args)
    except HostMetricsError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"hostmetrics {args.command}: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"hostmetrics {args.command}: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
