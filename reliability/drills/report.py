"""Writing drill reports and printing the console summary."""

import json
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import TextIO

import structlog

from .models import DrillReport

logger = structlog.get_logger()


def iso_now(now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    return now.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def file_stamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp safe for file names (``:`` and ``.`` become ``-``)."""
    return iso_now(now).replace(":", "-").replace(".", "-")


def report_path(output_dir: Path, prefix: str, now: datetime | None = None) -> Path:
    return Path(output_dir) / f"{prefix}-{file_stamp(now)}.json"


def write_json(path: Path, payload: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
    return path


def write_report(report: DrillReport, output_dir: Path, now: datetime | None = None) -> Path:
    """Write *report* to ``load-drill-<profile>-<stamp>.json`` under *output_dir*."""
    path = report_path(output_dir, f"load-drill-{report.profile}", now)
    write_json(path, report.model_dump(mode="json"))
    logger.info("load_drill_report_written", path=str(path), passed=report.passed)
    return path


def print_summary(report: DrillReport, path: Path, out: TextIO | None = None) -> None:
    out = out or sys.stdout
    print(f"Load drill completed. Overall pass: {'YES' if report.passed else 'NO'}", file=out)
    print(f"Report: {path}", file=out)
    for scenario in report.scenarios:
        if scenario.skipped:
            print(f"- {scenario.name}: SKIPPED ({scenario.reason})", file=out)
            continue
        status = "PASS" if scenario.passed else "FAIL"
        summary = scenario.summary
        p95 = round(summary.latency.p95_ms) if summary else 0
        statuses = json.dumps(summary.statuses if summary else {}, separators=(",", ":"))
        print(f"- {scenario.name}: {status} (p95={p95}ms, statuses={statuses})", file=out)
