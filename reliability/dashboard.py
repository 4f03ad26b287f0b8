"""SLO dashboard built from the reports in the output directory.

Reads the newest load drill, synthetic probe and game-day reports and
renders pass-rate and latency trends as JSON and Markdown.

Usage:
    reliability-dashboard
    reliability-dashboard --max-reports=25 --output-dir=.output/reliability
"""

import json
import sys
from collections.abc import Sequence
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

from reliability.config import Settings
from reliability.drills.report import iso_now, write_json
from reliability.shared.flags import build_flag_parser, parse_flags, to_number
from reliability.shared.logging import setup_logging

logger = structlog.get_logger()

REPORT_FAMILIES = {
    "load_drills": "load-drill-",
    "probes": "synthetic-probes-",
    "game_days": "game-day-",
}
# Length of the file_stamp() suffix, e.g. 2026-01-31T12-00-00-000Z
STAMP_LENGTH = 24


class ScenarioTrend(BaseModel):
    name: str
    runs: int
    pass_rate: float
    avg_p95_ms: float
    max_p95_ms: float


class FamilyStats(BaseModel):
    reports: int = 0
    overall_pass_rate: float = 0.0


class Dashboard(BaseModel):
    generated_at: str
    max_reports: int
    load_drills: FamilyStats = Field(default_factory=FamilyStats)
    probes: FamilyStats = Field(default_factory=FamilyStats)
    game_days: FamilyStats = Field(default_factory=FamilyStats)
    scenarios: list[ScenarioTrend] = Field(default_factory=list)


def newest_reports(output_dir: Path, prefix: str, max_reports: int) -> list[dict]:
    """Parsed JSON of the newest *max_reports* files with *prefix*, oldest first.

    Files are ordered by their timestamp suffix so that load drill reports of
    different profiles interleave correctly. Unreadable files are skipped.
    """
    paths = sorted(
        (p for p in Path(output_dir).glob(f"{prefix}*.json") if p.is_file()),
        key=lambda p: (p.stem[-STAMP_LENGTH:], p.name),
    )
    paths = paths[-max_reports:] if max_reports > 0 else []

    reports = []
    for path in paths:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("dashboard_report_unreadable", path=str(path), error=str(exc))
            continue
        if isinstance(payload, dict):
            reports.append(payload)
    return reports


def _family_stats(reports: list[dict]) -> FamilyStats:
    if not reports:
        return FamilyStats()
    passed = sum(1 for report in reports if report.get("passed") is True)
    return FamilyStats(reports=len(reports), overall_pass_rate=passed / len(reports))


def scenario_trends(load_reports: list[dict]) -> list[ScenarioTrend]:
    rows: dict[str, dict] = {}
    for report in load_reports:
        for scenario in report.get("scenarios") or []:
            if scenario.get("skipped"):
                continue
            row = rows.setdefault(scenario.get("name", "unknown"), {"runs": 0, "passed": 0, "p95": []})
            row["runs"] += 1
            if (scenario.get("slo") or {}).get("passed") is True:
                row["passed"] += 1
            latency = (scenario.get("summary") or {}).get("latency") or {}
            row["p95"].append(float(latency.get("p95_ms") or 0))

    return [
        ScenarioTrend(
            name=name,
            runs=row["runs"],
            pass_rate=row["passed"] / row["runs"],
            avg_p95_ms=sum(row["p95"]) / len(row["p95"]),
            max_p95_ms=max(row["p95"]),
        )
        for name, row in sorted(rows.items())
    ]


def build_dashboard(output_dir: Path, max_reports: int = 10) -> Dashboard:
    families = {
        key: newest_reports(output_dir, prefix, max_reports)
        for key, prefix in REPORT_FAMILIES.items()
    }
    return Dashboard(
        generated_at=iso_now(),
        max_reports=max_reports,
        load_drills=_family_stats(families["load_drills"]),
        probes=_family_stats(families["probes"]),
        game_days=_family_stats(families["game_days"]),
        scenarios=scenario_trends(families["load_drills"]),
    )


def _pct(rate: float) -> str:
    return f"{rate * 100:.1f}%"


def render_markdown(dashboard: Dashboard) -> str:
    lines = [
        "# Reliability SLO Dashboard",
        "",
        f"Generated: {dashboard.generated_at}",
        "",
        "## Coverage",
        f"- Load drill reports analyzed: {dashboard.load_drills.reports} (max {dashboard.max_reports})",
        f"- Synthetic probe reports analyzed: {dashboard.probes.reports} (max {dashboard.max_reports})",
        f"- Game-day reports analyzed: {dashboard.game_days.reports} (max {dashboard.max_reports})",
        "",
        "## Aggregate Pass Rates",
        f"- Load drills: {_pct(dashboard.load_drills.overall_pass_rate)}",
        f"- Synthetic probes: {_pct(dashboard.probes.overall_pass_rate)}",
        f"- Game days: {_pct(dashboard.game_days.overall_pass_rate)}",
        "",
        "## Scenario Trends",
        "",
        "| Scenario | Runs | Pass Rate | Avg p95 (ms) | Max p95 (ms) |",
        "| --- | ---: | ---: | ---: | ---: |",
    ]
    if not dashboard.scenarios:
        lines.append("| _none_ | 0 | 0% | 0 | 0 |")
    for row in dashboard.scenarios:
        lines.append(
            f"| {row.name} | {row.runs} | {_pct(row.pass_rate)} "
            f"| {row.avg_p95_ms:.1f} | {row.max_p95_ms:.1f} |"
        )
    return "\n".join(lines) + "\n"


def write_dashboard(dashboard: Dashboard, output_dir: Path) -> tuple[Path, Path]:
    output_dir = Path(output_dir)
    json_path = write_json(output_dir / "slo-dashboard.json", dashboard.model_dump(mode="json"))
    markdown_path = output_dir / "slo-dashboard.md"
    markdown_path.write_text(render_markdown(dashboard), encoding="utf-8")
    logger.info("slo_dashboard_written", json_path=str(json_path), markdown_path=str(markdown_path))
    return json_path, markdown_path


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_flag_parser("Build the SLO dashboard", ("max-reports", "output-dir", "log-level"))
    flags = parse_flags(parser, argv)
    try:
        settings = Settings()
    except ValidationError as exc:
        print(f"Failed to build SLO dashboard: {exc}", file=sys.stderr)
        return 1
    setup_logging(flags.get("log-level") or settings.log_level)

    output_dir = Path(flags.get("output-dir") or settings.reliability_output_dir)
    max_reports = int(to_number(flags.get("max-reports"), 10))
    dashboard = build_dashboard(output_dir, max_reports)
    json_path, markdown_path = write_dashboard(dashboard, output_dir)

    print("SLO dashboard generated.")
    print(f"Markdown: {markdown_path}")
    print(f"JSON: {json_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
