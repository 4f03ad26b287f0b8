"""Game-day bundle: synthetic probes followed by several load drill profiles.

Every step writes its own report as usual; the bundle report links them and
lists findings worth a follow-up.

Usage:
    reliability-game-day --base-url=https://example.convex.site
    reliability-game-day --profiles=standard,burst,m1_1k
"""

import asyncio
import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from reliability.config import ConfigurationError, Settings
from reliability.drills.cli import FLAG_NAMES as DRILL_FLAG_NAMES
from reliability.drills.models import DrillReport
from reliability.drills.options import DrillOptions, resolve_options
from reliability.drills.profiles import resolve_profile
from reliability.drills.report import iso_now, print_summary, report_path, write_json, write_report
from reliability.drills.runner import run_drill
from reliability.probes import ProbeReport, print_probe_summary, run_probes, write_probe_report
from reliability.shared.flags import build_flag_parser, parse_flags
from reliability.shared.logging import setup_logging

logger = structlog.get_logger()

DEFAULT_PROFILES = ["burst", "soak"]
HIGH_THROTTLE_SHARE = 0.3

NO_ACTION = "No immediate reliability action required from this game-day run."
FOLLOW_UPS = [
    "Investigate failed or flagged scenarios via the runbook playbooks.",
    "Tune reliability env knobs conservatively and rerun the game day.",
]


class GameDayStep(BaseModel):
    type: str
    profile: str | None = None
    passed: bool
    report_path: str | None = None


class GameDayReport(BaseModel):
    started_at: str
    finished_at: str
    base_url: str
    profiles: list[str]
    passed: bool
    steps: list[GameDayStep] = Field(default_factory=list)
    findings: list[str] = Field(default_factory=list)
    action_items: list[str] = Field(default_factory=list)


def parse_profiles(value: str | None) -> list[str]:
    if not value:
        return list(DEFAULT_PROFILES)
    profiles = [part.strip().lower() for part in value.split(",") if part.strip()]
    return profiles or list(DEFAULT_PROFILES)


def collect_findings(
    probe_report: ProbeReport | None, drills: list[tuple[str, DrillReport]]
) -> list[str]:
    findings = []
    if probe_report is not None and not probe_report.passed:
        findings.append("Synthetic probes reported at least one failing guard check.")
    for profile, report in drills:
        if not report.passed:
            findings.append(f"Load drill profile {profile} failed SLO gate.")
        for scenario in report.scenarios:
            if scenario.skipped or scenario.summary is None:
                continue
            total = scenario.summary.total_requests
            throttled = scenario.summary.statuses.get("429", 0)
            if total > 0 and throttled / total > HIGH_THROTTLE_SHARE:
                findings.append(
                    f"Profile {profile}, scenario {scenario.name} had high 429 share "
                    f"({throttled / total * 100:.1f}%)."
                )
    return findings


async def run_game_day(
    options: DrillOptions,
    profiles: list[str],
    probe_origin: str,
    client: httpx.AsyncClient | None = None,
) -> GameDayReport:
    """Run probes, then one drill per profile, writing each step's report.

    *options* supplies everything except the profile, which is replaced for
    each drill step.
    """
    started_at = iso_now()
    steps: list[GameDayStep] = []

    probe_report = await run_probes(
        options.base_url,
        probe_origin,
        gmail_token=options.gmail_token,
        client=client,
        timeout_ms=options.timeout_ms,
    )
    probe_path = write_probe_report(probe_report, options.output_dir)
    print_probe_summary(probe_report, probe_path)
    steps.append(GameDayStep(type="probe", passed=probe_report.passed, report_path=str(probe_path)))

    drills: list[tuple[str, DrillReport]] = []
    for profile in profiles:
        drill_options = resolve_profile_options(options, profile)
        logger.info("game_day_drill_started", profile=drill_options.profile)
        report = await run_drill(drill_options, client=client)
        path = write_report(report, options.output_dir)
        print_summary(report, path)
        drills.append((profile, report))
        steps.append(
            GameDayStep(type="drill", profile=profile, passed=report.passed, report_path=str(path))
        )

    findings = collect_findings(probe_report, drills)
    return GameDayReport(
        started_at=started_at,
        finished_at=iso_now(),
        base_url=options.base_url,
        profiles=profiles,
        passed=all(step.passed for step in steps),
        steps=steps,
        findings=findings,
        action_items=list(FOLLOW_UPS) if findings else [NO_ACTION],
    )


def resolve_profile_options(options: DrillOptions, profile: str) -> DrillOptions:
    return replace(options, profile=resolve_profile(profile, False), quick_mode=False)


def print_game_day_summary(report: GameDayReport, path: Path) -> None:
    print(f"Game-day run completed. Overall pass: {'YES' if report.passed else 'NO'}")
    print(f"Report: {path}")
    for step in report.steps:
        suffix = f" ({step.profile})" if step.profile else ""
        print(f"- {step.type}{suffix}: {'PASS' if step.passed else 'FAIL'}")
    if report.findings:
        print("Findings:")
        for finding in report.findings:
            print(f"- {finding}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_flag_parser("Game-day reliability bundle", (*DRILL_FLAG_NAMES, "profiles", "origin"))
    flags = parse_flags(parser, argv)
    try:
        settings = Settings()
        setup_logging(flags.get("log-level") or settings.log_level)
        options = resolve_options(flags, settings)
    except (ConfigurationError, ValidationError) as exc:
        logger.error("game_day_configuration_error", error=str(exc))
        print(f"Game-day run failed: {exc}", file=sys.stderr)
        return 1

    report = asyncio.run(
        run_game_day(
            options,
            parse_profiles(flags.get("profiles")),
            flags.get("origin") or settings.reliability_probe_origin,
        )
    )
    path = report_path(options.output_dir, "game-day")
    write_json(path, report.model_dump(mode="json"))
    logger.info("game_day_report_written", path=str(path), passed=report.passed)
    print_game_day_summary(report, path)
    return 0 if report.passed else 1


if __name__ == "__main__":
    sys.exit(main())
