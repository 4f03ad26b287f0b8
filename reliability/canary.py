"""Canary comparison between a control and a candidate deployment.

Both deployments get the synthetic probes and the same load drill profile.
Every scenario executed on both sides is then compared: the candidate may not
regress p95 latency beyond a ratio or an absolute delta, nor raise its 5xx,
network error or unknown status rates beyond the policy's allowances.

Usage:
    reliability-canary --control-url=https://prod.example.com --candidate-url=https://next.example.com
    reliability-canary --policy=canary-policy.yaml --max-p95-regression-ratio=1.5
"""

import asyncio
import sys
from collections.abc import Sequence
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import httpx
import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError

from reliability.config import ConfigurationError, Settings
from reliability.drills.cli import FLAG_NAMES as DRILL_FLAG_NAMES
from reliability.drills.models import DrillReport, ScenarioSummary
from reliability.drills.options import DrillOptions, resolve_options
from reliability.drills.report import iso_now, print_summary, report_path, write_json, write_report
from reliability.drills.runner import run_drill
from reliability.drills.scenarios import (
    ChatStreamScenario,
    GmailPushScenario,
    WhatsAppWebhookScenario,
    chat_slo,
    webhook_slo,
)
from reliability.drills.slo import status_count
from reliability.probes import print_probe_summary, run_probes, write_probe_report
from reliability.shared.flags import build_flag_parser, parse_flags, to_number
from reliability.shared.logging import setup_logging

logger = structlog.get_logger()

DEFAULT_PROFILE = "quick"

ALLOWED_STATUSES: dict[str, list[int]] = {
    GmailPushScenario.name: webhook_slo().allowed_statuses,
    WhatsAppWebhookScenario.name: webhook_slo().allowed_statuses,
    ChatStreamScenario.name: chat_slo().allowed_statuses,
}
FALLBACK_ALLOWED_STATUSES = [200, 400, 401, 403, 429, 503]

ROLLBACK_CRITERIA = [
    "If candidate canary checks fail, block promotion.",
    "Keep control deployment serving traffic.",
    "Inspect scenario deltas and reliability reports before retrying.",
]


@dataclass(frozen=True)
class CanaryPolicy:
    """How far the candidate may drift from the control before it is rejected.

    The p95 gate passes when *either* the ratio or the absolute delta is
    within bounds.
    """

    max_p95_regression_ratio: float = 1.25
    max_p95_absolute_regression_ms: float = 250
    max_five_xx_rate_regression: float = 0.01
    max_network_error_rate_regression: float = 0.01
    max_unknown_status_rate_regression: float = 0.02

    def as_dict(self) -> dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


POLICY_FLAGS = {
    "max-p95-regression-ratio": "max_p95_regression_ratio",
    "max-p95-absolute-regression-ms": "max_p95_absolute_regression_ms",
    "max-5xx-regression-rate": "max_five_xx_rate_regression",
    "max-network-regression-rate": "max_network_error_rate_regression",
    "max-unknown-regression-rate": "max_unknown_status_rate_regression",
}


def load_policy(path: str | Path) -> CanaryPolicy:
    """Read the ``comparison`` mapping of a YAML (or JSON) policy file.

    Keys missing from the file keep their defaults.
    """
    policy_path = Path(path)
    try:
        with open(policy_path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot load canary policy {policy_path}: {exc}") from exc

    comparison = data.get("comparison", {}) if isinstance(data, dict) else None
    if not isinstance(comparison, dict):
        raise ConfigurationError(f"Canary policy {policy_path} needs a 'comparison' mapping.")

    defaults = CanaryPolicy()
    values = {}
    for name in defaults.as_dict():
        values[name] = to_number(
            None if comparison.get(name) is None else str(comparison[name]),
            getattr(defaults, name),
        )
    return CanaryPolicy(**values)


def resolve_policy(flags: dict[str, str], policy: CanaryPolicy) -> CanaryPolicy:
    """Apply ``--max-*`` flag overrides on top of *policy*."""
    overrides = {
        field_name: to_number(flags.get(flag), getattr(policy, field_name))
        for flag, field_name in POLICY_FLAGS.items()
    }
    return replace(policy, **overrides)


class ScenarioRates(BaseModel):
    p95_ms: float
    five_xx_rate: float
    network_error_rate: float
    unknown_status_rate: float


class ScenarioDeltas(BaseModel):
    p95_ratio: float
    p95_delta_ms: float
    five_xx_rate: float
    network_error_rate: float
    unknown_status_rate: float


class ScenarioComparison(BaseModel):
    scenario: str
    passed: bool
    control: ScenarioRates
    candidate: ScenarioRates
    deltas: ScenarioDeltas
    thresholds: dict[str, float]


class CanaryCheck(BaseModel):
    name: str
    passed: bool
    details: dict[str, Any] = Field(default_factory=dict)


class CanaryReport(BaseModel):
    started_at: str
    finished_at: str
    profile: str
    control_url: str
    candidate_url: str
    policy_path: str | None = None
    policy: dict[str, float] = Field(default_factory=dict)
    checks: list[CanaryCheck] = Field(default_factory=list)
    artifacts: dict[str, str] = Field(default_factory=dict)
    passed: bool
    rollback_criteria: list[str] = Field(default_factory=lambda: list(ROLLBACK_CRITERIA))


def scenario_rates(summary: ScenarioSummary | None, allowed_statuses: list[int]) -> ScenarioRates:
    summary = summary or ScenarioSummary()
    total = max(summary.total_requests, 1)
    allowed = set(allowed_statuses)
    return ScenarioRates(
        p95_ms=summary.latency.p95_ms,
        five_xx_rate=status_count(summary.statuses, lambda code: code >= 500) / total,
        network_error_rate=sum(summary.errors.values()) / total,
        unknown_status_rate=status_count(summary.statuses, lambda code: code not in allowed) / total,
    )


def compare_scenario(
    name: str, control: ScenarioRates, candidate: ScenarioRates, policy: CanaryPolicy
) -> ScenarioComparison:
    p95_ratio = candidate.p95_ms / control.p95_ms if control.p95_ms > 0 else 1.0
    p95_delta = candidate.p95_ms - control.p95_ms
    five_xx = candidate.five_xx_rate - control.five_xx_rate
    network = candidate.network_error_rate - control.network_error_rate
    unknown = candidate.unknown_status_rate - control.unknown_status_rate

    latency_ok = (
        p95_ratio <= policy.max_p95_regression_ratio
        or p95_delta <= policy.max_p95_absolute_regression_ms
    )
    passed = (
        latency_ok
        and five_xx <= policy.max_five_xx_rate_regression
        and network <= policy.max_network_error_rate_regression
        and unknown <= policy.max_unknown_status_rate_regression
    )
    return ScenarioComparison(
        scenario=name,
        passed=passed,
        control=control,
        candidate=candidate,
        deltas=ScenarioDeltas(
            p95_ratio=round(p95_ratio, 3),
            p95_delta_ms=round(p95_delta, 1),
            five_xx_rate=round(five_xx, 4),
            network_error_rate=round(network, 4),
            unknown_status_rate=round(unknown, 4),
        ),
        thresholds=policy.as_dict(),
    )


def compare_drills(
    control: DrillReport, candidate: DrillReport, policy: CanaryPolicy
) -> list[ScenarioComparison]:
    """Compare scenarios executed on both sides, in the control's order."""
    candidate_by_name = {s.name: s for s in candidate.scenarios if not s.skipped}
    comparisons = []
    for scenario in control.scenarios:
        if scenario.skipped or scenario.name not in candidate_by_name:
            continue
        allowed = ALLOWED_STATUSES.get(scenario.name, FALLBACK_ALLOWED_STATUSES)
        comparisons.append(
            compare_scenario(
                scenario.name,
                scenario_rates(scenario.summary, allowed),
                scenario_rates(candidate_by_name[scenario.name].summary, allowed),
                policy,
            )
        )
    return comparisons


async def run_canary(
    options: DrillOptions,
    control_url: str,
    candidate_url: str,
    policy: CanaryPolicy,
    probe_origin: str,
    policy_path: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> CanaryReport:
    """Probe both deployments, drill both with the same profile and compare."""
    started_at = iso_now()
    targets = (("control", control_url), ("candidate", candidate_url))
    checks: list[CanaryCheck] = []
    artifacts: dict[str, str] = {}

    for role, url in targets:
        logger.info("canary_probes_started", role=role, base_url=url)
        probe_report = await run_probes(
            url,
            probe_origin,
            gmail_token=options.gmail_token,
            client=client,
            timeout_ms=options.timeout_ms,
        )
        path = write_probe_report(probe_report, options.output_dir)
        print_probe_summary(probe_report, path)
        artifacts[f"{role}_probe"] = str(path)
        checks.append(
            CanaryCheck(
                name=f"{role}_probe_pass",
                passed=probe_report.passed,
                details={"report_path": str(path), "passed": probe_report.passed},
            )
        )

    drills: dict[str, DrillReport] = {}
    for role, url in targets:
        logger.info("canary_drill_started", role=role, base_url=url, profile=options.profile)
        report = await run_drill(replace(options, base_url=url), client=client)
        path = write_report(report, options.output_dir)
        print_summary(report, path)
        drills[role] = report
        artifacts[f"{role}_drill"] = str(path)
        checks.append(
            CanaryCheck(
                name=f"{role}_drill_pass",
                passed=report.passed,
                details={"report_path": str(path), "passed": report.passed},
            )
        )

    for comparison in compare_drills(drills["control"], drills["candidate"], policy):
        checks.append(
            CanaryCheck(
                name=f"scenario_{comparison.scenario}",
                passed=comparison.passed,
                details=comparison.model_dump(mode="json"),
            )
        )

    return CanaryReport(
        started_at=started_at,
        finished_at=iso_now(),
        profile=options.profile,
        control_url=control_url,
        candidate_url=candidate_url,
        policy_path=policy_path,
        policy=policy.as_dict(),
        checks=checks,
        artifacts=artifacts,
        passed=all(check.passed for check in checks),
    )


def resolve_targets(flags: dict[str, str], settings: Settings) -> tuple[str, str]:
    """Control and candidate URLs; both fall back to the drill base URL."""
    control = flags.get("control-url") or settings.reliability_control_url or settings.base_url
    candidate = (
        flags.get("candidate-url") or settings.reliability_candidate_url or settings.base_url
    )
    if not control or not candidate:
        raise ConfigurationError(
            "Missing control/candidate URL. Set RELIABILITY_CONTROL_URL and "
            "RELIABILITY_CANDIDATE_URL (or pass --control-url/--candidate-url)."
        )
    return control, candidate


def print_canary_summary(report: CanaryReport, path: Path) -> None:
    print(f"Canary check completed. Overall pass: {'YES' if report.passed else 'NO'}")
    print(f"Report: {path}")
    for check in report.checks:
        print(f"- {check.name}: {'PASS' if check.passed else 'FAIL'}")


FLAG_NAMES = (
    *DRILL_FLAG_NAMES,
    "control-url",
    "candidate-url",
    "policy",
    "origin",
    *POLICY_FLAGS,
)


def main(argv: Sequence[str] | None = None) -> int:
    flags = parse_flags(build_flag_parser("Canary comparison of two deployments", FLAG_NAMES), argv)
    try:
        settings = Settings()
        setup_logging(flags.get("log-level") or settings.log_level)
        control_url, candidate_url = resolve_targets(flags, settings)
        options = resolve_options(
            {**flags, "base-url": control_url, "profile": flags.get("profile") or DEFAULT_PROFILE},
            settings,
        )
        policy_path = flags.get("policy")
        policy = resolve_policy(flags, load_policy(policy_path) if policy_path else CanaryPolicy())
    except (ConfigurationError, ValidationError) as exc:
        logger.error("canary_configuration_error", error=str(exc))
        print(f"Canary check failed: {exc}", file=sys.stderr)
        return 1

    report = asyncio.run(
        run_canary(
            options,
            control_url,
            candidate_url,
            policy,
            flags.get("origin") or settings.reliability_probe_origin,
            policy_path=policy_path,
        )
    )
    path = report_path(options.output_dir, "canary-check")
    write_json(path, report.model_dump(mode="json"))
    logger.info("canary_report_written", path=str(path), passed=report.passed)
    print_canary_summary(report, path)
    return 0 if report.passed else 1


if __name__ == "__main__":
    sys.exit(main())
