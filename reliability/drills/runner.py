"""Scenario evaluation and sequential drill execution."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import httpx
import structlog

from .http import HttpDispatcher, HttpOutcome, HttpRequest, build_client
from .models import DrillReport, ScenarioResult, ScenarioSummary, StageResult, SummaryLatency
from .options import DrillOptions
from .report import iso_now
from .scenarios import Scenario, build_scenarios
from .stage import run_stage
from .stats import merge_all

logger = structlog.get_logger()

SendFn = Callable[[HttpRequest], Awaitable[HttpOutcome]]


def summarize_stages(stage_results: list[StageResult]) -> ScenarioSummary:
    """Combine stage results into one summary.

    The scenario p95 is the worst stage p95, not a percentile over the pooled
    samples. A quiet warmup stage must not hide a slow burst stage.
    """
    first_token = [
        s.latency.first_token_p95_ms
        for s in stage_results
        if s.latency.first_token_p95_ms is not None
    ]
    return ScenarioSummary(
        total_requests=sum(s.executed for s in stage_results),
        completed=sum(s.completed for s in stage_results),
        failed=sum(s.failed for s in stage_results),
        statuses=merge_all(s.statuses for s in stage_results),
        errors=merge_all(s.errors for s in stage_results),
        latency=SummaryLatency(
            p95_ms=max([s.latency.p95_ms for s in stage_results], default=0),
            first_token_p95_ms=max(first_token) if first_token else None,
        ),
    )


async def run_scenario(scenario: Scenario, send: SendFn) -> ScenarioResult:
    """Run every stage of *scenario* in order and evaluate its SLO."""
    enabled, reason = scenario.is_enabled()
    if not enabled:
        logger.info("scenario_skipped", scenario=scenario.name, reason=reason)
        return ScenarioResult(name=scenario.name, skipped=True, reason=reason)

    scenario.start_run()
    logger.info("scenario_started", scenario=scenario.name, stages=len(scenario.stages()))

    stage_results: list[StageResult] = []
    for stage in scenario.stages():
        stage_results.append(await run_stage(stage, scenario.build_request, send))
        if stage.pause_after_ms:
            await asyncio.sleep(stage.pause_after_ms / 1000.0)

    summary = summarize_stages(stage_results).model_copy(update=scenario.summary_metadata())
    slo = scenario.evaluate(summary)

    logger.info(
        "scenario_completed",
        scenario=scenario.name,
        passed=slo.passed,
        total_requests=summary.total_requests,
        p95_ms=summary.latency.p95_ms,
        failed_checks=[check.name for check in slo.failed_checks()],
    )
    return ScenarioResult(
        name=scenario.name,
        skipped=False,
        stages=stage_results,
        summary=summary,
        slo=slo,
    )


def overall_passed(results: list[ScenarioResult]) -> bool:
    """AND over non-skipped scenarios; a run with nothing executed passes."""
    return all(result.passed for result in results if not result.skipped)


async def run_drill(
    options: DrillOptions,
    client: httpx.AsyncClient | None = None,
    scenarios: list[Scenario] | None = None,
) -> DrillReport:
    """Run all scenarios one after another and build the report.

    Scenarios never overlap so that one endpoint's load does not bleed into
    another's measurements on shared infrastructure.
    """
    started_at = iso_now()
    scenarios = scenarios if scenarios is not None else build_scenarios(options)

    owns_client = client is None
    if client is None:
        client = build_client(timeout_ms=options.timeout_ms)
    dispatcher = HttpDispatcher(client, timeout_ms=options.timeout_ms)

    logger.info(
        "load_drill_started",
        base_url=options.base_url,
        profile=options.profile,
        scenarios=[scenario.name for scenario in scenarios],
    )
    results: list[ScenarioResult] = []
    try:
        for scenario in scenarios:
            results.append(await run_scenario(scenario, dispatcher.send))
    finally:
        if owns_client:
            await client.aclose()

    return DrillReport(
        started_at=started_at,
        finished_at=iso_now(),
        base_url=options.base_url,
        quick_mode=options.quick_mode,
        profile=options.profile,
        scenario_filter=sorted(options.scenario_filter) if options.scenario_filter else None,
        chat_rotation=options.rotation.as_dict(),
        chat_scale=options.chat_scale.as_dict(),
        scenarios=results,
        passed=overall_passed(results),
    )
