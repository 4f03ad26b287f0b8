"""Stage runner: a fixed pool of asyncio workers sharing one request cursor."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from .http import HttpOutcome
from .models import StageConfig, StageResult
from .stats import summarize_latencies

logger = structlog.get_logger()

RequestT = TypeVar("RequestT")


async def run_stage(
    stage: StageConfig,
    build_request: Callable[[int], RequestT],
    send: Callable[[RequestT], Awaitable[HttpOutcome]],
) -> StageResult:
    """Run *stage* and return its aggregated result.

    Workers pull the next index from a shared cursor until the stage's count
    or deadline is reached. Failures raised by *send* are counted by exception
    class name and never stop a worker. Exceptions raised by *build_request*
    propagate: a scenario that cannot build requests is not measuring anything.

    All accumulator updates happen between awaits on the single event loop,
    so plain dicts and lists are safe here.
    """
    statuses: dict[str, int] = {}
    errors: dict[str, int] = {}
    latencies: list[float] = []
    first_tokens: list[float] = []

    total = stage.total
    deadline = (
        time.monotonic() + stage.duration_ms / 1000.0 if stage.duration_ms is not None else None
    )
    cursor = 0
    executed = 0

    async def worker() -> None:
        nonlocal cursor, executed
        while True:
            if total is not None and cursor >= total:
                return
            if deadline is not None and time.monotonic() >= deadline:
                return

            index = cursor
            cursor += 1

            request = build_request(index)
            started = time.monotonic()
            executed += 1
            try:
                outcome = await send(request)
            except Exception as exc:
                kind = type(exc).__name__
                errors[kind] = errors.get(kind, 0) + 1
                latencies.append(_elapsed_ms(started))
                continue

            key = str(outcome.status)
            statuses[key] = statuses.get(key, 0) + 1
            latencies.append(_elapsed_ms(started))
            if outcome.first_token_ms is not None:
                first_tokens.append(outcome.first_token_ms)

    wall_start = time.monotonic()
    await asyncio.gather(*(worker() for _ in range(stage.concurrency)))
    wall_ms = _elapsed_ms(wall_start)

    completed = sum(statuses.values())
    failed = sum(errors.values())
    rps = round(executed * 1000 / max(wall_ms, 1), 2) if executed > 0 else 0.0

    result = StageResult(
        name=stage.name,
        mode=stage.mode,
        requested_total=stage.total,
        requested_duration_ms=stage.duration_ms,
        executed=executed,
        concurrency=stage.concurrency,
        wall_ms=wall_ms,
        requests_per_second=rps,
        completed=completed,
        failed=failed,
        statuses=statuses,
        errors=errors,
        latency=summarize_latencies(latencies, first_tokens),
    )
    logger.info(
        "stage_completed",
        stage=stage.name,
        mode=stage.mode,
        executed=executed,
        failed=failed,
        wall_ms=wall_ms,
        p95_ms=result.latency.p95_ms,
    )
    return result


def _elapsed_ms(started: float) -> int:
    return round((time.monotonic() - started) * 1000)
