"""SLO evaluation over an aggregated scenario summary."""

from collections.abc import Callable, Mapping

from .models import ScenarioSummary, SloCheck, SloEvaluation, SloThresholds


def status_count(statuses: Mapping[str, int], predicate: Callable[[int], bool]) -> int:
    total = 0
    for status, count in statuses.items():
        try:
            code = int(status)
        except ValueError:
            continue
        if predicate(code):
            total += count
    return total


def _rate(count: int, total: int) -> float:
    return count / total if total > 0 else 0.0


def _ceiling(name: str, actual: float, threshold: float, digits: int | None = None) -> SloCheck:
    shown = round(actual, digits) if digits is not None else actual
    return SloCheck(name=name, passed=actual <= threshold, actual=shown, threshold=threshold)


def _floor(name: str, actual: float, threshold: float, digits: int | None = None) -> SloCheck:
    shown = round(actual, digits) if digits is not None else actual
    return SloCheck(name=name, passed=actual >= threshold, actual=shown, threshold=threshold)


def evaluate_slo(summary: ScenarioSummary, slo: SloThresholds) -> SloEvaluation:
    """Evaluate every configured check independently.

    Rates are computed over ``total_requests``, which includes requests that
    failed at the transport level. A zero denominator gives a rate of 0, so a
    configured ``min_two_xx_rate`` fails for a scenario that executed nothing.
    """
    total = summary.total_requests
    allowed = set(slo.allowed_statuses)

    five_xx = status_count(summary.statuses, lambda code: code >= 500)
    unknown = status_count(summary.statuses, lambda code: code not in allowed)
    network_errors = sum(summary.errors.values())

    checks = [
        _ceiling("p95_latency", summary.latency.p95_ms, slo.max_p95_ms),
        _ceiling("5xx_rate", _rate(five_xx, total), slo.max_five_xx_rate, 4),
        _ceiling(
            "network_error_rate",
            _rate(network_errors, total),
            slo.max_network_error_rate,
            4,
        ),
        _ceiling(
            "unknown_status_rate",
            _rate(unknown, total),
            slo.max_unknown_status_rate,
            4,
        ),
    ]

    if slo.min_two_xx_rate is not None:
        two_xx = status_count(summary.statuses, lambda code: 200 <= code < 300)
        checks.append(
            _floor("2xx_success_rate", _rate(two_xx, total), slo.min_two_xx_rate, 4)
        )

    if slo.max_429_rate is not None:
        throttled = status_count(summary.statuses, lambda code: code == 429)
        checks.append(_ceiling("429_rate", _rate(throttled, total), slo.max_429_rate, 4))

    if slo.max_first_token_p95_ms is not None:
        checks.append(
            _ceiling(
                "p95_first_token_latency",
                summary.latency.first_token_p95_ms or 0,
                slo.max_first_token_p95_ms,
            )
        )

    pool = summary.chat_pool
    if slo.min_unique_pool_coverage is not None:
        coverage = pool.unique_coverage if pool else 0.0
        checks.append(
            _floor("chat_pool_unique_coverage", coverage, slo.min_unique_pool_coverage, 4)
        )

    if slo.min_unique_pool_users is not None:
        used = pool.unique_used if pool else 0
        checks.append(_floor("chat_pool_unique_users", used, slo.min_unique_pool_users))

    if slo.min_auth_pool_size is not None:
        size = pool.size if pool else 0
        checks.append(_floor("chat_auth_pool_size", size, slo.min_auth_pool_size))

    return SloEvaluation(passed=all(check.passed for check in checks), checks=checks)
