"""Synthetic guard probes.

Five single requests that check the public endpoints still reject what they
must reject (missing auth, bad verify tokens, empty webhook payloads) and
that chat CORS answers for the product origin. Cheap enough to run before
every load drill.

Usage:
    reliability-probes --base-url=https://example.convex.site
    reliability-probes --origin=https://staging.example.com
"""

import asyncio
import json
import sys
import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from reliability.config import ConfigurationError, Settings
from reliability.drills.http import HttpRequest, join_url
from reliability.drills.options import DEFAULT_CHAT_MODEL_ID
from reliability.drills.report import iso_now, report_path, write_json
from reliability.drills.scenarios.gmail import push_payload
from reliability.shared.flags import build_flag_parser, parse_flags, to_number
from reliability.shared.logging import setup_logging

logger = structlog.get_logger()

PROBE_THREAD_ID = "jprobe0000000000000000000000000000"


class ProbeResult(BaseModel):
    name: str
    passed: bool
    latency_ms: int
    status: int | None = None
    details: dict[str, Any] | str = Field(default_factory=dict)


class ProbeReport(BaseModel):
    started_at: str
    finished_at: str
    base_url: str
    probe_origin: str
    probes: list[ProbeResult] = Field(default_factory=list)
    passed: bool = True


@dataclass
class Probe:
    """One request and the statuses (and optionally the CORS origin) it must produce."""

    name: str
    request: HttpRequest
    expected_statuses: list[int]
    expected_allow_origin: str | None = None

    def evaluate(self, response: httpx.Response) -> tuple[bool, dict[str, Any]]:
        details: dict[str, Any] = {
            "expected_status": self.expected_statuses,
            "status": response.status_code,
        }
        passed = response.status_code in self.expected_statuses
        if self.expected_allow_origin is not None:
            allow_origin = response.headers.get("access-control-allow-origin")
            details["expected_allow_origin"] = self.expected_allow_origin
            details["actual_allow_origin"] = allow_origin
            passed = passed and allow_origin == self.expected_allow_origin
        return passed, details


def _json_body(payload: dict) -> bytes:
    return json.dumps(payload).encode("utf-8")


def build_probes(base_url: str, origin: str, gmail_token: str = "") -> list[Probe]:
    chat_url = join_url(base_url, "/api/chat")
    whatsapp_url = join_url(base_url, "/api/whatsapp/webhook")
    return [
        Probe(
            name="chat_options_cors",
            request=HttpRequest(
                method="OPTIONS",
                url=chat_url,
                headers={"Origin": origin, "Access-Control-Request-Method": "POST"},
            ),
            expected_statuses=[200, 204],
            expected_allow_origin=origin,
        ),
        Probe(
            name="chat_requires_auth",
            request=HttpRequest(
                method="POST",
                url=chat_url,
                headers={"Content-Type": "application/json", "Origin": origin},
                content=_json_body(
                    {
                        "threadId": PROBE_THREAD_ID,
                        "content": "synthetic probe",
                        "modelId": DEFAULT_CHAT_MODEL_ID,
                        "webSearch": False,
                    }
                ),
            ),
            expected_statuses=[401],
        ),
        Probe(
            name="gmail_push_guard",
            request=HttpRequest(
                method="POST",
                url=join_url(base_url, "/api/gmail/push", {"token": gmail_token or None}),
                headers={"Content-Type": "application/json"},
                content=_json_body(push_payload(0)),
            ),
            expected_statuses=[200, 403, 429],
        ),
        Probe(
            name="whatsapp_verify_guard",
            request=HttpRequest(
                method="GET",
                url=join_url(
                    base_url,
                    "/api/whatsapp/webhook",
                    {
                        "hub.mode": "subscribe",
                        "hub.verify_token": "probe-invalid-token",
                        "hub.challenge": "probe",
                    },
                ),
            ),
            expected_statuses=[403],
        ),
        Probe(
            name="whatsapp_post_guard",
            request=HttpRequest(
                method="POST",
                url=whatsapp_url,
                headers={"Content-Type": "application/json"},
                content=_json_body(
                    {"entry": [{"changes": [{"field": "messages", "value": {"messages": []}}]}]}
                ),
            ),
            expected_statuses=[400, 403, 429],
        ),
    ]


async def run_probe(client: httpx.AsyncClient, probe: Probe) -> ProbeResult:
    """Send one probe. Transport errors fail the probe instead of the run."""
    started = time.monotonic()
    try:
        response = await client.request(
            probe.request.method,
            probe.request.url,
            headers=probe.request.headers,
            content=probe.request.content,
        )
    except httpx.HTTPError as exc:
        logger.warning("probe_request_failed", probe=probe.name, error=str(exc))
        return ProbeResult(
            name=probe.name,
            passed=False,
            latency_ms=round((time.monotonic() - started) * 1000),
            details=str(exc) or type(exc).__name__,
        )

    latency_ms = round((time.monotonic() - started) * 1000)
    passed, details = probe.evaluate(response)
    return ProbeResult(
        name=probe.name,
        passed=passed,
        latency_ms=latency_ms,
        status=response.status_code,
        details=details,
    )


async def run_probes(
    base_url: str,
    origin: str,
    gmail_token: str = "",
    client: httpx.AsyncClient | None = None,
    timeout_ms: int = 30_000,
) -> ProbeReport:
    """Run every probe sequentially and collect the results."""
    started_at = iso_now()
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=httpx.Timeout(max(timeout_ms, 1) / 1000.0))

    results: list[ProbeResult] = []
    try:
        for probe in build_probes(base_url, origin, gmail_token):
            results.append(await run_probe(client, probe))
    finally:
        if owns_client:
            await client.aclose()

    passed = all(result.passed for result in results)
    logger.info(
        "synthetic_probes_completed",
        passed=passed,
        failed=[result.name for result in results if not result.passed],
    )
    return ProbeReport(
        started_at=started_at,
        finished_at=iso_now(),
        base_url=base_url,
        probe_origin=origin,
        probes=results,
        passed=passed,
    )


def write_probe_report(report: ProbeReport, output_dir: Path, now: datetime | None = None) -> Path:
    path = report_path(output_dir, "synthetic-probes", now)
    write_json(path, report.model_dump(mode="json"))
    logger.info("synthetic_probes_report_written", path=str(path))
    return path


def print_probe_summary(report: ProbeReport, path: Path) -> None:
    print(f"Synthetic probes completed. Overall pass: {'YES' if report.passed else 'NO'}")
    print(f"Report: {path}")
    for probe in report.probes:
        status = probe.status if probe.status is not None else "error"
        print(
            f"- {probe.name}: {'PASS' if probe.passed else 'FAIL'} "
            f"(status={status}, latency={probe.latency_ms}ms)"
        )


FLAG_NAMES = ("base-url", "origin", "gmail-token", "output-dir", "timeout-ms", "log-level")


def main(argv: Sequence[str] | None = None) -> int:
    flags = parse_flags(build_flag_parser("Synthetic guard probes", FLAG_NAMES), argv)
    try:
        settings = Settings()
        setup_logging(flags.get("log-level") or settings.log_level)
        base_url = flags.get("base-url") or settings.base_url
        if not base_url:
            raise ConfigurationError(
                "Missing base URL. Set RELIABILITY_BASE_URL (or pass --base-url=https://...)."
            )
    except (ConfigurationError, ValidationError) as exc:
        logger.error("synthetic_probes_configuration_error", error=str(exc))
        print(f"Synthetic probes failed: {exc}", file=sys.stderr)
        return 1

    timeout_ms = int(to_number(flags.get("timeout-ms"), settings.request_timeout_ms))

    report = asyncio.run(
        run_probes(
            base_url,
            flags.get("origin") or settings.reliability_probe_origin,
            gmail_token=flags.get("gmail-token") or settings.gmail_pubsub_verify_token,
            timeout_ms=timeout_ms,
        )
    )
    path = write_probe_report(report, Path(flags.get("output-dir") or settings.reliability_output_dir))
    print_probe_summary(report, path)
    return 0 if report.passed else 1


if __name__ == "__main__":
    sys.exit(main())
