"""End-to-end drills and probes against the in-process stub application."""

import pytest

from reliability.drills.models import StageConfig
from reliability.drills.options import DrillOptions
from reliability.drills.profiles import StagePlan
from reliability.drills.rotation import RotationConfig, RotationMode
from reliability.drills.runner import run_drill
from reliability.probes import run_probes
from tests.integration.conftest import GMAIL_TOKEN, PROBE_ORIGIN, STUB_BASE_URL, WHATSAPP_SECRET

pytestmark = pytest.mark.integration


def _checks(scenario) -> dict:
    return {check.name: check for check in scenario.slo.checks}


class TestQuickDrill:
    @pytest.mark.asyncio
    async def test_all_scenarios_pass(self, stub_client, seen):
        options = DrillOptions(
            base_url=STUB_BASE_URL,
            profile="quick",
            quick_mode=True,
            gmail_token=GMAIL_TOKEN,
            whatsapp_secret=WHATSAPP_SECRET,
            auth_token="static-token",
            thread_id="thread-1",
        )
        async with stub_client() as client:
            report = await run_drill(options, client=client)

        gmail, whatsapp, chat = report.scenarios
        assert report.passed
        assert gmail.summary.statuses == {"200": 30}
        assert whatsapp.summary.statuses == {"200": 30}
        assert chat.summary.statuses == {"200": 3}
        assert chat.summary.latency.first_token_p95_ms is not None
        assert chat.summary.chat_pool is None
        assert seen["gmail"] == 30
        assert seen["whatsapp"] == 30
        assert seen["Bearer static-token"] == 3

    @pytest.mark.asyncio
    async def test_missing_secrets_are_rejected_but_allowed(self, stub_client):
        options = DrillOptions(base_url=STUB_BASE_URL, profile="quick")
        async with stub_client() as client:
            report = await run_drill(options, client=client)

        gmail, whatsapp, chat = report.scenarios
        assert gmail.summary.statuses == {"403": 30}
        assert whatsapp.summary.statuses == {"403": 30}
        assert chat.skipped
        # 403 is an expected guard response for webhooks.
        assert report.passed


class TestMilestoneDrill:
    @pytest.mark.asyncio
    async def test_pool_rotation_meets_coverage_floor(self, stub_client, seen, pool_entries):
        options = DrillOptions(
            base_url=STUB_BASE_URL,
            profile="m1_1k",
            scenario_filter=frozenset({"chat_stream_http"}),
            chat_pool=pool_entries,
            rotation=RotationConfig(RotationMode.STRIDE, stride=3, seed="drill"),
            stage_plan=StagePlan(chat_stages=[StageConfig("ramp", total=10, concurrency=3)]),
        )
        async with stub_client() as client:
            report = await run_drill(options, client=client)

        (_, _, chat) = report.scenarios
        checks = _checks(chat)
        assert chat.summary.chat_pool.size == 10
        assert chat.summary.chat_pool.unique_used == 10
        assert chat.summary.chat_pool.rotation_mode == "stride"
        assert checks["chat_pool_unique_coverage"].passed
        assert checks["chat_auth_pool_size"].passed
        assert checks["2xx_success_rate"].actual == 1.0
        assert "p95_first_token_latency" in checks
        assert report.passed
        assert sum(seen[f"Bearer token-{i}"] for i in range(10)) == 10

    @pytest.mark.asyncio
    async def test_low_coverage_fails(self, stub_client, pool_entries):
        options = DrillOptions(
            base_url=STUB_BASE_URL,
            profile="m1_1k",
            scenario_filter=frozenset({"chat_stream_http"}),
            chat_pool=pool_entries,
            stage_plan=StagePlan(chat_stages=[StageConfig("ramp", total=3, concurrency=1)]),
        )
        async with stub_client() as client:
            report = await run_drill(options, client=client)

        chat = report.scenarios[2]
        assert chat.summary.chat_pool.unique_coverage == 0.3
        assert [check.name for check in chat.slo.failed_checks()] == ["chat_pool_unique_coverage"]
        assert not report.passed


class TestProbes:
    @pytest.mark.asyncio
    async def test_guards_hold(self, stub_client):
        async with stub_client() as client:
            report = await run_probes(STUB_BASE_URL, PROBE_ORIGIN, gmail_token=GMAIL_TOKEN, client=client)

        statuses = {probe.name: probe.status for probe in report.probes}
        assert statuses == {
            "chat_options_cors": 204,
            "chat_requires_auth": 401,
            "gmail_push_guard": 200,
            "whatsapp_verify_guard": 403,
            "whatsapp_post_guard": 403,
        }
        assert report.passed

    @pytest.mark.asyncio
    async def test_cors_origin_mismatch_fails(self, stub_client):
        async with stub_client() as client:
            report = await run_probes(STUB_BASE_URL, "https://evil.example.com", client=client)

        cors = report.probes[0]
        assert cors.name == "chat_options_cors"
        assert not cors.passed
        assert cors.details["actual_allow_origin"] is None
        assert not report.passed
