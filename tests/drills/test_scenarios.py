"""Tests for scenario request builders and enable/skip rules."""

import base64
import hashlib
import hmac
import json
from urllib.parse import parse_qs, urlsplit

from reliability.drills.models import StageConfig
from reliability.drills.options import DEFAULT_CHAT_MODEL_ID, DrillOptions
from reliability.drills.profiles import StagePlan
from reliability.drills.rotation import RotationConfig, RotationMode
from reliability.drills.scenarios import (
    SIGNATURE_HEADER,
    ChatStreamScenario,
    GmailPushScenario,
    WhatsAppWebhookScenario,
    build_chat_slo,
    build_scenarios,
    chat_slo,
    push_payload,
    sign_body,
)

BASE_URL = "https://drill.example.com"
STAGES = [StageConfig("s", total=3)]


class TestGmailPush:
    def test_payload_is_base64_json(self):
        payload = push_payload(4, now_ms=1_700_000_000_000)
        decoded = json.loads(base64.b64decode(payload["message"]["data"]))
        assert decoded == {
            "emailAddress": "loadtest+4@example.com",
            "historyId": "1700000000000-4",
        }

    def test_request_carries_verify_token(self):
        scenario = GmailPushScenario(BASE_URL, STAGES, verify_token="secret-token")
        request = scenario.build_request(0)
        url = urlsplit(request.url)
        assert request.method == "POST"
        assert url.path == "/api/gmail/push"
        assert parse_qs(url.query) == {"token": ["secret-token"]}
        assert request.consume_body is False

    def test_no_token_no_query(self):
        request = GmailPushScenario(BASE_URL, STAGES).build_request(0)
        assert urlsplit(request.url).query == ""


class TestWhatsAppWebhook:
    def test_signature_matches_body(self):
        scenario = WhatsAppWebhookScenario(BASE_URL, STAGES, app_secret="app-secret")
        request = scenario.build_request(2)
        expected = hmac.new(b"app-secret", request.content, hashlib.sha256).hexdigest()
        assert request.headers[SIGNATURE_HEADER] == f"sha256={expected}"
        body = json.loads(request.content)
        message = body["entry"][0]["changes"][0]["value"]["messages"][0]
        assert message["id"].endswith(".2")
        assert message["type"] == "text"

    def test_unsigned_without_secret(self):
        request = WhatsAppWebhookScenario(BASE_URL, STAGES).build_request(0)
        assert SIGNATURE_HEADER not in request.headers

    def test_sign_body_format(self):
        assert sign_body(b"{}", "k").startswith("sha256=")


class TestChatStream:
    def test_disabled_without_credentials(self):
        scenario = ChatStreamScenario(BASE_URL, STAGES, chat_slo())
        enabled, reason = scenario.is_enabled()
        assert not enabled
        assert "RELIABILITY_AUTH_TOKEN" in reason

    def test_static_credentials(self):
        scenario = ChatStreamScenario(BASE_URL, STAGES, chat_slo(), auth_token="tok", thread_id="th")
        assert scenario.is_enabled() == (True, None)
        request = scenario.build_request(0)
        assert request.headers["Authorization"] == "Bearer tok"
        assert json.loads(request.content) == {
            "threadId": "th",
            "modelId": DEFAULT_CHAT_MODEL_ID,
            "webSearch": False,
        }
        assert request.consume_body is True
        assert scenario.summary_metadata() == {}

    def test_pool_rotation_and_coverage(self, pool_entries):
        scenario = ChatStreamScenario(
            BASE_URL,
            STAGES,
            chat_slo(),
            pool=pool_entries,
            rotation=RotationConfig(RotationMode.ROUND_ROBIN),
        )
        assert scenario.is_enabled() == (True, None)
        tokens = [scenario.build_request(i).headers["Authorization"] for i in range(3)]
        assert tokens == ["Bearer token-0", "Bearer token-1", "Bearer token-2"]

        pool = scenario.summary_metadata()["chat_pool"]
        assert pool.size == 10
        assert pool.unique_used == 3
        assert pool.unique_coverage == 0.3
        assert pool.rotation_mode == "round_robin"

        scenario.start_run()
        assert scenario.summary_metadata()["chat_pool"].unique_used == 0

    def test_filtered_out(self, pool_entries):
        scenario = ChatStreamScenario(BASE_URL, STAGES, chat_slo(), pool=pool_entries, selected=False)
        assert scenario.is_enabled() == (False, "filtered out")


class TestBuildScenarios:
    def test_order_and_filter(self):
        options = DrillOptions(base_url=BASE_URL, scenario_filter=frozenset({"whatsapp_webhook"}))
        scenarios = build_scenarios(options)
        assert [s.name for s in scenarios] == [
            "gmail_push_webhook",
            "whatsapp_webhook",
            "chat_stream_http",
        ]
        assert [s.is_enabled()[0] for s in scenarios] == [False, True, False]

    def test_quick_profile_stages(self):
        options = DrillOptions(base_url=BASE_URL, profile="quick", auth_token="t", thread_id="th")
        gmail, _, chat = build_scenarios(options)
        assert [s.total for s in gmail.stages()] == [30]
        assert [s.total for s in chat.stages()] == [3]

    def test_stage_plan_overrides_profile(self):
        plan = StagePlan(stages=[StageConfig("custom", total=2)])
        options = DrillOptions(base_url=BASE_URL, stage_plan=plan)
        gmail, whatsapp, chat = build_scenarios(options)
        assert [s.name for s in gmail.stages()] == ["custom"]
        assert [s.name for s in whatsapp.stages()] == ["custom"]
        assert [s.name for s in chat.stages()] == ["low", "medium"]


class TestChatSlo:
    def test_plain_profile(self):
        slo = build_chat_slo(DrillOptions(base_url=BASE_URL))
        assert slo == chat_slo()

    def test_milestone_floors_without_pool(self):
        slo = build_chat_slo(DrillOptions(base_url=BASE_URL, profile="m1_1k"))
        assert slo.max_p95_ms == 12_000
        assert slo.min_two_xx_rate == 0.95
        assert slo.max_429_rate == 0.03
        assert slo.max_first_token_p95_ms == 4_000
        assert slo.min_unique_pool_coverage is None
        assert slo.min_auth_pool_size == 10

    def test_milestone_coverage_with_pool(self, pool_entries):
        slo = build_chat_slo(DrillOptions(base_url=BASE_URL, profile="m2_5k", chat_pool=pool_entries))
        assert slo.min_unique_pool_coverage == 0.6

    def test_flags_override_policy(self, pool_entries):
        options = DrillOptions(
            base_url=BASE_URL,
            profile="m3_10k",
            chat_pool=pool_entries,
            min_unique_coverage=0.25,
            min_unique_users=4,
            min_pool_size=3,
        )
        slo = build_chat_slo(options)
        assert slo.min_unique_pool_coverage == 0.25
        assert slo.min_unique_pool_users == 4
        assert slo.min_auth_pool_size == 3
