"""Tests for resolving drill options from flags and environment."""

import json
from pathlib import Path

import pytest

from reliability.config import ConfigurationError, Settings
from reliability.drills.options import parse_scenario_filter, resolve_options
from reliability.drills.rotation import RotationMode


class TestScenarioFilter:
    def test_comma_list(self):
        assert parse_scenario_filter("gmail_push_webhook, chat_stream_http") == frozenset(
            {"gmail_push_webhook", "chat_stream_http"}
        )

    def test_empty_means_all(self):
        assert parse_scenario_filter(None) is None
        assert parse_scenario_filter(" , ") is None


class TestResolveOptions:
    def test_missing_base_url(self):
        with pytest.raises(ConfigurationError, match="Missing base URL"):
            resolve_options({})

    def test_defaults(self):
        options = resolve_options({"base-url": "https://drill.example.com"})
        assert options.profile == "standard"
        assert options.quick_mode is False
        assert options.scenario_filter is None
        assert options.chat_pool == []
        assert options.rotation.mode is RotationMode.ROUND_ROBIN
        assert options.output_dir == Path(".output/reliability")
        assert options.timeout_ms == 30_000
        assert options.chat_model_id == "moonshotai/kimi-k2.5"
        assert options.stage_plan.stages is None

    def test_environment_fallbacks(self, monkeypatch):
        monkeypatch.setenv("RELIABILITY_BASE_URL", "https://env.example.com")
        monkeypatch.setenv("RELIABILITY_AUTH_TOKEN", "env-token")
        monkeypatch.setenv("RELIABILITY_THREAD_ID", "env-thread")
        monkeypatch.setenv("RELIABILITY_CHAT_ROTATION_MODE", "random")
        monkeypatch.setenv("GMAIL_PUBSUB_VERIFY_TOKEN", "gmail-env")
        options = resolve_options({})
        assert options.base_url == "https://env.example.com"
        assert options.auth_token == "env-token"
        assert options.thread_id == "env-thread"
        assert options.rotation.mode is RotationMode.RANDOM
        assert options.gmail_token == "gmail-env"

    def test_flags_override_environment(self, monkeypatch):
        monkeypatch.setenv("RELIABILITY_BASE_URL", "https://env.example.com")
        monkeypatch.setenv("RELIABILITY_AUTH_TOKEN", "env-token")
        options = resolve_options(
            {
                "base-url": "https://flag.example.com",
                "auth-token": "flag-token",
                "chat-rotation-mode": "stride",
                "chat-rotation-stride": "5",
                "chat-rotation-seed": "s",
            }
        )
        assert options.base_url == "https://flag.example.com"
        assert options.auth_token == "flag-token"
        assert options.rotation.as_dict() == {"mode": "stride", "stride": 5, "seed": "s"}

    def test_quick_flag(self):
        options = resolve_options({"base-url": "https://x.example.com", "quick": "true", "profile": "soak"})
        assert options.quick_mode is True
        assert options.profile == "quick"

    def test_numeric_flags_are_permissive(self):
        options = resolve_options(
            {
                "base-url": "https://x.example.com",
                "chat-load-scale": "lots",
                "chat-concurrency-scale": "2",
                "chat-min-unique-coverage": "0.4",
                "chat-min-unique-users": "3",
                "chat-min-pool-size": "12",
                "chat-rotation-stride": "wide",
                "timeout-ms": "1500",
            }
        )
        assert options.chat_scale.load == 1.0
        assert options.chat_scale.concurrency == 2.0
        assert options.min_unique_coverage == 0.4
        assert options.min_unique_users == 3
        assert options.min_pool_size == 12
        assert options.rotation.stride == 1
        assert options.timeout_ms == 1500

    def test_pool_from_file(self, pool_file):
        options = resolve_options(
            {"base-url": "https://x.example.com", "chat-auth-pool-file": str(pool_file)}
        )
        assert len(options.chat_pool) == 10

    def test_invalid_pool_json(self):
        with pytest.raises(ConfigurationError):
            resolve_options({"base-url": "https://x.example.com", "chat-auth-pool-json": "[{}]"})

    def test_stage_plan_flag(self, tmp_path):
        path = tmp_path / "plan.yaml"
        path.write_text("stages:\n  - total: 2\n")
        options = resolve_options({"base-url": "https://x.example.com", "stage-plan": str(path)})
        assert options.stage_plan.stages[0].total == 2

    def test_explicit_settings(self):
        settings = Settings(reliability_base_url="https://settings.example.com", reliability_output_dir="out")
        options = resolve_options({}, settings)
        assert options.base_url == "https://settings.example.com"
        assert options.output_dir == Path("out")

    def test_pool_json_from_environment(self, monkeypatch):
        monkeypatch.setenv("RELIABILITY_BASE_URL", "https://env.example.com")
        monkeypatch.setenv(
            "RELIABILITY_CHAT_AUTH_POOL_JSON", json.dumps([{"authToken": "a", "threadId": "b"}])
        )
        assert len(resolve_options({}).chat_pool) == 1

    def test_unparsable_numeric_environment_uses_defaults(self, monkeypatch):
        monkeypatch.setenv("RELIABILITY_BASE_URL", "https://env.example.com")
        monkeypatch.setenv("RELIABILITY_CHAT_ROTATION_STRIDE", "wide")
        monkeypatch.setenv("RELIABILITY_REQUEST_TIMEOUT_MS", "soon")
        options = resolve_options({})
        assert options.rotation.stride == 1
        assert options.timeout_ms == 30_000
        assert options.chat_model_id == "moonshotai/kimi-k2.5"

    def test_numeric_environment_below_flags(self, monkeypatch):
        monkeypatch.setenv("RELIABILITY_BASE_URL", "https://env.example.com")
        monkeypatch.setenv("RELIABILITY_CHAT_ROTATION_STRIDE", "4")
        monkeypatch.setenv("RELIABILITY_REQUEST_TIMEOUT_MS", "900")
        assert resolve_options({}).rotation.stride == 4
        assert resolve_options({"timeout-ms": "1200"}).timeout_ms == 1200
