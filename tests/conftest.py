"""Shared test fixtures for the reliability drill tests."""

import json
from pathlib import Path

import pytest
import structlog

from reliability.config import Settings
from reliability.drills.rotation import ChatAuthPoolEntry

SETTINGS_ENV_VARS = [name.upper() for name in Settings.model_fields]


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep the developer's shell environment and ``.env`` file out of every test."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo ``setup_logging`` so later tests don't write to a closed captured stream."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def pool_payload() -> list[dict]:
    return [
        {
            "authToken": f"token-{i}",
            "threadId": f"thread-{i}",
            "email": f"load+{i}@example.com",
            "userLabel": f"user-{i}",
        }
        for i in range(10)
    ]


@pytest.fixture
def pool_entries(pool_payload) -> list[ChatAuthPoolEntry]:
    return [
        ChatAuthPoolEntry(
            auth_token=raw["authToken"],
            thread_id=raw["threadId"],
            email=raw["email"],
            user_label=raw["userLabel"],
        )
        for raw in pool_payload
    ]


@pytest.fixture
def pool_file(tmp_path, pool_payload) -> Path:
    path = tmp_path / "chat-auth-pool.json"
    path.write_text(json.dumps(pool_payload), encoding="utf-8")
    return path


@pytest.fixture
def output_dir(tmp_path) -> Path:
    return tmp_path / "reports"
