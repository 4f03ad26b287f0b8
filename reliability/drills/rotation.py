"""Chat auth pool: loading, deterministic slot rotation and coverage accounting.

The pool is a list of pre-provisioned (user, thread, token) identities. Each
request index maps to one slot so that concurrent chat workers spread their
load over several backing users instead of hammering a single thread.
"""

import json
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

import structlog

from reliability.config import ConfigurationError

logger = structlog.get_logger()

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a over the string's character codes.

    Slot assignments for ``stride`` and ``random`` rotation depend on this
    exact function; changing it reshuffles every seeded run.
    """
    value = FNV_OFFSET_BASIS
    for char in text:
        value ^= ord(char)
        value = (value * FNV_PRIME) & 0xFFFFFFFF
    return value


class RotationMode(StrEnum):
    ROUND_ROBIN = "round_robin"
    STRIDE = "stride"
    RANDOM = "random"

    @classmethod
    def parse(cls, value: str | None) -> "RotationMode":
        normalized = (value or "").strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            return cls.ROUND_ROBIN


@dataclass(frozen=True)
class RotationConfig:
    mode: RotationMode = RotationMode.ROUND_ROBIN
    stride: int = 1
    seed: str = "reliability"

    def __post_init__(self) -> None:
        object.__setattr__(self, "stride", max(int(self.stride), 1))

    def as_dict(self) -> dict[str, str | int]:
        return {"mode": self.mode.value, "stride": self.stride, "seed": self.seed}


def select_slot(index: int, size: int, config: RotationConfig) -> int:
    """Map a request index to a pool slot in ``[0, size)``.

    An empty pool always yields slot 0; callers treat that as "no pool".
    """
    if size <= 0:
        return 0
    if config.mode is RotationMode.STRIDE:
        offset = fnv1a_32(config.seed) % size
        return (index * config.stride + offset) % size
    if config.mode is RotationMode.RANDOM:
        return fnv1a_32(f"{config.seed}:{index}") % size
    return index % size


@dataclass(frozen=True)
class ChatAuthPoolEntry:
    auth_token: str
    thread_id: str
    email: str | None = None
    user_label: str | None = None

    def identity(self, slot: int) -> str:
        return self.user_label or self.email or str(slot)


def _parse_entry(raw: Any, position: int) -> ChatAuthPoolEntry:
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Chat auth pool entry #{position} must be an object.")
    token = raw.get("authToken") or raw.get("token")
    thread_id = raw.get("threadId")
    if not isinstance(token, str) or not token.strip():
        raise ConfigurationError(
            f"Chat auth pool entry #{position} is missing a non-empty 'authToken' (or 'token')."
        )
    if not isinstance(thread_id, str) or not thread_id.strip():
        raise ConfigurationError(
            f"Chat auth pool entry #{position} is missing a non-empty 'threadId'."
        )
    email = raw.get("email")
    label = raw.get("userLabel")
    return ChatAuthPoolEntry(
        auth_token=token,
        thread_id=thread_id,
        email=email if isinstance(email, str) and email else None,
        user_label=label if isinstance(label, str) and label else None,
    )


def parse_chat_auth_pool(text: str, source: str = "inline JSON") -> list[ChatAuthPoolEntry]:
    """Parse and validate a JSON array of pool entries."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Chat auth pool from {source} is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise ConfigurationError(f"Chat auth pool from {source} must be a JSON array.")
    return [_parse_entry(raw, position) for position, raw in enumerate(data)]


def load_chat_auth_pool(
    pool_json: str | None = None,
    pool_file: str | None = None,
) -> list[ChatAuthPoolEntry]:
    """Load the pool from inline JSON, else from a file, else return an empty pool."""
    if pool_json:
        entries = parse_chat_auth_pool(pool_json)
    elif pool_file:
        path = Path(pool_file)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"Cannot read chat auth pool file {path}: {exc}") from exc
        entries = parse_chat_auth_pool(text, source=str(path))
    else:
        return []
    logger.info("chat_auth_pool_loaded", size=len(entries))
    return entries


class PoolCoverage:
    """Distinct identities touched during one scenario run."""

    def __init__(self, size: int) -> None:
        self.size = size
        self._seen: set[str] = set()

    def touch(self, entry: ChatAuthPoolEntry, slot: int) -> None:
        self._seen.add(entry.identity(slot))

    def reset(self) -> None:
        self._seen.clear()

    @property
    def unique_used(self) -> int:
        return len(self._seen)

    @property
    def unique_coverage(self) -> float:
        if self.size <= 0:
            return 0.0
        return self.unique_used / self.size
