"""Load profiles: named stage plans, chat scaling and milestone policies."""

import math
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from reliability.config import ConfigurationError

from .models import StageConfig

BASE_PROFILES = ("quick", "standard", "burst", "soak")
MILESTONE_PROFILES = ("m1_1k", "m2_5k", "m3_10k")
PROFILES = BASE_PROFILES + MILESTONE_PROFILES

MIN_SCALE = 0.1


def resolve_profile(raw_profile: str | None, quick_mode: bool = False) -> str:
    """``--quick`` always wins; unknown names fall back to ``standard``."""
    if quick_mode:
        return "quick"
    profile = (raw_profile or "standard").strip().lower()
    return profile if profile in PROFILES else "standard"


def stages_for_profile(profile: str) -> list[StageConfig]:
    """Stage plan shared by the webhook scenarios."""
    if profile == "quick":
        return [StageConfig("quick", total=30, concurrency=6)]
    if profile == "burst":
        return [
            StageConfig("warmup", total=80, concurrency=10, pause_after_ms=300),
            StageConfig("burst", total=1200, concurrency=120, pause_after_ms=500),
        ]
    if profile == "soak":
        # Steady four minutes, long enough to surface drift.
        return [StageConfig("soak", duration_ms=4 * 60_000, concurrency=12, pause_after_ms=500)]
    return [
        StageConfig("low", total=80, concurrency=8, pause_after_ms=250),
        StageConfig("medium", total=240, concurrency=24, pause_after_ms=300),
        StageConfig("spike", total=500, concurrency=60),
    ]


def chat_stages_for_profile(profile: str) -> list[StageConfig]:
    """Chat streams are expensive, so their plans are much smaller."""
    if profile == "quick":
        return [StageConfig("quick", total=3, concurrency=1)]
    if profile == "burst":
        return [
            StageConfig("warmup", total=6, concurrency=2, pause_after_ms=250),
            StageConfig("burst", total=24, concurrency=6),
        ]
    if profile == "soak":
        return [StageConfig("soak", duration_ms=90_000, concurrency=2)]
    if profile == "m1_1k":
        return [
            StageConfig("ramp", total=20, concurrency=4, pause_after_ms=500),
            StageConfig("sustain", duration_ms=60_000, concurrency=8),
        ]
    if profile == "m2_5k":
        return [
            StageConfig("ramp", total=40, concurrency=10, pause_after_ms=500),
            StageConfig("sustain", duration_ms=120_000, concurrency=20),
        ]
    if profile == "m3_10k":
        return [
            StageConfig("ramp", total=80, concurrency=20, pause_after_ms=500),
            StageConfig("sustain", duration_ms=180_000, concurrency=40, pause_after_ms=500),
            StageConfig("spike", total=200, concurrency=60),
        ]
    return [
        StageConfig("low", total=6, concurrency=2, pause_after_ms=200),
        StageConfig("medium", total=12, concurrency=3),
    ]


@dataclass(frozen=True)
class ChatScale:
    load: float = 1.0
    concurrency: float = 1.0
    duration: float = 1.0

    def __post_init__(self) -> None:
        for name in ("load", "concurrency", "duration"):
            object.__setattr__(self, name, max(float(getattr(self, name)), MIN_SCALE))

    def as_dict(self) -> dict[str, float]:
        return {"load": self.load, "concurrency": self.concurrency, "duration": self.duration}


def _scaled(value: float, factor: float) -> int:
    # Halves round up: 5 x 0.5 is 3, not banker's 2.
    return max(math.floor(value * factor + 0.5), 1)


def scale_chat_stages(stages: list[StageConfig], scale: ChatScale) -> list[StageConfig]:
    """Multiply totals, concurrency and durations, never dropping below 1."""
    scaled = []
    for stage in stages:
        scaled.append(
            replace(
                stage,
                total=_scaled(stage.total, scale.load) if stage.total is not None else None,
                duration_ms=_scaled(stage.duration_ms, scale.duration)
                if stage.duration_ms is not None
                else None,
                concurrency=_scaled(stage.concurrency, scale.concurrency),
            )
        )
    return scaled


@dataclass(frozen=True)
class MilestonePolicy:
    """Extra SLO floors the chat scenario must meet at a capacity milestone."""

    max_p95_ms: float
    min_two_xx_rate: float
    max_429_rate: float
    max_first_token_p95_ms: float
    min_unique_pool_coverage: float
    min_auth_pool_size: int


MILESTONE_POLICIES: dict[str, MilestonePolicy] = {
    "m1_1k": MilestonePolicy(
        max_p95_ms=12_000,
        min_two_xx_rate=0.95,
        max_429_rate=0.03,
        max_first_token_p95_ms=4_000,
        min_unique_pool_coverage=0.5,
        min_auth_pool_size=10,
    ),
    "m2_5k": MilestonePolicy(
        max_p95_ms=15_000,
        min_two_xx_rate=0.93,
        max_429_rate=0.05,
        max_first_token_p95_ms=5_000,
        min_unique_pool_coverage=0.6,
        min_auth_pool_size=25,
    ),
    "m3_10k": MilestonePolicy(
        max_p95_ms=18_000,
        min_two_xx_rate=0.9,
        max_429_rate=0.08,
        max_first_token_p95_ms=6_000,
        min_unique_pool_coverage=0.7,
        min_auth_pool_size=50,
    ),
}


def milestone_policy(profile: str) -> MilestonePolicy | None:
    return MILESTONE_POLICIES.get(profile)


@dataclass(frozen=True)
class StagePlan:
    """Stage lists read from a YAML plan file; ``None`` keeps the profile's plan."""

    stages: list[StageConfig] | None = None
    chat_stages: list[StageConfig] | None = None


def _stage_from_mapping(raw: Any, key: str, position: int) -> StageConfig:
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Stage plan entry {key}[{position}] must be a mapping.")
    try:
        return StageConfig(
            name=str(raw.get("name") or f"{key}_{position}"),
            total=raw.get("total"),
            duration_ms=raw.get("duration_ms"),
            concurrency=raw.get("concurrency", 1),
            pause_after_ms=raw.get("pause_after_ms", 0),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Stage plan entry {key}[{position}] is invalid: {exc}") from exc


def load_stage_plan(path: str | Path) -> StagePlan:
    """Read a YAML file with ``stages`` and/or ``chat_stages`` lists."""
    plan_path = Path(path)
    try:
        with open(plan_path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot load stage plan {plan_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Stage plan {plan_path} must be a mapping.")

    lists: dict[str, list[StageConfig] | None] = {}
    for key in ("stages", "chat_stages"):
        raw_list = data.get(key)
        if raw_list is None:
            lists[key] = None
            continue
        if not isinstance(raw_list, list) or not raw_list:
            raise ConfigurationError(f"Stage plan {plan_path}: '{key}' must be a non-empty list.")
        lists[key] = [_stage_from_mapping(raw, key, i) for i, raw in enumerate(raw_list)]
    return StagePlan(stages=lists["stages"], chat_stages=lists["chat_stages"])
