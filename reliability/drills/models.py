"""Stage and SLO configuration plus the result models written into reports."""

import math
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field


@dataclass
class StageConfig:
    """One bounded burst of concurrent requests.

    A stage runs until ``total`` requests were dispatched (count mode) or
    ``duration_ms`` elapsed (duration mode). With neither set it is an empty
    count-mode stage.
    """

    name: str
    total: int | None = None
    duration_ms: int | None = None
    concurrency: int = 1
    pause_after_ms: int = 0

    def __post_init__(self) -> None:
        self.concurrency = max(int(self.concurrency), 1)
        if self.total is not None:
            self.total = max(math.floor(self.total), 0)
        if self.duration_ms is not None:
            self.duration_ms = max(math.floor(self.duration_ms), 1)
        if self.total is None and self.duration_ms is None:
            self.total = 0
        self.pause_after_ms = max(int(self.pause_after_ms or 0), 0)

    @property
    def mode(self) -> str:
        return "duration" if self.duration_ms is not None else "count"


@dataclass
class SloThresholds:
    """Ceilings and floors a scenario summary is checked against.

    The first four checks always run; every optional field enables its check
    only when set.
    """

    max_p95_ms: float
    max_five_xx_rate: float
    max_network_error_rate: float
    max_unknown_status_rate: float
    allowed_statuses: list[int] = field(default_factory=list)
    min_two_xx_rate: float | None = None
    max_429_rate: float | None = None
    max_first_token_p95_ms: float | None = None
    min_unique_pool_coverage: float | None = None
    min_unique_pool_users: int | None = None
    min_auth_pool_size: int | None = None


class LatencyStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_ms: float = 0
    p50_ms: float = 0
    p95_ms: float = 0
    p99_ms: float = 0
    max_ms: float = 0
    avg_ms: float = 0
    first_token_p95_ms: float | None = None


class StageResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    mode: str
    requested_total: int | None = None
    requested_duration_ms: int | None = None
    executed: int = 0
    concurrency: int = 1
    wall_ms: int = 0
    requests_per_second: float = 0.0
    completed: int = 0
    failed: int = 0
    statuses: dict[str, int] = Field(default_factory=dict)
    errors: dict[str, int] = Field(default_factory=dict)
    latency: LatencyStats = Field(default_factory=LatencyStats)


class SummaryLatency(BaseModel):
    p95_ms: float = 0
    first_token_p95_ms: float | None = None


class ChatPoolSummary(BaseModel):
    size: int = 0
    unique_used: int = 0
    unique_coverage: float = 0.0
    rotation_mode: str = "round_robin"
    rotation_stride: int = 1
    rotation_seed: str = ""


class ScenarioSummary(BaseModel):
    total_requests: int = 0
    completed: int = 0
    failed: int = 0
    statuses: dict[str, int] = Field(default_factory=dict)
    errors: dict[str, int] = Field(default_factory=dict)
    latency: SummaryLatency = Field(default_factory=SummaryLatency)
    chat_pool: ChatPoolSummary | None = None


class SloCheck(BaseModel):
    name: str
    passed: bool
    actual: float
    threshold: float


class SloEvaluation(BaseModel):
    passed: bool
    checks: list[SloCheck] = Field(default_factory=list)

    def failed_checks(self) -> list[SloCheck]:
        return [check for check in self.checks if not check.passed]


class ScenarioResult(BaseModel):
    name: str
    skipped: bool = False
    reason: str | None = None
    stages: list[StageResult] = Field(default_factory=list)
    summary: ScenarioSummary | None = None
    slo: SloEvaluation | None = None

    @property
    def passed(self) -> bool:
        """Skipped scenarios never fail a run."""
        if self.skipped:
            return True
        return self.slo is not None and self.slo.passed


class DrillReport(BaseModel):
    started_at: str
    finished_at: str
    base_url: str
    quick_mode: bool = False
    profile: str
    scenario_filter: list[str] | None = None
    chat_rotation: dict[str, str | int] = Field(default_factory=dict)
    chat_scale: dict[str, float] = Field(default_factory=dict)
    scenarios: list[ScenarioResult] = Field(default_factory=list)
    passed: bool = True
