"""Base class for drill scenarios."""

from abc import ABC, abstractmethod
from typing import Any

from ..http import HttpRequest
from ..models import ScenarioSummary, SloEvaluation, SloThresholds, StageConfig
from ..slo import evaluate_slo


class Scenario(ABC):
    """A named target endpoint with its stage plan and SLO.

    Subclasses build one request per index. Scenarios that need credentials
    the run does not have report themselves disabled with a reason instead
    of failing the run.
    """

    name: str

    def __init__(
        self,
        stages: list[StageConfig],
        slo: SloThresholds,
        enabled: bool = True,
        skip_reason: str | None = None,
    ) -> None:
        self._stages = list(stages)
        self.slo = slo
        self._enabled = enabled
        self._skip_reason = skip_reason

    def is_enabled(self) -> tuple[bool, str | None]:
        if self._enabled:
            return True, None
        return False, self._skip_reason or "disabled"

    def stages(self) -> list[StageConfig]:
        return list(self._stages)

    @abstractmethod
    def build_request(self, index: int) -> HttpRequest:
        """Build the request for the given request index."""
        ...

    def evaluate(self, summary: ScenarioSummary) -> SloEvaluation:
        return evaluate_slo(summary, self.slo)

    def start_run(self) -> None:
        """Reset per-run accumulators before the first stage."""

    def summary_metadata(self) -> dict[str, Any]:
        """Extra ``ScenarioSummary`` fields contributed by the scenario."""
        return {}
