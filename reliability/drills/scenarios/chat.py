"""Streaming chat endpoint scenario with auth pool rotation."""

import json
from typing import Any

from ..http import HttpRequest, join_url
from ..models import ChatPoolSummary, SloThresholds, StageConfig
from ..options import DEFAULT_CHAT_MODEL_ID
from ..rotation import ChatAuthPoolEntry, PoolCoverage, RotationConfig, select_slot
from .base import Scenario

SKIP_REASON = (
    "Set RELIABILITY_AUTH_TOKEN and RELIABILITY_THREAD_ID "
    "(or a chat auth pool) to enable chat load drill."
)


def chat_slo() -> SloThresholds:
    return SloThresholds(
        max_p95_ms=12_000,
        max_five_xx_rate=0.05,
        max_network_error_rate=0.05,
        max_unknown_status_rate=0.1,
        allowed_statuses=[200, 401, 429, 503],
    )


class ChatStreamScenario(Scenario):
    """POSTs to the chat endpoint and drains the streamed answer.

    With a pool loaded, every request index rotates to one pool identity and
    the identities touched are tracked for coverage checks. Without a pool the
    static token/thread pair is used for every request.
    """

    name = "chat_stream_http"

    def __init__(
        self,
        base_url: str,
        stages: list[StageConfig],
        slo: SloThresholds,
        auth_token: str = "",
        thread_id: str = "",
        pool: list[ChatAuthPoolEntry] | None = None,
        rotation: RotationConfig | None = None,
        model_id: str = DEFAULT_CHAT_MODEL_ID,
        path: str = "/api/chat",
        selected: bool = True,
    ) -> None:
        self._pool = list(pool or [])
        self._auth_token = auth_token
        self._thread_id = thread_id
        has_credentials = bool(self._pool) or bool(auth_token and thread_id)
        skip_reason = SKIP_REASON if selected else "filtered out"
        super().__init__(
            stages, slo, enabled=selected and has_credentials, skip_reason=skip_reason
        )
        self._url = join_url(base_url, path)
        self._rotation = rotation or RotationConfig()
        self._model_id = model_id
        self.coverage = PoolCoverage(len(self._pool))

    @property
    def pool_size(self) -> int:
        return len(self._pool)

    def credentials_for(self, index: int) -> tuple[str, str]:
        if not self._pool:
            return self._auth_token, self._thread_id
        slot = select_slot(index, len(self._pool), self._rotation)
        entry = self._pool[slot]
        self.coverage.touch(entry, slot)
        return entry.auth_token, entry.thread_id

    def build_request(self, index: int) -> HttpRequest:
        token, thread_id = self.credentials_for(index)
        body = {"threadId": thread_id, "modelId": self._model_id, "webSearch": False}
        return HttpRequest(
            method="POST",
            url=self._url,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {token}",
            },
            content=json.dumps(body).encode("utf-8"),
            consume_body=True,
        )

    def start_run(self) -> None:
        self.coverage.reset()

    def summary_metadata(self) -> dict[str, Any]:
        if not self._pool:
            return {}
        return {
            "chat_pool": ChatPoolSummary(
                size=self.pool_size,
                unique_used=self.coverage.unique_used,
                unique_coverage=round(self.coverage.unique_coverage, 4),
                rotation_mode=self._rotation.mode.value,
                rotation_stride=self._rotation.stride,
                rotation_seed=self._rotation.seed,
            )
        }
