"""Gmail Pub/Sub push webhook scenario."""

import base64
import json
import time

from ..http import HttpRequest, join_url
from ..models import SloThresholds, StageConfig
from .base import Scenario


def webhook_slo() -> SloThresholds:
    return SloThresholds(
        max_p95_ms=1500,
        max_five_xx_rate=0.01,
        max_network_error_rate=0.02,
        max_unknown_status_rate=0.05,
        allowed_statuses=[200, 400, 403, 429],
    )


def push_payload(index: int, now_ms: int | None = None) -> dict:
    """Pub/Sub push envelope whose ``message.data`` is base64 JSON."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    notification = {
        "emailAddress": f"loadtest+{index}@example.com",
        "historyId": f"{now_ms}-{index}",
    }
    data = base64.b64encode(json.dumps(notification).encode("utf-8")).decode("ascii")
    return {"message": {"data": data}}


class GmailPushScenario(Scenario):
    name = "gmail_push_webhook"

    def __init__(
        self,
        base_url: str,
        stages: list[StageConfig],
        verify_token: str = "",
        path: str = "/api/gmail/push",
        enabled: bool = True,
    ) -> None:
        super().__init__(stages, webhook_slo(), enabled=enabled, skip_reason="filtered out")
        self._url = join_url(base_url, path, {"token": verify_token or None})

    def build_request(self, index: int) -> HttpRequest:
        return HttpRequest(
            method="POST",
            url=self._url,
            headers={"Content-Type": "application/json"},
            content=json.dumps(push_payload(index)).encode("utf-8"),
        )
