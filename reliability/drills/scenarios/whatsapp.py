"""WhatsApp Cloud API webhook scenario."""

import hashlib
import hmac
import json
import time

from ..http import HttpRequest, join_url
from ..models import StageConfig
from .base import Scenario
from .gmail import webhook_slo

SIGNATURE_HEADER = "x-hub-signature-256"


def sign_body(body: bytes, app_secret: str) -> str:
    """``sha256=<hex>`` HMAC of the raw request body, as Meta sends it."""
    digest = hmac.new(app_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def message_payload(index: int, now: float | None = None) -> dict:
    now = now if now is not None else time.time()
    return {
        "entry": [
            {
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messages": [
                                {
                                    "id": f"wamid.load.{int(now * 1000)}.{index}",
                                    "from": "15551234567",
                                    "timestamp": str(int(now)),
                                    "type": "text",
                                    "text": {"body": "Load test webhook message"},
                                }
                            ]
                        },
                    }
                ]
            }
        ]
    }


class WhatsAppWebhookScenario(Scenario):
    name = "whatsapp_webhook"

    def __init__(
        self,
        base_url: str,
        stages: list[StageConfig],
        app_secret: str = "",
        path: str = "/api/whatsapp/webhook",
        enabled: bool = True,
    ) -> None:
        super().__init__(stages, webhook_slo(), enabled=enabled, skip_reason="filtered out")
        self._url = join_url(base_url, path)
        self._app_secret = app_secret

    def build_request(self, index: int) -> HttpRequest:
        body = json.dumps(message_payload(index)).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self._app_secret:
            headers[SIGNATURE_HEADER] = sign_body(body, self._app_secret)
        return HttpRequest(method="POST", url=self._url, headers=headers, content=body)
