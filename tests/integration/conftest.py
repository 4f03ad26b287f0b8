"""Stub product endpoints served in-process for drill and probe integration tests."""

import hashlib
import hmac
import json
from collections import Counter

import pytest
from fastapi import FastAPI, Request, Response
from fastapi.responses import StreamingResponse
from httpx import ASGITransport, AsyncClient

STUB_BASE_URL = "http://stub.test"
GMAIL_TOKEN = "gmail-verify-token"
WHATSAPP_SECRET = "whatsapp-app-secret"
PROBE_ORIGIN = "https://www.sendcat.app"


def create_stub_app(seen: Counter) -> FastAPI:
    """Minimal stand-in for the product's HTTP router.

    *seen* counts requests per route, and chat requests per bearer token, so
    tests can assert what the drill actually sent.
    """
    app = FastAPI()

    @app.post("/api/gmail/push")
    async def gmail_push(request: Request):
        seen["gmail"] += 1
        if request.query_params.get("token") != GMAIL_TOKEN:
            return Response(status_code=403)
        body = await request.json()
        if not body.get("message", {}).get("data"):
            return Response(status_code=400)
        return {"ok": True}

    @app.get("/api/whatsapp/webhook")
    async def whatsapp_verify(request: Request):
        if request.query_params.get("hub.verify_token") != "expected-verify-token":
            return Response(status_code=403)
        return Response(content=request.query_params.get("hub.challenge", ""))

    @app.post("/api/whatsapp/webhook")
    async def whatsapp_webhook(request: Request):
        seen["whatsapp"] += 1
        raw = await request.body()
        expected = "sha256=" + hmac.new(WHATSAPP_SECRET.encode(), raw, hashlib.sha256).hexdigest()
        if not hmac.compare_digest(request.headers.get("x-hub-signature-256", ""), expected):
            return Response(status_code=403)
        payload = json.loads(raw)
        messages = payload["entry"][0]["changes"][0]["value"]["messages"]
        return Response(status_code=200 if messages else 400)

    @app.options("/api/chat")
    async def chat_preflight(request: Request):
        origin = request.headers.get("origin", "")
        headers = {"access-control-allow-origin": origin} if origin == PROBE_ORIGIN else {}
        return Response(status_code=204, headers=headers)

    @app.post("/api/chat")
    async def chat(request: Request):
        auth = request.headers.get("authorization", "")
        if not auth.startswith("Bearer "):
            return Response(status_code=401)
        seen["chat"] += 1
        seen[auth] += 1

        async def tokens():
            for word in ("hello", " from", " the", " stub"):
                yield word.encode()

        return StreamingResponse(tokens(), media_type="text/plain")

    return app


@pytest.fixture
def seen() -> Counter:
    return Counter()


@pytest.fixture
def stub_app(seen) -> FastAPI:
    return create_stub_app(seen)


@pytest.fixture
def stub_client(stub_app):
    """Factory for an HTTPX AsyncClient wired to the stub app."""

    def _client() -> AsyncClient:
        return AsyncClient(transport=ASGITransport(app=stub_app), base_url=STUB_BASE_URL)

    return _client
