"""Dispatching drill requests through a shared httpx client."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

import httpx

DEFAULT_TIMEOUT_MS = 30_000


@dataclass
class HttpRequest:
    """A fully built request, ready to send."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes | None = None
    params: dict[str, str] | None = None
    # Drain the response body chunk by chunk instead of discarding it once
    # the headers arrived. Needed to time the first streamed token.
    consume_body: bool = False


@dataclass
class HttpOutcome:
    status: int
    first_token_ms: float | None = None


def join_url(base_url: str, path: str, params: dict[str, str | None] | None = None) -> str:
    """Resolve *path* against *base_url*, keeping only non-empty query values."""
    url = httpx.URL(base_url).join(path)
    if params:
        kept = {key: value for key, value in params.items() if value}
        if kept:
            url = url.copy_merge_params(kept)
    return str(url)


class HttpDispatcher:
    """Sends :class:`HttpRequest` objects with a per-request timeout.

    The timeout covers the whole exchange, including body draining. When it
    fires the in-flight request is cancelled and ``TimeoutError`` surfaces to
    the stage runner, which records it by name.
    """

    def __init__(self, client: httpx.AsyncClient, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> None:
        self._client = client
        self._timeout_seconds = max(timeout_ms, 1) / 1000.0

    async def send(self, request: HttpRequest) -> HttpOutcome:
        started = time.monotonic()
        first_token_ms: float | None = None
        async with asyncio.timeout(self._timeout_seconds):
            async with self._client.stream(
                request.method,
                request.url,
                headers=request.headers,
                content=request.content,
                params=request.params,
            ) as response:
                if request.consume_body:
                    async for chunk in response.aiter_bytes():
                        if chunk and first_token_ms is None:
                            first_token_ms = round((time.monotonic() - started) * 1000)
                status = response.status_code
        return HttpOutcome(status=status, first_token_ms=first_token_ms)


def build_client(max_connections: int = 200, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> httpx.AsyncClient:
    """Client with retries disabled so every attempt is measured once."""
    transport = httpx.AsyncHTTPTransport(
        retries=0,
        limits=httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_connections // 2,
        ),
    )
    return httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(max(timeout_ms, 1) / 1000.0),
    )
