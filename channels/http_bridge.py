"""
HTTP Bridge Channel — posts prompts to a host-side bridge endpoint.

The bridge lives next to the host page (a browser extension's native
messaging host, a userscript relay, …) and performs the actual insertion
and send. It answers with the same outcome vocabulary the engine expects:

  POST {url}
  {"text": "...", "force_auto_send": true, "origin": "queue"}
  → 200 {"status": "sent" | "blocked" | "not_found" | "failed", "reason": "..."}

Only connection-level failures are retried: the request never reached the
bridge, so nothing could have been delivered. Anything after the request is
on the wire is reported once.
"""
from __future__ import annotations

import structlog
from typing import Any, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from channels.base import DispatchChannel, DispatchError, coerce_result
from config.settings import DispatchConfig
from models.schemas import DispatchResult

logger = structlog.get_logger()


class HttpDispatchChannel(DispatchChannel):
    """Dispatch channel backed by an HTTP bridge."""

    name = "http"

    def __init__(self, config: DispatchConfig, transport: httpx.AsyncBaseTransport = None):
        super().__init__()
        if not config.url:
            raise ValueError("dispatch.url is required for the http channel")
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={"Content-Type": "application/json", **self.config.headers},
                timeout=httpx.Timeout(self.config.timeout_seconds, connect=10.0),
                transport=self._transport,
            )
        return self._client

    @retry(
        retry=retry_if_exception_type(httpx.ConnectError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=0.5, max=4),
        reraise=True,
    )
    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        client = await self._get_client()
        return await client.post(self.config.url, json=payload)

    async def _do_dispatch(self, text: str, force_auto_send: bool) -> DispatchResult:
        payload = {"text": text, "force_auto_send": force_auto_send, "origin": "queue"}
        try:
            resp = await self._post(payload)
        except httpx.HTTPError as e:
            logger.error("bridge_unreachable", url=self.config.url, error=str(e))
            raise DispatchError(f"Bridge unreachable: {e}", channel=self.name) from e

        if resp.status_code >= 400:
            logger.error("bridge_error", status=resp.status_code, body=resp.text[:500])
            raise DispatchError(f"Bridge responded with HTTP {resp.status_code}", channel=self.name)

        try:
            body = resp.json() if resp.content else {}
        except ValueError as e:
            raise DispatchError("Bridge returned invalid JSON", channel=self.name) from e
        return coerce_result(body)

    async def close(self):
        if self._client:
            await self._client.aclose()
