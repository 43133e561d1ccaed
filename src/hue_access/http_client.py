from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import httpx

from hue_access.errors import (
    ApiFailure,
    AuthenticationFailure,
    ConnectionFailure,
    ResourceNotFound,
    WriteResult,
)

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.ReadTimeout, httpx.NetworkError)

# Error envelope types, see the bridge's `[{"error": {...}}]` responses.
_ERROR_UNAUTHORIZED = 1
_ERROR_LIGHT_OFF = 201


def _describe(body: Any) -> str | None:
    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            description = errors[0].get("description")
            if isinstance(description, str):
                return description
        message = body.get("message")
        if isinstance(message, str):
            return message
    if isinstance(body, str) and body.strip():
        return body.strip()
    return None


def check_error_envelope(body: Any, *, soft_ignore_off: bool = True) -> WriteResult:
    """Inspect a response for an error envelope before treating it as data.

    Returns ``WriteResult.LIGHT_OFF`` for errors that only say the target is off,
    ``WriteResult.APPLIED`` when there is no error, and raises otherwise. Reads pass
    ``soft_ignore_off=False`` since a read has no soft outcome.
    """
    if not isinstance(body, list) or not body:
        return WriteResult.APPLIED
    first = body[0]
    if not isinstance(first, dict) or not isinstance(first.get("error"), dict):
        return WriteResult.APPLIED
    error = first["error"]
    error_type = error.get("type")
    description = error.get("description") or "Unknown API error"
    if error_type == _ERROR_UNAUTHORIZED:
        raise AuthenticationFailure(description, body=body)
    if error_type == _ERROR_LIGHT_OFF and soft_ignore_off:
        return WriteResult.LIGHT_OFF
    raise ApiFailure(description, body=body)


class ResourceClient:
    """Thin JSON-over-HTTP client shared by both backends."""

    def __init__(
        self,
        *,
        base_url: str,
        headers: dict[str, str] | None = None,
        verify: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = dict(headers or {})
        self._verify = verify
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client:
            return self._client
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            verify=self._verify,
            timeout=httpx.Timeout(10.0, connect=3.0),
            headers=self._headers,
            transport=self._transport,
        )
        return self._client

    async def request_json(self, *, method: str, path: str, json_body: Any | None = None) -> Any:
        client = await self._get_client()
        try:
            resp = await client.request(method, path, json=json_body)
        except _TRANSPORT_ERRORS as exc:
            raise ConnectionFailure(f"{method} {path} failed: {exc}") from exc

        body = self._parse_body(resp)
        if resp.status_code >= 400:
            self._raise_for_status(resp.status_code, body, path)
        return body

    async def get_json(self, path: str) -> Any:
        body = await self.request_json(method="GET", path=path)
        check_error_envelope(body, soft_ignore_off=False)
        return body

    async def put_json(self, path: str, *, json_body: Any) -> Any:
        return await self.request_json(method="PUT", path=path, json_body=json_body)

    async def post_json(self, path: str, *, json_body: Any) -> Any:
        return await self.request_json(method="POST", path=path, json_body=json_body)

    @staticmethod
    def _parse_body(resp: httpx.Response) -> Any:
        text = resp.text
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except ValueError:
            if resp.status_code >= 400:
                return text
            raise ApiFailure(f"Unparseable response from {resp.request.url.path}", body=text)

    @staticmethod
    def _raise_for_status(status_code: int, body: Any, path: str) -> None:
        description = _describe(body)
        if status_code in (401, 403):
            raise AuthenticationFailure(description or "Authentication failed", body=body)
        if status_code == 404:
            raise ResourceNotFound(description or f"Resource {path} not found", body=body)
        if status_code == 429:
            raise ApiFailure("Rate limit exceeded", body=body)
        raise ApiFailure(description or f"Upstream error: {status_code}", body=body)

    async def stream_sse_json(self, path: str) -> AsyncIterator[Any]:
        client = await self._get_client()
        headers = {"Accept": "text/event-stream"}
        try:
            async with client.stream("GET", path, headers=headers, timeout=None) as resp:
                if resp.status_code >= 400:
                    raw = await resp.aread()
                    self._raise_for_status(resp.status_code, raw.decode("utf-8", "ignore"), path)

                data_lines: list[str] = []
                async for line in resp.aiter_lines():
                    if line == "":
                        if data_lines:
                            payload = "\n".join(data_lines)
                            data_lines = []
                            try:
                                yield json.loads(payload)
                            except ValueError:
                                logger.warning("Skipping unparseable event payload: %.200s", payload)
                        continue
                    if line.startswith("data:"):
                        data_lines.append(line[len("data:") :].lstrip())
        except _TRANSPORT_ERRORS as exc:
            raise ConnectionFailure(f"Event stream {path} failed: {exc}") from exc
