"""Shared plumbing for the upstream clients.

Every client sends its HTTP calls through ``UpstreamClient._send`` and gets
back an ``UpstreamResult``; the public client methods then decide what a
non-2xx result means (an ``UpstreamError``, or "not found" for repo reads).
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from speckit_proxy.errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class UpstreamResult:
    """Uniform envelope for one upstream HTTP exchange."""

    ok: bool
    status_code: int
    payload: Any = None
    error_detail: Any = None

    def unwrap(self, message: str) -> Any:
        """Return the payload, or raise ``UpstreamError`` carrying the upstream body."""
        if not self.ok:
            raise UpstreamError(
                message,
                details=self.error_detail,
                upstream_status=self.status_code,
            )
        return self.payload


def _parse_body(resp: httpx.Response) -> Any:
    """Decode JSON only when the upstream says it is JSON; anything else stays text."""
    if not resp.content:
        return None
    if "json" not in resp.headers.get("content-type", "").lower():
        return resp.text
    try:
        return resp.json()
    except ValueError:
        return resp.text


def basic_auth_header(pat: str) -> str:
    """Azure DevOps PATs go in as basic auth with an empty user name."""
    token = base64.b64encode(f":{pat}".encode()).decode()
    return f"Basic {token}"


class UpstreamClient:
    """Base class holding the timeout and an optional injected transport."""

    name = "upstream"

    def __init__(
        self,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._timeout = timeout
        self._transport = transport

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json: Any = None,
        failure: str | None = None,
    ) -> UpstreamResult:
        """Send one request. Transport errors raise ``UpstreamError(failure)``."""
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.request(
                    method, url, headers=headers, params=params, json=json
                )
        except httpx.HTTPError as e:
            logger.warning(f"{self.name} {method} {url} failed: {e}")
            raise UpstreamError(
                failure or f"{self.name} request failed", details=str(e)
            ) from e

        body = _parse_body(resp)
        if resp.is_success:
            return UpstreamResult(ok=True, status_code=resp.status_code, payload=body)

        logger.warning(f"{self.name} {method} {url} returned {resp.status_code}")
        return UpstreamResult(
            ok=False, status_code=resp.status_code, error_detail=body
        )
