"""Error taxonomy: every failure a request can hit maps to one of these.

The dispatcher turns them into ``{"error": ..., "details": ...}`` bodies at
the class's ``status_code``. A missing repo file is not an error; see
``RepoFileRef.content``.
"""

from __future__ import annotations

from typing import Any


class ProxyError(Exception):
    """Base class for request-level failures."""

    status_code: int = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ClientError(ProxyError):
    """Missing or invalid request fields."""

    status_code = 400


class ConfigurationError(ProxyError):
    """A secret or endpoint needed by this request is not configured."""

    status_code = 500


class UpstreamError(ProxyError):
    """An external API returned non-2xx, a malformed body, or was unreachable.

    ``details`` carries the upstream body for diagnostics. The client-facing
    status is always 500; the upstream's own status is kept on
    ``upstream_status``.
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        details: Any = None,
        upstream_status: int | None = None,
    ):
        super().__init__(message, details)
        self.upstream_status = upstream_status
