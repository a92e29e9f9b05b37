"""Azure DevOps Git client: read files and push single-file commits.

Pushes are optimistic: the branch head is read first and sent back as
``oldObjectId``. If the branch moved in between, Azure DevOps rejects the
push and it surfaces as ``UpstreamError``. The only retry is the add→edit
fallback when the file already exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from speckit_proxy.clients.base import (
    UpstreamClient,
    UpstreamResult,
    basic_auth_header,
)
from speckit_proxy.errors import ClientError, ConfigurationError, UpstreamError

if TYPE_CHECKING:
    import httpx

    from speckit_proxy.config import ProxyConfig

logger = logging.getLogger(__name__)

ChangeType = Literal["add", "edit"]

# add, then at most one edit
MAX_PUSH_ATTEMPTS = 2


@dataclass
class RepoFileRef:
    path: str
    content: str | None  # None = file not found


def require_rooted(path: str) -> str:
    if not isinstance(path, str) or not path.startswith("/"):
        raise ClientError(f"Repo path must start with '/': {path!r}")
    return path


def item_already_exists(result: UpstreamResult) -> bool:
    """True when a push was rejected because an ``add`` target already exists."""
    if result.ok or result.status_code not in (400, 409):
        return False
    detail = result.error_detail
    message = detail.get("message", "") if isinstance(detail, dict) else str(detail or "")
    return "already exists" in message.lower()


class RepoClient(UpstreamClient):
    name = "azdo-git"

    def __init__(
        self,
        config: ProxyConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(timeout=config.request_timeout, transport=transport)
        self.config = config

    def _repo_url(self) -> str:
        cfg = self.config
        if not (cfg.azdo_configured and cfg.azdo_repo_id):
            raise ConfigurationError(
                "Missing Azure DevOps repo config (AZDO_ORG, AZDO_PROJECT, "
                "AZDO_REPO_ID, AZDO_PAT)"
            )
        return (
            f"{cfg.azdo_base_url.rstrip('/')}/{cfg.azdo_org}/{cfg.azdo_project}"
            f"/_apis/git/repositories/{cfg.azdo_repo_id}"
        )

    async def _call(
        self,
        method: str,
        resource: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        failure: str | None = None,
    ) -> UpstreamResult:
        url = f"{self._repo_url()}/{resource}"
        return await self._send(
            method,
            url,
            headers={"Authorization": basic_auth_header(self.config.azdo_pat)},
            params={**(params or {}), "api-version": self.config.azdo_api_version},
            json=json,
            failure=failure,
        )

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def read(self, path: str) -> RepoFileRef:
        """Fetch a file's content. A 404 yields ``content=None``.

        ``$format=json`` asks for GitItem metadata carrying the file in
        ``content``. A non-JSON answer is the raw file and is kept verbatim,
        even when the file itself looks like JSON.
        """
        require_rooted(path)
        failure = f"Failed to read {path}"
        result = await self._call(
            "GET",
            "items",
            params={"path": path, "includeContent": "true", "$format": "json"},
            failure=failure,
        )
        if result.status_code == 404:
            logger.info(f"Repo file not found: {path}")
            return RepoFileRef(path=path, content=None)

        payload = result.unwrap(failure)
        if isinstance(payload, str):
            return RepoFileRef(path=path, content=payload)
        if not isinstance(payload, dict):
            raise UpstreamError(f"Malformed item response for {path}", details=payload)
        content = payload.get("content")
        if content is not None and not isinstance(content, str):
            raise UpstreamError(f"Malformed item response for {path}", details=payload)
        return RepoFileRef(path=path, content=content or "")

    async def head(self, branch_ref: str) -> str:
        """Return the current commit id of ``branch_ref``."""
        branch_filter = branch_ref.removeprefix("refs/")
        failure = f"Failed to look up {branch_ref}"
        result = await self._call(
            "GET", "refs", params={"filter": branch_filter}, failure=failure
        )
        payload = result.unwrap(failure)

        refs = payload.get("value", []) if isinstance(payload, dict) else payload
        for ref in refs or []:
            if ref.get("name") in (None, branch_ref):
                return ref["objectId"]
        raise UpstreamError(f"Cannot find {branch_ref} refs", details=payload)

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    async def _push_once(
        self,
        path: str,
        content: str,
        commit_message: str,
        mode: ChangeType,
    ) -> UpstreamResult:
        branch_ref = self.config.branch_ref
        old_object_id = await self.head(branch_ref)
        body = {
            "refUpdates": [{"name": branch_ref, "oldObjectId": old_object_id}],
            "commits": [
                {
                    "comment": commit_message,
                    "changes": [
                        {
                            "changeType": mode,
                            "item": {"path": path},
                            "newContent": {"content": content, "contentType": "rawtext"},
                        }
                    ],
                }
            ],
        }
        logger.info(f"Pushing {path} ({mode}) onto {branch_ref}@{old_object_id[:8]}")
        return await self._call(
            "POST", "pushes", json=body, failure=f"Push of {path} failed"
        )

    async def push(
        self,
        path: str,
        content: str,
        commit_message: str,
        mode: ChangeType = "add",
    ) -> Any:
        """Commit ``content`` to ``path`` and return the raw push response.

        Starting from ``add``, a rejection because the file already exists is
        retried once as ``edit`` against a freshly read head.
        """
        require_rooted(path)
        result: UpstreamResult | None = None
        for _ in range(MAX_PUSH_ATTEMPTS):
            result = await self._push_once(path, content, commit_message, mode)
            if mode == "add" and item_already_exists(result):
                logger.info(f"{path} already exists, retrying as edit")
                mode = "edit"
                continue
            break
        return result.unwrap(f"Push of {path} failed")
