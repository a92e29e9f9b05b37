"""Azure DevOps Pipelines client: queue a run with a ``specStep`` parameter."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from speckit_proxy.clients.base import UpstreamClient, basic_auth_header
from speckit_proxy.errors import ConfigurationError

if TYPE_CHECKING:
    import httpx

    from speckit_proxy.config import ProxyConfig

logger = logging.getLogger(__name__)


@dataclass
class PipelineRun:
    run_id: str | None
    payload: Any


class PipelineClient(UpstreamClient):
    name = "azdo-pipelines"

    def __init__(
        self,
        config: ProxyConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(timeout=config.request_timeout, transport=transport)
        self.config = config

    def _runs_url(self) -> str:
        cfg = self.config
        if not (cfg.azdo_configured and cfg.azdo_pipeline_id):
            raise ConfigurationError(
                "Missing Azure DevOps pipeline config (AZDO_ORG, AZDO_PROJECT, "
                "AZDO_PIPELINE_ID, AZDO_PAT)"
            )
        return (
            f"{cfg.azdo_base_url.rstrip('/')}/{cfg.azdo_org}/{cfg.azdo_project}"
            f"/_apis/pipelines/{cfg.azdo_pipeline_id}/runs"
        )

    async def trigger(self, step: str, branch_ref: str) -> PipelineRun:
        """Queue one pipeline run on ``branch_ref`` with ``specStep=step``."""
        url = self._runs_url()
        body = {
            "resources": {"repositories": {"self": {"refName": branch_ref}}},
            "templateParameters": {"specStep": step},
        }

        logger.info(f"Triggering pipeline {self.config.azdo_pipeline_id} (step={step!r})")
        result = await self._send(
            "POST",
            url,
            headers={"Authorization": basic_auth_header(self.config.azdo_pat)},
            params={"api-version": self.config.azdo_api_version},
            json=body,
            failure="Pipeline failed",
        )
        payload = result.unwrap("Pipeline failed")

        run_id = payload.get("id") if isinstance(payload, dict) else None
        return PipelineRun(
            run_id=str(run_id) if run_id is not None else None,
            payload=payload,
        )
