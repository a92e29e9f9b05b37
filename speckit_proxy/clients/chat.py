"""Chat-completion client: OpenRouter, Azure OpenAI or OpenAI.

The provider is fixed by ``ProxyConfig.llm_provider`` at startup. All three
speak the OpenAI chat-completions shape; only the URL and auth header differ.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from speckit_proxy.clients.base import UpstreamClient
from speckit_proxy.errors import ConfigurationError, UpstreamError

if TYPE_CHECKING:
    import httpx

    from speckit_proxy.config import ProxyConfig

logger = logging.getLogger(__name__)


def extract_reply(payload: Any) -> str:
    """Pull the first choice's message content out of a completion payload.

    No choices at all is an empty reply, not an error.
    """
    if not isinstance(payload, dict):
        raise UpstreamError("Malformed completion response", details=payload)

    choices = payload.get("choices") or []
    if not choices:
        logger.warning("Completion response contained no choices")
        return ""

    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict) or "content" not in message:
        raise UpstreamError("Malformed completion response", details=payload)
    return message["content"] or ""


class ChatCompletionClient(UpstreamClient):
    name = "chat-completion"

    def __init__(
        self,
        config: ProxyConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(timeout=config.request_timeout, transport=transport)
        self.config = config

    @property
    def provider(self) -> str:
        return self.config.llm_provider

    def _endpoint(self) -> tuple[str, dict[str, str], dict[str, Any]]:
        """Return (url, headers, extra body fields) for the configured provider."""
        cfg = self.config
        match cfg.llm_provider:
            case "openrouter":
                if not cfg.openrouter_api_key:
                    raise ConfigurationError("Missing OPENROUTER_API_KEY")
                return (
                    cfg.openrouter_url,
                    {"Authorization": f"Bearer {cfg.openrouter_api_key}"},
                    {"model": cfg.llm_model},
                )
            case "openai":
                if not cfg.openai_api_key:
                    raise ConfigurationError("Missing OPENAI_API_KEY")
                return (
                    cfg.openai_url,
                    {"Authorization": f"Bearer {cfg.openai_api_key}"},
                    {"model": cfg.llm_model},
                )
            case "azure":
                if not (
                    cfg.azure_openai_endpoint
                    and cfg.azure_model_deployment
                    and cfg.openai_api_key
                ):
                    raise ConfigurationError(
                        "Missing Azure OpenAI config (AZURE_OPENAI_ENDPOINT, "
                        "AZURE_MODEL_DEPLOYMENT, OPENAI_API_KEY)"
                    )
                url = (
                    f"{cfg.azure_openai_endpoint.rstrip('/')}/openai/deployments/"
                    f"{cfg.azure_model_deployment}/chat/completions"
                    f"?api-version={cfg.azure_openai_api_version}"
                )
                # Azure picks the model from the deployment in the URL.
                return url, {"api-key": cfg.openai_api_key}, {}
            case _:
                raise ConfigurationError(f"Unknown LLM_PROVIDER: {cfg.llm_provider}")

    async def complete(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Send a conversation and return the first reply's text."""
        url, headers, extra = self._endpoint()
        body = {
            **extra,
            "messages": messages,
            "max_tokens": max_tokens or self.config.max_tokens,
            "temperature": (
                temperature if temperature is not None else self.config.temperature
            ),
        }

        logger.info(
            f"Calling {self.provider} with {len(messages)} message(s), "
            f"max_tokens={body['max_tokens']}"
        )
        result = await self._send(
            "POST", url, headers=headers, json=body, failure="LLM request failed"
        )
        payload = result.unwrap("LLM request failed")
        return extract_reply(payload)
