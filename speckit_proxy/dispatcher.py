"""Dispatcher: bridges HTTP requests to the upstream clients.

Classifies the request, runs the matching flow, and turns every outcome into a
``DispatchResult``: a success body, or ``{"error", "details"}`` at the error's
status code. Nothing raised by a flow escapes ``handle`` or ``save``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from speckit_proxy.classifier import (
    PIPELINE_PREFIX,
    ChatCompletion,
    Classification,
    PipelineTrigger,
    RepoGenerate,
    classify,
)
from speckit_proxy.clients.repo import require_rooted
from speckit_proxy.errors import ClientError, ProxyError
from speckit_proxy.prompts import generate_messages
from speckit_proxy.schemas import OutputResponse, PipelineResponse, SaveResponse

if TYPE_CHECKING:
    from speckit_proxy.clients import ChatCompletionClient, PipelineClient, RepoClient
    from speckit_proxy.config import ProxyConfig
    from speckit_proxy.schemas import InboundRequest

logger = logging.getLogger(__name__)

GENERATE_MAX_TOKENS = 2000
DEFAULT_COMMIT_MESSAGE = "Speckit AI update"


@dataclass
class DispatchResult:
    status_code: int
    body: dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.status_code < 400


class Dispatcher:
    def __init__(
        self,
        config: ProxyConfig,
        chat: ChatCompletionClient,
        pipelines: PipelineClient,
        repo: RepoClient,
    ):
        self.config = config
        self.chat = chat
        self.pipelines = pipelines
        self.repo = repo

    # -----------------------------------------------------------------------
    # Entry points
    # -----------------------------------------------------------------------

    async def handle(
        self,
        request: InboundRequest,
        allowed: tuple[type, ...] | None = None,
    ) -> DispatchResult:
        """Classify and run one inbound request.

        ``allowed`` restricts which classifications the calling route accepts.
        """

        async def run() -> dict[str, Any]:
            kind = classify(request)
            if allowed is not None and not isinstance(kind, allowed):
                raise ClientError(_rejection(kind))
            return await self._run(kind)

        return await self._guard("dispatch", run)

    async def save(
        self,
        path: Any,
        content: Any,
        commit_message: str | None = None,
    ) -> DispatchResult:
        """Write ``content`` to ``path`` in the repo as one commit."""

        async def run() -> dict[str, Any]:
            if not path or not isinstance(content, str):
                raise ClientError("path and content required")
            require_rooted(path)
            push = await self.repo.push(
                path, content, commit_message or DEFAULT_COMMIT_MESSAGE
            )
            return SaveResponse(success=True, push=push).model_dump()

        return await self._guard("save", run)

    # -----------------------------------------------------------------------
    # Flows
    # -----------------------------------------------------------------------

    async def _run(self, kind: Classification) -> dict[str, Any]:
        match kind:
            case PipelineTrigger(step=step):
                return await self._trigger_pipeline(step)
            case RepoGenerate():
                return await self._generate(kind)
            case ChatCompletion(messages=messages):
                return await self._chat(messages)
        raise TypeError(f"Unhandled classification: {kind!r}")

    async def _chat(self, messages: list[dict[str, str]]) -> dict[str, Any]:
        logger.info(f"Chat completion ({len(messages)} message(s))")
        output = await self.chat.complete(messages)
        return OutputResponse(output=output).model_dump()

    async def _trigger_pipeline(self, step: str) -> dict[str, Any]:
        logger.info(f"Pipeline trigger for step {step!r}")
        run = await self.pipelines.trigger(step, self.config.branch_ref)
        return PipelineResponse(
            output=f"Pipeline triggered for step: {step}",
            pipelineRunId=run.run_id,
        ).model_dump(by_alias=True)

    async def _generate(self, kind: RepoGenerate) -> dict[str, Any]:
        paths = kind.files or self.config.spec_files
        logger.info(f"Generate {kind.command!r} with {len(paths)} repo file(s)")

        repo_files: dict[str, str] = {}
        for path in paths:
            ref = await self.repo.read(path)
            repo_files[path] = ref.content or ""

        messages = generate_messages(kind.command, kind.prompt, repo_files)
        output = await self.chat.complete(messages, max_tokens=GENERATE_MAX_TOKENS)
        return OutputResponse(output=output).model_dump()

    # -----------------------------------------------------------------------
    # Error mapping
    # -----------------------------------------------------------------------

    async def _guard(
        self, label: str, run: Callable[[], Awaitable[dict[str, Any]]]
    ) -> DispatchResult:
        try:
            return DispatchResult(status_code=200, body=await run())
        except ProxyError as e:
            level = logging.INFO if e.status_code < 500 else logging.ERROR
            logger.log(level, f"{label} failed: {e.message}")
            return DispatchResult(status_code=e.status_code, body=e.to_body())
        except Exception as e:
            logger.error(f"Unexpected error in {label}: {e}", exc_info=True)
            return DispatchResult(status_code=500, body={"error": str(e) or repr(e)})


def _rejection(kind: Classification) -> str:
    """Error for a request whose classification the route does not serve."""
    match kind:
        case RepoGenerate():
            return "command is not accepted on this endpoint"
        case PipelineTrigger():
            return f"{PIPELINE_PREFIX} prompts are not accepted on this endpoint"
    return "command and prompt are required"
