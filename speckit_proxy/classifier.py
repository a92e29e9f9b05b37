"""Prompt classifier: decides which upstream flow an inbound request takes.

Pure function of the payload: no I/O, no config.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

from speckit_proxy.errors import ClientError

if TYPE_CHECKING:
    from speckit_proxy.schemas import InboundRequest

PIPELINE_PREFIX = "/specify."


@dataclass(frozen=True)
class ChatCompletion:
    messages: list[dict[str, str]]


@dataclass(frozen=True)
class PipelineTrigger:
    step: str


@dataclass(frozen=True)
class RepoGenerate:
    command: str
    prompt: str
    files: list[str] = field(default_factory=list)


Classification = Union[ChatCompletion, PipelineTrigger, RepoGenerate]


def pipeline_step(prompt: str) -> str:
    """``/specify.plan`` → ``plan``; ``/specify.`` → ``""``.

    The step is the segment between the first and second ``.``.
    """
    parts = prompt.split(".")
    return parts[1] if len(parts) > 1 else ""


def classify(request: InboundRequest) -> Classification:
    """Map an inbound request to exactly one flow.

    Raises ClientError when the request carries nothing to act on, or mixes
    ``messages`` with ``prompt``/``command``.
    """
    if request.messages and (request.prompt or request.command is not None):
        raise ClientError("send either prompt/command or messages, not both")

    if request.command is not None:
        if not request.command or not request.prompt:
            raise ClientError("command and prompt are required")
        return RepoGenerate(
            command=request.command,
            prompt=request.prompt,
            files=list(request.files or []),
        )

    if request.prompt:
        if request.prompt.startswith(PIPELINE_PREFIX):
            return PipelineTrigger(step=pipeline_step(request.prompt))
        return ChatCompletion(messages=[{"role": "user", "content": request.prompt}])

    if request.messages:
        return ChatCompletion(messages=[m.model_dump() for m in request.messages])

    raise ClientError("prompt, command or messages is required")
