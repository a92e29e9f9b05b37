"""Request/response models: the contract between the proxy and its clients."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class InboundRequest(BaseModel):
    """Body accepted by /api/ai, /api/chat and /generate.

    Which fields are required depends on the route; the classifier decides.
    """

    prompt: str | None = None
    command: str | None = None
    files: list[str] | None = None
    messages: list[ChatMessage] | None = None


class SaveRequest(BaseModel):
    """Body accepted by /save."""

    path: str | None = None
    content: Any = None
    commit_message: str | None = Field(default=None, alias="commitMessage")


class ErrorResponse(BaseModel):
    error: str
    details: Any = None


class OutputResponse(BaseModel):
    output: str


class PipelineResponse(BaseModel):
    output: str
    pipeline_run_id: str | None = Field(default=None, alias="pipelineRunId")


class ChatReply(BaseModel):
    reply: str


class SaveResponse(BaseModel):
    success: bool
    push: Any
