"""Speckit AI Proxy: FastAPI app.

Loads config on startup and builds one Dispatcher with its three upstream
clients. Exposes the prompt/chat/generate/save endpoints plus health and
config views.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.datastructures import Headers
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from speckit_proxy.classifier import ChatCompletion, PipelineTrigger, RepoGenerate
from speckit_proxy.clients import ChatCompletionClient, PipelineClient, RepoClient
from speckit_proxy.config import ProxyConfig, get_config, load_config
from speckit_proxy.dispatcher import Dispatcher, DispatchResult
from speckit_proxy.schemas import ChatReply, ErrorResponse, InboundRequest, SaveRequest

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_dispatcher(config: ProxyConfig) -> Dispatcher:
    return Dispatcher(
        config,
        chat=ChatCompletionClient(config),
        pipelines=PipelineClient(config),
        repo=RepoClient(config),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the dispatcher once; config stays read-only afterwards."""
    config = get_config()
    app.state.dispatcher = build_dispatcher(config)
    logger.info(
        f"Speckit AI Proxy started (port={config.port}, "
        f"LLM_PROVIDER={config.llm_provider}, origins={config.allowed_origins})"
    )
    yield
    logger.info("Speckit AI Proxy shutting down")


class BodySizeLimitMiddleware:
    """Reject request bodies larger than max_body_bytes before they are parsed.

    A declared ``Content-Length`` is checked up front. Otherwise (chunked
    uploads) the body is buffered while counting, then replayed to the app.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        limit = get_config().max_body_bytes
        length = Headers(scope=scope).get("content-length")
        if length and length.isdigit() and int(length) > limit:
            await self._reject(scope, receive, send)
            return

        buffered = []
        received = 0
        while True:
            message = await receive()
            buffered.append(message)
            if message["type"] != "http.request":
                break
            received += len(message.get("body", b""))
            if received > limit:
                await self._reject(scope, receive, send)
                return
            if not message.get("more_body", False):
                break

        async def replay():
            if buffered:
                return buffered.pop(0)
            return await receive()

        await self.app(scope, replay, send)

    @staticmethod
    async def _reject(scope, receive, send):
        logger.info(f"Rejected oversized body on {scope.get('path')}")
        response = JSONResponse(status_code=413, content={"error": "Request body too large"})
        await response(scope, receive, send)


# Load config early so we can read allowed_origins for CORS middleware.
_boot_config = load_config()

app = FastAPI(title="Speckit AI Proxy", version="0.1.0", lifespan=lifespan)

app.add_middleware(BodySizeLimitMiddleware)

# A wildcard already admits every origin, and browsers refuse credentials with it.
_wildcard = "*" in _boot_config.allowed_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if _wildcard else _boot_config.allowed_origins,
    allow_credentials=not _wildcard,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "details": exc.errors()},
    )


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def _respond(result: DispatchResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.body)


_ERRORS = {400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


# ---------------------------------------------------------------------------
# Proxy endpoints
# ---------------------------------------------------------------------------


@app.post("/api/ai", responses=_ERRORS)
async def ai(request: InboundRequest, dispatcher: Dispatcher = Depends(get_dispatcher)):
    """Chat completion, or a pipeline run for ``/specify.<step>`` prompts."""
    result = await dispatcher.handle(request, allowed=(ChatCompletion, PipelineTrigger))
    return _respond(result)


@app.post("/api/chat", responses=_ERRORS)
async def chat(request: InboundRequest, dispatcher: Dispatcher = Depends(get_dispatcher)):
    """Relay a structured conversation verbatim and return ``{reply}``."""
    result = await dispatcher.handle(request, allowed=(ChatCompletion,))
    if result.ok:
        return ChatReply(reply=result.body["output"]).model_dump()
    return _respond(result)


@app.post("/generate", responses=_ERRORS)
async def generate(request: InboundRequest, dispatcher: Dispatcher = Depends(get_dispatcher)):
    """Read repo spec files, build a composite prompt and return the model output."""
    result = await dispatcher.handle(request, allowed=(RepoGenerate,))
    return _respond(result)


@app.post("/save", responses=_ERRORS)
async def save(request: SaveRequest, dispatcher: Dispatcher = Depends(get_dispatcher)):
    """Commit generated content back to the repo."""
    result = await dispatcher.save(request.path, request.content, request.commit_message)
    return _respond(result)


# ---------------------------------------------------------------------------
# Operational endpoints
# ---------------------------------------------------------------------------


@app.get("/", response_class=PlainTextResponse)
async def root():
    """Liveness check."""
    return "Speckit AI Proxy is running"


@app.get("/health")
async def health():
    config = get_config()
    return {"status": "healthy", "provider": config.llm_provider}


@app.get("/config")
async def get_current_config():
    """Return current config as JSON, secrets masked."""
    return get_config().redacted()
