import json

import httpx
import pytest

from speckit_proxy.clients import ChatCompletionClient, PipelineClient, RepoClient
from speckit_proxy.config import ProxyConfig
from speckit_proxy.dispatcher import Dispatcher

AZDO = "https://azdo.test/org/proj"
REPO = f"{AZDO}/_apis/git/repositories/repo"


class FakeUpstream:
    """Records every request and answers from a queue of responses per route.

    Routes are keyed by ``(METHOD, path)``. The last queued response for a
    route is reused once the queue runs dry. A ``str`` body is sent as
    ``text/plain``; anything else as JSON.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list[tuple[int, object]]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, url: str, status: int = 200, body=None) -> None:
        path = httpx.URL(url).path
        self.routes.setdefault((method, path), []).append((status, body))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(599, json={"message": f"no route for {request.url}"})
        status, body = queue.pop(0) if len(queue) > 1 else queue[0]
        if body is None:
            return httpx.Response(status)
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, path_suffix: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and r.url.path.endswith(path_suffix)
        ]

    @staticmethod
    def body(request: httpx.Request):
        return json.loads(request.content)


@pytest.fixture
def config():
    return ProxyConfig(
        llm_provider="openrouter",
        openrouter_api_key="sk-test",
        openrouter_url="https://llm.test/v1/chat/completions",
        azdo_base_url="https://azdo.test",
        azdo_org="org",
        azdo_project="proj",
        azdo_repo_id="repo",
        azdo_pipeline_id="7",
        azdo_pat="pat",
    )


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def dispatcher(config, upstream):
    transport = upstream.transport
    return Dispatcher(
        config,
        chat=ChatCompletionClient(config, transport=transport),
        pipelines=PipelineClient(config, transport=transport),
        repo=RepoClient(config, transport=transport),
    )


def completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}
