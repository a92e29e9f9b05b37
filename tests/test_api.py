import pytest
from fastapi.testclient import TestClient

from conftest import AZDO, REPO, completion
from speckit_proxy.main import app, get_dispatcher


@pytest.fixture
def client(dispatcher):
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


class TestAi:
    def test_hello_end_to_end(self, client, config, upstream):
        upstream.add("POST", config.openrouter_url, body=completion("hi there"))

        response = client.post("/api/ai", json={"prompt": "hello"})

        assert response.status_code == 200
        assert response.json() == {"output": "hi there"}
        (request,) = upstream.requests
        assert upstream.body(request)["messages"] == [{"role": "user", "content": "hello"}]

    def test_specify_plan_end_to_end(self, client, upstream):
        upstream.add("POST", f"{AZDO}/_apis/pipelines/7/runs", body={"id": "42"})

        response = client.post("/api/ai", json={"prompt": "/specify.plan"})

        assert response.status_code == 200
        assert response.json() == {
            "output": "Pipeline triggered for step: plan",
            "pipelineRunId": "42",
        }
        (request,) = upstream.requests
        assert upstream.body(request)["templateParameters"] == {"specStep": "plan"}

    def test_missing_prompt_is_400_without_upstream_call(self, client, upstream):
        response = client.post("/api/ai", json={})

        assert response.status_code == 400
        assert "error" in response.json()
        assert upstream.requests == []

    def test_upstream_failure_is_500_with_details(self, client, config, upstream):
        upstream.add("POST", config.openrouter_url, status=503, body={"error": "overloaded"})

        response = client.post("/api/ai", json={"prompt": "hello"})

        assert response.status_code == 500
        assert response.json() == {"error": "LLM request failed", "details": {"error": "overloaded"}}

    def test_command_is_rejected_by_name(self, client, upstream):
        response = client.post("/api/ai", json={"command": "/specify.plan", "prompt": "p"})

        assert response.status_code == 400
        assert response.json() == {"error": "command is not accepted on this endpoint"}
        assert upstream.requests == []

    def test_wrong_type_is_400(self, client, upstream):
        response = client.post("/api/ai", json={"prompt": 12})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"
        assert upstream.requests == []

    def test_invalid_json_is_400(self, client):
        response = client.post(
            "/api/ai", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400


class TestChat:
    def test_messages_relayed_verbatim(self, client, config, upstream):
        upstream.add("POST", config.openrouter_url, body=completion("sure"))
        messages = [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi"},
        ]

        response = client.post("/api/chat", json={"messages": messages})

        assert response.status_code == 200
        assert response.json() == {"reply": "sure"}
        assert upstream.body(upstream.requests[0])["messages"] == messages

    def test_empty_messages_is_400(self, client, upstream):
        response = client.post("/api/chat", json={"messages": []})

        assert response.status_code == 400
        assert upstream.requests == []

    def test_prompt_with_messages_is_400(self, client, upstream):
        response = client.post(
            "/api/chat",
            json={"prompt": "hello", "messages": [{"role": "user", "content": "hi"}]},
        )

        assert response.status_code == 400
        assert "not both" in response.json()["error"]
        assert upstream.requests == []

    def test_failure_keeps_error_shape(self, client, config, upstream):
        upstream.add("POST", config.openrouter_url, status=401, body={"error": "bad key"})

        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 500
        assert response.json()["error"] == "LLM request failed"


class TestGenerate:
    def test_generate_reads_files_and_returns_output(self, client, config, upstream):
        upstream.add("GET", f"{REPO}/items", body={"content": "constitution"})
        upstream.add("POST", config.openrouter_url, body=completion("# Spec"))

        response = client.post(
            "/generate",
            json={"command": "/specify.specification", "prompt": "Add an API"},
        )

        assert response.status_code == 200
        assert response.json() == {"output": "# Spec"}
        assert len(upstream.calls("GET", "/items")) == len(config.spec_files)

    def test_generate_requires_command(self, client, upstream):
        response = client.post("/generate", json={"prompt": "Add an API"})

        assert response.status_code == 400
        assert response.json() == {"error": "command and prompt are required"}
        assert upstream.requests == []


class TestSave:
    def test_save_retries_existing_file_as_edit(self, client, upstream):
        refs = {"value": [{"name": "refs/heads/main", "objectId": "abc123"}]}
        upstream.add("GET", f"{REPO}/refs", body=refs)
        upstream.add(
            "POST",
            f"{REPO}/pushes",
            status=400,
            body={"message": "The path '/.specify/x.md' specified in the add operation already exists."},
        )
        upstream.add("POST", f"{REPO}/pushes", status=201, body={"pushId": 9})

        response = client.post("/save", json={"path": "/.specify/x.md", "content": "abc"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "push": {"pushId": 9}}
        pushes = [upstream.body(r) for r in upstream.calls("POST", "/pushes")]
        assert [p["commits"][0]["changes"][0]["changeType"] for p in pushes] == ["add", "edit"]
        assert {p["commits"][0]["comment"] for p in pushes} == {"Speckit AI update"}

    def test_save_passes_commit_message(self, client, upstream):
        upstream.add("GET", f"{REPO}/refs", body={"value": [{"name": "refs/heads/main", "objectId": "a"}]})
        upstream.add("POST", f"{REPO}/pushes", status=201, body={"pushId": 1})

        client.post(
            "/save",
            json={"path": "/.specify/x.md", "content": "abc", "commitMessage": "docs: update plan"},
        )

        push = upstream.calls("POST", "/pushes")[0]
        assert upstream.body(push)["commits"][0]["comment"] == "docs: update plan"

    def test_save_requires_string_content(self, client, upstream):
        response = client.post("/save", json={"path": "/.specify/x.md"})

        assert response.status_code == 400
        assert response.json() == {"error": "path and content required"}
        assert upstream.requests == []


class TestOperational:
    def test_root_is_plain_text(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.text == "Speckit AI Proxy is running"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_config_hides_secrets(self, client, monkeypatch):
        from speckit_proxy import config as config_module

        monkeypatch.setattr(
            config_module,
            "_config",
            config_module.ProxyConfig(openrouter_api_key="sk-secret", azdo_pat="pat-secret"),
        )

        body = client.get("/config").json()

        assert body["openrouter_api_key"] == "***"
        assert body["azdo_pat"] == "***"
        assert "sk-secret" not in str(body)

    def test_oversized_body_is_413(self, client, upstream):
        too_big = "x" * (2 * 1024 * 1024 + 1)

        response = client.post("/api/ai", json={"prompt": too_big})

        assert response.status_code == 413
        assert upstream.requests == []

    def test_chunked_oversized_body_is_413(self, client, upstream):
        chunk = b"x" * (512 * 1024)
        chunks = [b'{"prompt": "', *([chunk] * 5), b'"}']

        response = client.post(
            "/api/ai",
            content=iter(chunks),
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 413
        assert response.json() == {"error": "Request body too large"}
        assert upstream.requests == []

    def test_cors_preflight_allows_extension_origin(self, client):
        response = client.options(
            "/api/ai",
            headers={
                "Origin": "chrome-extension://abcdef",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] in ("*", "chrome-extension://abcdef")
