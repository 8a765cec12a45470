import asyncio
import json
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import crank.config
from crank.config import Config
from crank.server.app import app
from crank.server.runtime import Runtime, reset_runtime, set_runtime


def parse_sse(body: str) -> list[dict]:
    events = []
    for block in body.strip().split("\n\n"):
        data = next(line[len("data: ") :] for line in block.splitlines() if line.startswith("data: "))
        events.append(json.loads(data))
    return events


@pytest_asyncio.fixture
async def test_runtime(tmp_path: Path, workdir: Path, client, monkeypatch) -> AsyncGenerator[Runtime]:
    await reset_runtime()
    monkeypatch.setattr(crank.config, "CRANK_DIR", tmp_path / "home")
    monkeypatch.setattr(crank.config, "SETTINGS_PATH", tmp_path / "home" / "settings.json")

    config = Config(
        _env_file=None,
        anthropic_api_key="test-key",
        chat_model="claude-sonnet-4-20250514",
        naming_model=None,
        working_dir=workdir,
        approval_timeout=2,
        naming_grace_seconds=1,
    )
    runtime = Runtime(config=config)
    runtime.orchestrator.client_resolver = lambda _model: client
    runtime.namer.client_resolver = lambda _model: client
    set_runtime(runtime)

    yield runtime

    await reset_runtime()


@pytest_asyncio.fixture
async def http(test_runtime: Runtime) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


async def chat(http: AsyncClient, message: str, session_id: str | None = None) -> list[dict]:
    response = await http.post("/chat", json={"message": message, "session_id": session_id})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    return parse_sse(response.text)


class TestBasics:
    @pytest.mark.asyncio
    async def test_health(self, http):
        response = await http.get("/health")
        assert response.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_create_and_get_session(self, http):
        session_id = (await http.post("/session")).json()["session_id"]

        response = await http.get(f"/sessions/{session_id}")
        assert response.status_code == 200
        body = response.json()
        assert body["messages"] == []
        assert body["todos"] == []
        assert body["context_usage"]["total_tokens"] == 0

    @pytest.mark.asyncio
    async def test_unknown_session(self, http):
        assert (await http.get("/sessions/nope")).status_code == 404
        assert (await http.delete("/sessions/nope")).status_code == 404

    @pytest.mark.asyncio
    async def test_tools(self, http):
        names = {t["name"] for t in (await http.get("/tools")).json()["tools"]}
        assert {"read_file", "write_file", "execute_shell", "write_todos", "spawn_subtask"} <= names


class TestChat:
    @pytest.mark.asyncio
    async def test_stream_ends_with_done(self, http, client):
        client.responses = [client.text("Hello! How can I help?")]

        events = await chat(http, "hi", "s1")

        types = [e["type"] for e in events]
        assert types == ["checkpoint_created", "text", "context_update", "checkpoint_updated", "done"]
        done = events[-1]
        assert done["session_id"] == "s1"
        assert done["checkpoint_id"] == events[0]["id"]
        assert done["iterations"] == 1
        assert events[1]["content"] == "Hello! How can I help?"
        assert events[3]["name"] == "Hello"

    @pytest.mark.asyncio
    async def test_new_session_when_none_given(self, http, client, test_runtime):
        client.responses = [client.text("ok")]

        events = await chat(http, "hi")

        session_id = events[-1]["session_id"]
        assert session_id in test_runtime.sessions

    @pytest.mark.asyncio
    async def test_failure_ends_with_error(self, http, client):
        client.responses = [[RuntimeError("provider down")]]

        events = await chat(http, "hi", "s1")

        assert events[-1] == {"type": "error", "message": "RuntimeError: provider down", "recoverable": False}

    @pytest.mark.asyncio
    async def test_busy_session(self, http, test_runtime):
        async with test_runtime.sessions.lock("s1"):
            response = await http.post("/chat", json={"message": "hi", "session_id": "s1"})
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_session_view_after_turn(self, http, client):
        client.responses = [
            client.tools(("t", "write_todos", '{"todos": [{"id": "1", "content": "plan"}]}')),
            client.text("Planned."),
        ]
        await chat(http, "plan it", "s1")

        body = (await http.get("/sessions/s1")).json()
        assert [m["role"] for m in body["messages"]] == ["user", "assistant", "user", "assistant"]
        assert body["todos"] == [{"id": "1", "content": "plan", "status": "pending"}]
        assert body["context_usage"]["total_tokens"] == 140


class TestApproval:
    @pytest.mark.asyncio
    async def test_approve_over_http(self, http, client, test_runtime, workdir):
        client.responses = [
            client.tools(("w", "write_file", '{"path": "out.txt", "content": "hi"}')),
            client.text("Wrote it."),
        ]

        turn = asyncio.create_task(chat(http, "write", "s1"))
        for _ in range(100):
            if pending := test_runtime.gate.pending_requests("s1"):
                break
            await asyncio.sleep(0.01)
        request_id = pending[0].request_id

        response = await http.post("/approval", json={"request_id": request_id, "decision": "allow_once"})
        assert response.status_code == 200

        events = await turn
        types = [e["type"] for e in events]
        assert "approval_required" in types
        result = next(e for e in events if e["type"] == "approval_result")
        assert result == {"type": "approval_result", "request_id": request_id, "approved": True}
        assert (workdir / "out.txt").read_text() == "hi"

    @pytest.mark.asyncio
    async def test_unknown_request(self, http):
        response = await http.post("/approval", json={"request_id": "nope", "decision": "deny"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_bad_decision(self, http):
        response = await http.post("/approval", json={"request_id": "nope", "decision": "maybe"})
        assert response.status_code == 422


class TestCheckpoints:
    @pytest.mark.asyncio
    async def test_list_revert_fork(self, http, client):
        client.responses = [client.text("one"), client.text("two")]
        first = (await chat(http, "first", "s1"))[-1]["checkpoint_id"]
        second = (await chat(http, "second", "s1"))[-1]["checkpoint_id"]

        listed = (await http.get("/sessions/s1/checkpoints")).json()["checkpoints"]
        assert [c["id"] for c in listed] == [second, first]
        assert listed[0]["name"] == "Second"

        response = await http.post("/sessions/s1/revert", json={"checkpoint_id": first})
        assert response.status_code == 200
        assert response.json()["message_count"] == 1

        response = await http.post("/sessions/s1/fork", json={"checkpoint_id": second, "new_session_id": "s2"})
        assert response.json()["session_id"] == "s2"
        forked = (await http.get("/sessions/s2")).json()
        assert [m["content"] for m in forked["messages"]] == ["first", "one", "second"]

    @pytest.mark.asyncio
    async def test_unknown_checkpoint(self, http):
        response = await http.post("/sessions/s1/revert", json={"checkpoint_id": "nope"})
        assert response.status_code == 404
        response = await http.post("/sessions/s1/fork", json={"checkpoint_id": "nope"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_fork_into_existing_session(self, http, client):
        client.responses = [client.text("one"), client.text("two")]
        checkpoint_id = (await chat(http, "first", "s1"))[-1]["checkpoint_id"]
        await chat(http, "other", "s2")

        response = await http.post("/sessions/s1/fork", json={"checkpoint_id": checkpoint_id, "new_session_id": "s2"})
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_delete_session(self, http, client):
        client.responses = [client.text("one")]
        await chat(http, "first", "s1")

        assert (await http.delete("/sessions/s1")).status_code == 200
        assert (await http.get("/sessions/s1")).status_code == 404
        assert (await http.get("/sessions/s1/checkpoints")).json() == {"checkpoints": []}


class TestConfig:
    @pytest.mark.asyncio
    async def test_get(self, http, workdir):
        body = (await http.get("/config")).json()
        assert body["chat_model"] == "claude-sonnet-4-20250514"
        assert body["working_dir"] == str(workdir)
        assert body["has_anthropic_key"] is True
        assert "gpt-4o" in body["available_models"]

    @pytest.mark.asyncio
    async def test_patch_persists(self, http, test_runtime, tmp_path):
        response = await http.patch("/config", json={"chat_model": "gpt-4o"})
        assert response.status_code == 200
        assert test_runtime.orchestrator.model == "gpt-4o"
        assert test_runtime.context.max_tokens == 128_000
        saved = json.loads((tmp_path / "home" / "settings.json").read_text())
        assert saved == {"chat_model": "gpt-4o"}

    @pytest.mark.asyncio
    async def test_patch_rejects_unknown_model(self, http, test_runtime):
        response = await http.patch("/config", json={"chat_model": "gpt-2"})
        assert response.status_code == 400
        assert test_runtime.orchestrator.model == "claude-sonnet-4-20250514"

    @pytest.mark.asyncio
    async def test_patch_rejects_missing_working_dir(self, http, tmp_path):
        response = await http.patch("/config", json={"working_dir": str(tmp_path / "missing")})
        assert response.status_code == 400
