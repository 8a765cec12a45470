import json

import pytest

from crank.core.orchestrator import TurnConfig
from crank.core.spawner import SUBTASK_LIMIT_SUMMARY, SUBTASK_SYSTEM_PROMPT
from crank.events.sse import SubtaskCompleteEvent, SubtaskStartEvent, TextEvent, ToolCallEvent, ToolResultEvent


def spawn(prompt: str, allowed_tools: list[str] | None = None) -> tuple[str, str, str]:
    args: dict = {"prompt": prompt}
    if allowed_tools is not None:
        args["allowed_tools"] = allowed_tools
    return ("sub-1", "spawn_subtask", json.dumps(args))


def parent_result(orchestrator) -> dict:
    messages = orchestrator.sessions.get("s1").messages
    return messages[2]["content"][0]


class TestSubtasks:
    @pytest.mark.asyncio
    async def test_subtask_runs_in_its_own_history(self, orchestrator, client, workdir, approving_recorder):
        client.responses = [
            client.tools(spawn("Write sub.txt", ["write_file", "read_file", "spawn_subtask"])),
            client.tools(("w", "write_file", '{"path": "sub.txt", "content": "x"}')),
            client.text("Wrote sub.txt"),
            client.text("Subtask finished"),
        ]

        result = await orchestrator.process_message("s1", "delegate", TurnConfig(workdir, approving_recorder))

        assert result.text == "Subtask finished"
        sub_call = client.calls[1]
        assert sub_call["system"] == SUBTASK_SYSTEM_PROMPT
        assert sub_call["messages"] == [{"role": "user", "content": "Write sub.txt"}]
        assert sub_call["tools"] == ["write_file", "read_file"]
        assert sub_call["max_tokens"] == 4096

        report = json.loads(parent_result(orchestrator)["content"])
        assert report == {
            "summary": "Wrote sub.txt",
            "files_created": ["sub.txt"],
            "files_modified": [],
            "success": True,
        }
        assert (workdir / "sub.txt").exists()
        assert str((workdir / "sub.txt").resolve()) in orchestrator.sessions.get("s1").files

    @pytest.mark.asyncio
    async def test_subtask_notifications(self, orchestrator, client, workdir, approving_recorder):
        client.responses = [
            client.tools(spawn("List files", ["list_directory"])),
            client.tools(("l", "list_directory", "{}"), text="Looking around."),
            client.text("Nothing here"),
            client.text("ok"),
        ]

        await orchestrator.process_message("s1", "delegate", TurnConfig(workdir, approving_recorder))

        start = approving_recorder.of_type(SubtaskStartEvent)[0]
        assert start.prompt == "List files"
        nested = [e for e in approving_recorder.of_type(ToolCallEvent) if e.depth == 1]
        assert [(e.name, e.parent_id) for e in nested] == [("list_directory", "sub-1")]
        nested_results = [e for e in approving_recorder.of_type(ToolResultEvent) if e.depth == 1]
        assert nested_results[0].parent_id == "sub-1"
        complete = approving_recorder.of_type(SubtaskCompleteEvent)[0]
        assert complete.id == start.id
        assert complete.success
        assert complete.summary == "Nothing here"
        # Subtask prose stays out of the user-facing text stream
        assert [e.content for e in approving_recorder.of_type(TextEvent)] == ["ok"]

    @pytest.mark.asyncio
    async def test_subtask_iteration_limit(self, orchestrator, client, turn_config):
        orchestrator.subtask_max_iterations = 1
        client.responses = [
            client.tools(spawn("Loop", ["list_directory"])),
            client.tools(("l", "list_directory", "{}")),
            client.text("parent done"),
        ]

        await orchestrator.process_message("s1", "delegate", turn_config)

        report = json.loads(parent_result(orchestrator)["content"])
        assert report["summary"] == SUBTASK_LIMIT_SUMMARY

    @pytest.mark.asyncio
    async def test_subtask_failure_becomes_tool_error(self, orchestrator, client, turn_config, recorder):
        client.responses = [
            client.tools(spawn("Break")),
            [RuntimeError("provider down")],
            client.text("parent recovered"),
        ]

        result = await orchestrator.process_message("s1", "delegate", turn_config)

        assert result.text == "parent recovered"
        tool_result = parent_result(orchestrator)
        assert tool_result["is_error"] is True
        assert tool_result["content"] == "Error: RuntimeError: provider down"
        complete = recorder.of_type(SubtaskCompleteEvent)[0]
        assert not complete.success
        assert complete.error == "provider down"

    @pytest.mark.asyncio
    async def test_subtask_writes_need_approval(self, orchestrator, client, gate, turn_config, workdir):
        gate.timeout = 0.05
        client.responses = [
            client.tools(spawn("Write", ["write_file"])),
            client.tools(("w", "write_file", '{"path": "sub.txt", "content": "x"}')),
            client.text("could not write"),
            client.text("ok"),
        ]

        await orchestrator.process_message("s1", "delegate", turn_config)

        assert not (workdir / "sub.txt").exists()
        report = json.loads(parent_result(orchestrator)["content"])
        assert report["files_created"] == []
