import json
from collections.abc import AsyncIterator

import openai

from crank.llm.base import StreamClient
from crank.llm.types import (
    BlockEnd,
    StreamEnd,
    StreamEvent,
    TextDelta,
    ToolCallStart,
    ToolInputDelta,
    UsageUpdate,
)


def _text_of(content: str | list[dict]) -> str:
    if isinstance(content, str):
        return content
    return "".join(b.get("text", "") for b in content if b.get("type") == "text")


def _tool_result_text(block: dict) -> str:
    content = block.get("content", "")
    text = content if isinstance(content, str) else _text_of(content)
    return f"Error: {text}" if block.get("is_error") and not text.startswith("Error:") else text


class OpenAIStreamClient(StreamClient):
    def __init__(self, base_url: str | None = None, api_key: str | None = None):
        self._client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def stream(
        self,
        *,
        model: str,
        system: str,
        messages: list[dict],
        tools: list[dict] | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamEvent]:
        request: dict = {
            "model": model,
            "messages": self._convert_messages(system, messages),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        optional = {
            "tools": tools or None,
            "max_completion_tokens": max_tokens,
        }
        request.update({k: v for k, v in optional.items() if v is not None})

        open_index: int | None = None
        finish_reason: str | None = None
        usage = None

        response = await self._client.chat.completions.create(**request)
        async for chunk in response:
            if chunk.usage:
                usage = chunk.usage
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta
            if delta.content:
                yield TextDelta(text=delta.content)
            for tc in delta.tool_calls or []:
                if tc.index != open_index:
                    if open_index is not None:
                        yield BlockEnd()
                    open_index = tc.index
                    name = tc.function.name if tc.function else None
                    yield ToolCallStart(id=tc.id or f"call_{tc.index}", name=name or "")
                if tc.function and tc.function.arguments:
                    yield ToolInputDelta(partial_json=tc.function.arguments)
            if choice.finish_reason:
                finish_reason = choice.finish_reason

        if open_index is not None:
            yield BlockEnd()
        if usage:
            yield UsageUpdate(input_tokens=usage.prompt_tokens, output_tokens=usage.completion_tokens)
        yield StreamEnd(stop_reason=finish_reason)

    async def _complete(self, *, model: str, prompt: str, max_tokens: int) -> str:
        response = await self._client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            max_completion_tokens=max_tokens,
        )
        return response.choices[0].message.content or ""

    async def close(self) -> None:
        await self._client.close()

    # --- Message conversion ---

    def _convert_messages(self, system: str, messages: list[dict]) -> list[dict]:
        result: list[dict] = []
        if system:
            result.append({"role": "system", "content": system})
        for msg in messages:
            content = msg["content"]
            if msg["role"] == "assistant":
                result.append(self._convert_assistant(content))
            elif isinstance(content, str):
                result.append({"role": "user", "content": content})
            else:
                self._append_user_blocks(result, content)
        return result

    def _convert_assistant(self, content: str | list[dict]) -> dict:
        if isinstance(content, str):
            return {"role": "assistant", "content": content}
        converted: dict = {"role": "assistant", "content": _text_of(content) or None}
        tool_calls = [
            {
                "id": block["id"],
                "type": "function",
                "function": {"name": block["name"], "arguments": json.dumps(block.get("input", {}))},
            }
            for block in content
            if block.get("type") == "tool_use"
        ]
        if tool_calls:
            converted["tool_calls"] = tool_calls
        return converted

    def _append_user_blocks(self, result: list[dict], blocks: list[dict]) -> None:
        text_parts: list[str] = []
        for block in blocks:
            if block.get("type") == "tool_result":
                result.append(
                    {
                        "role": "tool",
                        "tool_call_id": block["tool_use_id"],
                        "content": _tool_result_text(block),
                    }
                )
            elif block.get("type") == "text":
                text_parts.append(block["text"])
        if text_parts:
            result.append({"role": "user", "content": "\n".join(text_parts)})
