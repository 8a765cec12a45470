from collections.abc import AsyncIterator

import anthropic

from crank.llm.base import StreamClient
from crank.llm.models import get_model
from crank.llm.types import (
    BlockEnd,
    StreamEnd,
    StreamEvent,
    TextDelta,
    ToolCallStart,
    ToolInputDelta,
    UsageUpdate,
)


class AnthropicStreamClient(StreamClient):
    def __init__(self, api_key: str | None = None):
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

    async def stream(
        self,
        *,
        model: str,
        system: str,
        messages: list[dict],
        tools: list[dict] | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamEvent]:
        if max_tokens is None:
            max_tokens = get_model(model).max_output_tokens

        request = self._build_request(
            model=model,
            system=system,
            messages=messages,
            tools=self._convert_tools(tools) if tools else None,
            max_tokens=max_tokens,
        )

        input_tokens = 0
        output_tokens = 0
        stop_reason: str | None = None

        response = await self._client.messages.create(**request, stream=True)
        async for event in response:
            match event.type:
                case "message_start":
                    usage = event.message.usage
                    # Cached prompt tokens still occupy the context window
                    input_tokens = (
                        usage.input_tokens
                        + (usage.cache_creation_input_tokens or 0)
                        + (usage.cache_read_input_tokens or 0)
                    )
                    output_tokens = usage.output_tokens or 0
                case "content_block_start":
                    block = event.content_block
                    if block.type == "tool_use":
                        yield ToolCallStart(id=block.id, name=block.name)
                case "content_block_delta":
                    delta = event.delta
                    if delta.type == "text_delta":
                        yield TextDelta(text=delta.text)
                    elif delta.type == "input_json_delta":
                        yield ToolInputDelta(partial_json=delta.partial_json)
                case "content_block_stop":
                    yield BlockEnd()
                case "message_delta":
                    if event.usage and event.usage.output_tokens is not None:
                        output_tokens = event.usage.output_tokens
                    stop_reason = event.delta.stop_reason or stop_reason
                case "message_stop":
                    yield UsageUpdate(input_tokens=input_tokens, output_tokens=output_tokens)
                    yield StreamEnd(stop_reason=stop_reason)

    async def _complete(self, *, model: str, prompt: str, max_tokens: int) -> str:
        response = await self._client.messages.create(
            model=model,
            max_tokens=max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(block.text for block in response.content if block.type == "text")

    async def close(self) -> None:
        await self._client.close()

    # --- Request building ---

    def _build_request(
        self,
        *,
        model: str,
        system: str,
        messages: list[dict],
        tools: list[dict] | None,
        max_tokens: int,
    ) -> dict:
        request: dict = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
        }
        optional = {
            "system": system or None,
            "tools": tools,
        }
        request.update({k: v for k, v in optional.items() if v is not None})
        return request

    def _convert_tools(self, tools: list[dict]) -> list[dict]:
        return [
            {
                "name": (fn := tool.get("function", tool))["name"],
                "description": fn.get("description", ""),
                "input_schema": fn.get("parameters", {"type": "object", "properties": {}}),
            }
            for tool in tools
        ]
