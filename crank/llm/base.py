from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from crank.llm.retry import with_retry
from crank.llm.types import StreamEvent


class StreamClient(ABC):
    """Turns a prompt, history and tool catalogue into a sequence of stream events.

    Messages use Anthropic-shaped content blocks (text, tool_use, tool_result);
    tools use the function-schema shape produced by `Tool.to_dict()`.
    """

    @abstractmethod
    def stream(
        self,
        *,
        model: str,
        system: str,
        messages: list[dict],
        tools: list[dict] | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamEvent]: ...

    @abstractmethod
    async def _complete(self, *, model: str, prompt: str, max_tokens: int) -> str: ...

    async def complete(self, **kwargs) -> str:
        return await with_retry(self._complete, **kwargs)

    @abstractmethod
    async def close(self) -> None: ...
