from dataclasses import dataclass


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolCallStart:
    id: str
    name: str


@dataclass(frozen=True)
class ToolInputDelta:
    partial_json: str


@dataclass(frozen=True)
class BlockEnd:
    pass


@dataclass(frozen=True)
class UsageUpdate:
    input_tokens: int
    output_tokens: int


@dataclass(frozen=True)
class StreamEnd:
    stop_reason: str | None = None


type StreamEvent = TextDelta | ToolCallStart | ToolInputDelta | BlockEnd | UsageUpdate | StreamEnd
