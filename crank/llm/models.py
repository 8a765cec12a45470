from dataclasses import dataclass
from enum import Enum

from crank.constants import DEFAULT_CONTEXT_WINDOW


class Provider(Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


@dataclass(frozen=True)
class Model:
    id: str
    provider: Provider
    max_context_tokens: int
    max_output_tokens: int = 8192


DEFAULTS = [
    Model("claude-sonnet-4-20250514", provider=Provider.ANTHROPIC, max_context_tokens=200_000, max_output_tokens=8096),
    Model("claude-opus-4-20250514", provider=Provider.ANTHROPIC, max_context_tokens=200_000, max_output_tokens=8096),
    Model("claude-3-5-haiku-20241022", provider=Provider.ANTHROPIC, max_context_tokens=200_000, max_output_tokens=8192),
    Model("gpt-4.1", provider=Provider.OPENAI, max_context_tokens=1_000_000, max_output_tokens=16384),
    Model("gpt-4o", provider=Provider.OPENAI, max_context_tokens=128_000, max_output_tokens=16384),
]


_models: dict[str, Model] = {m.id: m for m in DEFAULTS}


def get_model(model_id: str) -> Model:
    if model_id not in _models:
        raise ValueError(f"Unknown model: {model_id}. Available: {', '.join(_models)}")
    return _models[model_id]


def context_window(model_id: str) -> int:
    model = _models.get(model_id)
    return model.max_context_tokens if model else DEFAULT_CONTEXT_WINDOW


def list_models() -> list[str]:
    return list(_models)


def get_models() -> dict[str, Model]:
    return _models
