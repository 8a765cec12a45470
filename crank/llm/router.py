from crank.llm.anthropic import AnthropicStreamClient
from crank.llm.base import StreamClient
from crank.llm.models import Provider, get_model
from crank.llm.openai import OpenAIStreamClient

_clients: dict[str, StreamClient] = {}
_api_keys: dict[Provider, str | None] = {}


def init(config) -> None:
    _clients.clear()
    _api_keys[Provider.ANTHROPIC] = config.anthropic_api_key
    _api_keys[Provider.OPENAI] = config.openai_api_key


def get_stream_client(model_id: str) -> StreamClient:
    model = get_model(model_id)
    cache_key = model.provider.value
    if cache_key not in _clients:
        key = _api_keys.get(model.provider)
        match model.provider:
            case Provider.ANTHROPIC:
                _clients[cache_key] = AnthropicStreamClient(api_key=key)
            case Provider.OPENAI:
                _clients[cache_key] = OpenAIStreamClient(api_key=key)
            case _:
                raise ValueError(f"Unknown provider: {model.provider}")
    return _clients[cache_key]


async def close() -> None:
    for client in _clients.values():
        await client.close()
    _clients.clear()
