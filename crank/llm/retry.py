from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from crank.constants import LLM_RETRY_ATTEMPTS
from crank.logging import get_logger

_logger = get_logger(__name__)

_RETRYABLE_STATUS = {408, 409, 429}


def _is_retryable(exc: BaseException) -> bool:
    from anthropic import APIStatusError as AnthropicError
    from openai import APIStatusError as OpenAIError

    if isinstance(exc, AnthropicError | OpenAIError):
        return exc.status_code in _RETRYABLE_STATUS or exc.status_code >= 500

    return False


def describe_call(retry_state) -> str:
    """`AnthropicStreamClient(claude-...)` for a bound client method, else the function name."""
    fn = retry_state.args[0] if retry_state.args else None
    owner = getattr(fn, "__self__", None)
    name = type(owner).__name__ if owner is not None else getattr(fn, "__name__", "call")
    model = retry_state.kwargs.get("model")
    return f"{name}({model})" if model else name


def _log_retry(retry_state) -> None:
    _logger.warning(
        "%s failed (attempt %d/%d), retrying: %s",
        describe_call(retry_state),
        retry_state.attempt_number,
        LLM_RETRY_ATTEMPTS,
        retry_state.outcome.exception(),
    )


@retry(
    retry=retry_if_exception(_is_retryable),
    stop=stop_after_attempt(LLM_RETRY_ATTEMPTS),
    wait=wait_exponential_jitter(initial=0.5, max=8, jitter=2),
    reraise=True,
    before_sleep=_log_retry,
)
async def with_retry(fn, *args, **kwargs):
    return await fn(*args, **kwargs)
