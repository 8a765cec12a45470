import json
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from crank.constants import (
    AGENT_MAX_ITERATIONS,
    APPROVAL_TIMEOUT,
    CONTEXT_SOFT_LIMIT_PERCENT,
    CONTEXT_WARN_PERCENT,
    DEFAULT_CHAT_MODEL,
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_NAMING_MODEL,
    NAMING_GRACE_SECONDS,
    SHELL_TIMEOUT,
    SUBTASK_MAX_ITERATIONS,
)
from crank.llm.models import DEFAULTS
from crank.logging import get_logger

CRANK_DIR = Path.home() / ".crank"
SETTINGS_PATH = CRANK_DIR / "settings.json"

_logger = get_logger(__name__)


def load_user_settings() -> dict:
    if not SETTINGS_PATH.exists():
        return {}
    try:
        return json.loads(SETTINGS_PATH.read_text())
    except (json.JSONDecodeError, OSError):
        _logger.warning("Failed to load user settings", exc_info=True)
        return {}


def save_user_settings(settings: dict) -> None:
    CRANK_DIR.mkdir(exist_ok=True)
    SETTINGS_PATH.write_text(json.dumps(settings, indent=2))


class Config(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CRANK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
        populate_by_name=True,
    )

    # API keys, read from standard env vars via aliases
    anthropic_api_key: str | None = Field(default=None, alias="ANTHROPIC_API_KEY")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")

    # Model IDs (must match entries in llm/models.py DEFAULTS)
    chat_model: str = DEFAULT_CHAT_MODEL
    naming_model: str | None = DEFAULT_NAMING_MODEL

    # Directory the file tools and shell are confined to
    working_dir: Path = Field(default_factory=Path.cwd)

    # Turn loop bounds; None disables the top-level cap
    max_iterations: int | None = AGENT_MAX_ITERATIONS
    subtask_max_iterations: int = SUBTASK_MAX_ITERATIONS
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS

    approval_timeout: float = APPROVAL_TIMEOUT
    shell_timeout: float = SHELL_TIMEOUT

    context_warn_percent: float = CONTEXT_WARN_PERCENT
    context_soft_limit_percent: float = CONTEXT_SOFT_LIMIT_PERCENT

    # How long a finished turn waits for its checkpoint name before closing the stream
    naming_grace_seconds: float = NAMING_GRACE_SECONDS

    @field_validator("chat_model")
    @classmethod
    def _validate_chat_model(cls, v: str) -> str:
        valid = {m.id for m in DEFAULTS}
        if v not in valid:
            raise ValueError(f"Unsupported model: {v}. Must be one of: {', '.join(valid)}")
        return v

    @field_validator("naming_model", mode="before")
    @classmethod
    def _normalize_naming_model(cls, v: str | None) -> str | None:
        if v in ("", "none"):
            return None
        return v

    @field_validator("max_iterations")
    @classmethod
    def _validate_max_iterations(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError(f"max_iterations must be positive, got {v}")
        return v

    @model_validator(mode="after")
    def _check_thresholds(self) -> "Config":
        if self.context_warn_percent > self.context_soft_limit_percent:
            raise ValueError("context_warn_percent must not exceed context_soft_limit_percent")
        return self

    @property
    def data_dir(self) -> Path:
        return CRANK_DIR


PERSIST_KEYS = frozenset(
    {
        "chat_model",
        "working_dir",
    }
)


def get_config() -> Config:
    settings = load_user_settings()

    # Build config: init args (settings.json) > env vars > defaults
    overrides = {k: settings[k] for k in PERSIST_KEYS if k in settings}
    return Config(**overrides)  # type: ignore - pydantic handles validation
