# --- Approval ---

# Tools that can change the filesystem or run processes. Everything else is read-only.
APPROVAL_REQUIRED_TOOLS = frozenset({"execute_shell", "write_file", "edit_file"})

APPROVAL_TIMEOUT = 300  # seconds; an unanswered request resolves to a denial


# --- Agent Limits ---

AGENT_MAX_ITERATIONS = 50
SUBTASK_MAX_ITERATIONS = 10
SUBTASK_MAX_TOKENS = 4096
SUBTASK_DEFAULT_TOOLS = ("read_file", "write_file", "edit_file", "list_directory")


# --- Model ---

DEFAULT_CHAT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_NAMING_MODEL = "claude-3-5-haiku-20241022"
DEFAULT_MAX_OUTPUT_TOKENS = 8096
DEFAULT_CONTEXT_WINDOW = 200_000
LLM_RETRY_ATTEMPTS = 3


# --- Context Accounting ---

CONTEXT_WARN_PERCENT = 32
CONTEXT_SOFT_LIMIT_PERCENT = 40
CHARS_PER_TOKEN = 4  # rough char-to-token ratio for estimation


# --- Content Truncation Limits ---

SHELL_OUTPUT_LIMIT = 10000
SHELL_TIMEOUT = 60
DEFAULT_READ_LINES = 2000
SUMMARY_INPUT_LIMIT = 50


# --- Checkpoint Naming ---

NAME_MAX_WORDS = 5
NAME_FALLBACK_WORDS = 4
NAME_SUMMARY_TOOLS = 5
NAMING_GRACE_SECONDS = 5.0
