import os
from pathlib import Path
from dotenv import load_dotenv

# Explicitly load .env from the app directory (works regardless of cwd)
_env_path = Path(__file__).parent / ".env"
load_dotenv(_env_path)

BASE_DIR = Path(__file__).parent

# JSON document store root.  One sub-directory per user id.
DATA_DIR = Path(os.environ.get("SUITE_DATA_DIR", str(BASE_DIR / "data")))

# Single-user deployment: the signed-in identity is configured, not negotiated
USER_ID = os.environ.get("SUITE_USER_ID", "local-user")
USER_DISPLAY_NAME = os.environ.get("SUITE_USER_NAME", "User")

# ------------------------------------------------------------------ #
# API credentials  (Azure OpenAI is the default path)                  #
# ------------------------------------------------------------------ #

# Azure OpenAI (primary)
AZURE_OPENAI_ENDPOINT    = os.environ.get("AZURE_OPENAI_ENDPOINT", "")
AZURE_OPENAI_KEY         = os.environ.get("AZURE_OPENAI_KEY", "")
AZURE_OPENAI_API_VERSION = os.environ.get("AZURE_OPENAI_API_VERSION", "2024-12-01-preview")

# Fallback: standard OpenAI API key (used only when Azure endpoint is NOT set)
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")

# Model / deployment name
MODEL = os.environ.get("AZURE_OPENAI_DEPLOYMENT", "gpt-4.1-mini")

# Models offered in the model picker.  The configured MODEL is always first.
AVAILABLE_MODELS = [MODEL] + [
    m for m in ("gpt-4.1", "gpt-4.1-mini", "o4-mini") if m != MODEL
]

# Reasoning models take reasoning_effort instead of temperature
REASONING_MODEL_PREFIXES = ("o1", "o3", "o4", "gpt-5")
DEEP_RESEARCH_REASONING_EFFORT = os.environ.get("SUITE_DEEP_RESEARCH_EFFORT", "high")

# Web-search grounding (only honoured by search-capable chat models)
WEB_SEARCH_ENABLED = os.environ.get("SUITE_WEB_SEARCH", "").lower() in ("1", "true", "yes")

# ------------------------------------------------------------------ #
# Generation call policy                                              #
# ------------------------------------------------------------------ #

GENERATION_TIMEOUT_SECONDS = float(os.environ.get("SUITE_GENERATION_TIMEOUT", "90"))
MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0
RETRYABLE_STATUS_CODES = frozenset({429, 500, 503})

# Only the most recent turns are sent to the model
MAX_HISTORY_LENGTH = 30

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

APP_TITLE = "Agent Suite"
APP_ICON = "🏛️"


def has_valid_credentials() -> bool:
    """Return True if enough credentials are set to create an LLM client."""
    if AZURE_OPENAI_ENDPOINT and (AZURE_OPENAI_KEY or OPENAI_API_KEY):
        return True
    if OPENAI_API_KEY:          # fallback to standard OpenAI
        return True
    return False


def is_reasoning_model(model: str) -> bool:
    return model.startswith(REASONING_MODEL_PREFIXES)


def make_openai_client():
    """
    Return an AzureOpenAI client (default) or a standard OpenAI client.

    Retries are disabled on the SDK side: AgentInvoker owns the retry loop
    so that backoff and retryable status codes are applied in one place.
    """
    if AZURE_OPENAI_ENDPOINT:
        from openai import AzureOpenAI
        _key = AZURE_OPENAI_KEY or OPENAI_API_KEY
        return AzureOpenAI(
            api_key=_key,
            azure_endpoint=AZURE_OPENAI_ENDPOINT,
            api_version=AZURE_OPENAI_API_VERSION,
            max_retries=0,
            timeout=GENERATION_TIMEOUT_SECONDS,
        )
    from openai import OpenAI
    return OpenAI(api_key=OPENAI_API_KEY, max_retries=0, timeout=GENERATION_TIMEOUT_SECONDS)
