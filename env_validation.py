"""Environment variable validation and provider settings."""

import logging
import os
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL_ID = "gpt-4o-mini"
DEFAULT_MAX_TOKENS = 2048
DEFAULT_TIMEOUT_SECONDS = 60.0


class EnvironmentConfigError(Exception):
    """Raised when environment variables are missing or invalid."""


def safe_int(env_name: str, default: int) -> int:
    raw = os.getenv(env_name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %s", env_name, raw, default)
        return default


def safe_float(env_name: str, default: float) -> float:
    raw = os.getenv(env_name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r; using %s", env_name, raw, default)
        return default


@dataclass(frozen=True)
class ProviderSettings:
    """Snapshot of everything the model invoker needs to reach the provider."""

    api_key: Optional[str]
    url: str = DEFAULT_OPENAI_URL
    model_id: str = DEFAULT_MODEL_ID
    max_tokens: int = DEFAULT_MAX_TOKENS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> "ProviderSettings":
        return cls(
            api_key=os.getenv("OPENAI_API_KEY") or None,
            url=os.getenv("OPENAI_URL") or DEFAULT_OPENAI_URL,
            model_id=os.getenv("MODEL_ID") or DEFAULT_MODEL_ID,
            max_tokens=safe_int("LLM_MAX_TOKENS", DEFAULT_MAX_TOKENS),
            timeout_seconds=safe_float("LLM_TIMEOUT", DEFAULT_TIMEOUT_SECONDS),
        )


def validate_environment() -> None:
    """Validate critical environment variables.

    Raises EnvironmentConfigError if validation fails.
    """
    defaults = {
        "DB_PATH": os.getenv("DB_PATH") or "data.db",
        "OPENAI_URL": os.getenv("OPENAI_URL") or DEFAULT_OPENAI_URL,
        "MODEL_ID": os.getenv("MODEL_ID") or DEFAULT_MODEL_ID,
    }

    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    optional_vars: Dict[str, str] = {
        "OPENAI_API_KEY": "Bearer credential for the model provider",
        "PROMPT_DIR": "Directory holding prompt definitions",
    }

    url_vars = {"OPENAI_URL"}
    for var in url_vars:
        value = os.getenv(var)
        if value and not (value.startswith("http://") or value.startswith("https://")):
            raise EnvironmentConfigError(f"Invalid URL format for {var}: {value}")

    for var in ("LLM_MAX_TOKENS", "LLM_TIMEOUT"):
        raw = os.getenv(var)
        if raw:
            try:
                if float(raw) <= 0:
                    raise EnvironmentConfigError(f"{var} must be positive, got {raw}")
            except ValueError as exc:
                raise EnvironmentConfigError(f"{var} must be numeric, got {raw!r}") from exc

    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.warning("Optional environment variable not set: %s (%s)", var, description)
