# chuk_ai_browser_agent/config.py
from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_optional_int(name: str) -> int | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


# Central runtime defaults: can be overridden by environment variables
DEFAULT_MAX_STEPS = env_int("CHUK_AGENT_MAX_STEPS", 50)
DEFAULT_MAX_CONVERSATION_MESSAGES = env_int("CHUK_AGENT_MAX_CONVERSATION_MESSAGES", 28)
DEFAULT_RATE_LIMIT_MAX_RETRIES = env_int("CHUK_AGENT_RATE_LIMIT_MAX_RETRIES", 5)
DEFAULT_RATE_LIMIT_BASE_DELAY = env_float("CHUK_AGENT_RATE_LIMIT_BASE_DELAY", 3.0)
DEFAULT_RATE_LIMIT_MAX_DELAY = env_float("CHUK_AGENT_RATE_LIMIT_MAX_DELAY", 30.0)
DEFAULT_MAX_CONSECUTIVE_ERRORS = env_int("CHUK_AGENT_MAX_CONSECUTIVE_ERRORS", 6)
DEFAULT_WARN_THROTTLE_SECONDS = env_float("CHUK_AGENT_WARN_THROTTLE_SECONDS", 10.0)
DEFAULT_TOKEN_LIMIT = env_optional_int("CHUK_AGENT_TOKEN_LIMIT")
DEFAULT_CONTEXT_WINDOW_TOKENS = env_int("CHUK_AGENT_CONTEXT_WINDOW_TOKENS", 128_000)
