"""
Runtime configuration for AccessAI.

All settings are module-level constants read from the environment (a local
``.env`` file is loaded first), so every component imports the same values.
"""

import os
from pathlib import Path

# Environment setup
try:
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    raise ImportError(
        "dotenv not found. Please install it with `pip install python-dotenv`"
    )


def _env_float(name: str, default: float) -> float:
    """Read a float setting, falling back to the default on bad input."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    """Read an int setting, falling back to the default on bad input."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# ================================================================
# OpenAI endpoints
# ================================================================

OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
REALTIME_API_URL = os.environ.get("REALTIME_API_URL", "wss://api.openai.com/v1/realtime")
REALTIME_MODEL = os.environ.get("REALTIME_MODEL", "gpt-4o-realtime-preview-2024-12-17")
REALTIME_API_URL_TEMPLATE = f"{REALTIME_API_URL}?model={{model}}"
CHAT_MODEL = os.environ.get("CHAT_MODEL", "gpt-4o")
CHAT_API_BASE_URL = os.environ.get("CHAT_API_BASE_URL") or None
TRANSCRIPTION_MODEL = os.environ.get("TRANSCRIPTION_MODEL", "gpt-4o-mini-transcribe")
TTS_MODEL = os.environ.get("TTS_MODEL", "tts-1")
TTS_VOICE = os.environ.get("TTS_VOICE", "nova")
TTS_SPEED = _env_float("TTS_SPEED", 1.1)

# ================================================================
# Session lifecycle
# ================================================================

HANDSHAKE_TIMEOUT = _env_float("HANDSHAKE_TIMEOUT", 10.0)
CREDENTIAL_TIMEOUT = _env_float("CREDENTIAL_TIMEOUT", 10.0)
RECONNECT_BASE_DELAY = _env_float("RECONNECT_BASE_DELAY", 1.0)
RECONNECT_MAX_DELAY = _env_float("RECONNECT_MAX_DELAY", 8.0)
RECONNECT_MAX_ATTEMPTS = _env_int("RECONNECT_MAX_ATTEMPTS", 5)

# Audio configuration
SAMPLE_RATE = 24000
CHANNELS = 1
FRAME_SAMPLES = 2048

# ================================================================
# Agent loop
# ================================================================

AGENT_MAX_STEPS = _env_int("AGENT_MAX_STEPS", 18)
AGENT_SETTLE_DELAY = _env_float("AGENT_SETTLE_DELAY", 0.6)
AGENT_HISTORY_TURNS = _env_int("AGENT_HISTORY_TURNS", 20)
AGENT_MAX_MESSAGES = _env_int("AGENT_MAX_MESSAGES", 40)
AGENT_MAX_TOKENS = _env_int("AGENT_MAX_TOKENS", 600)
AGENT_TEMPERATURE = _env_float("AGENT_TEMPERATURE", 0.2)

# Page introspection
SNAPSHOT_MAX_ELEMENTS = _env_int("SNAPSHOT_MAX_ELEMENTS", 100)
FIND_MAX_RESULTS = 15
NAV_VOCABULARY_MAX = 40
READ_PAGE_MAX_CHARS = _env_int("READ_PAGE_MAX_CHARS", 12000)
EXTENSION_ROOT_SELECTOR = os.environ.get("EXTENSION_ROOT_SELECTOR", "#accessai-sidebar")
BROWSER_START_URL = os.environ.get("BROWSER_START_URL", "https://www.google.com")

# ================================================================
# Persistence and logs
# ================================================================

HISTORY_MAX_TURNS = _env_int("HISTORY_MAX_TURNS", 30)
HISTORY_PATH = Path(os.environ.get("HISTORY_PATH", "output_history/history.json"))
LOG_DIR = Path(os.environ.get("LOG_DIR", "output_logs"))
