"""Process-level settings for the rebalancing agent."""

import os
from pathlib import Path

from dotenv import load_dotenv


def _load_dotenv_safe(dotenv_path: str | None = None, *, override: bool = False) -> None:
    """Load dotenv using UTF-8-SIG so BOM-prefixed files don't break first key parsing."""
    try:
        load_dotenv(dotenv_path=dotenv_path, override=override, encoding="utf-8-sig")
    except TypeError:
        # Older python-dotenv versions may not expose the `encoding` argument.
        load_dotenv(dotenv_path=dotenv_path, override=override)


# Base environment first, then the optional per-instance override file.
_load_dotenv_safe()
_BOT_ENV_FILE = os.getenv("BOT_ENV_FILE", "").strip()
if _BOT_ENV_FILE:
    _bot_env_path = Path(_BOT_ENV_FILE).expanduser()
    if not _bot_env_path.is_absolute():
        _bot_env_path = (Path.cwd() / _bot_env_path).resolve()
    if not _bot_env_path.exists():
        raise FileNotFoundError(f"BOT_ENV_FILE does not exist: {_bot_env_path}")
    if not _bot_env_path.is_file():
        raise IsADirectoryError(f"BOT_ENV_FILE is not a file: {_bot_env_path}")
    try:
        _load_dotenv_safe(str(_bot_env_path), override=True)
    except (OSError, UnicodeError, ValueError) as exc:
        raise RuntimeError(f"Failed to load BOT_ENV_FILE '{_bot_env_path}': {exc}") from exc


def _first_existing(paths: list[str]) -> str:
    for candidate in paths:
        if candidate and os.path.exists(candidate):
            return candidate
    return paths[0]


def _resolve_config_path() -> str:
    explicit = os.getenv("CONFIG_PATH", "").strip()
    if explicit:
        return explicit
    cwd = Path.cwd()
    return _first_existing(
        [
            str(cwd / "config" / "runtime.json"),
            str(cwd.parent / "config" / "runtime.json"),
            str(cwd / "runtime.json"),
        ]
    )


RUN_TAG = os.getenv("RUN_TAG", "").strip()

# Chain access
RPC_URL = os.getenv("RPC_URL", "").strip()
PRIVATE_KEY = os.getenv("PRIVATE_KEY", "").strip()
WALLET_ADDRESS = os.getenv("WALLET_ADDRESS", "").strip()
RPC_TIMEOUT_SECONDS = max(1, int(os.getenv("RPC_TIMEOUT_SECONDS", "20")))
LIVE_TX_TIMEOUT_SECONDS = max(10, int(os.getenv("LIVE_TX_TIMEOUT_SECONDS", "180")))
LIVE_MAX_GAS_GWEI = float(os.getenv("LIVE_MAX_GAS_GWEI", "2.0"))
LIVE_PRIORITY_FEE_GWEI = float(os.getenv("LIVE_PRIORITY_FEE_GWEI", "0.02"))
LIVE_MAX_SWAP_GAS = max(50_000, int(os.getenv("LIVE_MAX_SWAP_GAS", "600000")))

# Quote provider
ZEROX_API_URL = os.getenv("ZEROX_API_URL", "https://api.0x.org/swap/v1/quote").strip()
ZEROX_API_KEY = os.getenv("ZEROX_API_KEY", "").strip()
QUOTE_TIMEOUT_SECONDS = max(1.0, float(os.getenv("QUOTE_TIMEOUT_SECONDS", "15")))

# Shared HTTP transport. One attempt by default: the next tick is the retry.
HTTP_CONNECTOR_LIMIT = max(1, int(os.getenv("HTTP_CONNECTOR_LIMIT", "10")))
HTTP_DEFAULT_CONCURRENCY = max(1, int(os.getenv("HTTP_DEFAULT_CONCURRENCY", "4")))
HTTP_RETRY_ATTEMPTS = max(1, int(os.getenv("HTTP_RETRY_ATTEMPTS", "1")))
HTTP_BACKOFF_BASE_SECONDS = max(0.05, float(os.getenv("HTTP_BACKOFF_BASE_SECONDS", "0.50")))
HTTP_BACKOFF_MAX_SECONDS = max(0.10, float(os.getenv("HTTP_BACKOFF_MAX_SECONDS", "8.00")))
HTTP_JITTER_SECONDS = max(0.0, float(os.getenv("HTTP_JITTER_SECONDS", "0.25")))

# Files
CONFIG_PATH = _resolve_config_path()
STATE_PATH = os.getenv("STATE_PATH", os.path.join("state", "agent_state.json"))
TRADES_PATH = os.getenv("TRADES_PATH", os.path.join("state", "trades.csv"))
DECISIONS_LOG_ENABLED = os.getenv("DECISIONS_LOG_ENABLED", "true").lower() == "true"

# Runtime-config overrides
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "").strip()
PAUSED = os.getenv("PAUSED", "").strip()

# Control surface
CONTROL_HOST = os.getenv("CONTROL_HOST", "0.0.0.0")
CONTROL_PORT = int(os.getenv("CONTROL_PORT", os.getenv("PORT", "8787")))

# Alerts
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
TELEGRAM_CHAT_ID = os.getenv("TELEGRAM_CHAT_ID", "").strip()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")
APP_LOG_FILE = os.path.join(LOG_DIR, "app.log")
DECISIONS_LOG_FILE = os.getenv("DECISIONS_LOG_FILE", os.path.join(LOG_DIR, "tick_decisions.jsonl"))
