import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_DB_PATH = "data/devmonitor.db"
DEFAULT_UPDATE_WINDOW_MINUTES = 60


def load_env() -> None:
    """Load .env from the working directory if present.
    Values already set in the environment win.
    """
    env_path = Path.cwd() / ".env"
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise SystemExit(f"{name} must be an integer, got {raw!r}")


def db_path() -> Path:
    return Path(os.getenv("DEVMONITOR_DB") or DEFAULT_DB_PATH)


def log_level() -> str:
    return os.getenv("DEVMONITOR_LOG_LEVEL", "INFO")


def update_window_minutes() -> int:
    return env_int("DEVMONITOR_UPDATE_WINDOW_MINUTES", DEFAULT_UPDATE_WINDOW_MINUTES)


def webhook_url() -> Optional[str]:
    url = os.getenv("DEVMONITOR_WEBHOOK_URL")
    return url.strip() if url and url.strip() else None
