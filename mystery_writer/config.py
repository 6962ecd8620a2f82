import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _default_sqlite_uri() -> str:
    instance_path = BASE_DIR / "instance"
    instance_path.mkdir(exist_ok=True)
    return f"sqlite:///{instance_path / 'mystery_writer.db'}"


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Base configuration shared across environments."""

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", _default_sqlite_uri())
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_TIME_LIMIT = None
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024

    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
    OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
    OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL") or None
    COMPLETION_MAX_TOKENS = int(os.environ.get("COMPLETION_MAX_TOKENS", "2048"))
    COMPLETION_TEMPERATURE = _env_float("COMPLETION_TEMPERATURE", 0.8)

    # Seconds between drain checks of the completion queue.
    COMPLETION_DRAIN_INTERVAL = _env_float("COMPLETION_DRAIN_INTERVAL", 1.0)
    # ``None`` waits for the queued call however long it takes.
    COMPLETION_WAIT_SECONDS = _env_float("COMPLETION_WAIT_SECONDS", None)
    COMPLETION_QUEUE_AUTOSTART = _env_flag("COMPLETION_QUEUE_AUTOSTART", True)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    WTF_CSRF_ENABLED = False
    OPENAI_API_KEY = ""
    COMPLETION_DRAIN_INTERVAL = 0.05
    COMPLETION_WAIT_SECONDS = 5.0
