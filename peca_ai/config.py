import os
from typing import Any, Mapping


DEV_SECRET_KEY = "dev-secret-peca-ai"


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "database")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "peca_ai.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", True)

    SECRET_KEY = os.environ.get("SECRET_KEY", DEV_SECRET_KEY)
    AUTH_ENABLED = _bool_env("AUTH_ENABLED", True)
    CSRF_ENABLED = _bool_env("CSRF_ENABLED", True)

    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    RATE_LIMIT_ENABLED = _bool_env("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_WINDOW_SECONDS = _int_env("RATE_LIMIT_WINDOW_SECONDS", 60)
    RATE_LIMIT_MAX_REQUESTS = _int_env("RATE_LIMIT_MAX_REQUESTS", 300)

    WEBHOOK_ENABLED = _bool_env("WEBHOOK_ENABLED", True)
    WEBHOOK_URL = os.environ.get("WEBHOOK_URL", "https://webhook.usoteste.shop/webhook/teste")
    WEBHOOK_TIMEOUT_SECONDS = _int_env("WEBHOOK_TIMEOUT_SECONDS", 10)
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:5000")

    ASSISTANT_ENABLED = _bool_env("ASSISTANT_ENABLED", True)
    ASSISTANT_WEBHOOK_URL = os.environ.get("ASSISTANT_WEBHOOK_URL", "https://webhook.usoteste.shop/webhook/assistente")
    ASSISTANT_TIMEOUT_SECONDS = _int_env("ASSISTANT_TIMEOUT_SECONDS", 30)

    UPLOAD_DIR = os.environ.get("UPLOAD_DIR") or os.path.join(BASE_DIR, "uploads")
    LOGO_MAX_BYTES = _int_env("LOGO_MAX_BYTES", 2 * 1024 * 1024)


def validate_production_settings(settings: Mapping[str, Any]) -> None:
    """Refuses to boot a production app on sqlite or with the development secret."""
    env = (os.environ.get("FLASK_ENV", "development") or "development").strip().lower()
    if env != "production":
        return
    if not settings.get("DATABASE_URL"):
        raise RuntimeError("DATABASE_URL nao definida para ambiente de producao.")
    if settings.get("SECRET_KEY") in (None, "", DEV_SECRET_KEY):
        raise RuntimeError("SECRET_KEY insegura para producao.")
