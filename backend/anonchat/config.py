"""Конфигурация приложения."""
import os
from functools import lru_cache
from pathlib import Path

_DEFAULT_PUBLIC_DIR = Path(__file__).resolve().parent.parent.parent / "public"


def _flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


@lru_cache
def get_config():
    return type("Config", (), {
        "host": os.environ.get("HOST", "0.0.0.0"),
        "port": int(os.environ.get("PORT", "3000")),
        "debug": _flag("DEBUG"),
        "allowed_origins": os.environ.get("ALLOWED_ORIGINS", "*").split(","),
        "public_dir": Path(os.environ.get("PUBLIC_DIR", str(_DEFAULT_PUBLIC_DIR))),
        # Пустой ключ отключает модерацию
        "moderation_api_key": os.environ.get("MODERATION_API_KEY", ""),
        "moderation_url": os.environ.get("MODERATION_URL", "https://api.openai.com/v1/moderations"),
        "moderation_timeout": float(os.environ.get("MODERATION_TIMEOUT", "3.0")),
        "rate_limit_window": float(os.environ.get("RATE_LIMIT_WINDOW", "10")),
        "rate_limit_max": int(os.environ.get("RATE_LIMIT_MAX", "30")),
        "trust_proxy": _flag("TRUST_PROXY"),
    })()
