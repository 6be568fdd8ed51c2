"""Подготовка текста сообщения к пересылке."""
import bleach

from .constants import MAX_MESSAGE_LENGTH


def truncate(raw, limit: int = MAX_MESSAGE_LENGTH) -> str:
    text = "" if raw is None else str(raw)
    return text[:limit]


def sanitize(text: str) -> str:
    """Экранирует разметку, чтобы у получателя она не исполнилась."""
    return bleach.clean(
        text,
        tags=[],
        attributes={},
        strip=False,
        strip_comments=True,
    )


def clean_message(raw, limit: int = MAX_MESSAGE_LENGTH) -> str:
    return sanitize(truncate(raw, limit))
