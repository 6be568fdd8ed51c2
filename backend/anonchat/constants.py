"""Константы протокола чата."""
from typing import TypedDict

# Сервер обрезает сообщение до этой длины до любой обработки
MAX_MESSAGE_LENGTH = 500
# Входящие кадры больше этого размера отбрасываются
MAX_FRAME_BYTES = 10_000
# Сколько сообщений одного соединения может ждать модерации одновременно
MAX_PENDING_MESSAGES = 20

NAME_PREFIX = "User"
NAME_MIN = 1000
NAME_MAX = 9999


class SessionPayload(TypedDict):
    name: str
    token: str


# Клиент -> сервер
EV_MESSAGE = "message"
EV_TYPING = "typing"
EV_REPORT = "report"
EV_BLOCK = "block"

# Сервер -> клиент
EV_SESSION = "session"
EV_PAIRED = "paired"
EV_UNPAIRED = "unpaired"
EV_BLOCKED = "blocked"
EV_REPORTED = "reported"
EV_ONLINE = "online"
EV_ABUSE_DETECTED = "abuse_detected"
