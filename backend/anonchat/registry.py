"""
Реестр подключений: живые соединения, их псевдонимы и токены переподключения,
доставка событий и рассылка счётчика онлайна.
"""
import asyncio
import logging
import random
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

from .constants import EV_ONLINE, NAME_MAX, NAME_MIN, NAME_PREFIX, SessionPayload

logger = logging.getLogger(__name__)


class Channel(Protocol):
    async def send_json(self, data: Any) -> None: ...


@dataclass(frozen=True)
class SessionIdentity:
    name: str
    token: str

    def payload(self) -> SessionPayload:
        return {"name": self.name, "token": self.token}


@dataclass(eq=False)
class Connection:
    id: str
    ws: Channel
    name: str
    token: str
    peer_id: str | None = None  # слабая ссылка на другое соединение
    live: bool = True
    # Фоновые задачи модерации/релея, отменяются при отключении
    pending: set[asyncio.Task] = field(default_factory=set)
    relay_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def identity(self) -> SessionIdentity:
        return SessionIdentity(self.name, self.token)

    @property
    def paired(self) -> bool:
        return self.peer_id is not None


def random_name() -> str:
    return f"{NAME_PREFIX}{random.randint(NAME_MIN, NAME_MAX)}"


class ConnectionRegistry:
    def __init__(self):
        self._by_id: dict[str, Connection] = {}
        # Все выданные за время жизни процесса токены -> псевдоним
        self._issued: dict[str, str] = {}
        # Токен -> id живого соединения, которое его держит
        self._live_tokens: dict[str, str] = {}

    def register(self, ws: Channel, token: str | None = None) -> tuple[Connection, SessionIdentity]:
        """
        Зарегистрировать соединение и выдать ему идентичность.
        Известный токен, не занятый живым соединением, возвращает прежний псевдоним;
        отсутствующий или невалидный токен даёт новую идентичность.
        """
        if token and token in self._issued and token not in self._live_tokens:
            name = self._issued[token]
        else:
            if token:
                logger.info("registry: token not resumable, issuing a fresh identity")
            token = uuid.uuid4().hex
            name = random_name()
            self._issued[token] = name
        conn = Connection(id=uuid.uuid4().hex, ws=ws, name=name, token=token)
        self._by_id[conn.id] = conn
        self._live_tokens[token] = conn.id
        logger.info("registry: registered %s as %s (online=%d)", conn.id, name, len(self._by_id))
        return conn, conn.identity

    def lookup(self, conn_id: str | None) -> Connection | None:
        if conn_id is None:
            return None
        conn = self._by_id.get(conn_id)
        if conn is None or not conn.live:
            return None
        return conn

    def remove(self, conn_id: str) -> Connection | None:
        conn = self._by_id.pop(conn_id, None)
        if conn is None:
            return None
        conn.live = False
        if self._live_tokens.get(conn.token) == conn_id:
            del self._live_tokens[conn.token]
        logger.info("registry: removed %s (online=%d)", conn_id, len(self._by_id))
        return conn

    def count(self) -> int:
        return len(self._by_id)

    def connections(self) -> list[Connection]:
        return list(self._by_id.values())

    def __contains__(self, conn_id: str) -> bool:
        return conn_id in self._by_id

    async def send_to(self, conn_id: str, payload: dict[str, Any]) -> bool:
        conn = self.lookup(conn_id)
        if not conn:
            return False
        try:
            await conn.ws.send_json(payload)
            return True
        except Exception as e:
            logger.warning("send_to %s: %s", conn_id, e)
            return False

    async def broadcast(self, payload: dict[str, Any]) -> None:
        # Упавшие соединения убирает их собственный цикл приёма
        for conn in self.connections():
            await self.send_to(conn.id, payload)

    async def broadcast_online(self) -> None:
        await self.broadcast({"type": EV_ONLINE, "count": self.count()})
