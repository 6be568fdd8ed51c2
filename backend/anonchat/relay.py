"""
Релей сообщений и переходы сессии: connect, message, typing, report, block, disconnect.

Все изменения реестра, очереди и блокировок делаются в синхронных методах
без await, поэтому событийный цикл сериализует их сам. Исходящие события
копятся во время изменения и отправляются уже после него.
"""
import asyncio
import logging
from typing import Any

from .blocks import BlockLedger
from .constants import (
    EV_ABUSE_DETECTED,
    EV_BLOCKED,
    EV_MESSAGE,
    EV_PAIRED,
    EV_REPORTED,
    EV_SESSION,
    EV_TYPING,
    EV_UNPAIRED,
    MAX_PENDING_MESSAGES,
)
from .moderation import ModerationGate
from .pairing import PairingEngine, WaitingQueue
from .registry import Channel, Connection, ConnectionRegistry
from .text import sanitize, truncate

logger = logging.getLogger(__name__)

# (получатель, событие, id собеседника, с которым событие paired ещё должно быть верно)
Outbound = list[tuple[str, dict[str, Any], str | None]]


def _event(t: str, **fields: Any) -> dict[str, Any]:
    return {"type": t, **fields}


class ChatHub:
    def __init__(
        self,
        registry: ConnectionRegistry | None = None,
        ledger: BlockLedger | None = None,
        gate: ModerationGate | None = None,
    ):
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.ledger = ledger if ledger is not None else BlockLedger()
        self.queue = WaitingQueue()
        self.engine = PairingEngine(self.registry, self.queue, self.ledger)
        self.gate = gate if gate is not None else ModerationGate()

    # --- синхронные переходы состояния ---

    def _pair_waiting(self) -> Outbound:
        out: Outbound = []
        for a, b in self.engine.try_pair_all():
            out.append((a.id, _event(EV_PAIRED), b.id))
            out.append((b.id, _event(EV_PAIRED), a.id))
        return out

    def _live_peer(self, conn: Connection) -> Connection | None:
        """Живой собеседник, который до сих пор сведён именно с conn."""
        peer = self.registry.lookup(conn.peer_id)
        if peer is None or peer.peer_id != conn.id:
            return None
        return peer

    def _join(self, ws: Channel, token: str | None) -> tuple[Connection, Outbound]:
        conn, _ = self.registry.register(ws, token)
        self.queue.enqueue(conn)
        return conn, self._pair_waiting()

    def _block(self, conn_id: str) -> Outbound:
        conn = self.registry.lookup(conn_id)
        if conn is None or not conn.paired:
            return []
        peer = self._live_peer(conn)
        out: Outbound = []
        self.engine.unpair(conn)
        if peer is not None:
            self.ledger.block(conn.token, peer.token)
            self.engine.unpair(peer)
            out.append((peer.id, _event(EV_BLOCKED), None))
            self.queue.enqueue(peer)
            logger.info("block: %s blocked %s", conn.id, peer.id)
        else:
            logger.info("block: peer of %s already gone", conn.id)
        out.append((conn.id, _event(EV_BLOCKED), None))
        self.queue.enqueue(conn)
        out.extend(self._pair_waiting())
        return out

    def _leave(self, conn_id: str) -> Outbound | None:
        conn = self.registry.lookup(conn_id)
        if conn is None:
            return None
        for task in list(conn.pending):
            task.cancel()
        out: Outbound = []
        if conn.paired:
            peer = self._live_peer(conn)
            if peer is not None:
                self.engine.unpair(peer)
                out.append((peer.id, _event(EV_UNPAIRED), None))
                self.queue.enqueue(peer)
            self.engine.unpair(conn)
        self.queue.discard(conn.id)
        self.registry.remove(conn.id)
        out.extend(self._pair_waiting())
        return out

    # --- обработчики событий ---

    def _still_paired(self, conn_id: str, peer_id: str) -> bool:
        conn = self.registry.lookup(conn_id)
        return conn is not None and conn.peer_id == peer_id and self._live_peer(conn) is not None

    async def _deliver(self, out: Outbound) -> None:
        for conn_id, payload, peer_id in out:
            # Пока шли предыдущие отправки, пару могли уже разорвать
            if peer_id is not None and not self._still_paired(conn_id, peer_id):
                logger.debug("relay: pair %s <-> %s dissolved before delivery, skipping %s",
                             conn_id, peer_id, payload["type"])
                continue
            await self.registry.send_to(conn_id, payload)

    async def connect(self, ws: Channel, token: str | None = None) -> Connection:
        conn, paired = self._join(ws, token)
        await self.registry.send_to(conn.id, _event(EV_SESSION, **conn.identity.payload()))
        await self.registry.broadcast_online()
        await self._deliver(paired)
        return conn

    async def message(self, conn_id: str, raw: Any) -> asyncio.Task | None:
        """
        Отправить сообщение собеседнику. Модерация и пересылка идут фоновой задачей,
        привязанной к соединению; отключение отменяет её.
        """
        conn = self.registry.lookup(conn_id)
        if conn is None:
            return None
        text = truncate(raw)
        if not text or self._live_peer(conn) is None:
            logger.debug("relay: %s has no live peer, dropping message", conn_id)
            return None
        if len(conn.pending) >= MAX_PENDING_MESSAGES:
            logger.debug("relay: %s has %d messages in flight, dropping message", conn_id, len(conn.pending))
            return None
        task = asyncio.create_task(self._moderate_and_relay(conn, conn.peer_id, text))
        conn.pending.add(task)
        task.add_done_callback(lambda t: self._reap(conn, t))
        return task

    @staticmethod
    def _reap(conn: Connection, task: asyncio.Task) -> None:
        conn.pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("relay: task for %s failed", conn.id, exc_info=task.exception())

    async def _moderate_and_relay(self, conn: Connection, peer_id: str, text: str) -> None:
        # Блокировка на соединение сохраняет порядок сообщений, общее состояние она не держит
        async with conn.relay_lock:
            verdict = await self.gate.check(text)
            if not conn.live:
                return
            if not verdict.allowed:
                await self.registry.send_to(conn.id, _event(EV_ABUSE_DETECTED, reason=verdict.reason))
                return
            if conn.peer_id != peer_id:
                logger.debug("relay: %s changed peer during moderation, dropping message", conn.id)
                return
            peer = self._live_peer(conn)
            if peer is None:
                logger.debug("relay: peer of %s gone during moderation, dropping message", conn.id)
                return
            await self.registry.send_to(peer.id, _event(EV_MESSAGE, text=sanitize(text)))

    async def typing(self, conn_id: str) -> bool:
        conn = self.registry.lookup(conn_id)
        peer = self._live_peer(conn) if conn else None
        if peer is None:
            return False
        return await self.registry.send_to(peer.id, _event(EV_TYPING))

    async def report(self, conn_id: str) -> bool:
        """Пометить собеседника: больше не сводить. Текущую пару не разрывает."""
        conn = self.registry.lookup(conn_id)
        peer = self._live_peer(conn) if conn else None
        if peer is None:
            return False
        self.ledger.block(conn.token, peer.token)
        logger.info("report: %s reported %s", conn.id, peer.id)
        await self.registry.send_to(conn.id, _event(EV_REPORTED))
        return True

    async def block(self, conn_id: str) -> bool:
        out = self._block(conn_id)
        if not out:
            return False
        await self._deliver(out)
        return True

    async def disconnect(self, conn_id: str) -> None:
        out = self._leave(conn_id)
        if out is None:
            return
        await self._deliver(out)
        await self.registry.broadcast_online()

    async def close(self) -> None:
        await self.gate.aclose()
