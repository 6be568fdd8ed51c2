"""
Очередь ожидания и пейринг (in-memory).
Строгий FIFO: первым сводится тот, кто ждёт дольше всех.
"""
import logging

from .blocks import BlockLedger
from .registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)


class WaitingQueue:
    """Упорядоченный список id соединений, ждущих собеседника."""

    def __init__(self):
        self._ids: list[str] = []

    def enqueue(self, conn: Connection) -> bool:
        """Добавить в хвост. Уже стоящие в очереди и уже сведённые не добавляются."""
        if conn.paired or not conn.live or conn.id in self._ids:
            return False
        self._ids.append(conn.id)
        return True

    def discard(self, conn_id: str) -> bool:
        """Убрать из очереди. Возвращает True если был в очереди."""
        for i, queued in enumerate(self._ids):
            if queued == conn_id:
                self._ids.pop(i)
                return True
        return False

    def ids(self) -> list[str]:
        return list(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, conn_id: str) -> bool:
        return conn_id in self._ids


class PairingEngine:
    def __init__(self, registry: ConnectionRegistry, queue: WaitingQueue, ledger: BlockLedger):
        self.registry = registry
        self.queue = queue
        self.ledger = ledger

    def try_pair_all(self) -> list[tuple[Connection, Connection]]:
        """
        Свести всех, кого можно. Мёртвые соединения выкидываются из очереди,
        заблокированные друг другом пары пропускаются, остальные сохраняют порядок.
        Возвращает список новых пар для рассылки paired.
        """
        pairs: list[tuple[Connection, Connection]] = []
        waiting: list[Connection] = []
        for conn_id in self.queue.ids():
            conn = self._alive(conn_id)
            if conn is None:
                self.queue.discard(conn_id)
                continue
            waiting.append(conn)

        i = 0
        while i < len(waiting):
            a = waiting[i]
            match = None
            for j in range(i + 1, len(waiting)):
                if not self.ledger.is_blocked(a.token, waiting[j].token):
                    match = j
                    break
            if match is None:
                i += 1
                continue
            b = waiting.pop(match)
            waiting.pop(i)
            self._pair(a, b)
            pairs.append((a, b))
        return pairs

    def _alive(self, conn_id: str) -> Connection | None:
        conn = self.registry.lookup(conn_id)
        if conn is None:
            logger.info("pairing: dropping dead queue entry %s", conn_id)
            return None
        if conn.paired:
            # Не должно случаться: сведённые в очереди не стоят
            logger.warning("pairing: %s is already paired, dropping from queue", conn_id)
            return None
        return conn

    def _pair(self, a: Connection, b: Connection) -> None:
        # Обе ссылки ставятся без точек приостановки между ними
        self.queue.discard(a.id)
        self.queue.discard(b.id)
        a.peer_id = b.id
        b.peer_id = a.id
        logger.info("pairing: paired %s <-> %s", a.id, b.id)

    @staticmethod
    def unpair(conn: Connection) -> None:
        conn.peer_id = None
