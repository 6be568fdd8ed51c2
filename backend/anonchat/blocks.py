"""
Реестр блокировок: пары идентичностей, которые больше никогда не сводятся.
Записи только добавляются и живут до конца процесса.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class PeerPair:
    """Неупорядоченная пара идентичностей с каноническим порядком (low <= high)."""
    low: str
    high: str

    def __init__(self, a: str, b: str):
        low, high = (a, b) if a <= b else (b, a)
        object.__setattr__(self, "low", low)
        object.__setattr__(self, "high", high)

    def __contains__(self, ident: str) -> bool:
        return ident == self.low or ident == self.high

    def other(self, ident: str) -> str:
        if ident == self.low:
            return self.high
        if ident == self.high:
            return self.low
        raise KeyError(ident)


class BlockLedger:
    def __init__(self):
        self._pairs: set[PeerPair] = set()

    def block(self, a: str, b: str) -> bool:
        """Добавить запись. Возвращает True если запись новая."""
        if a == b:
            return False
        pair = PeerPair(a, b)
        if pair in self._pairs:
            return False
        self._pairs.add(pair)
        return True

    def is_blocked(self, a: str, b: str) -> bool:
        return PeerPair(a, b) in self._pairs

    def __contains__(self, pair: PeerPair) -> bool:
        return pair in self._pairs

    def __len__(self) -> int:
        return len(self._pairs)
