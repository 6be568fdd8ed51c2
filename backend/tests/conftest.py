from __future__ import annotations

import asyncio

import pytest

from anonchat.moderation import ALLOW, ModerationResult
from anonchat.relay import ChatHub


class FakeChannel:
    """Заглушка WebSocket: запоминает все отправленные payload."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.closed = False

    async def send_json(self, data) -> None:
        if self.closed:
            raise RuntimeError("channel closed")
        self.sent.append(data)

    def types(self) -> list[str]:
        return [p["type"] for p in self.sent]

    def of_type(self, t: str) -> list[dict]:
        return [p for p in self.sent if p["type"] == t]

    def clear(self) -> None:
        self.sent.clear()


class YieldingChannel(FakeChannel):
    """Как FakeChannel, но каждая отправка отдаёт управление циклу."""

    async def send_json(self, data) -> None:
        await asyncio.sleep(0)
        await super().send_json(data)


class HeldGate:
    """Шлюз модерации, вердикт которого отпускает сам тест."""

    enabled = True

    def __init__(self, verdict: ModerationResult = ALLOW) -> None:
        self.verdict = verdict
        self.release = asyncio.Event()
        self.started = asyncio.Event()
        self.checked: list[str] = []

    async def check(self, text: str) -> ModerationResult:
        self.checked.append(text)
        self.started.set()
        await self.release.wait()
        return self.verdict

    async def aclose(self) -> None:
        pass


@pytest.fixture
def hub():
    return ChatHub()


async def join(hub: ChatHub, token: str | None = None):
    ch = FakeChannel()
    conn = await hub.connect(ch, token)
    return conn, ch
