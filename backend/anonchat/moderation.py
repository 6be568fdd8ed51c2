"""
Проверка текста внешним сервисом оценки оскорблений.
Формат ответа совместим с OpenAI moderation API:
{"results": [{"flagged": bool, "categories": {"harassment": true, ...}}]}

При любой ошибке сервиса сообщение пропускается (fail open),
без ключа проверка не выполняется вообще.
"""
import asyncio
import logging
from dataclasses import dataclass

import httpx

from .config import get_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModerationResult:
    allowed: bool
    reason: str | None = None


ALLOW = ModerationResult(allowed=True)


class ModerationGate:
    def __init__(
        self,
        api_key: str = "",
        url: str = "",
        timeout: float = 3.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_config(cls) -> "ModerationGate":
        config = get_config()
        return cls(
            api_key=config.moderation_api_key,
            url=config.moderation_url,
            timeout=config.moderation_timeout,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def check(self, text: str) -> ModerationResult:
        if not self.enabled or not text:
            return ALLOW
        try:
            # Общий дедлайн поверх таймаутов httpx: один медленный ответ не держит релей
            return await asyncio.wait_for(self._score(text), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("moderation: timed out after %.1fs, allowing message", self.timeout)
        except httpx.HTTPError as e:
            logger.warning("moderation: request failed (%s), allowing message", e)
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            logger.warning("moderation: malformed response (%s), allowing message", e)
        except Exception:
            logger.exception("moderation: unexpected error, allowing message")
        return ALLOW

    async def _score(self, text: str) -> ModerationResult:
        resp = await self._get_client().post(
            self.url,
            json={"input": text},
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        resp.raise_for_status()
        result = resp.json()["results"][0]
        if not result["flagged"]:
            return ALLOW
        categories = result.get("categories") or {}
        flagged = sorted(name for name, hit in categories.items() if hit)
        reason = ", ".join(flagged) if flagged else "flagged"
        logger.info("moderation: message rejected (%s)", reason)
        return ModerationResult(allowed=False, reason=reason)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
