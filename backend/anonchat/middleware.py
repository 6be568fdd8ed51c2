"""
HTTP middleware: ограничение частоты запросов и заголовки безопасности.
Оба middleware чистые ASGI и пропускают WebSocket и lifespan без изменений.
"""
import logging
import time
from collections import defaultdict, deque
from collections.abc import Callable

from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "x-content-type-options": "nosniff",
    "x-frame-options": "SAMEORIGIN",
    "referrer-policy": "no-referrer",
    "x-dns-prefetch-control": "off",
    "x-download-options": "noopen",
    "x-permitted-cross-domain-policies": "none",
    "cross-origin-opener-policy": "same-origin",
    "strict-transport-security": "max-age=15552000; includeSubDomains",
    "content-security-policy": (
        "default-src 'self'; connect-src 'self' ws: wss:; "
        "object-src 'none'; frame-ancestors 'self'"
    ),
}


class SecurityHeadersMiddleware:
    def __init__(self, app: ASGIApp, headers: dict[str, str] | None = None):
        self.app = app
        self.headers = headers if headers is not None else SECURITY_HEADERS

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in self.headers.items():
                    headers.setdefault(name, value)
            await send(message)

        await self.app(scope, receive, send_with_headers)


class SlidingWindowLimiter:
    """Не больше max_requests за последние window секунд на ключ."""

    def __init__(self, max_requests: int, window: float, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window = window
        self._clock = clock
        self._hits: dict[str, deque[float]] = defaultdict(deque)

    def allow(self, key: str) -> bool:
        now = self._clock()
        hits = self._hits[key]
        while hits and now - hits[0] >= self.window:
            hits.popleft()
        if len(hits) >= self.max_requests:
            return False
        hits.append(now)
        return True

    def retry_after(self, key: str) -> int:
        hits = self._hits.get(key)
        if not hits:
            return 0
        return max(1, int(self.window - (self._clock() - hits[0]) + 0.999))

    def prune(self) -> None:
        now = self._clock()
        for key in [k for k, hits in self._hits.items() if not hits or now - hits[-1] >= self.window]:
            del self._hits[key]


class RateLimitMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        max_requests: int = 30,
        window: float = 10.0,
        trust_proxy: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.app = app
        self.limiter = SlidingWindowLimiter(max_requests, window, clock)
        self.trust_proxy = trust_proxy
        self._checks = 0

    def client_key(self, scope: Scope) -> str:
        if self.trust_proxy:
            forwarded = Headers(scope=scope).get("x-forwarded-for")
            if forwarded:
                return forwarded.split(",")[0].strip()
        client = scope.get("client")
        return client[0] if client else "unknown"

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        key = self.client_key(scope)
        self._checks += 1
        if self._checks % 1000 == 0:
            self.limiter.prune()
        if not self.limiter.allow(key):
            logger.warning("rate limit exceeded for %s %s", key, scope.get("path"))
            response = JSONResponse(
                {"detail": "Too many requests, please try again later."},
                status_code=429,
                headers={"Retry-After": str(self.limiter.retry_after(key))},
            )
            await response(scope, receive, send)
            return
        await self.app(scope, receive, send)
