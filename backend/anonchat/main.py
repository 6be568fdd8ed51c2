"""
Анонимный чат: HTTP API и WebSocket.
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .config import get_config
from .middleware import RateLimitMiddleware, SecurityHeadersMiddleware
from .moderation import ModerationGate
from .relay import ChatHub
from .ws_handlers import ws_session_loop

config = get_config()

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def create_app(hub: ChatHub | None = None) -> FastAPI:
    if hub is None:
        hub = ChatHub(gate=ModerationGate.from_config())
    if not hub.gate.enabled:
        logger.info("moderation disabled: MODERATION_API_KEY is not set")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await hub.close()

    app = FastAPI(title="Anonymous Chat", lifespan=lifespan)
    app.state.hub = hub

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=config.rate_limit_max,
        window=config.rate_limit_window,
        trust_proxy=config.trust_proxy,
    )

    @app.get("/health")
    def health():
        return {"status": "ok", "online": hub.registry.count()}

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        logger.info("WS: connection attempt from %s", ws.client)
        await ws_session_loop(ws, hub)

    # Статика клиента
    if config.public_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(config.public_dir), html=True), name="public")

    return app


app = create_app()


def run() -> None:
    logger.info("Server running on http://localhost:%s", config.port)
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    run()
