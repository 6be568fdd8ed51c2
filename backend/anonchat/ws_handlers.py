"""
Обработка сообщений WebSocket: message, typing, report, block.
Токен переподключения приходит в query-параметре token при рукопожатии.
"""
import json
import logging

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from .constants import EV_BLOCK, EV_MESSAGE, EV_REPORT, EV_TYPING, MAX_FRAME_BYTES
from .relay import ChatHub

logger = logging.getLogger(__name__)


async def handle_ws_message(hub: ChatHub, conn_id: str, raw: str) -> bool:
    """
    Обрабатывает одно сообщение клиента.
    Возвращает False если соединение нужно закрыть.
    """
    if len(raw.encode("utf-8", "surrogatepass")) > MAX_FRAME_BYTES:
        logger.warning("WS: oversized frame from %s (%d chars), dropped", conn_id, len(raw))
        return True
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("WS: invalid JSON from %s: %s", conn_id, e)
        return True
    if not isinstance(data, dict):
        logger.warning("WS: non-object frame from %s", conn_id)
        return True
    t = data.get("type")
    logger.debug("WS: msg from %s type=%s", conn_id, t)
    if t == EV_MESSAGE:
        await hub.message(conn_id, data.get("text", ""))
        return True
    if t == EV_TYPING:
        await hub.typing(conn_id)
        return True
    if t == EV_REPORT:
        await hub.report(conn_id)
        return True
    if t == EV_BLOCK:
        await hub.block(conn_id)
        return True
    logger.info("WS: unknown event type=%s from %s", t, conn_id)
    return True


async def ws_session_loop(ws: WebSocket, hub: ChatHub) -> None:
    """
    Регистрация соединения и цикл приёма событий.
    Отключение (штатное или по ошибке) всегда проходит через hub.disconnect.
    """
    conn_id = None
    try:
        await ws.accept()
        token = ws.query_params.get("token") or None
        conn = await hub.connect(ws, token)
        conn_id = conn.id
        logger.info("WS: session started conn_id=%s name=%s", conn_id, conn.name)
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                logger.info("WS: client disconnected code=%s conn_id=%s", message.get("code"), conn_id)
                break
            text = message.get("text")
            if text is None:
                logger.warning("WS: non-text frame from %s, ignored", conn_id)
                continue
            if not await handle_ws_message(hub, conn_id, text):
                break
    except WebSocketDisconnect as e:
        logger.info("WS: client disconnected code=%s reason=%s conn_id=%s", e.code, e.reason or "", conn_id)
    except Exception as e:
        logger.exception("WS: error conn_id=%s: %s", conn_id, e)
    finally:
        if conn_id:
            await hub.disconnect(conn_id)
            logger.info("WS: disconnected conn_id=%s", conn_id)
