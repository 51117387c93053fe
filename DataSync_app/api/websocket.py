# DataSync_app/api/websocket.py
import asyncio
import contextlib
import logging

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketDisconnect

from DataSync_app.config import settings
from DataSync_app.realtime.hub import RealtimeHub

ws_router = APIRouter()
log = logging.getLogger(__name__)


@ws_router.websocket(settings.ws_path)
async def table_updates(ws: WebSocket):
    hub: RealtimeHub = ws.app.state.hub
    await ws.accept()

    # ① register before reading so a subscribe can be answered immediately
    conn = hub.connect(ws)
    writer = asyncio.create_task(conn.pump(), name=f"ws-writer-{conn.id}")

    # ② every frame goes through the hub; bad frames are dropped there
    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                log.info("[WS] client #%s disconnected: code=%s", conn.id, message.get("code"))
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            hub.handle_message(conn, raw)
    except WebSocketDisconnect as e:
        log.info("[WS] client #%s disconnected: code=%s", conn.id, e.code)
    except RuntimeError as e:
        # socket closed by the liveness sweep while we were reading
        log.debug("[WS] client #%s read loop ended: %r", conn.id, e)
    finally:
        hub.disconnect(conn)
        writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await writer
