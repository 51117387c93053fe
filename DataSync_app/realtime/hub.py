"""The realtime hub: registry + router + liveness sweeper, with one lifecycle."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pydantic import ValidationError
from starlette.requests import HTTPConnection
from starlette.websockets import WebSocket

from DataSync_app.realtime.connection import Connection, ConnectionRegistry
from DataSync_app.realtime.messages import (
    PongMsg, SubscribeMsg, TableUpdate, UnsubscribeMsg, encode, parse_client_message,
)
from DataSync_app.realtime.router import SubscriptionRouter

log = logging.getLogger(__name__)


class RealtimeHub:
    """Owns the connection registry and the subscription router.

    Built once in ``create_app()``; ``start()`` on startup launches the
    liveness sweeper and ``stop()`` on shutdown cancels it. Everything here
    runs on the event loop, so no locks are taken.
    """

    def __init__(self, *, liveness_interval: float = 15.0, outbox_size: int = 100) -> None:
        self.liveness_interval = liveness_interval
        self.outbox_size = outbox_size
        self.router = SubscriptionRouter()
        self.registry = ConnectionRegistry(self.router)
        self._sweeper: Optional[asyncio.Task[None]] = None

    # ---------------- lifecycle ----------------
    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        if self.running:
            return
        self._sweeper = asyncio.create_task(self._sweep_forever(), name="realtime-liveness-sweep")
        log.info("[WS] liveness sweep every %.1fs", self.liveness_interval)

    async def stop(self) -> None:
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is None:
            return
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
        log.info("[WS] liveness sweep stopped")

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.liveness_interval)
            try:
                await self.registry.sweep()
            except Exception:
                log.exception("[WS] liveness sweep failed")

    # ---------------- connections ----------------
    def connect(self, websocket: WebSocket) -> Connection:
        conn = Connection(websocket, outbox_size=self.outbox_size)
        self.registry.register(conn)
        return conn

    def disconnect(self, conn: Connection) -> None:
        self.registry.deregister(conn)

    def handle_message(self, conn: Connection, raw: str | bytes) -> None:
        """Apply one client frame. Malformed frames are logged and dropped."""
        try:
            msg = parse_client_message(raw)
        except ValidationError as e:
            log.warning("[WS] ignoring malformed message from #%s: %d error(s)", conn.id, e.error_count())
            return

        if isinstance(msg, SubscribeMsg):
            self.router.subscribe(conn, msg.table_id)
        elif isinstance(msg, UnsubscribeMsg):
            self.router.unsubscribe(conn, msg.table_id)
        elif isinstance(msg, PongMsg):
            self.registry.mark_alive(conn)

    # ---------------- broadcasting ----------------
    def publish(self, update: TableUpdate) -> int:
        return self.router.broadcast(update.table_id, encode(update))

    def drop_table(self, table_id: int) -> int:
        return self.router.drop_table(table_id)


def get_hub(conn: HTTPConnection) -> RealtimeHub:
    """FastAPI dependency: the hub stored on ``app.state`` by ``create_app``."""
    return conn.app.state.hub
