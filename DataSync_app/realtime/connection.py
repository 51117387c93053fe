"""Live client connections and the registry that tracks their liveness."""
from __future__ import annotations

import asyncio
import itertools
import logging
from typing import TYPE_CHECKING, Any

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from DataSync_app.realtime.messages import Ping, encode

if TYPE_CHECKING:
    from DataSync_app.realtime.router import SubscriptionRouter

log = logging.getLogger(__name__)

_connection_ids = itertools.count(1)


class Connection:
    """One live client link.

    Messages are not written to the socket directly. ``send`` enqueues them
    on a bounded outbox and ``pump`` (one task per connection) drains it, so
    a broadcast never waits on a slow client and per-connection order is
    kept.

    ``subscribed_tables`` is owned by the router; do not mutate it elsewhere.
    """

    def __init__(self, websocket: WebSocket, *, outbox_size: int = 100) -> None:
        self.id = next(_connection_ids)
        self.websocket = websocket
        self.is_alive = True
        self.subscribed_tables: set[int] = set()
        self.outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=outbox_size)
        self.closed = False

    def __repr__(self) -> str:
        return f"<Connection #{self.id} tables={sorted(self.subscribed_tables)}>"

    @property
    def is_open(self) -> bool:
        return (
            not self.closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def send(self, message: dict[str, Any]) -> bool:
        """Queue ``message`` for delivery. False if the connection is not open or its outbox is full."""
        if not self.is_open:
            return False
        try:
            self.outbox.put_nowait(message)
        except asyncio.QueueFull:
            log.warning("[WS] outbox full, dropping message for connection #%s", self.id)
            return False
        return True

    async def pump(self) -> None:
        """Write queued messages to the socket until it fails or the task is cancelled.

        Once the writer stops, for whatever reason, the connection counts as closed.
        """
        try:
            while True:
                message = await self.outbox.get()
                try:
                    await self.websocket.send_json(message)
                except (WebSocketDisconnect, RuntimeError, ConnectionError) as e:
                    log.debug("[WS] send failed on connection #%s: %r", self.id, e)
                    return
        except Exception:
            log.exception("[WS] writer for connection #%s crashed", self.id)
        finally:
            self.closed = True

    async def terminate(self) -> None:
        """Close the socket from the server side."""
        self.closed = True
        try:
            await self.websocket.close(code=1001)
        except (RuntimeError, ConnectionError) as e:
            log.debug("[WS] close failed on connection #%s: %r", self.id, e)


class ConnectionRegistry:
    """Tracks connected clients and reaps the ones that stop answering probes.

    Contract of ``sweep``: each round marks every connection not-alive and
    probes it; a connection that is still not-alive on the next round (it
    did not answer one full probe cycle) is terminated and deregistered.
    A client slower than one interval is therefore disconnected.
    """

    def __init__(self, router: SubscriptionRouter) -> None:
        self._connections: set[Connection] = set()
        self._router = router

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, conn: object) -> bool:
        return conn in self._connections

    def register(self, conn: Connection) -> None:
        conn.is_alive = True
        conn.subscribed_tables.clear()
        self._connections.add(conn)
        log.info("[WS] client connected #%s (%d total)", conn.id, len(self._connections))

    def mark_alive(self, conn: Connection) -> None:
        conn.is_alive = True

    def deregister(self, conn: Connection) -> bool:
        """Forget ``conn`` and drop all its subscriptions. Only the first call does anything."""
        if conn not in self._connections:
            return False
        self._connections.discard(conn)
        self._router.unsubscribe_all(conn)
        log.info("[WS] client disconnected #%s (%d total)", conn.id, len(self._connections))
        return True

    async def sweep(self) -> int:
        """Run one liveness round. Returns the number of connections terminated."""
        terminated = 0
        for conn in list(self._connections):
            if not conn.is_alive:
                log.info("[WS] terminating inactive connection #%s", conn.id)
                self.deregister(conn)
                await conn.terminate()
                terminated += 1
                continue

            conn.is_alive = False
            conn.send(encode(Ping()))
        return terminated
