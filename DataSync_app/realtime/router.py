"""Table id → subscribed connections."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from DataSync_app.realtime.messages import Subscribed, Unsubscribed, encode

if TYPE_CHECKING:
    from DataSync_app.realtime.connection import Connection

log = logging.getLogger(__name__)


class SubscriptionRouter:
    """Keeps ``table id → connections`` and each connection's ``subscribed_tables`` in step.

    A connection is in the set for table T exactly when T is in its
    ``subscribed_tables``; every method updates both sides together.
    Empty sets are removed. The router does not check that a table exists.
    """

    def __init__(self) -> None:
        self._subscribers: dict[int, set[Connection]] = {}

    @property
    def subscriber_count(self) -> int:
        """Total number of (table, connection) pairs."""
        return sum(len(conns) for conns in self._subscribers.values())

    def subscribers(self, table_id: int) -> frozenset[Connection]:
        return frozenset(self._subscribers.get(table_id, ()))

    def tables(self) -> frozenset[int]:
        return frozenset(self._subscribers)

    def __contains__(self, table_id: object) -> bool:
        return table_id in self._subscribers

    def subscribe(self, conn: Connection, table_id: int) -> None:
        log.info("[WS] connection #%s subscribing to table %s", conn.id, table_id)
        conn.subscribed_tables.add(table_id)
        self._subscribers.setdefault(table_id, set()).add(conn)
        conn.send(encode(Subscribed(table_id=table_id)))

    def unsubscribe(self, conn: Connection, table_id: int) -> None:
        self._remove(conn, table_id)
        conn.send(encode(Unsubscribed(table_id=table_id)))

    def unsubscribe_all(self, conn: Connection) -> None:
        for table_id in list(conn.subscribed_tables):
            self._remove(conn, table_id)

    def drop_table(self, table_id: int) -> int:
        """Remove every subscription to ``table_id``. Returns how many were removed."""
        conns = self._subscribers.pop(table_id, set())
        for conn in conns:
            conn.subscribed_tables.discard(table_id)
        return len(conns)

    def broadcast(self, table_id: int, message: dict[str, Any]) -> int:
        """Queue ``message`` for every open subscriber of ``table_id``.

        No subscribers is not an error. Subscribers that are not open are
        skipped but left in place; deregistration removes them.
        Returns the number of connections the message was queued for.
        """
        conns = self._subscribers.get(table_id)
        if not conns:
            return 0

        log.info("[WS] broadcasting update to %d clients for table %s", len(conns), table_id)
        delivered = 0
        for conn in list(conns):
            try:
                if conn.send(message):
                    delivered += 1
            except Exception:
                log.exception("[WS] send to connection #%s failed", conn.id)
        return delivered

    def _remove(self, conn: Connection, table_id: int) -> None:
        conn.subscribed_tables.discard(table_id)
        conns = self._subscribers.get(table_id)
        if conns is None:
            return
        conns.discard(conn)
        if not conns:
            del self._subscribers[table_id]
