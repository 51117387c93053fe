"""Tests for DataSync_app.realtime.router: table subscriptions and fan-out."""

from __future__ import annotations

import random

from starlette.websockets import WebSocketState

from DataSync_app.realtime.connection import ConnectionRegistry
from DataSync_app.realtime.router import SubscriptionRouter
from tests.helpers import drain, make_conn


def assert_symmetric(router: SubscriptionRouter, conns) -> None:
    for conn in conns:
        for table_id in conn.subscribed_tables:
            assert conn in router.subscribers(table_id)
    for table_id in router.tables():
        subs = router.subscribers(table_id)
        assert subs, f"empty entry left for table {table_id}"
        for conn in subs:
            assert table_id in conn.subscribed_tables


class TestSubscribe:
    def test_subscribe_updates_both_sides(self) -> None:
        router = SubscriptionRouter()
        conn = make_conn()
        router.subscribe(conn, 42)

        assert conn.subscribed_tables == {42}
        assert router.subscribers(42) == frozenset({conn})
        assert router.subscriber_count == 1

    def test_subscribe_acknowledges_requester_only(self) -> None:
        router = SubscriptionRouter()
        a, b = make_conn(), make_conn()
        router.subscribe(b, 42)
        drain(b)

        router.subscribe(a, 42)

        assert drain(a) == [{
            "type": "subscribed",
            "tableId": 42,
            "message": "Successfully subscribed to real-time updates",
        }]
        assert drain(b) == []

    def test_subscribe_twice_is_one_subscription(self) -> None:
        router = SubscriptionRouter()
        conn = make_conn()
        router.subscribe(conn, 1)
        router.subscribe(conn, 1)
        assert router.subscriber_count == 1

    def test_subscribe_to_unknown_table_is_accepted(self) -> None:
        router = SubscriptionRouter()
        conn = make_conn()
        router.subscribe(conn, 999_999)
        assert 999_999 in router
        assert drain(conn)[0]["type"] == "subscribed"


class TestUnsubscribe:
    def test_unsubscribe_prunes_empty_entry(self) -> None:
        router = SubscriptionRouter()
        conn = make_conn()
        router.subscribe(conn, 7)
        router.unsubscribe(conn, 7)

        assert 7 not in router
        assert router.tables() == frozenset()
        assert conn.subscribed_tables == set()

    def test_unsubscribe_keeps_other_subscribers(self) -> None:
        router = SubscriptionRouter()
        a, b = make_conn(), make_conn()
        router.subscribe(a, 7)
        router.subscribe(b, 7)
        router.unsubscribe(a, 7)

        assert router.subscribers(7) == frozenset({b})

    def test_unsubscribe_sends_confirmation(self) -> None:
        router = SubscriptionRouter()
        conn = make_conn()
        router.subscribe(conn, 7)
        drain(conn)
        router.unsubscribe(conn, 7)
        assert drain(conn) == [{"type": "unsubscribed", "tableId": 7}]

    def test_unsubscribe_unknown_pair_is_noop(self) -> None:
        router = SubscriptionRouter()
        conn = make_conn()
        router.unsubscribe(conn, 3)
        assert router.tables() == frozenset()
        assert conn.subscribed_tables == set()

    def test_unsubscribe_all(self) -> None:
        router = SubscriptionRouter()
        a, b = make_conn(), make_conn()
        for t in (1, 2, 3):
            router.subscribe(a, t)
        router.subscribe(b, 2)

        router.unsubscribe_all(a)

        assert a.subscribed_tables == set()
        assert router.tables() == frozenset({2})
        assert router.subscribers(2) == frozenset({b})


class TestSymmetry:
    def test_random_operation_sequences_stay_symmetric(self) -> None:
        rng = random.Random(1234)
        router = SubscriptionRouter()
        registry = ConnectionRegistry(router)
        conns = [make_conn() for _ in range(6)]
        for c in conns:
            registry.register(c)

        for _ in range(500):
            conn = rng.choice(conns)
            table_id = rng.randint(1, 5)
            op = rng.random()
            if op < 0.5:
                router.subscribe(conn, table_id)
            elif op < 0.85:
                router.unsubscribe(conn, table_id)
            elif op < 0.95:
                registry.deregister(conn)
                registry.register(conn)
            else:
                router.drop_table(table_id)
            drain(conn)
            assert_symmetric(router, conns)

    def test_last_deregistration_prunes_table(self) -> None:
        router = SubscriptionRouter()
        registry = ConnectionRegistry(router)
        a, b = make_conn(), make_conn()
        registry.register(a)
        registry.register(b)
        router.subscribe(a, 5)
        router.subscribe(b, 5)

        registry.deregister(a)
        assert 5 in router
        registry.deregister(b)
        assert 5 not in router
        assert router.subscribers(5) == frozenset()


class TestBroadcast:
    def test_fan_out_reaches_only_table_subscribers(self) -> None:
        router = SubscriptionRouter()
        a, b, c = make_conn(), make_conn(), make_conn()
        router.subscribe(a, 10)
        router.subscribe(b, 10)
        router.subscribe(c, 20)
        for conn in (a, b, c):
            drain(conn)

        msg = {"type": "tableUpdate", "tableId": 10, "updateType": "tableUpdated"}
        assert router.broadcast(10, msg) == 2

        assert drain(a) == [msg]
        assert drain(b) == [msg]
        assert drain(c) == []

    def test_broadcast_without_subscribers_is_silent(self) -> None:
        router = SubscriptionRouter()
        other = make_conn()
        router.subscribe(other, 2)
        drain(other)

        assert router.broadcast(1, {"type": "tableUpdate", "tableId": 1}) == 0

        assert 1 not in router
        assert router.subscribers(2) == frozenset({other})
        assert drain(other) == []

    def test_broadcast_skips_closing_connection_without_removing_it(self) -> None:
        router = SubscriptionRouter()
        live, closing = make_conn(), make_conn()
        router.subscribe(live, 3)
        router.subscribe(closing, 3)
        drain(live)
        drain(closing)
        closing.websocket.application_state = WebSocketState.DISCONNECTED

        assert router.broadcast(3, {"n": 1}) == 1

        assert drain(live) == [{"n": 1}]
        assert drain(closing) == []
        assert closing in router.subscribers(3)

    def test_full_outbox_drops_for_that_recipient_only(self) -> None:
        router = SubscriptionRouter()
        slow, fast = make_conn(outbox_size=1), make_conn()
        router.subscribe(slow, 4)      # the ack fills slow's outbox
        router.subscribe(fast, 4)
        drain(fast)

        assert router.broadcast(4, {"n": 1}) == 1
        assert drain(fast) == [{"n": 1}]

    def test_per_connection_order_is_preserved(self) -> None:
        router = SubscriptionRouter()
        conn = make_conn()
        router.subscribe(conn, 1)
        drain(conn)
        for n in range(5):
            router.broadcast(1, {"n": n})
        assert [m["n"] for m in drain(conn)] == [0, 1, 2, 3, 4]


class TestDropTable:
    def test_drop_table_removes_entry_and_back_references(self) -> None:
        router = SubscriptionRouter()
        a, b = make_conn(), make_conn()
        router.subscribe(a, 42)
        router.subscribe(a, 43)
        router.subscribe(b, 42)

        assert router.drop_table(42) == 2

        assert 42 not in router
        assert a.subscribed_tables == {43}
        assert b.subscribed_tables == set()
        assert router.subscribers(43) == frozenset({a})

    def test_drop_unknown_table(self) -> None:
        router = SubscriptionRouter()
        assert router.drop_table(1) == 0
