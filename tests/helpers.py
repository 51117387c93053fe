"""Test doubles and small helpers shared across the test modules."""

from __future__ import annotations

import uuid
from typing import Any

from starlette.websockets import WebSocketState

from DataSync_app.db.schemas import SheetData
from DataSync_app.realtime.connection import Connection

SHEET_URL = "https://docs.google.com/spreadsheets/d/1AbCdEfGhIjKlMnOpQrStUvWxYz0123456789/edit"
OTHER_SHEET_URL = "https://docs.google.com/spreadsheets/d/1ZyXwVuTsRqPoNmLkJiHgFeDcBa9876543210/edit"


class FakeWebSocket:
    """Just enough of ``starlette.websockets.WebSocket`` for Connection."""

    def __init__(self) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[dict[str, Any]] = []
        self.close_code: int | None = None

    async def send_json(self, data: Any) -> None:
        if self.application_state != WebSocketState.CONNECTED:
            raise RuntimeError("Cannot call send once a close message has been sent.")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        if self.application_state == WebSocketState.DISCONNECTED:
            raise RuntimeError("Cannot call close twice.")
        self.application_state = WebSocketState.DISCONNECTED
        self.close_code = code


def make_conn(outbox_size: int = 100) -> Connection:
    return Connection(FakeWebSocket(), outbox_size=outbox_size)  # type: ignore[arg-type]


def drain(conn: Connection) -> list[dict[str, Any]]:
    """Pop everything queued on a connection's outbox."""
    items = []
    while not conn.outbox.empty():
        items.append(conn.outbox.get_nowait())
    return items


class FakeFetcher:
    """Stands in for ``fetch_snapshot``; records the URLs it was asked for."""

    def __init__(self, data: SheetData | None = None) -> None:
        self.data = data or SheetData(headers=["Name", "Status"], rows=[["alpha", "open"], ["beta", "closed"]])
        self.calls: list[str] = []

    async def __call__(self, sheet_url: str) -> SheetData:
        self.calls.append(sheet_url)
        return self.data.model_copy(deep=True)


def register_user(client) -> dict[str, str]:
    """Create a fresh user and return Authorization headers for it."""
    name = f"user-{uuid.uuid4().hex[:10]}"
    resp = client.post(
        "/api/register",
        json={"username": name, "password": "s3cret!", "email": f"{name}@example.com"},
    )
    assert resp.status_code == 201, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}
