"""Wire messages for the realtime channel.

Client → server messages are parsed with ``parse_client_message``; anything
that does not validate is dropped by the caller.

Server → client table updates are a tagged union keyed by ``update_type``.
On the wire the outer ``type`` is always ``"tableUpdate"`` and the mutation
tag travels in ``updateType``, with the payload fields beside it.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import Field, StrictInt, TypeAdapter

from DataSync_app.db.schemas import CamelModel, CustomColumnOut, SheetData, TableOut


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── client → server ───────────────────────────────────
class SubscribeMsg(CamelModel):
    type: Literal["subscribe"]
    table_id: StrictInt


class UnsubscribeMsg(CamelModel):
    type: Literal["unsubscribe"]
    table_id: StrictInt


class PongMsg(CamelModel):
    type: Literal["pong"]


ClientMessage = Annotated[
    Union[SubscribeMsg, UnsubscribeMsg, PongMsg],
    Field(discriminator="type"),
]
_client_message = TypeAdapter(ClientMessage)


def parse_client_message(raw: str | bytes) -> SubscribeMsg | UnsubscribeMsg | PongMsg:
    """Raises ``pydantic.ValidationError`` for anything malformed."""
    return _client_message.validate_json(raw)


# ── server → client: control ──────────────────────────
class Subscribed(CamelModel):
    type: Literal["subscribed"] = "subscribed"
    table_id: int
    message: str = "Successfully subscribed to real-time updates"


class Unsubscribed(CamelModel):
    type: Literal["unsubscribed"] = "unsubscribed"
    table_id: int


class Ping(CamelModel):
    type: Literal["ping"] = "ping"


# ── server → client: table updates ────────────────────
class _TableUpdateBase(CamelModel):
    type: Literal["tableUpdate"] = "tableUpdate"
    table_id: int
    message: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)


class ColumnAdded(_TableUpdateBase):
    update_type: Literal["columnAdded"] = "columnAdded"
    message: str = "Column added"
    column: CustomColumnOut
    sheet_data: SheetData


class TableUpdated(_TableUpdateBase):
    update_type: Literal["tableUpdated"] = "tableUpdated"
    message: str = "Table details updated"
    table: TableOut


class TableDeleted(_TableUpdateBase):
    update_type: Literal["tableDeleted"] = "tableDeleted"
    message: str = "Table was deleted"


class DataRefreshed(_TableUpdateBase):
    update_type: Literal["dataRefreshed"] = "dataRefreshed"
    message: str = "Data refreshed"
    sheet_data: SheetData
    custom_columns: List[CustomColumnOut]
    table: TableOut


class ColumnValueUpdated(_TableUpdateBase):
    update_type: Literal["columnValueUpdated"] = "columnValueUpdated"
    message: str = "Column value updated"
    column_id: int
    row_index: int
    value: str
    custom_columns: List[CustomColumnOut]
    # None when the sheet could not be refetched; the value change still goes out
    sheet_data: Optional[SheetData] = None


TableUpdate = Annotated[
    Union[ColumnAdded, TableUpdated, TableDeleted, DataRefreshed, ColumnValueUpdated],
    Field(discriminator="update_type"),
]


def encode(message: CamelModel) -> dict[str, Any]:
    """JSON-ready dict with camelCase keys."""
    return message.model_dump(mode="json", by_alias=True)
