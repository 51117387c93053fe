"""Mutation → broadcast bridge.

REST handlers call these after their transaction has committed. Nothing
here raises: the write is already durable, so a failed broadcast or sheet
refetch is logged and the handler still answers with success.
"""
from __future__ import annotations

import functools
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional

from DataSync_app.db.models import CustomColumnORM, TableORM
from DataSync_app.db.schemas import CustomColumnOut, SheetData, TableOut
from DataSync_app.realtime.hub import RealtimeHub
from DataSync_app.realtime.messages import (
    ColumnAdded, ColumnValueUpdated, DataRefreshed, TableDeleted, TableUpdated,
)

log = logging.getLogger(__name__)

SheetFetcher = Callable[[str], Awaitable[SheetData]]


def best_effort(fn: Callable[..., int]) -> Callable[..., int]:
    """Log and swallow anything raised while building or sending an update."""
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> int:
        try:
            return fn(*args, **kwargs)
        except Exception:
            log.exception("[BRIDGE] %s broadcast failed", fn.__name__)
            return 0
    return wrapper


def _columns(columns: Iterable[CustomColumnORM]) -> list[CustomColumnOut]:
    return [CustomColumnOut.model_validate(c) for c in columns]


async def snapshot_or_none(fetch: SheetFetcher, sheet_url: Optional[str]) -> Optional[SheetData]:
    """Best-effort refetch used where a missing snapshot must not block the broadcast."""
    if not sheet_url:
        return None
    try:
        return await fetch(sheet_url)
    except Exception:
        log.exception("[BRIDGE] sheet refetch failed for %r", sheet_url)
        return None


@best_effort
def column_added(hub: RealtimeHub, column: CustomColumnORM, sheet_data: SheetData) -> int:
    return hub.publish(ColumnAdded(
        table_id=column.table_id,
        column=CustomColumnOut.model_validate(column),
        sheet_data=sheet_data,
    ))


@best_effort
def table_updated(hub: RealtimeHub, table: TableORM) -> int:
    return hub.publish(TableUpdated(table_id=table.id, table=TableOut.model_validate(table)))


@best_effort
def table_deleted(hub: RealtimeHub, table_id: int) -> int:
    """Tell viewers the table is gone, then drop its subscriber entry outright."""
    try:
        return hub.publish(TableDeleted(table_id=table_id))
    finally:
        hub.drop_table(table_id)


@best_effort
def data_refreshed(
    hub: RealtimeHub,
    table: TableORM,
    custom_columns: Iterable[CustomColumnORM],
    sheet_data: SheetData,
    *,
    message: str = "Data refreshed",
) -> int:
    return hub.publish(DataRefreshed(
        table_id=table.id,
        message=message,
        sheet_data=sheet_data,
        custom_columns=_columns(custom_columns),
        table=TableOut.model_validate(table),
    ))


@best_effort
def column_value_updated(
    hub: RealtimeHub,
    *,
    table_id: int,
    column_id: int,
    row_index: int,
    value: str,
    custom_columns: Iterable[CustomColumnORM],
    sheet_data: Optional[SheetData],
) -> int:
    return hub.publish(ColumnValueUpdated(
        table_id=table_id,
        column_id=column_id,
        row_index=row_index,
        value=value,
        custom_columns=_columns(custom_columns),
        sheet_data=sheet_data,
    ))
