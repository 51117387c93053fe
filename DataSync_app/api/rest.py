# DataSync_app/api/rest.py
import logging
from contextlib import contextmanager

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from DataSync_app.auth import current_user
from DataSync_app.db import storage
from DataSync_app.db.models import UserORM
from DataSync_app.db.schemas import (
    ColumnValueOut, CreateColumnReq, CreateTableReq, CustomColumnOut, SaveColumnValueReq,
    SyncResp, TableDetailResp, TableOut, UpdateColumnValueReq, UpdateTableReq,
)
from DataSync_app.db.session import async_session
from DataSync_app.realtime import bridge
from DataSync_app.realtime.bridge import SheetFetcher, snapshot_or_none
from DataSync_app.realtime.hub import RealtimeHub, get_hub
from DataSync_app.sheets import extract_sheet_id, get_sheet_fetcher

rest_router = APIRouter(prefix="/api")
log = logging.getLogger(__name__)

TABLE_NOT_FOUND = "Table not found"
COLUMN_NOT_FOUND = "Column not found or you don't have access to it"
VALUE_NOT_FOUND = "Column value not found"


@contextmanager
def db_errors(action: str):
    """Turn database failures into a 500 ``db_error`` (HTTPExceptions pass through)."""
    try:
        yield
    except SQLAlchemyError:
        log.exception("[REST][DB] %s failed", action)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="db_error")


def _not_found(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


@rest_router.get("/health")
async def health():
    return {"status": "ok"}


# ---------------- tables ----------------

@rest_router.get("/tables")
async def list_tables(user: UserORM = Depends(current_user)):
    with db_errors("list tables"):
        async with async_session() as s:
            tables = await storage.get_user_tables(s, user.id)
    return [TableOut.model_validate(t) for t in tables]


@rest_router.get("/tables/{table_id}")
async def get_table(
    table_id: int,
    user: UserORM = Depends(current_user),
    fetch: SheetFetcher = Depends(get_sheet_fetcher),
):
    with db_errors("get table"):
        async with async_session() as s:
            table = await storage.get_user_table(s, table_id, user.id)
            if not table:
                raise _not_found(TABLE_NOT_FOUND)
            columns = await storage.get_custom_columns(s, table_id)

    sheet_data = await fetch(table.google_sheet_url)
    return TableDetailResp(
        table=TableOut.model_validate(table),
        custom_columns=[CustomColumnOut.model_validate(c) for c in columns],
        sheet_data=sheet_data,
    )


@rest_router.post("/tables", status_code=status.HTTP_201_CREATED)
async def create_table(
    body: CreateTableReq,
    user: UserORM = Depends(current_user),
    fetch: SheetFetcher = Depends(get_sheet_fetcher),
):
    log.info("[REST] ⇐ create table %r user=%s", body.name, user.id)

    # probe the sheet first; the fetch never raises, it only logs what it found
    await fetch(body.google_sheet_url)

    with db_errors("create table"):
        async with async_session() as s, s.begin():
            if await storage.find_user_tables_by_url(s, user.id, body.google_sheet_url):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="You already have a table using this Google Sheet URL. "
                           "Please use a different Google Sheet.",
                )

            table = await storage.create_table(
                s,
                user_id=user.id,
                name=body.name,
                google_sheet_url=body.google_sheet_url,
                columns=[c.model_dump() for c in body.columns],
            )

            created = []
            for spec in body.columns:
                name = spec.name.strip()
                if not name:
                    continue
                created.append(await storage.create_custom_column(
                    s, table_id=table.id, name=name, type=spec.type
                ))

    resp = TableOut.model_validate(table).model_dump(mode="json", by_alias=True)
    if created:
        resp["customColumns"] = [
            CustomColumnOut.model_validate(c).model_dump(mode="json", by_alias=True) for c in created
        ]
    return resp


@rest_router.patch("/tables/{table_id}")
async def update_table(
    table_id: int,
    body: UpdateTableReq,
    user: UserORM = Depends(current_user),
    hub: RealtimeHub = Depends(get_hub),
    fetch: SheetFetcher = Depends(get_sheet_fetcher),
):
    # ownership first: a stranger gets 404 before any URL check or sheet request
    with db_errors("load table"):
        async with async_session() as s:
            if not await storage.get_user_table(s, table_id, user.id):
                raise _not_found(TABLE_NOT_FOUND)

    updates = {}
    if body.name and body.name.strip():
        updates["name"] = body.name.strip()

    new_url = (body.google_sheet_url or "").strip()
    if new_url:
        if not extract_sheet_id(new_url):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid Google Sheet URL")
        await fetch(new_url)

    with db_errors("update table"):
        async with async_session() as s, s.begin():
            table = await storage.get_user_table(s, table_id, user.id)
            if not table:
                raise _not_found(TABLE_NOT_FOUND)

            if new_url:
                if new_url != table.google_sheet_url and await storage.find_user_tables_by_url(
                    s, user.id, new_url, exclude_id=table_id
                ):
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail="You already have another table using this Google Sheet URL. "
                               "Please use a different Google Sheet.",
                    )
                updates["google_sheet_url"] = new_url

            table = await storage.update_table(s, table_id, **updates)

    bridge.table_updated(hub, table)
    return TableOut.model_validate(table)


@rest_router.delete("/tables/{table_id}")
async def delete_table(
    table_id: int,
    user: UserORM = Depends(current_user),
    hub: RealtimeHub = Depends(get_hub),
):
    with db_errors("delete table"):
        async with async_session() as s, s.begin():
            deleted = await storage.delete_user_table(s, table_id, user.id)
    if not deleted:
        raise _not_found(TABLE_NOT_FOUND)

    bridge.table_deleted(hub, table_id)
    return {"message": "Table deleted successfully"}


@rest_router.post("/tables/{table_id}/columns", status_code=status.HTTP_201_CREATED)
async def add_column(
    table_id: int,
    body: CreateColumnReq,
    user: UserORM = Depends(current_user),
    hub: RealtimeHub = Depends(get_hub),
    fetch: SheetFetcher = Depends(get_sheet_fetcher),
):
    with db_errors("add column"):
        async with async_session() as s, s.begin():
            table = await storage.get_user_table(s, table_id, user.id)
            if not table:
                raise _not_found(TABLE_NOT_FOUND)
            column = await storage.create_custom_column(s, table_id=table_id, name=body.name, type=body.type)

    sheet_data = await fetch(table.google_sheet_url)
    bridge.column_added(hub, column, sheet_data)
    return CustomColumnOut.model_validate(column)


async def _refresh(table_id: int, user: UserORM, fetch: SheetFetcher):
    """Fetch the sheet and bump ``last_updated_at``; shared by /data and /sync."""
    with db_errors("load table"):
        async with async_session() as s:
            table = await storage.get_user_table(s, table_id, user.id)
    if not table:
        raise _not_found(TABLE_NOT_FOUND)

    sheet_data = await fetch(table.google_sheet_url)

    with db_errors("refresh table"):
        async with async_session() as s, s.begin():
            table = await storage.update_table(s, table_id)
            if not table:
                raise _not_found(TABLE_NOT_FOUND)
            columns = await storage.get_custom_columns(s, table_id)
    return table, columns, sheet_data


@rest_router.get("/tables/{table_id}/data")
async def get_table_data(
    table_id: int,
    refresh: bool = False,
    user: UserORM = Depends(current_user),
    hub: RealtimeHub = Depends(get_hub),
    fetch: SheetFetcher = Depends(get_sheet_fetcher),
):
    table, columns, sheet_data = await _refresh(table_id, user, fetch)
    if refresh:
        bridge.data_refreshed(hub, table, columns, sheet_data)

    return TableDetailResp(
        table=TableOut.model_validate(table),
        custom_columns=[CustomColumnOut.model_validate(c) for c in columns],
        sheet_data=sheet_data,
    )


@rest_router.post("/tables/{table_id}/sync")
async def sync_table(
    table_id: int,
    user: UserORM = Depends(current_user),
    hub: RealtimeHub = Depends(get_hub),
    fetch: SheetFetcher = Depends(get_sheet_fetcher),
):
    table, columns, sheet_data = await _refresh(table_id, user, fetch)
    bridge.data_refreshed(hub, table, columns, sheet_data, message="Data synced")

    return SyncResp(
        success=True,
        table=TableOut.model_validate(table),
        custom_columns=[CustomColumnOut.model_validate(c) for c in columns],
        sheet_data=sheet_data,
        last_updated=table.last_updated_at,
    )


# ---------------- column values ----------------

@rest_router.get("/columns/{column_id}/values")
async def list_column_values(column_id: int, user: UserORM = Depends(current_user)):
    with db_errors("list column values"):
        async with async_session() as s:
            if not await storage.get_user_custom_column(s, column_id, user.id):
                raise _not_found(COLUMN_NOT_FOUND)
            values = await storage.get_user_column_values(s, column_id, user.id)
    return [ColumnValueOut.model_validate(v) for v in values]


@rest_router.get("/columns/{column_id}/values/{row_index}")
async def get_column_value(column_id: int, row_index: int, user: UserORM = Depends(current_user)):
    with db_errors("get column value"):
        async with async_session() as s:
            if not await storage.get_user_custom_column(s, column_id, user.id):
                raise _not_found(COLUMN_NOT_FOUND)
            cv = await storage.get_user_column_value(s, column_id, row_index, user.id)
    if not cv:
        return ColumnValueOut(column_id=column_id, row_index=row_index, value="")
    return ColumnValueOut.model_validate(cv)


async def _broadcast_value(
    hub: RealtimeHub, fetch: SheetFetcher, user: UserORM, table_id: int, column_id: int, row_index: int, value: str
) -> None:
    """Collect the current columns and a best-effort snapshot, then notify the table's viewers."""
    try:
        async with async_session() as s:
            table = await storage.get_user_table(s, table_id, user.id)
            columns = await storage.get_custom_columns(s, table_id)
    except SQLAlchemyError:
        log.exception("[REST][DB] loading broadcast context for table %s failed", table_id)
        return

    sheet_data = await snapshot_or_none(fetch, table.google_sheet_url if table else None)
    bridge.column_value_updated(
        hub,
        table_id=table_id,
        column_id=column_id,
        row_index=row_index,
        value=value,
        custom_columns=columns,
        sheet_data=sheet_data,
    )


@rest_router.post("/columns/values", status_code=status.HTTP_201_CREATED)
async def save_column_value(
    body: SaveColumnValueReq,
    user: UserORM = Depends(current_user),
    hub: RealtimeHub = Depends(get_hub),
    fetch: SheetFetcher = Depends(get_sheet_fetcher),
):
    with db_errors("save column value"):
        async with async_session() as s, s.begin():
            column = await storage.get_user_custom_column(s, body.column_id, user.id)
            if not column:
                raise _not_found(COLUMN_NOT_FOUND)
            cv = await storage.save_column_value(
                s, column_id=body.column_id, row_index=body.row_index, value=body.value
            )
            table_id = column.table_id

    await _broadcast_value(hub, fetch, user, table_id, body.column_id, body.row_index, body.value)
    return ColumnValueOut.model_validate(cv)


async def _owned_value(s, value_id: int, user: UserORM, verb: str):
    cv = await storage.get_column_value_by_id(s, value_id)
    if not cv:
        raise _not_found(VALUE_NOT_FOUND)
    column = await storage.get_user_custom_column(s, cv.column_id, user.id)
    if not column:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You don't have access to {verb} this value",
        )
    return cv, column


@rest_router.patch("/columns/values/{value_id}")
async def update_column_value(
    value_id: int,
    body: UpdateColumnValueReq,
    user: UserORM = Depends(current_user),
    hub: RealtimeHub = Depends(get_hub),
    fetch: SheetFetcher = Depends(get_sheet_fetcher),
):
    with db_errors("update column value"):
        async with async_session() as s, s.begin():
            cv, column = await _owned_value(s, value_id, user, "update")
            cv = await storage.update_column_value(s, value_id, body.value)
            if not cv:
                raise _not_found(VALUE_NOT_FOUND)
            table_id = column.table_id

    await _broadcast_value(hub, fetch, user, table_id, cv.column_id, cv.row_index, cv.value)
    return ColumnValueOut.model_validate(cv)


@rest_router.delete("/columns/values/{value_id}")
async def delete_column_value(value_id: int, user: UserORM = Depends(current_user)):
    with db_errors("delete column value"):
        async with async_session() as s, s.begin():
            await _owned_value(s, value_id, user, "delete")
            deleted = await storage.delete_column_value(s, value_id)
    return {"success": deleted}
