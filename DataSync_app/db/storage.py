# DataSync_app/db/storage.py
"""Owner-scoped persistence helpers.

Every function takes an open ``AsyncSession``; the caller owns the
transaction (``async with async_session() as s, s.begin():``).
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from DataSync_app.db.models import UserORM, TableORM, CustomColumnORM, ColumnValueORM


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# users --------------------------------------------------------

async def get_user(s: AsyncSession, user_id: int) -> Optional[UserORM]:
    return await s.get(UserORM, user_id)


async def get_user_by_username(s: AsyncSession, username: str) -> Optional[UserORM]:
    return (await s.execute(
        select(UserORM).where(UserORM.username == username)
    )).scalars().first()


async def create_user(s: AsyncSession, **fields: Any) -> UserORM:
    user = UserORM(**fields, created_at=utcnow())
    s.add(user)
    await s.flush()
    return user


# tables -------------------------------------------------------

async def get_user_tables(s: AsyncSession, user_id: int) -> Sequence[TableORM]:
    return (await s.execute(
        select(TableORM).where(TableORM.user_id == user_id).order_by(TableORM.id)
    )).scalars().all()


async def get_table(s: AsyncSession, table_id: int) -> Optional[TableORM]:
    return await s.get(TableORM, table_id)


async def get_user_table(s: AsyncSession, table_id: int, user_id: int) -> Optional[TableORM]:
    return (await s.execute(
        select(TableORM).where(TableORM.id == table_id, TableORM.user_id == user_id)
    )).scalars().first()


async def find_user_tables_by_url(
    s: AsyncSession, user_id: int, sheet_url: str, *, exclude_id: Optional[int] = None
) -> Sequence[TableORM]:
    q = select(TableORM).where(
        TableORM.user_id == user_id,
        TableORM.google_sheet_url == sheet_url,
    )
    if exclude_id is not None:
        q = q.where(TableORM.id != exclude_id)
    return (await s.execute(q)).scalars().all()


async def create_table(
    s: AsyncSession, *, user_id: int, name: str, google_sheet_url: str, columns: list[Any]
) -> TableORM:
    now = utcnow()
    table = TableORM(
        user_id=user_id,
        name=name,
        google_sheet_url=google_sheet_url,
        columns=columns,
        created_at=now,
        last_updated_at=now,
    )
    s.add(table)
    await s.flush()
    return table


async def update_table(s: AsyncSession, table_id: int, **patch: Any) -> Optional[TableORM]:
    """Apply ``patch`` and bump ``last_updated_at``. Returns None if the table is gone."""
    table = await s.get(TableORM, table_id)
    if not table:
        return None
    for key, value in patch.items():
        setattr(table, key, value)
    table.last_updated_at = utcnow()
    await s.flush()
    return table


async def delete_table(s: AsyncSession, table_id: int) -> bool:
    # values → columns → table, explicit so SQLite without FK pragmas behaves the same
    column_ids = select(CustomColumnORM.id).where(CustomColumnORM.table_id == table_id)
    no_sync = {"synchronize_session": False}
    await s.execute(
        delete(ColumnValueORM).where(ColumnValueORM.column_id.in_(column_ids)), execution_options=no_sync
    )
    await s.execute(
        delete(CustomColumnORM).where(CustomColumnORM.table_id == table_id), execution_options=no_sync
    )
    result = await s.execute(delete(TableORM).where(TableORM.id == table_id), execution_options=no_sync)
    return result.rowcount > 0


async def delete_user_table(s: AsyncSession, table_id: int, user_id: int) -> bool:
    if not await get_user_table(s, table_id, user_id):
        return False
    return await delete_table(s, table_id)


# custom columns -----------------------------------------------

async def get_custom_columns(s: AsyncSession, table_id: int) -> Sequence[CustomColumnORM]:
    return (await s.execute(
        select(CustomColumnORM).where(CustomColumnORM.table_id == table_id).order_by(CustomColumnORM.id)
    )).scalars().all()


async def get_user_custom_column(s: AsyncSession, column_id: int, user_id: int) -> Optional[CustomColumnORM]:
    return (await s.execute(
        select(CustomColumnORM)
        .join(TableORM, CustomColumnORM.table_id == TableORM.id)
        .where(CustomColumnORM.id == column_id, TableORM.user_id == user_id)
    )).scalars().first()


async def create_custom_column(s: AsyncSession, *, table_id: int, name: str, type: str) -> CustomColumnORM:
    column = CustomColumnORM(table_id=table_id, name=name, type=type, created_at=utcnow())
    s.add(column)
    await s.flush()
    return column


# column values ------------------------------------------------

async def get_user_column_values(s: AsyncSession, column_id: int, user_id: int) -> Sequence[ColumnValueORM]:
    return (await s.execute(
        select(ColumnValueORM)
        .join(CustomColumnORM, ColumnValueORM.column_id == CustomColumnORM.id)
        .join(TableORM, CustomColumnORM.table_id == TableORM.id)
        .where(ColumnValueORM.column_id == column_id, TableORM.user_id == user_id)
        .order_by(ColumnValueORM.row_index)
    )).scalars().all()


async def get_column_value(s: AsyncSession, column_id: int, row_index: int) -> Optional[ColumnValueORM]:
    return (await s.execute(
        select(ColumnValueORM).where(
            ColumnValueORM.column_id == column_id,
            ColumnValueORM.row_index == row_index,
        )
    )).scalars().first()


async def get_user_column_value(
    s: AsyncSession, column_id: int, row_index: int, user_id: int
) -> Optional[ColumnValueORM]:
    return (await s.execute(
        select(ColumnValueORM)
        .join(CustomColumnORM, ColumnValueORM.column_id == CustomColumnORM.id)
        .join(TableORM, CustomColumnORM.table_id == TableORM.id)
        .where(
            ColumnValueORM.column_id == column_id,
            ColumnValueORM.row_index == row_index,
            TableORM.user_id == user_id,
        )
    )).scalars().first()


async def get_column_value_by_id(s: AsyncSession, value_id: int) -> Optional[ColumnValueORM]:
    return await s.get(ColumnValueORM, value_id)


async def save_column_value(s: AsyncSession, *, column_id: int, row_index: int, value: str) -> ColumnValueORM:
    """Upsert the value stored for (column, row)."""
    now = utcnow()
    existing = await get_column_value(s, column_id, row_index)
    if existing:
        existing.value = value
        existing.updated_at = now
        await s.flush()
        return existing

    cv = ColumnValueORM(
        column_id=column_id, row_index=row_index, value=value, created_at=now, updated_at=now
    )
    s.add(cv)
    await s.flush()
    return cv


async def update_column_value(s: AsyncSession, value_id: int, value: str) -> Optional[ColumnValueORM]:
    cv = await s.get(ColumnValueORM, value_id)
    if not cv:
        return None
    cv.value = value
    cv.updated_at = utcnow()
    await s.flush()
    return cv


async def delete_column_value(s: AsyncSession, value_id: int) -> bool:
    cv = await s.get(ColumnValueORM, value_id)
    if not cv:
        return False
    await s.delete(cv)
    await s.flush()
    return True
