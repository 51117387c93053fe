from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    String, Integer, Text, DateTime, ForeignKey, Index, JSON
)
from sqlalchemy.orm import declarative_base, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

Base = declarative_base()

# users --------------------------------------------------------

class UserORM(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    password: Mapped[str] = mapped_column(Text, nullable=False)   # "<hex hash>.<hex salt>"
    email: Mapped[str] = mapped_column(String(255), unique=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    last_name:  Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    tables = relationship("TableORM", back_populates="owner")

# tables -------------------------------------------------------

class TableORM(Base):
    __tablename__ = "tables"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    google_sheet_url: Mapped[str] = mapped_column(Text, nullable=False)
    columns: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    created_at:      Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    owner = relationship("UserORM", back_populates="tables")
    custom_columns = relationship(
        "CustomColumnORM", back_populates="table", cascade="all, delete-orphan", passive_deletes=True
    )

# custom_columns -----------------------------------------------

class CustomColumnORM(Base):
    __tablename__ = "custom_columns"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    table_id: Mapped[int] = mapped_column(ForeignKey("tables.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="text")   # 'text' | 'date'
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    table = relationship("TableORM", back_populates="custom_columns")
    values = relationship(
        "ColumnValueORM", back_populates="column", cascade="all, delete-orphan", passive_deletes=True
    )

# column_values ------------------------------------------------

class ColumnValueORM(Base):
    __tablename__ = "column_values"
    __table_args__ = (
        Index("idx_column_values_column_id_row_index", "column_id", "row_index"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    column_id: Mapped[int] = mapped_column(ForeignKey("custom_columns.id", ondelete="CASCADE"), index=True)
    row_index: Mapped[int] = mapped_column(Integer, nullable=False)   # row position in the sheet data
    value: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    column = relationship("CustomColumnORM", back_populates="values")
