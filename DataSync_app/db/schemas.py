from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Wire models: snake_case in Python, camelCase in JSON."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ── sheet snapshot ────────────────────────────────────
class SheetData(CamelModel):
    headers: List[str] = Field(default_factory=list)
    rows: List[List[str]] = Field(default_factory=list)


# ── auth ──────────────────────────────────────────────
class RegisterReq(CamelModel):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1)
    email: str = Field(min_length=3, max_length=255)
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class LoginReq(CamelModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class UserOut(CamelModel):
    id: int
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: Optional[datetime] = None


class AuthResp(CamelModel):
    user: UserOut
    token: str


# ── tables ────────────────────────────────────────────
ColumnType = Literal["text", "date"]


class ColumnSpec(CamelModel):
    name: str = ""
    type: ColumnType = "text"


class CreateTableReq(CamelModel):
    name: str = Field(min_length=1)
    google_sheet_url: str = Field(min_length=1)
    columns: List[ColumnSpec] = Field(default_factory=list)

    @field_validator("name", "google_sheet_url")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v


class UpdateTableReq(CamelModel):
    name: Optional[str] = None
    google_sheet_url: Optional[str] = None


class TableOut(CamelModel):
    id: int
    user_id: int
    name: str
    google_sheet_url: str
    columns: List[Any] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None


# ── custom columns ────────────────────────────────────
class CreateColumnReq(CamelModel):
    name: str = Field(min_length=1)
    type: ColumnType = "text"

    @field_validator("name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v


class CustomColumnOut(CamelModel):
    id: int
    table_id: int
    name: str
    type: str
    created_at: Optional[datetime] = None


# ── column values ─────────────────────────────────────
class SaveColumnValueReq(CamelModel):
    column_id: StrictInt
    row_index: StrictInt = Field(ge=0)
    value: StrictStr


class UpdateColumnValueReq(CamelModel):
    value: StrictStr


class ColumnValueOut(CamelModel):
    id: Optional[int] = None
    column_id: int
    row_index: int
    value: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ── composite responses ───────────────────────────────
class TableDetailResp(CamelModel):
    table: TableOut
    custom_columns: List[CustomColumnOut]
    sheet_data: SheetData


class SyncResp(TableDetailResp):
    success: bool
    last_updated: Optional[datetime] = None
