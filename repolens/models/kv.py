"""Tables behind the SQL key-value backend: plain values and set members."""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class KVEntry(SQLModel, table=True):
    __tablename__ = "kv_entry"
    key: str = Field(primary_key=True, max_length=255)
    value: str
    updated_at: datetime = Field(default_factory=_utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))


class KVSetMember(SQLModel, table=True):
    __tablename__ = "kv_set_member"
    key: str = Field(primary_key=True, max_length=255)
    member: str = Field(primary_key=True, max_length=255)
    created_at: datetime = Field(default_factory=_utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
