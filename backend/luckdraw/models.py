from __future__ import annotations

import datetime as dt

from sqlmodel import Field, SQLModel


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class DrawStateRecord(SQLModel, table=True):
    __tablename__ = "draw_states"

    user_key: str = Field(primary_key=True, max_length=128)
    state_json: str
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)
