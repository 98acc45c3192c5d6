"""The application database the example tasks maintain."""

from __future__ import annotations

import os

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine
from sqlalchemy.engine import Engine

metadata = MetaData()

posts_table = Table(
    "posts",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String(200), nullable=True),
    Column("body", String, nullable=False),
    Column("category", String(20), nullable=False),
)

APP_DATABASE_URL = os.environ.get("BACKFILL_APP_DATABASE_URL", "sqlite:///./posts.db")

_engine: Engine | None = None


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_engine(APP_DATABASE_URL)
        metadata.create_all(_engine)
    return _engine
