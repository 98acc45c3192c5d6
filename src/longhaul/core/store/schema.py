# src/longhaul/core/store/schema.py
"""SQLAlchemy table definitions for the run store.

Uses SQLAlchemy Core (not ORM) for explicit control over queries
and compatibility with multiple database backends.
"""

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    Text,
)

# Shared metadata for all tables
metadata = MetaData()

# === Runs ===

runs_table = Table(
    "runs",
    metadata,
    Column("run_id", String(64), primary_key=True),
    Column("task_name", String(255), nullable=False),
    Column("status", String(32), nullable=False),
    Column("arguments_json", Text),
    # Opaque position marker, JSON-encoded; only the collection variant knows its shape
    Column("cursor_json", Text),
    # Counters are only ever written by atomic increments, never by full-record saves
    Column("tick_count", Integer, nullable=False, default=0),
    Column("tick_total", Integer),
    Column("time_running", Float, nullable=False, default=0.0),
    Column("started_at", DateTime(timezone=True)),
    Column("ended_at", DateTime(timezone=True)),
    Column("error_class", String(255)),
    Column("error_message", Text),
    Column("backtrace_json", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Index("ix_runs_task_name_status", "task_name", "status"),
)

# === Bulk content (one blob per run) ===

run_contents_table = Table(
    "run_contents",
    metadata,
    Column("run_id", String(64), ForeignKey("runs.run_id"), primary_key=True),
    Column("filename", String(255), nullable=False),
    Column("content", LargeBinary, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)
