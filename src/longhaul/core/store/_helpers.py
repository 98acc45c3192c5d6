"""Common helper functions for the run store."""

import json
import uuid
from datetime import UTC, datetime
from typing import Any


def now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def generate_id() -> str:
    """Generate a unique ID (UUID4 hex)."""
    return uuid.uuid4().hex


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite.

    SQLite has no timezone storage, so DateTime(timezone=True) columns
    come back naive even though everything we write is UTC.
    """
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def dump_json(value: Any) -> str | None:
    """Serialize an optional value to JSON text.

    allow_nan=False: cursors and arguments must survive a round trip through
    any JSON-compliant backend.
    """
    if value is None:
        return None
    return json.dumps(value, allow_nan=False)


def load_json(text: str | None) -> Any:
    """Deserialize optional JSON text written by dump_json."""
    if text is None:
        return None
    return json.loads(text)
