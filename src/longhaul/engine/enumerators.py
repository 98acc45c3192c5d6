# src/longhaul/engine/enumerators.py
"""Cursor-addressable enumerators over the supported collection shapes.

A task's collection() must return one of a closed set of shapes:

- RecordSet: a SQLAlchemy select, emitted record by record, keyset-paged
  on an ordering column the select must include. Cursor = ordering key
  of the last record, with dates, times, decimals and UUIDs as text.
- BatchedRecordSet: the same select emitted as lists of records.
  Cursor = ordering key of the last record in the batch.
- A plain list or tuple. Cursor = index.
- CsvCollection: rows of a CSV document with a header line.
  Cursor = row index.

Every shape produces (element, cursor) pairs. Re-supplying the cursor of
an emitted element resumes strictly after that element. The enumerators
do not retry failed fetches; errors propagate to the coordinator.
"""

from __future__ import annotations

import csv
import io
import itertools
import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import ColumnElement, Select, func, select
from sqlalchemy.engine import Engine

from longhaul.contracts import InvalidCollectionError

Cursor = Any
Enumerator = Iterator[tuple[Any, Cursor]]

# Key types stored in cursors as text, so a cursor is always plain JSON
_ISO_KEY_TYPES: tuple[type, ...] = (datetime, date, time)
_TEXT_KEY_TYPES: tuple[type, ...] = (Decimal, UUID)
_CURSOR_KEY_TYPES: tuple[type, ...] = (int, float, str, *_ISO_KEY_TYPES, *_TEXT_KEY_TYPES)


class CollectionSource(Protocol):
    """An enumerable collection the engine knows how to resume."""

    def enumerate(self, cursor: Cursor | None) -> Enumerator:
        """Yield (element, cursor) pairs, starting after ``cursor``."""
        ...

    def size(self) -> int | None:
        """Number of elements the enumeration will emit from the start, if known."""
        ...


def _key_type(key: ColumnElement[Any]) -> type | None:
    try:
        return key.type.python_type
    except NotImplementedError:
        return None


def _check_key(query: Select[Any], key: ColumnElement[Any], shape: str) -> None:
    """Reject keys that cannot be read from the rows or stored in a cursor."""
    if not query.selected_columns.contains_column(key):
        raise InvalidCollectionError(f"{shape} key {key} is not selected by the query")
    python_type = _key_type(key)
    if python_type is not None and not issubclass(python_type, _CURSOR_KEY_TYPES):
        raise InvalidCollectionError(f"{shape} key {key} of type {python_type.__name__} cannot be stored in a cursor")


def encode_key(value: Any) -> Cursor:
    """Cursor for a key value: dates, times, decimals and UUIDs become text."""
    if isinstance(value, _ISO_KEY_TYPES):
        return value.isoformat()
    if isinstance(value, _TEXT_KEY_TYPES):
        return str(value)
    return value


def decode_key(key: ColumnElement[Any], cursor: Cursor) -> Any:
    """Key value for a cursor written by encode_key, typed by the key column."""
    python_type = _key_type(key)
    if not isinstance(cursor, str) or python_type is None:
        return cursor
    if python_type in _ISO_KEY_TYPES:
        return python_type.fromisoformat(cursor)  # type: ignore[attr-defined]
    if python_type in _TEXT_KEY_TYPES:
        return python_type(cursor)
    return cursor


@dataclass(frozen=True)
class RecordSet:
    """Records of a select statement, keyset-paged on ``key``.

    Example:
        RecordSet(engine, select(posts_table), key=posts_table.c.id, page_size=500)

    Any ORDER BY on ``query`` is replaced by ``key``, which must be unique
    and stable for resumption to be exact.
    """

    engine: Engine
    query: Select[Any]
    key: ColumnElement[Any]
    page_size: int = 100

    def __post_init__(self) -> None:
        if self.page_size <= 0:
            raise InvalidCollectionError(f"page_size must be positive, got {self.page_size}")
        _check_key(self.query, self.key, "RecordSet")

    def _page(self, after: Cursor | None) -> list[Any]:
        query = self.query.order_by(None).order_by(self.key).limit(self.page_size)
        if after is not None:
            query = query.where(self.key > after)
        # A connection per page: a long iteration must not pin a transaction
        with self.engine.connect() as conn:
            return list(conn.execute(query).fetchall())

    def _pages(self, cursor: Cursor | None) -> Iterator[list[Any]]:
        after = cursor
        while True:
            rows = self._page(after)
            if not rows:
                return
            yield rows
            if len(rows) < self.page_size:
                return
            after = rows[-1]._mapping[self.key]

    def enumerate(self, cursor: Cursor | None) -> Enumerator:
        for rows in self._pages(decode_key(self.key, cursor)):
            for row in rows:
                yield row, encode_key(row._mapping[self.key])

    def count(self) -> int:
        query = select(func.count()).select_from(self.query.order_by(None).subquery())
        with self.engine.connect() as conn:
            return int(conn.execute(query).scalar_one())

    def size(self) -> int | None:
        return self.count()


@dataclass(frozen=True)
class BatchedRecordSet:
    """Records of a select statement emitted ``batch_size`` at a time.

    ``start`` and ``finish`` mirror a fixed key window. They cannot be
    combined with cursor resumption and are rejected when the collection is
    adapted.
    """

    engine: Engine
    query: Select[Any]
    key: ColumnElement[Any]
    batch_size: int = 100
    start: Any = None
    finish: Any = None

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise InvalidCollectionError(f"batch_size must be positive, got {self.batch_size}")
        _check_key(self.query, self.key, "BatchedRecordSet")

    def enumerate(self, cursor: Cursor | None) -> Enumerator:
        records = RecordSet(self.engine, self.query, self.key, page_size=self.batch_size)
        for rows in records._pages(decode_key(self.key, cursor)):
            yield rows, encode_key(rows[-1]._mapping[self.key])

    def size(self) -> int | None:
        total = RecordSet(self.engine, self.query, self.key).count()
        return math.ceil(total / self.batch_size)


@dataclass(frozen=True)
class ListCollection:
    """An in-memory ordered sequence. Cursor = index of the last element."""

    items: Sequence[Any]

    def enumerate(self, cursor: Cursor | None) -> Enumerator:
        start = 0 if cursor is None else int(cursor) + 1
        for index in range(start, len(self.items)):
            yield self.items[index], index

    def size(self) -> int | None:
        return len(self.items)


@dataclass(frozen=True)
class CsvCollection:
    """Rows of a CSV document, as dicts keyed by the header line.

    Cursor = zero-based index of the last data row.
    """

    content: str

    def _rows(self) -> Iterator[dict[str, str]]:
        return iter(csv.DictReader(io.StringIO(self.content)))

    def enumerate(self, cursor: Cursor | None) -> Enumerator:
        start = 0 if cursor is None else int(cursor) + 1
        rows = itertools.islice(self._rows(), start, None)
        for index, row in enumerate(rows, start=start):
            yield row, index

    def count(self) -> int:
        return sum(1 for _ in self._rows())

    def size(self) -> int | None:
        return self.count()


_SUPPORTED = (RecordSet, BatchedRecordSet, ListCollection, CsvCollection)


def adapt_collection(collection: object, *, owner: str = "Task") -> CollectionSource:
    """Turn a task's collection into a resumable source.

    Args:
        collection: Value returned by the task's collection()
        owner: Task name, for error messages

    Returns:
        The collection source

    Raises:
        InvalidCollectionError: If the collection is not a supported shape,
            or is a BatchedRecordSet restricted by start/finish
    """
    if isinstance(collection, BatchedRecordSet) and (collection.start is not None or collection.finish is not None):
        raise InvalidCollectionError(f'{owner}.collection cannot support a batched record set with the "start" or "finish" options.')
    if isinstance(collection, _SUPPORTED):
        return collection
    if isinstance(collection, (list, tuple)):
        return ListCollection(collection)
    raise InvalidCollectionError(
        f"{owner}.collection must be either a RecordSet, BatchedRecordSet, list, tuple or CsvCollection, "
        f"got {type(collection).__name__}."
    )
