"""Key-value persistence for library collections and settings."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, inspect, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from db import create_db_engine, create_session_factory
from models.store_entry import StoreEntry

logger = logging.getLogger(__name__)


def ensure_store_schema(engine: Engine) -> None:
    """Create the store table when missing."""
    with engine.begin() as connection:
        if StoreEntry.__tablename__ not in set(inspect(connection).get_table_names()):
            StoreEntry.__table__.create(bind=connection, checkfirst=True)


class SqlKeyValueStore:
    """JSON documents stored in one SQL table, keyed by logical name.

    Reads never raise: a missing row, a database error or unparsable JSON
    all come back as ``None`` so callers fall back to empty defaults.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    @classmethod
    def from_url(cls, db_url: str) -> SqlKeyValueStore:
        engine = create_db_engine(db_url)
        ensure_store_schema(engine)
        return cls(create_session_factory(engine))

    def load(self, key: str) -> Any | None:
        try:
            with self.session_factory() as session:
                raw = session.execute(
                    select(StoreEntry.value_json).where(StoreEntry.key == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.warning("Could not read '%s' from store: %s", key, exc)
            return None

        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring malformed JSON stored under '%s': %s", key, exc)
            return None

    def save(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        with self.session_factory() as session:
            try:
                entry = session.get(StoreEntry, key)
                if entry is None:
                    session.add(StoreEntry(key=key, value_json=payload))
                else:
                    entry.value_json = payload
                    entry.updated_at = datetime.now(UTC).replace(tzinfo=None)
                session.commit()
            except Exception:
                session.rollback()
                raise
        logger.debug("Saved '%s' (%d bytes)", key, len(payload))

    def save_raw(self, key: str, raw: str) -> None:
        """Store text as-is; used to seed legacy or hand-edited data."""
        with self.session_factory() as session:
            try:
                entry = session.get(StoreEntry, key)
                if entry is None:
                    session.add(StoreEntry(key=key, value_json=raw))
                else:
                    entry.value_json = raw
                session.commit()
            except Exception:
                session.rollback()
                raise

    def delete(self, key: str) -> None:
        with self.session_factory() as session:
            try:
                session.execute(delete(StoreEntry).where(StoreEntry.key == key))
                session.commit()
            except Exception:
                session.rollback()
                raise

    def keys(self) -> list[str]:
        with self.session_factory() as session:
            return list(session.execute(select(StoreEntry.key).order_by(StoreEntry.key)).scalars())


class MemoryKeyValueStore:
    """Process-local store holding serialized JSON, for tests and dry runs."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def load(self, key: str) -> Any | None:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring malformed JSON stored under '%s': %s", key, exc)
            return None

    def save(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value, ensure_ascii=False)

    def save_raw(self, key: str, raw: str) -> None:
        self._data[key] = raw

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


__all__ = ["MemoryKeyValueStore", "SqlKeyValueStore", "ensure_store_schema"]
