"""Tests for the SQL-backed key-value store."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import inspect

from db import create_db_engine, create_session_factory
from repositories.store_repository import MemoryKeyValueStore, SqlKeyValueStore, ensure_store_schema


def _sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'nested' / 'library.db'}"


def test_from_url_creates_directory_and_table(tmp_path: Path) -> None:
    url = _sqlite_url(tmp_path)
    SqlKeyValueStore.from_url(url)

    assert (tmp_path / "nested").is_dir()
    engine = create_db_engine(url)
    assert "store_entries" in inspect(engine).get_table_names()


def test_save_load_overwrite_and_delete(tmp_path: Path) -> None:
    store = SqlKeyValueStore.from_url(_sqlite_url(tmp_path))

    assert store.load("gm_games") is None
    store.save("gm_games", [{"id": 1, "title": "Azul"}])
    store.save("theme", "light")
    assert store.load("gm_games") == [{"id": 1, "title": "Azul"}]

    store.save("gm_games", [])
    assert store.load("gm_games") == []
    assert store.keys() == ["gm_games", "theme"]

    store.delete("theme")
    store.delete("never_written")
    assert store.load("theme") is None


def test_values_persist_across_store_instances(tmp_path: Path) -> None:
    url = _sqlite_url(tmp_path)
    SqlKeyValueStore.from_url(url).save("gm_locations", ["Café", "Thuis"])
    assert SqlKeyValueStore.from_url(url).load("gm_locations") == ["Café", "Thuis"]


def test_malformed_json_reads_as_absent(tmp_path: Path) -> None:
    store = SqlKeyValueStore.from_url(_sqlite_url(tmp_path))
    store.save_raw("gm_matches", "{not json")
    assert store.load("gm_matches") is None


def test_missing_table_reads_as_absent(tmp_path: Path) -> None:
    engine = create_db_engine(_sqlite_url(tmp_path))
    store = SqlKeyValueStore(create_session_factory(engine))
    assert store.load("gm_users") is None

    ensure_store_schema(engine)
    ensure_store_schema(engine)
    store.save("gm_users", [])
    assert store.load("gm_users") == []


def test_memory_store_mirrors_sql_behavior() -> None:
    store = MemoryKeyValueStore({"broken": "[1, 2"})
    assert store.load("broken") is None
    store.save("autoStartTimer", False)
    assert store.load("autoStartTimer") is False
    store.delete("autoStartTimer")
    assert store.load("autoStartTimer") is None
    assert store.keys() == ["broken"]
