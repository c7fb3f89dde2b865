"""Database repository helpers."""

from repositories.store_repository import MemoryKeyValueStore, SqlKeyValueStore, ensure_store_schema

__all__ = ["MemoryKeyValueStore", "SqlKeyValueStore", "ensure_store_schema"]
