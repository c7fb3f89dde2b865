"""ORM models."""

from models.base import Base
from models.store_entry import StoreEntry

__all__ = ["Base", "StoreEntry"]
