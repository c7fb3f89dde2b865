"""Shared enums and protocols for games, score sheets, settings and storage."""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol, runtime_checkable


class GameType(str, Enum):
    """How a game's results are recorded."""

    SCORE = "score"
    TEAM = "team"
    MONEY = "money"


class ScoreType(str, Enum):
    """Whether a game uses plain score rows or a configured column sheet."""

    STANDARD = "standard"
    CUSTOM = "custom"


class InputMethod(str, Enum):
    NUMERIC = "numeric"
    COUNTER = "counter"


class ColumnType(str, Enum):
    """Directly entered column or one derived from a formula."""

    INPUT = "input"
    CALCULATED = "calculated"


class Modifier(str, Enum):
    """Sign an input column contributes to running totals."""

    ADD = "add"
    SUBTRACT = "subtract"


class WinningCondition(str, Enum):
    HIGHEST = "highest"
    LOWEST = "lowest"


class OwnershipStatus(str, Enum):
    OWNED = "owned"
    WISHLIST = "wishlist"


class Theme(str, Enum):
    DARK = "dark"
    LIGHT = "light"


class PlayerImageMode(str, Enum):
    AVATAR = "avatar"
    BUILDER = "builder"
    INITIALS = "initials"
    CUSTOM = "custom"


@runtime_checkable
class KeyValueStore(Protocol):
    """Persistence contract: JSON documents under fixed logical keys."""

    def load(self, key: str) -> Any | None: ...

    def save(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


__all__ = [
    "ColumnType",
    "GameType",
    "InputMethod",
    "KeyValueStore",
    "Modifier",
    "OwnershipStatus",
    "PlayerImageMode",
    "ScoreType",
    "Theme",
    "WinningCondition",
]
