"""Shared record types for the game library."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from functools import cached_property
from typing import TYPE_CHECKING

from domain.protocol import (
    ColumnType,
    GameType,
    InputMethod,
    Modifier,
    OwnershipStatus,
    ScoreType,
    WinningCondition,
)

if TYPE_CHECKING:
    from domain.scoring.formula import Expression


@dataclass(frozen=True)
class User:
    """Registered app user; one of them is the session's current user."""

    id: str
    name: str
    handle: str
    email: str = ""
    image: str = ""


@dataclass(frozen=True)
class Player:
    """Match participant, optionally linked to a registered user."""

    id: str
    name: str
    image: str = ""
    linked_user_id: str | None = None


@dataclass(frozen=True)
class ScoreColumn:
    """One column of a custom score sheet.

    Calculated columns reference other columns as ``{col_id}`` inside
    ``formula``. The parsed expression tree is built on first access and
    kept on the instance.
    """

    id: str
    name: str
    type: ColumnType = ColumnType.INPUT
    modifier: Modifier | None = None
    formula: str | None = None

    @property
    def is_calculated(self) -> bool:
        return self.type == ColumnType.CALCULATED

    @property
    def sign(self) -> float:
        return -1.0 if self.modifier == Modifier.SUBTRACT else 1.0

    @cached_property
    def expression(self) -> Expression:
        from domain.scoring.formula import parse_formula

        return parse_formula(self.formula or "")


@dataclass(frozen=True)
class GameExtension:
    id: str
    title: str
    image: str | None = None
    rating: float | None = None
    custom_columns: tuple[ScoreColumn, ...] = ()


@dataclass(frozen=True)
class Winner:
    name: str = "-"
    score: str = "-"


@dataclass(frozen=True)
class Game:
    """Catalog entry. ``play_count``/``last_played`` are stored fallbacks only."""

    id: int
    title: str
    type: GameType = GameType.SCORE
    score_type: ScoreType = ScoreType.STANDARD
    custom_columns: tuple[ScoreColumn, ...] = ()
    extensions: tuple[GameExtension, ...] = ()
    image: str = ""
    last_played: str = ""
    play_count: int = 0
    winner: Winner = field(default_factory=Winner)
    is_favorite: bool = False
    rating: float | None = None
    groups: tuple[str, ...] = ()
    description: str | None = None
    winning_condition: WinningCondition | None = None
    ownership_status: OwnershipStatus | None = None
    input_method: InputMethod | None = None

    def extension(self, extension_id: str) -> GameExtension | None:
        for extension in self.extensions:
            if extension.id == extension_id:
                return extension
        return None


@dataclass(frozen=True)
class MatchResult:
    """Outcome of one player in one match."""

    player_id: str
    score: float | str
    is_winner: bool = False
    is_starter: bool | None = None
    team_id: str | None = None
    change: float | None = None
    score_breakdown: dict[str, float] | None = None


@dataclass(frozen=True)
class Match:
    """Recorded match.

    ``date`` is the display label kept for compatibility with older records;
    ``played_on`` and ``created_at`` are the structured values when known.
    """

    id: int
    game_id: int
    date: str
    results: tuple[MatchResult, ...]
    created_by: str
    extension_ids: tuple[str, ...] | None = None
    duration: str | None = None
    location: str | None = None
    played_on: date | None = None
    created_at: datetime | None = None

    def player_ids(self) -> tuple[str, ...]:
        return tuple(result.player_id for result in self.results)


__all__ = [
    "Game",
    "GameExtension",
    "Match",
    "MatchResult",
    "Player",
    "ScoreColumn",
    "User",
    "Winner",
]
