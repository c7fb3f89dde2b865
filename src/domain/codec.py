"""JSON shapes for stored and exported records.

Records are written with the camelCase keys used by existing local data so
old stores and shared exports stay readable.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime
from typing import Any, TypeVar

from domain.common import Game, GameExtension, Match, MatchResult, Player, ScoreColumn, User, Winner
from domain.protocol import (
    ColumnType,
    GameType,
    InputMethod,
    Modifier,
    OwnershipStatus,
    ScoreType,
    WinningCondition,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_LEGACY_OPERATORS = {"sum": "+", "subtract": "-", "multiply": "*", "divide": "/"}


def _compact(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


def _optional_enum(enum_type: type[T], value: Any) -> T | None:
    if value is None or value == "":
        return None
    return enum_type(value)  # type: ignore[call-arg]


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


def _mapping(value: Any, name: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{name} must be an object, got {type(value).__name__}")
    return value


def _sequence(value: Any, name: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{name} must be a list, got {type(value).__name__}")
    return value


def _objects(value: Any, name: str) -> list[dict[str, Any]]:
    return [_mapping(item, f"{name}[{index}]") for index, item in enumerate(_sequence(value, name))]


def user_to_json(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "username": user.handle,
        "email": user.email,
        "image": user.image,
    }


def user_from_json(raw: dict[str, Any]) -> User:
    return User(
        id=str(raw["id"]),
        name=str(raw["name"]),
        handle=str(raw.get("username") or raw.get("handle") or raw["id"]),
        email=str(raw.get("email") or ""),
        image=str(raw.get("image") or ""),
    )


def player_to_json(player: Player) -> dict[str, Any]:
    return _compact(
        {
            "id": player.id,
            "name": player.name,
            "image": player.image,
            "linkedUserId": player.linked_user_id,
        }
    )


def player_from_json(raw: dict[str, Any]) -> Player:
    linked = raw.get("linkedUserId")
    return Player(
        id=str(raw["id"]),
        name=str(raw["name"]),
        image=str(raw.get("image") or ""),
        linked_user_id=None if linked in (None, "") else str(linked),
    )


def column_to_json(column: ScoreColumn) -> dict[str, Any]:
    return _compact(
        {
            "id": column.id,
            "name": column.name,
            "type": column.type.value,
            "modifier": column.modifier.value if column.modifier else None,
            "formula": column.formula,
        }
    )


def column_from_json(raw: dict[str, Any]) -> ScoreColumn:
    column_type = ColumnType(raw.get("type") or ColumnType.INPUT.value)
    formula = raw.get("formula")
    if column_type == ColumnType.CALCULATED and not formula:
        formula = _legacy_formula(raw)
    return ScoreColumn(
        id=str(raw["id"]),
        name=str(raw.get("name") or raw["id"]),
        type=column_type,
        modifier=_optional_enum(Modifier, raw.get("modifier")),
        formula=formula,
    )


def _legacy_formula(raw: dict[str, Any]) -> str | None:
    """Rebuild a formula from the older operation/sourceColumnIds shape."""
    operator = _LEGACY_OPERATORS.get(raw.get("operation") or "")
    sources = _sequence(raw.get("sourceColumnIds"), "sourceColumnIds")
    if operator is None or not sources:
        return None
    return f" {operator} ".join(f"{{{source}}}" for source in sources)


def extension_to_json(extension: GameExtension) -> dict[str, Any]:
    return _compact(
        {
            "id": extension.id,
            "title": extension.title,
            "image": extension.image,
            "rating": extension.rating,
            "customColumns": [column_to_json(column) for column in extension.custom_columns] or None,
        }
    )


def extension_from_json(raw: dict[str, Any]) -> GameExtension:
    return GameExtension(
        id=str(raw["id"]),
        title=str(raw["title"]),
        image=raw.get("image"),
        rating=_optional_float(raw.get("rating")),
        custom_columns=tuple(column_from_json(column) for column in _objects(raw.get("customColumns"), "customColumns")),
    )


def game_to_json(game: Game) -> dict[str, Any]:
    return _compact(
        {
            "id": game.id,
            "title": game.title,
            "lastPlayed": game.last_played,
            "playCount": game.play_count,
            "winner": {"name": game.winner.name, "score": game.winner.score},
            "image": game.image,
            "type": game.type.value,
            "isFavorite": game.is_favorite or None,
            "rating": game.rating,
            "groups": list(game.groups) or None,
            "description": game.description,
            "winningCondition": game.winning_condition.value if game.winning_condition else None,
            "ownershipStatus": game.ownership_status.value if game.ownership_status else None,
            "extensions": [extension_to_json(extension) for extension in game.extensions],
            "scoreType": game.score_type.value,
            "inputMethod": game.input_method.value if game.input_method else None,
            "customColumns": [column_to_json(column) for column in game.custom_columns] or None,
        }
    )


def game_from_json(raw: dict[str, Any]) -> Game:
    winner_raw = _mapping(raw.get("winner") or {}, "winner")
    return Game(
        id=int(raw["id"]),
        title=str(raw["title"]),
        type=GameType(raw.get("type") or GameType.SCORE.value),
        score_type=ScoreType(raw.get("scoreType") or ScoreType.STANDARD.value),
        custom_columns=tuple(column_from_json(column) for column in _objects(raw.get("customColumns"), "customColumns")),
        extensions=tuple(extension_from_json(extension) for extension in _objects(raw.get("extensions"), "extensions")),
        image=str(raw.get("image") or ""),
        last_played=str(raw.get("lastPlayed") or ""),
        play_count=int(raw.get("playCount") or 0),
        winner=Winner(name=str(winner_raw.get("name", "-")), score=str(winner_raw.get("score", "-"))),
        is_favorite=bool(raw.get("isFavorite", False)),
        rating=_optional_float(raw.get("rating")),
        groups=tuple(str(group) for group in _sequence(raw.get("groups"), "groups")),
        description=raw.get("description"),
        winning_condition=_optional_enum(WinningCondition, raw.get("winningCondition")),
        ownership_status=_optional_enum(OwnershipStatus, raw.get("ownershipStatus")),
        input_method=_optional_enum(InputMethod, raw.get("inputMethod")),
    )


def result_to_json(result: MatchResult) -> dict[str, Any]:
    return _compact(
        {
            "playerId": result.player_id,
            "score": result.score,
            "isWinner": result.is_winner,
            "isStarter": result.is_starter,
            "teamId": result.team_id,
            "change": result.change,
            "scoreBreakdown": dict(result.score_breakdown) if result.score_breakdown is not None else None,
        }
    )


def result_from_json(raw: dict[str, Any]) -> MatchResult:
    score = raw.get("score", 0)
    if not isinstance(score, (int, float, str)) or isinstance(score, bool):
        raise ValueError(f"unsupported score value: {score!r}")
    breakdown = raw.get("scoreBreakdown")
    return MatchResult(
        player_id=str(raw["playerId"]),
        score=score,
        is_winner=bool(raw.get("isWinner", False)),
        is_starter=raw.get("isStarter"),
        team_id=None if raw.get("teamId") is None else str(raw["teamId"]),
        change=_optional_float(raw.get("change")),
        score_breakdown=(
            None
            if breakdown is None
            else {str(key): float(value) for key, value in _mapping(breakdown, "scoreBreakdown").items()}
        ),
    )


def match_to_json(match: Match) -> dict[str, Any]:
    return _compact(
        {
            "id": match.id,
            "gameId": match.game_id,
            "date": match.date,
            "duration": match.duration,
            "location": match.location,
            "results": [result_to_json(result) for result in match.results],
            "createdBy": match.created_by,
            "extensionIds": list(match.extension_ids) if match.extension_ids is not None else None,
            "playedOn": match.played_on.isoformat() if match.played_on else None,
            "createdAt": match.created_at.isoformat() if match.created_at else None,
        }
    )


def match_from_json(raw: dict[str, Any]) -> Match:
    extension_ids = raw.get("extensionIds")
    played_on = raw.get("playedOn")
    created_at = raw.get("createdAt")
    return Match(
        id=int(raw["id"]),
        game_id=int(raw["gameId"]),
        date=str(raw.get("date") or ""),
        results=tuple(result_from_json(result) for result in _objects(raw.get("results"), "results")),
        created_by=str(raw.get("createdBy") or ""),
        extension_ids=(
            None if extension_ids is None else tuple(str(item) for item in _sequence(extension_ids, "extensionIds"))
        ),
        duration=raw.get("duration"),
        location=raw.get("location"),
        played_on=date.fromisoformat(played_on) if played_on else None,
        created_at=datetime.fromisoformat(created_at) if created_at else None,
    )


def decode_records(raw: Any, decoder: Callable[[dict[str, Any]], T], *, label: str) -> list[T]:
    """Decode a JSON list, skipping entries that do not fit the record shape."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning("Ignoring stored %s: expected a list, got %s", label, type(raw).__name__)
        return []

    records: list[T] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            logger.warning("Skipping %s[%d]: not an object", label, index)
            continue
        try:
            records.append(decoder(item))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping %s[%d]: %s", label, index, exc)
    return records


def encode_records(records: Iterable[T], encoder: Callable[[T], dict[str, Any]]) -> list[dict[str, Any]]:
    return [encoder(record) for record in records]


__all__ = [
    "column_from_json",
    "column_to_json",
    "decode_records",
    "encode_records",
    "extension_from_json",
    "extension_to_json",
    "game_from_json",
    "game_to_json",
    "match_from_json",
    "match_to_json",
    "player_from_json",
    "player_to_json",
    "result_from_json",
    "result_to_json",
    "user_from_json",
    "user_to_json",
]
