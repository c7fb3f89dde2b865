"""Convert BG Stats backup files into match exports, one per game."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Any

from domain.common import Match, MatchResult
from domain.dates import format_duration, format_match_date
from domain.exchange import UNKNOWN_GAME_TITLE, ExportExtension, ExportPlayer, MatchExport

logger = logging.getLogger(__name__)

UNKNOWN_PLAYER_NAME = "Onbekend"
IMPORTED_BY = "import"


def is_bgstats_backup(raw: Any) -> bool:
    return (
        isinstance(raw, dict)
        and isinstance(raw.get("plays"), list)
        and isinstance(raw.get("players"), list)
        and isinstance(raw.get("games"), list)
    )


def _player_id(ref: Any) -> str:
    return f"bg_{ref}"


def _extension_id(ref: Any) -> str:
    return f"bg_ext_{ref}"


def _play_date(raw_date: Any) -> tuple[str, date | None]:
    text = str(raw_date or "")
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return text, None
    return format_match_date(parsed.date()), parsed.date()


def _score(raw: Any) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 0.0


def _duration(raw_minutes: Any) -> str | None:
    """``H:MM:SS`` for a positive whole-minute count; anything else is no duration."""
    if isinstance(raw_minutes, bool):
        return None
    try:
        minutes = int(raw_minutes)
    except (TypeError, ValueError):
        return None
    return format_duration(minutes * 60) if minutes > 0 else None


def convert_bgstats_backup(raw: dict[str, Any]) -> list[MatchExport]:
    """Group plays by game and translate them to the native export shape.

    Plays for games missing from the backup's game list are dropped.
    """
    games_by_id = {game.get("id"): game for game in raw["games"] if isinstance(game, dict)}
    player_names = {
        player.get("id"): str(player.get("name") or UNKNOWN_PLAYER_NAME)
        for player in raw["players"]
        if isinstance(player, dict)
    }
    locations = {
        location.get("id"): location.get("name")
        for location in raw.get("locations") or ()
        if isinstance(location, dict)
    }

    plays_by_game: dict[Any, list[dict[str, Any]]] = defaultdict(list)
    for play in raw["plays"]:
        if isinstance(play, dict):
            plays_by_game[play.get("gameRefId")].append(play)

    exports: list[MatchExport] = []
    for game_ref, plays in plays_by_game.items():
        game = games_by_id.get(game_ref)
        if game is None:
            logger.warning("Skipping %d BG Stats plays for unknown game %s", len(plays), game_ref)
            continue
        exports.append(_convert_game(game, plays, player_names, games_by_id, locations))
    return exports


def _convert_game(
    game: dict[str, Any],
    plays: list[dict[str, Any]],
    player_names: dict[Any, str],
    games_by_id: dict[Any, dict[str, Any]],
    locations: dict[Any, Any],
) -> MatchExport:
    used_players: dict[str, ExportPlayer] = {}
    extensions: dict[str, ExportExtension] = {}
    matches: list[Match] = []

    for index, play in enumerate(plays, start=1):
        extension_ids: tuple[str, ...] | None = None
        expansions = play.get("usesExpansions")
        if isinstance(expansions, list):
            extension_ids = tuple(_extension_id(ref) for ref in expansions)
            for ref in expansions:
                expansion_game = games_by_id.get(ref)
                if expansion_game is not None and _extension_id(ref) not in extensions:
                    extensions[_extension_id(ref)] = ExportExtension(
                        id=_extension_id(ref),
                        title=str(expansion_game.get("name") or ""),
                    )

        results: list[MatchResult] = []
        for score in play.get("playerScores") or ():
            if not isinstance(score, dict):
                continue
            ref = score.get("playerRefId")
            if ref not in player_names:
                continue
            player_id = _player_id(ref)
            used_players.setdefault(player_id, ExportPlayer(id=player_id, name=player_names[ref]))
            results.append(
                MatchResult(
                    player_id=player_id,
                    score=_score(score.get("score")),
                    is_winner=score.get("winner") is True,
                    is_starter=score.get("startPlayer") is True,
                )
            )

        label, played_on = _play_date(play.get("playDate"))
        matches.append(
            Match(
                id=index,
                game_id=0,
                date=label,
                results=tuple(results),
                created_by=IMPORTED_BY,
                extension_ids=extension_ids,
                duration=_duration(play.get("durationMin")),
                location=locations.get(play.get("locationRefId")),
                played_on=played_on,
            )
        )

    return MatchExport(
        source_game_title=str(game.get("name") or UNKNOWN_GAME_TITLE),
        matches=tuple(matches),
        players=tuple(used_players.values()),
        extensions=tuple(extensions.values()),
    )


__all__ = ["convert_bgstats_backup", "is_bgstats_backup"]
