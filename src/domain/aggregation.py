"""Per-game display aggregates derived from visible match history."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from domain.common import Game, Match
from domain.dates import format_match_date, legacy_date_label

NEVER_PLAYED = "Nog nooit"


@dataclass(frozen=True)
class GameView:
    """A game together with the aggregates derived for one viewer."""

    game: Game
    play_count: int
    last_played: str

    @property
    def id(self) -> int:
        return self.game.id

    @property
    def title(self) -> str:
        return self.game.title


def recency_key(match: Match) -> tuple[int, float, int]:
    """Sort key where larger means more recent.

    Matches with a stored creation time outrank legacy ones; ids break ties.
    """
    if match.created_at is not None:
        return (1, match.created_at.timestamp(), match.id)
    return (0, 0.0, match.id)


def latest_match(matches: Iterable[Match]) -> Match | None:
    return max(matches, key=recency_key, default=None)


def match_date_label(match: Match) -> str:
    if match.played_on is not None:
        return format_match_date(match.played_on)
    return legacy_date_label(match.date)


def derive_game_view(
    game: Game,
    visible_matches_for_game: Sequence[Match],
    *,
    never_played_label: str = NEVER_PLAYED,
) -> GameView:
    """Compute play count and last-played label for one game."""
    relevant = [match for match in visible_matches_for_game if match.game_id == game.id]
    latest = latest_match(relevant)
    if latest is None:
        return GameView(game=game, play_count=0, last_played=never_played_label)
    return GameView(game=game, play_count=len(relevant), last_played=match_date_label(latest))


def derive_games(
    games: Sequence[Game],
    visible_matches: Iterable[Match],
    *,
    never_played_label: str = NEVER_PLAYED,
) -> list[GameView]:
    """Views for the whole catalog; matches for unknown games are ignored."""
    by_game: dict[int, list[Match]] = defaultdict(list)
    for match in visible_matches:
        by_game[match.game_id].append(match)

    return [
        derive_game_view(game, by_game.get(game.id, []), never_played_label=never_played_label)
        for game in games
    ]


__all__ = [
    "NEVER_PLAYED",
    "GameView",
    "derive_game_view",
    "derive_games",
    "latest_match",
    "match_date_label",
    "recency_key",
]
