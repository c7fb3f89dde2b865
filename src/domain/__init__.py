"""Board game library domain modules."""

from domain.aggregation import NEVER_PLAYED, GameView, derive_game_view, derive_games
from domain.common import Game, GameExtension, Match, MatchResult, Player, ScoreColumn, User
from domain.visibility import visible_matches

__all__ = [
    "NEVER_PLAYED",
    "Game",
    "GameExtension",
    "GameView",
    "Match",
    "MatchResult",
    "Player",
    "ScoreColumn",
    "User",
    "derive_game_view",
    "derive_games",
    "visible_matches",
]
