"""Tests for per-game play counts and last-played labels."""

from __future__ import annotations

from datetime import UTC, date, datetime

from domain.aggregation import NEVER_PLAYED, derive_game_view, derive_games, latest_match
from domain.common import Game, Match, MatchResult, Player, User
from domain.visibility import visible_matches


def _match(match_id: int, label: str, **kwargs) -> Match:
    values = {
        "id": match_id,
        "game_id": 1,
        "date": label,
        "results": (MatchResult(player_id="p1", score=5),),
        "created_by": "user_u",
    }
    values.update(kwargs)
    return Match(**values)


def test_play_count_and_last_played_use_largest_id() -> None:
    game = Game(id=1, title="Catan")
    matches = [
        _match(20, "2 Feb 2024 • 20:00"),
        _match(30, "3 Mrt 2024 • 21:15"),
        _match(10, "1 Jan 2024 • 19:00"),
    ]

    view = derive_game_view(game, matches)

    assert view.play_count == 3
    assert view.last_played == "3 Mrt 2024"


def test_derivation_is_idempotent_and_does_not_touch_inputs() -> None:
    game = Game(id=1, title="Catan", last_played="stale", play_count=99)
    matches = [_match(10, "1 Jan 2024"), _match(20, "2 Jan 2024")]
    snapshot = list(matches)

    first = derive_game_view(game, matches)
    second = derive_game_view(game, matches)

    assert first == second
    assert matches == snapshot
    assert game.play_count == 99
    assert game.last_played == "stale"


def test_game_without_visible_matches_is_never_played() -> None:
    game = Game(id=1, title="Catan", last_played="12 Okt 2023", play_count=7)
    viewer = User(id="user_u", name="U", handle="u")
    others = [
        _match(10, "1 Jan 2024", created_by="user_x", results=(MatchResult(player_id="p_x", score=1),)),
    ]
    players = [Player(id="p_x", name="X")]

    view = derive_game_view(game, visible_matches(others, viewer, players))

    assert view.play_count == 0
    assert view.last_played == NEVER_PLAYED


def test_matches_for_other_games_are_ignored() -> None:
    game = Game(id=1, title="Catan")
    view = derive_game_view(game, [_match(10, "1 Jan 2024", game_id=2)])
    assert view.play_count == 0


def test_created_at_outranks_larger_legacy_id() -> None:
    stamped = _match(5, "", created_at=datetime(2024, 5, 1, tzinfo=UTC), played_on=date(2024, 5, 1))
    legacy = _match(999, "9 Sep 2023 • 10:00")

    assert latest_match([legacy, stamped]) is stamped
    assert derive_game_view(Game(id=1, title="Catan"), [legacy, stamped]).last_played == "1 Mei 2024"


def test_equal_created_at_falls_back_to_id() -> None:
    moment = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    first = _match(1, "a", created_at=moment)
    second = _match(2, "b", created_at=moment)
    assert latest_match([second, first]) is second


def test_label_without_separator_is_used_whole() -> None:
    view = derive_game_view(Game(id=1, title="Catan"), [_match(1, "12 Okt 2023")])
    assert view.last_played == "12 Okt 2023"


def test_derive_games_skips_orphans_and_honors_custom_label() -> None:
    games = [Game(id=1, title="Catan"), Game(id=2, title="Azul")]
    matches = [_match(1, "1 Jan 2024"), _match(2, "2 Jan 2024", game_id=77)]

    views = derive_games(games, matches, never_played_label="Never")

    assert [(view.title, view.play_count, view.last_played) for view in views] == [
        ("Catan", 1, "1 Jan 2024"),
        ("Azul", 0, "Never"),
    ]
