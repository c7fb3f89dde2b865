"""Tests for the application state object."""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from itertools import count

import pytest

from domain.common import Game, GameExtension, Match, MatchResult, Player
from domain.config import AppConfig
from domain.exchange import UNKNOWN_GAME_TITLE, ExportExtension, ExportPlayer, MatchExport, plan_import
from domain.library import (
    DUPLICATE_GAME_MESSAGE,
    DUPLICATE_PLAYER_MESSAGE,
    GUEST_USER,
    SESSION_KEY,
    GameLibrary,
    UnmappedPlayersError,
    ValidationError,
    game_title_error,
    player_name_error,
)
from domain.protocol import PlayerImageMode, Theme
from repositories.store_repository import MemoryKeyValueStore

START = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def _clock():
    ticks = count()
    return lambda: START + timedelta(seconds=next(ticks))


def _library(store: MemoryKeyValueStore | None = None, **kwargs) -> GameLibrary:
    return GameLibrary(store if store is not None else MemoryKeyValueStore(), clock=_clock(), **kwargs)


def _result(player_id: str, score: float, is_winner: bool = False) -> MatchResult:
    return MatchResult(player_id=player_id, score=score, is_winner=is_winner)


def test_empty_store_yields_guest_session_and_config_defaults() -> None:
    config = AppConfig(default_theme=Theme.LIGHT, default_auto_start_timer=False)
    library = _library(config=config)

    assert library.current_user == GUEST_USER
    assert not library.is_authenticated
    assert library.games == []
    assert library.theme == Theme.LIGHT
    assert library.auto_start_timer is False
    assert library.default_player_image_mode == PlayerImageMode.AVATAR


def test_malformed_stored_data_degrades_to_defaults() -> None:
    store = MemoryKeyValueStore(
        {
            "gm_games": "{oops",
            "gm_players": '{"not": "a list"}',
            "theme": '"purple"',
            "autoStartTimer": '"yes"',
            "defaultPlayerImageMode": '"hologram"',
            "defaultPlayerIds": "42",
        }
    )
    library = _library(store)

    assert library.all_games == ()
    assert library.players == ()
    assert library.theme == Theme.DARK
    assert library.auto_start_timer is True
    assert library.default_player_image_mode == PlayerImageMode.AVATAR
    assert library.default_player_ids == ()


@pytest.mark.parametrize(
    "bad_match",
    [
        {"id": 2, "gameId": 1, "results": {"a": 1}},
        {"id": 2, "gameId": 1, "results": ["p1"]},
        {"id": 2, "gameId": 1, "results": [{"playerId": "p1", "scoreBreakdown": [1, 2]}]},
        {"id": 2, "gameId": 1, "extensionIds": "ext_1"},
    ],
)
def test_wrongly_shaped_stored_records_are_skipped(bad_match: dict) -> None:
    good_match = {"id": 1, "gameId": 1, "date": "1 Jan 2024", "results": [{"playerId": "p1", "score": 3}]}
    store = MemoryKeyValueStore(
        {
            "gm_games": json.dumps(
                [
                    {"id": 1, "title": "Catan", "winner": "bob"},
                    {"id": 2, "title": "Azul", "extensions": "none"},
                    {"id": 3, "title": "Wingspan"},
                ]
            ),
            "gm_matches": json.dumps([good_match, bad_match]),
        }
    )

    library = _library(store)

    assert [game.title for game in library.all_games] == ["Wingspan"]
    assert [match.id for match in library.all_matches] == [1]


def test_register_user_creates_linked_player_and_session() -> None:
    store = MemoryKeyValueStore()
    library = _library(store)

    user = library.register_user("  Ann ")

    assert user.name == "Ann"
    assert user.id == user.handle and user.id.startswith("user_")
    assert user.email == f"{user.handle}@local.app"
    assert "dicebear" in user.image
    (player,) = library.players
    assert player.linked_user_id == user.id and player.name == "Ann"
    assert library.current_user == user and library.is_authenticated
    assert store.load(SESSION_KEY) == user.id

    restored = _library(store)
    assert restored.current_user == user
    assert restored.is_authenticated


def test_login_is_case_insensitive_and_remember_is_optional() -> None:
    store = MemoryKeyValueStore()
    library = _library(store)
    user = library.register_user("Ann")
    library.logout()
    assert store.load(SESSION_KEY) is None
    assert not library.is_authenticated

    assert library.login(f"  {user.handle.upper()} ")
    assert library.is_authenticated
    assert store.load(SESSION_KEY) is None

    assert library.login(user.handle, remember=True)
    assert store.load(SESSION_KEY) == user.id
    assert not library.login("nobody")


def test_switch_user_updates_stored_session_only_when_present() -> None:
    store = MemoryKeyValueStore()
    library = _library(store)
    ann = library.register_user("Ann")
    ben = library.register_user("Ben")

    assert library.switch_user(ann.id)
    assert store.load(SESSION_KEY) == ann.id

    library.logout()
    assert library.switch_user(ben.id)
    assert store.load(SESSION_KEY) is None
    assert not library.switch_user("missing")


def test_update_user_name_renames_linked_players() -> None:
    library = _library()
    user = library.register_user("Ann")
    library.add_player(Player(id="p_guest", name="Guest"))

    library.update_user_name(user.id, "Annie")

    assert library.current_user.name == "Annie"
    assert [player.name for player in library.players] == ["Annie", "Guest"]
    library.update_user_image(user.id, "img.png")
    assert library.users[0].image == "img.png"


def test_duplicate_game_title_is_rejected_without_state_change() -> None:
    store = MemoryKeyValueStore()
    library = _library(store)
    azul = library.add_game(Game(id=0, title="Azul"))
    catan = library.add_game(Game(id=0, title="Catan"))
    saved = store.load("gm_games")

    with pytest.raises(ValidationError) as excinfo:
        library.add_game(Game(id=0, title=" azul "))
    assert excinfo.value.message == DUPLICATE_GAME_MESSAGE

    with pytest.raises(ValidationError):
        library.update_game(Game(id=catan.id, title="AZUL"))

    assert library.all_games == (catan, azul)
    assert store.load("gm_games") == saved
    renamed = library.update_game(Game(id=azul.id, title="azul"))
    assert library.get_game_by_id(azul.id).title == renamed.title == "azul"


def test_validation_message_helpers() -> None:
    games = [Game(id=1, title="Azul")]
    assert game_title_error("AZUL", games) == DUPLICATE_GAME_MESSAGE
    assert game_title_error("AZUL", games, exclude_id=1) is None
    assert game_title_error("  ", games) is not None
    players = [Player(id="p1", name="Ann")]
    assert player_name_error(" ann", players) == DUPLICATE_PLAYER_MESSAGE
    assert player_name_error("Ben", players) is None


def test_mutations_replace_collections_and_persist() -> None:
    store = MemoryKeyValueStore()
    library = _library(store)
    game = library.add_game(Game(id=0, title="Azul", groups=("family",)))
    before = library.all_games

    library.toggle_favorite(game.id)

    assert before[0].is_favorite is False
    assert library.all_games[0].is_favorite is True
    assert library.all_games is not before
    assert store.load("gm_games")[0]["isFavorite"] is True
    assert library.all_groups == ["family"]


def test_add_match_stamps_recorder_and_creation_time() -> None:
    library = _library()
    user = library.register_user("Ann")
    game = library.add_game(Game(id=0, title="Azul"))

    match = library.add_match(
        Match(id=0, game_id=game.id, date="1 Jun 2024", results=(_result("x", 3),), created_by="spoofed")
    )

    assert match.created_by == user.id
    assert match.created_at is not None
    assert match.id > 0
    assert library.all_matches[0] == match


def test_visible_games_and_matches_follow_the_current_user() -> None:
    library = _library()
    ann = library.register_user("Ann")
    ann_player = library.players[0]
    game = library.add_game(Game(id=0, title="Azul"))
    first = library.add_match(Match(id=10, game_id=game.id, date="1 Jun 2024", results=(_result("guest", 3),), created_by=""))

    ben = library.register_user("Ben")
    assert library.get_game_by_id(game.id).play_count == 0
    assert library.get_game_by_id(game.id).last_played == "Nog nooit"

    second = library.add_match(
        Match(id=20, game_id=game.id, date="2 Jun 2024", results=(_result(ann_player.id, 5),), created_by="")
    )
    library.add_match(Match(id=30, game_id=game.id, date="3 Jun 2024", results=(_result("guest", 1),), created_by=""))

    library.switch_user(ann.id)
    assert [match.id for match in library.get_matches_by_game_id(game.id)] == [second.id, first.id]
    view = library.get_game_by_id(game.id)
    assert (view.play_count, view.last_played) == (2, "2 Jun 2024")

    library.switch_user(ben.id)
    assert library.get_game_by_id(game.id).play_count == 2


def test_update_and_delete_match() -> None:
    library = _library()
    library.register_user("Ann")
    match = library.add_match(Match(id=0, game_id=1, date="d", results=(), created_by=""))

    edited = library.update_match(replace(match, location="Thuis"))
    assert library.all_matches == (edited,)
    with pytest.raises(KeyError):
        library.update_match(Match(id=999, game_id=1, date="d", results=(), created_by=""))

    assert library.delete_match(match.id)
    assert not library.delete_match(match.id)
    assert library.all_matches == ()


def test_players_reject_duplicate_names() -> None:
    library = _library()
    library.add_player(Player(id="p1", name=" Ann "))
    assert library.players[0].name == "Ann"

    with pytest.raises(ValidationError) as excinfo:
        library.add_player(Player(id="p2", name="ANN"))
    assert excinfo.value.message == DUPLICATE_PLAYER_MESSAGE

    library.add_player(Player(id="p2", name="Ben"))
    with pytest.raises(ValidationError):
        library.update_player(Player(id="p2", name="ann"))
    library.update_player(Player(id="p2", name="Benny"))
    assert [player.name for player in library.players] == ["Ann", "Benny"]


def test_locations_are_trimmed_unique_and_sorted() -> None:
    store = MemoryKeyValueStore()
    library = _library(store)

    assert library.add_location("  Thuis ") == "Thuis"
    assert library.add_location("Café") == "Café"
    assert library.add_location("thuis") == "Thuis"
    assert library.add_location("   ") is None

    assert library.locations == ("Café", "Thuis")
    assert store.load("gm_locations") == ["Café", "Thuis"]


def test_settings_round_trip_through_the_store() -> None:
    store = MemoryKeyValueStore()
    library = _library(store)

    assert library.toggle_theme() == Theme.LIGHT
    assert library.toggle_auto_start_timer() is False
    library.set_default_player_image_mode(PlayerImageMode.INITIALS)
    library.set_default_player_ids(["p1", "p2"])

    reloaded = _library(store)
    assert reloaded.theme == Theme.LIGHT
    assert reloaded.auto_start_timer is False
    assert reloaded.default_player_image_mode == PlayerImageMode.INITIALS
    assert reloaded.default_player_ids == ("p1", "p2")


def _export() -> MatchExport:
    return MatchExport(
        source_game_title="Wingspan",
        matches=(
            Match(
                id=1,
                game_id=500,
                date="4 Mei 2024",
                results=(_result("r_alex", 50, True), _result("r_jo", 30), _result("r_jo2", 10)),
                created_by="remote",
                extension_ids=("r_eu", "r_unknown"),
                location="Zolder",
            ),
            Match(id=2, game_id=500, date="5 Mei 2024", results=(_result("r_alex", 5),), created_by="remote"),
        ),
        players=(
            ExportPlayer(id="r_alex", name="Alex"),
            ExportPlayer(id="r_jo", name="Jo"),
            ExportPlayer(id="r_jo2", name="jo"),
        ),
        extensions=(ExportExtension(id="r_eu", title="European"), ExportExtension(id="r_unknown", title="Zzz")),
    )


def test_import_maps_players_by_name_and_creates_the_rest() -> None:
    library = _library()
    user = library.register_user("Sam")
    library.add_player(Player(id="p_alex", name="alex"))
    game = library.add_game(
        Game(id=0, title="WINGSPAN", extensions=(GameExtension(id="ext_eu", title="European Expansion"),))
    )
    library.add_location("zolder")

    plan = plan_import(_export(), library.all_games, library.players, library.locations)
    result = library.apply_import(plan)

    assert result.game_id == game.id and not result.created_game
    assert [player.name for player in result.created_players] == ["Jo"]
    assert result.added_locations == ()
    assert len([player for player in library.players if player.name.lower() == "alex"]) == 1

    first, second = result.matches
    jo_id = result.created_players[0].id
    assert [r.player_id for r in first.results] == ["p_alex", jo_id, jo_id]
    assert first.extension_ids == ("ext_eu",)
    assert first.location == "zolder"
    assert first.created_by == user.id and first.game_id == game.id
    assert second.extension_ids is None
    assert first.id != second.id
    assert {match.id for match in library.matches} >= {first.id, second.id}
    assert library.get_game_by_id(game.id).play_count == 2


def test_import_can_refuse_new_players_without_changing_state() -> None:
    store = MemoryKeyValueStore()
    library = _library(store)
    library.register_user("Sam")
    plan = plan_import(_export(), library.all_games, library.players, library.locations)
    players_before = library.players

    with pytest.raises(UnmappedPlayersError) as excinfo:
        library.apply_import(plan, create_missing_players=False)

    assert [player.name for player in excinfo.value.players] == ["Alex", "Jo", "jo"]
    assert library.players == players_before
    assert library.all_games == ()
    assert library.all_matches == ()


def test_import_without_target_creates_game_and_locations() -> None:
    library = _library()
    library.register_user("Sam")
    plan = plan_import(_export(), library.all_games, library.players, library.locations)

    result = library.apply_import(plan)

    assert result.created_game
    assert library.get_game_by_id(result.game_id).title == "Wingspan"
    assert result.added_locations == ("Zolder",)
    assert library.locations == ("Zolder",)
    assert result.matches[0].extension_ids is None


def test_import_matches_target_title_ignoring_surrounding_whitespace() -> None:
    library = _library()
    library.register_user("Sam")
    game = library.add_game(Game(id=0, title="Wingspan"))
    export = replace(_export(), source_game_title="  wingspan ")

    plan = plan_import(export, library.all_games, library.players, library.locations)
    result = library.apply_import(plan)

    assert plan.target_game_id == game.id
    assert result.game_id == game.id and not result.created_game
    assert len(library.all_games) == 1


def test_import_with_blank_title_files_under_unknown_game() -> None:
    library = _library()
    library.register_user("Sam")
    export = replace(_export(), source_game_title="   ")

    first = library.apply_import(plan_import(export, library.all_games, library.players, library.locations))
    second = library.apply_import(plan_import(export, library.all_games, library.players, library.locations))

    assert first.created_game and not second.created_game
    assert first.game_id == second.game_id
    assert library.get_game_by_id(first.game_id).title == UNKNOWN_GAME_TITLE
    assert library.get_game_by_id(first.game_id).play_count == 4
