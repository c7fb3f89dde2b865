"""Application state for one device: records, settings and the active session.

``GameLibrary`` loads every collection from a key-value store once, exposes
read accessors plus derived views for the current user, and writes a
collection back under its logical key after each mutation. Collections are
tuples of frozen records, so every mutation swaps in a new tuple.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from urllib.parse import quote

from domain.aggregation import GameView, derive_game_view, derive_games, recency_key
from domain.codec import (
    decode_records,
    encode_records,
    game_from_json,
    game_to_json,
    match_from_json,
    match_to_json,
    player_from_json,
    player_to_json,
    user_from_json,
    user_to_json,
)
from domain.common import Game, Match, Player, User
from domain.config import AppConfig
from domain.exchange import UNKNOWN_GAME_TITLE, ExportPlayer, ImportPlan, match_location, match_player
from domain.protocol import KeyValueStore, PlayerImageMode, Theme
from domain.visibility import visible_matches

logger = logging.getLogger(__name__)

USERS_KEY = "gm_users"
GAMES_KEY = "gm_games"
MATCHES_KEY = "gm_matches"
PLAYERS_KEY = "gm_players"
LOCATIONS_KEY = "gm_locations"
THEME_KEY = "theme"
AUTO_START_TIMER_KEY = "autoStartTimer"
DEFAULT_PLAYER_IMAGE_MODE_KEY = "defaultPlayerImageMode"
DEFAULT_PLAYER_IDS_KEY = "defaultPlayerIds"
SESSION_KEY = "game_master_session"

GUEST_USER = User(id="guest", name="Gast", handle="guest")

EMPTY_NAME_MESSAGE = "Vul een naam in."
DUPLICATE_GAME_MESSAGE = "Dit spel bestaat al. Kies een andere naam."
DUPLICATE_PLAYER_MESSAGE = "Deze naam bestaat al. Kies een andere naam."

_USER_AVATAR_URL = "https://api.dicebear.com/9.x/adventurer/svg?seed={seed}&backgroundColor=b6e3f4"
_INITIALS_AVATAR_URL = "https://ui-avatars.com/api/?name={name}&background=random"


class ValidationError(ValueError):
    """A requested change was rejected; ``message`` is meant for the user."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnmappedPlayersError(ValueError):
    def __init__(self, players: Sequence[ExportPlayer]) -> None:
        names = ", ".join(player.name for player in players)
        super().__init__(f"import references players without a local match: {names}")
        self.players = tuple(players)


def game_title_error(title: str, games: Iterable[Game], *, exclude_id: int | None = None) -> str | None:
    """Form message for an unusable game title, or ``None`` when it is fine."""
    cleaned = title.strip().lower()
    if not cleaned:
        return EMPTY_NAME_MESSAGE
    if any(game.id != exclude_id and game.title.strip().lower() == cleaned for game in games):
        return DUPLICATE_GAME_MESSAGE
    return None


def player_name_error(name: str, players: Iterable[Player], *, exclude_id: str | None = None) -> str | None:
    cleaned = name.strip().lower()
    if not cleaned:
        return EMPTY_NAME_MESSAGE
    if any(player.id != exclude_id and player.name.strip().lower() == cleaned for player in players):
        return DUPLICATE_PLAYER_MESSAGE
    return None


@dataclass(frozen=True)
class ImportResult:
    game_id: int
    matches: tuple[Match, ...]
    created_players: tuple[Player, ...]
    added_locations: tuple[str, ...]
    created_game: bool = False


def _utc_now() -> datetime:
    return datetime.now(UTC)


class GameLibrary:
    """All records of one installation plus the current session."""

    def __init__(
        self,
        store: KeyValueStore,
        config: AppConfig | None = None,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store
        self.config = config or AppConfig()
        self.clock = clock
        self._last_token = 0

        self._users: tuple[User, ...] = tuple(decode_records(store.load(USERS_KEY), user_from_json, label="users"))
        self._games: tuple[Game, ...] = tuple(decode_records(store.load(GAMES_KEY), game_from_json, label="games"))
        self._matches: tuple[Match, ...] = tuple(
            decode_records(store.load(MATCHES_KEY), match_from_json, label="matches")
        )
        self._players: tuple[Player, ...] = tuple(
            decode_records(store.load(PLAYERS_KEY), player_from_json, label="players")
        )
        self._locations: tuple[str, ...] = self._load_locations()

        self._theme = self._load_theme()
        self._auto_start_timer = self._load_auto_start_timer()
        self._default_player_image_mode = self._load_image_mode()
        self._default_player_ids = self._load_default_player_ids()

        self._current_user = GUEST_USER
        self._is_authenticated = False
        self._restore_session()

    # Loading

    def _load_locations(self) -> tuple[str, ...]:
        raw = self.store.load(LOCATIONS_KEY)
        if raw is None:
            return ()
        if not isinstance(raw, list):
            logger.warning("Ignoring stored locations: expected a list, got %s", type(raw).__name__)
            return ()
        return tuple(str(item) for item in raw if isinstance(item, str))

    def _load_theme(self) -> Theme:
        raw = self.store.load(THEME_KEY)
        if raw in (Theme.DARK.value, Theme.LIGHT.value):
            return Theme(raw)
        return self.config.default_theme

    def _load_auto_start_timer(self) -> bool:
        raw = self.store.load(AUTO_START_TIMER_KEY)
        return raw if isinstance(raw, bool) else self.config.default_auto_start_timer

    def _load_image_mode(self) -> PlayerImageMode:
        raw = self.store.load(DEFAULT_PLAYER_IMAGE_MODE_KEY)
        try:
            return PlayerImageMode(raw)
        except ValueError:
            return self.config.default_player_image_mode

    def _load_default_player_ids(self) -> tuple[str, ...]:
        raw = self.store.load(DEFAULT_PLAYER_IDS_KEY)
        if not isinstance(raw, list):
            return ()
        return tuple(str(item) for item in raw)

    def _restore_session(self) -> None:
        session_user_id = self.store.load(SESSION_KEY)
        if not session_user_id:
            return
        user = self._find_user(str(session_user_id))
        if user is None:
            logger.info("Stored session refers to unknown user %s", session_user_id)
            return
        self._current_user = user
        self._is_authenticated = True

    # Persistence

    def _set_users(self, users: Iterable[User]) -> None:
        self._users = tuple(users)
        self.store.save(USERS_KEY, encode_records(self._users, user_to_json))

    def _set_games(self, games: Iterable[Game]) -> None:
        self._games = tuple(games)
        self.store.save(GAMES_KEY, encode_records(self._games, game_to_json))

    def _set_matches(self, matches: Iterable[Match]) -> None:
        self._matches = tuple(matches)
        self.store.save(MATCHES_KEY, encode_records(self._matches, match_to_json))

    def _set_players(self, players: Iterable[Player]) -> None:
        self._players = tuple(players)
        self.store.save(PLAYERS_KEY, encode_records(self._players, player_to_json))

    def _set_locations(self, locations: Iterable[str]) -> None:
        self._locations = tuple(locations)
        self.store.save(LOCATIONS_KEY, list(self._locations))

    # Identifiers

    def _token(self) -> int:
        """Millisecond timestamp, bumped so consecutive calls never repeat."""
        token = max(int(self.clock().timestamp() * 1000), self._last_token + 1)
        self._last_token = token
        return token

    def new_game_id(self) -> int:
        return max(self._token(), max((game.id for game in self._games), default=0) + 1)

    def new_match_id(self) -> int:
        return max(self._token(), max((match.id for match in self._matches), default=0) + 1)

    # Read accessors

    @property
    def users(self) -> tuple[User, ...]:
        return self._users

    @property
    def current_user(self) -> User:
        return self._current_user

    @property
    def is_authenticated(self) -> bool:
        return self._is_authenticated

    @property
    def all_games(self) -> tuple[Game, ...]:
        return self._games

    @property
    def all_matches(self) -> tuple[Match, ...]:
        return self._matches

    @property
    def players(self) -> tuple[Player, ...]:
        return self._players

    @property
    def locations(self) -> tuple[str, ...]:
        return self._locations

    @property
    def theme(self) -> Theme:
        return self._theme

    @property
    def auto_start_timer(self) -> bool:
        return self._auto_start_timer

    @property
    def default_player_image_mode(self) -> PlayerImageMode:
        return self._default_player_image_mode

    @property
    def default_player_ids(self) -> tuple[str, ...]:
        return self._default_player_ids

    # Derived views, recomputed on every access

    @property
    def matches(self) -> list[Match]:
        return visible_matches(self._matches, self._current_user, self._players)

    @property
    def games(self) -> list[GameView]:
        return derive_games(self._games, self.matches, never_played_label=self.config.never_played_label)

    @property
    def all_groups(self) -> list[str]:
        return sorted({group for game in self._games for group in game.groups})

    def get_game_by_id(self, game_id: int) -> GameView | None:
        game = self._find_game(game_id)
        if game is None:
            return None
        return derive_game_view(game, self.matches, never_played_label=self.config.never_played_label)

    def get_matches_by_game_id(self, game_id: int) -> list[Match]:
        """Visible matches for one game, most recent first."""
        return sorted(
            (match for match in self.matches if match.game_id == game_id),
            key=recency_key,
            reverse=True,
        )

    def _find_user(self, user_id: str) -> User | None:
        return next((user for user in self._users if user.id == user_id), None)

    def _find_game(self, game_id: int) -> Game | None:
        return next((game for game in self._games if game.id == game_id), None)

    # Session

    def login(self, handle: str, remember: bool = False) -> bool:
        target = handle.strip().lower()
        user = next((user for user in self._users if user.handle.lower() == target), None)
        if user is None:
            logger.info("Login failed for handle '%s'", handle)
            return False
        self._current_user = user
        self._is_authenticated = True
        if remember:
            self.store.save(SESSION_KEY, user.id)
        return True

    def logout(self) -> None:
        self._is_authenticated = False
        self.store.delete(SESSION_KEY)

    def switch_user(self, user_id: str) -> bool:
        user = self._find_user(user_id)
        if user is None:
            return False
        self._current_user = user
        if self.store.load(SESSION_KEY):
            self.store.save(SESSION_KEY, user.id)
        return True

    def register_user(self, name: str, image: str | None = None) -> User:
        """Create a user with a linked player and make it the session user."""
        cleaned = name.strip()
        if not cleaned:
            raise ValidationError(EMPTY_NAME_MESSAGE)

        token = self._token()
        handle = f"user_{token}"
        avatar = image or _USER_AVATAR_URL.format(seed=quote(cleaned, safe=""))
        user = User(id=handle, name=cleaned, handle=handle, email=f"{handle}@local.app", image=avatar)
        player = Player(id=f"p_{token}", name=cleaned, image=avatar, linked_user_id=user.id)

        self._set_users((*self._users, user))
        self._set_players((*self._players, player))
        self._current_user = user
        self._is_authenticated = True
        self.store.save(SESSION_KEY, user.id)
        logger.info("Registered user %s with linked player %s", user.id, player.id)
        return user

    def update_user_name(self, user_id: str, name: str) -> None:
        """Rename a user and every player linked to it."""
        cleaned = name.strip()
        if not cleaned:
            raise ValidationError(EMPTY_NAME_MESSAGE)
        self._set_users(replace(user, name=cleaned) if user.id == user_id else user for user in self._users)
        self._set_players(
            replace(player, name=cleaned) if player.linked_user_id == user_id else player
            for player in self._players
        )
        if self._current_user.id == user_id:
            self._current_user = replace(self._current_user, name=cleaned)

    def update_user_image(self, user_id: str, image: str) -> None:
        self._set_users(replace(user, image=image) if user.id == user_id else user for user in self._users)
        if self._current_user.id == user_id:
            self._current_user = replace(self._current_user, image=image)

    # Games

    def add_game(self, game: Game) -> Game:
        """Add ``game`` at the front of the catalog; an id of 0 gets a fresh one."""
        error = game_title_error(game.title, self._games)
        if error:
            raise ValidationError(error)
        if game.id <= 0 or self._find_game(game.id) is not None:
            game = replace(game, id=self.new_game_id())
        self._set_games((game, *self._games))
        return game

    def update_game(self, game: Game) -> Game:
        if self._find_game(game.id) is None:
            raise KeyError(f"unknown game id {game.id}")
        error = game_title_error(game.title, self._games, exclude_id=game.id)
        if error:
            raise ValidationError(error)
        self._set_games(game if existing.id == game.id else existing for existing in self._games)
        return game

    def toggle_favorite(self, game_id: int) -> None:
        self._set_games(
            replace(game, is_favorite=not game.is_favorite) if game.id == game_id else game
            for game in self._games
        )

    # Matches

    def add_match(self, match: Match) -> Match:
        """Record ``match`` for the current user.

        ``created_by`` is always the current user; ``created_at`` is stamped
        when missing, and an id of 0 gets a fresh one.
        """
        match_id = match.id
        if match_id <= 0 or any(existing.id == match_id for existing in self._matches):
            match_id = self.new_match_id()
        recorded = replace(
            match,
            id=match_id,
            created_by=self._current_user.id,
            created_at=match.created_at or self.clock(),
        )
        self._set_matches((recorded, *self._matches))
        return recorded

    def update_match(self, match: Match) -> Match:
        if not any(existing.id == match.id for existing in self._matches):
            raise KeyError(f"unknown match id {match.id}")
        self._set_matches(match if existing.id == match.id else existing for existing in self._matches)
        return match

    def delete_match(self, match_id: int) -> bool:
        remaining = tuple(match for match in self._matches if match.id != match_id)
        if len(remaining) == len(self._matches):
            return False
        self._set_matches(remaining)
        return True

    # Players and locations

    def add_player(self, player: Player) -> Player:
        error = player_name_error(player.name, self._players)
        if error:
            raise ValidationError(error)
        player = replace(player, name=player.name.strip())
        self._set_players((*self._players, player))
        return player

    def update_player(self, player: Player) -> Player:
        if not any(existing.id == player.id for existing in self._players):
            raise KeyError(f"unknown player id {player.id}")
        error = player_name_error(player.name, self._players, exclude_id=player.id)
        if error:
            raise ValidationError(error)
        player = replace(player, name=player.name.strip())
        self._set_players(player if existing.id == player.id else existing for existing in self._players)
        return player

    def add_location(self, location: str) -> str | None:
        """Add a trimmed location unless an equal one exists, ignoring case.

        Returns the stored spelling, or ``None`` for blank input.
        """
        trimmed = location.strip()
        if not trimmed:
            return None
        existing = match_location(trimmed, self._locations)
        if existing is not None:
            return existing
        self._set_locations(sorted((*self._locations, trimmed)))
        return trimmed

    # Settings

    def toggle_theme(self) -> Theme:
        self._theme = Theme.LIGHT if self._theme == Theme.DARK else Theme.DARK
        self.store.save(THEME_KEY, self._theme.value)
        return self._theme

    def toggle_auto_start_timer(self) -> bool:
        self._auto_start_timer = not self._auto_start_timer
        self.store.save(AUTO_START_TIMER_KEY, self._auto_start_timer)
        return self._auto_start_timer

    def set_default_player_image_mode(self, mode: PlayerImageMode) -> None:
        self._default_player_image_mode = PlayerImageMode(mode)
        self.store.save(DEFAULT_PLAYER_IMAGE_MODE_KEY, self._default_player_image_mode.value)

    def set_default_player_ids(self, player_ids: Sequence[str]) -> None:
        self._default_player_ids = tuple(player_ids)
        self.store.save(DEFAULT_PLAYER_IDS_KEY, list(self._default_player_ids))

    # Import

    def apply_import(self, plan: ImportPlan, *, create_missing_players: bool = True) -> ImportResult:
        """Record the matches of ``plan`` under the current user.

        Unmapped players are created fresh, or rejected with
        ``UnmappedPlayersError`` before anything changes. Without a target
        game a new one is created from the export's title.
        """
        unmapped = plan.unmapped_players
        if unmapped and not create_missing_players:
            raise UnmappedPlayersError(unmapped)

        export = plan.export
        created_game = False
        target = self._find_game(plan.target_game_id) if plan.target_game_id is not None else None
        if target is None:
            if plan.target_game_id is not None:
                raise KeyError(f"unknown game id {plan.target_game_id}")
            title = export.source_game_title.strip() or UNKNOWN_GAME_TITLE
            target = self.add_game(
                Game(
                    id=0,
                    title=title,
                    image=_INITIALS_AVATAR_URL.format(name=quote(title, safe="")) + "&size=512",
                    last_played=self.config.never_played_label,
                )
            )
            created_game = True

        player_mapping = {remote_id: local_id for remote_id, local_id in plan.player_mapping.items() if local_id}
        created_players: list[Player] = []
        for remote in unmapped:
            same_name = match_player(remote.name, created_players)
            if same_name is None:
                same_name = Player(
                    id=f"p_{self._token()}",
                    name=remote.name.strip(),
                    image=_INITIALS_AVATAR_URL.format(name=quote(remote.name, safe="")),
                )
                created_players.append(same_name)
            player_mapping[remote.id] = same_name.id
        if created_players:
            self._set_players((*self._players, *created_players))

        location_names: dict[str, str] = {}
        added_locations: list[str] = []
        for remote_location, local_location in plan.location_mapping.items():
            if local_location is None:
                is_new = match_location(remote_location, self._locations) is None
                stored = self.add_location(remote_location)
                if stored is None:
                    continue
                if is_new:
                    added_locations.append(stored)
                location_names[remote_location] = stored
            else:
                location_names[remote_location] = local_location

        imported: list[Match] = []
        for remote_match in export.matches:
            extension_ids = remote_match.extension_ids
            if extension_ids:
                extension_ids = tuple(
                    mapped
                    for mapped in (plan.extension_mapping.get(remote_id) for remote_id in extension_ids)
                    if mapped
                )
            imported.append(
                replace(
                    remote_match,
                    id=self.new_match_id(),
                    game_id=target.id,
                    location=location_names.get(remote_match.location or "", remote_match.location),
                    extension_ids=extension_ids or None,
                    results=tuple(
                        replace(result, player_id=player_mapping.get(result.player_id, result.player_id))
                        for result in remote_match.results
                    ),
                    created_by=self._current_user.id,
                    created_at=remote_match.created_at or self.clock(),
                )
            )
        self._set_matches((*reversed(imported), *self._matches))

        logger.info(
            "Imported %d matches into '%s' (%d new players, %d new locations)",
            len(imported),
            target.title,
            len(created_players),
            len(added_locations),
        )
        return ImportResult(
            game_id=target.id,
            matches=tuple(imported),
            created_players=tuple(created_players),
            added_locations=tuple(added_locations),
            created_game=created_game,
        )


__all__ = [
    "DUPLICATE_GAME_MESSAGE",
    "DUPLICATE_PLAYER_MESSAGE",
    "EMPTY_NAME_MESSAGE",
    "GUEST_USER",
    "GameLibrary",
    "ImportResult",
    "UnmappedPlayersError",
    "ValidationError",
    "game_title_error",
    "player_name_error",
]
