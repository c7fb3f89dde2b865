"""Match export payloads and name-based reconciliation on import.

An export carries the matches plus the minimal player and extension info
another installation needs to map them onto its own records when ids do
not line up.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote

from domain.codec import match_from_json, match_to_json
from domain.common import Game, GameExtension, Match, Player

logger = logging.getLogger(__name__)

EXPORT_TYPE = "match_export"
EXPORT_VERSION = 1
MIXED_EXPORT_TITLE = "Gemengde Export"
UNKNOWN_GAME_TITLE = "Onbekend Spel"

_DATA_PARAM = "data="
_TITLE_CLEANUP = re.compile(r"[^a-z0-9 ]")
_MIN_TOKEN_LENGTH = 3


class ImportFormatError(ValueError):
    """Import text is not a readable match export."""


@dataclass(frozen=True)
class ExportPlayer:
    id: str
    name: str


@dataclass(frozen=True)
class ExportExtension:
    id: str
    title: str


@dataclass(frozen=True)
class MatchExport:
    source_game_title: str
    matches: tuple[Match, ...]
    players: tuple[ExportPlayer, ...] = ()
    extensions: tuple[ExportExtension, ...] = ()
    version: int = EXPORT_VERSION

    def to_json(self) -> dict[str, Any]:
        return {
            "type": EXPORT_TYPE,
            "version": self.version,
            "sourceGameTitle": self.source_game_title,
            "matches": [match_to_json(match) for match in self.matches],
            "players": [{"id": player.id, "name": player.name} for player in self.players],
            "extensions": [{"id": extension.id, "title": extension.title} for extension in self.extensions],
        }

    @classmethod
    def from_json(cls, raw: Any) -> MatchExport:
        if not is_match_export(raw):
            raise ImportFormatError("payload is not a match export")
        for index, item in enumerate(raw["matches"]):
            if not isinstance(item, dict):
                raise ImportFormatError(f"malformed match export: matches[{index}] is not an object")
        try:
            return cls(
                version=int(raw.get("version", EXPORT_VERSION)),
                source_game_title=str(raw.get("sourceGameTitle") or ""),
                matches=tuple(match_from_json(item) for item in raw["matches"]),
                players=tuple(
                    ExportPlayer(id=str(item["id"]), name=str(item["name"]))
                    for item in raw.get("players") or ()
                ),
                extensions=tuple(
                    ExportExtension(id=str(item["id"]), title=str(item["title"]))
                    for item in raw.get("extensions") or ()
                ),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ImportFormatError(f"malformed match export: {exc}") from exc


def is_match_export(raw: Any) -> bool:
    return isinstance(raw, dict) and raw.get("type") == EXPORT_TYPE and isinstance(raw.get("matches"), list)


def build_export(
    matches: Sequence[Match],
    games: Sequence[Game],
    players: Sequence[Player],
) -> MatchExport:
    """Package ``matches`` with the player and extension names they use."""
    if not matches:
        raise ValueError("nothing to export")

    player_ids = {result.player_id for match in matches for result in match.results}
    export_players = tuple(
        ExportPlayer(id=player.id, name=player.name) for player in players if player.id in player_ids
    )

    extension_ids = {extension_id for match in matches for extension_id in (match.extension_ids or ())}
    export_extensions: dict[str, ExportExtension] = {}
    for game in games:
        for extension in game.extensions:
            if extension.id in extension_ids and extension.id not in export_extensions:
                export_extensions[extension.id] = ExportExtension(id=extension.id, title=extension.title)

    source_title = MIXED_EXPORT_TITLE
    game_ids = {match.game_id for match in matches}
    if len(game_ids) == 1:
        (game_id,) = game_ids
        source_game = next((game for game in games if game.id == game_id), None)
        if source_game is not None:
            source_title = source_game.title

    return MatchExport(
        source_game_title=source_title,
        matches=tuple(matches),
        players=export_players,
        extensions=tuple(export_extensions.values()),
    )


def encode_share_string(export: MatchExport) -> str:
    """Base64 of the UTF-8 JSON payload."""
    payload = json.dumps(export.to_json(), ensure_ascii=False, separators=(",", ":"))
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def _decode_base64(text: str) -> str | None:
    try:
        return base64.b64decode(text, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None


def _extract_data_param(text: str) -> str:
    if _DATA_PARAM not in text:
        return text
    value = text.split(_DATA_PARAM, 1)[1].split("&", 1)[0]
    return unquote(value)


def load_import_payload(text: str) -> Any:
    """JSON document from raw JSON, base64, or a share link with ``data=``."""
    cleaned = _extract_data_param(text.strip())
    if not cleaned:
        raise ImportFormatError("import text is empty")

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    decoded = _decode_base64(cleaned)
    if decoded is not None:
        try:
            return json.loads(decoded)
        except json.JSONDecodeError:
            pass
    raise ImportFormatError("could not read import data; check that the code is complete")


def parse_import_text(text: str) -> list[MatchExport]:
    """All match exports contained in ``text``.

    Native exports yield one entry; BG Stats backups yield one per game.
    """
    from domain.bgstats import convert_bgstats_backup, is_bgstats_backup

    payload = load_import_payload(text)
    if is_match_export(payload):
        return [MatchExport.from_json(payload)]
    if is_bgstats_backup(payload):
        exports = convert_bgstats_backup(payload)
        if exports:
            return exports
    raise ImportFormatError("data is neither a match export nor a BG Stats backup")


def _normalize(value: str) -> str:
    return value.strip().lower()


def match_player(name: str, players: Iterable[Player]) -> Player | None:
    """Local player with the same name, ignoring case."""
    target = name.lower()
    return next((player for player in players if player.name.lower() == target), None)


def match_location(name: str, locations: Iterable[str]) -> str | None:
    target = _normalize(name)
    return next((location for location in locations if _normalize(location) == target), None)


def _title_tokens(title: str) -> list[str]:
    return _TITLE_CLEANUP.sub("", title.lower()).split()


def match_extension(title: str, extensions: Sequence[GameExtension]) -> GameExtension | None:
    """Find a local extension for an imported title.

    Tries an exact title, then containment either way, then the largest
    overlap of words at least three characters long.
    """
    target = _normalize(title)
    if not target:
        return None
    for extension in extensions:
        if _normalize(extension.title) == target:
            return extension

    for extension in extensions:
        local = _normalize(extension.title)
        if local and (local in target or target in local):
            return extension

    imported_tokens = [token for token in _title_tokens(title) if len(token) >= _MIN_TOKEN_LENGTH]
    best: GameExtension | None = None
    best_overlap = 0
    for extension in extensions:
        local_tokens = set(_title_tokens(extension.title))
        overlap = sum(1 for token in imported_tokens if token in local_tokens)
        if overlap > best_overlap:
            best, best_overlap = extension, overlap
    return best


@dataclass(frozen=True)
class ImportPlan:
    """How an export maps onto local records.

    Mapping values of ``None`` mark entries without a local counterpart:
    players to create or map by hand, extensions to drop, locations to add.
    """

    export: MatchExport
    target_game_id: int | None
    player_mapping: dict[str, str | None] = field(default_factory=dict)
    extension_mapping: dict[str, str | None] = field(default_factory=dict)
    location_mapping: dict[str, str | None] = field(default_factory=dict)

    @property
    def unmapped_players(self) -> tuple[ExportPlayer, ...]:
        return tuple(player for player in self.export.players if self.player_mapping.get(player.id) is None)

    @property
    def unmapped_extensions(self) -> tuple[ExportExtension, ...]:
        return tuple(
            extension for extension in self.export.extensions if self.extension_mapping.get(extension.id) is None
        )

    def with_player(self, remote_id: str, local_id: str | None) -> ImportPlan:
        mapping = dict(self.player_mapping)
        mapping[remote_id] = local_id
        return ImportPlan(
            export=self.export,
            target_game_id=self.target_game_id,
            player_mapping=mapping,
            extension_mapping=self.extension_mapping,
            location_mapping=self.location_mapping,
        )


def plan_import(
    export: MatchExport,
    games: Sequence[Game],
    players: Sequence[Player],
    locations: Sequence[str],
    *,
    target_game_id: int | None = None,
) -> ImportPlan:
    """Propose local counterparts for everything an export references."""
    target_game: Game | None = None
    if target_game_id is not None:
        target_game = next((game for game in games if game.id == target_game_id), None)
        if target_game is None:
            raise ValueError(f"target game {target_game_id} does not exist")
    else:
        title = _normalize(export.source_game_title) or _normalize(UNKNOWN_GAME_TITLE)
        target_game = next((game for game in games if _normalize(game.title) == title), None)

    player_mapping: dict[str, str | None] = {}
    for remote in export.players:
        local = match_player(remote.name, players)
        player_mapping[remote.id] = local.id if local else None

    extension_mapping: dict[str, str | None] = {}
    local_extensions = target_game.extensions if target_game else ()
    for remote_extension in export.extensions:
        local_extension = match_extension(remote_extension.title, local_extensions)
        extension_mapping[remote_extension.id] = local_extension.id if local_extension else None

    location_mapping: dict[str, str | None] = {}
    for match in export.matches:
        if match.location and match.location not in location_mapping:
            location_mapping[match.location] = match_location(match.location, locations)

    plan = ImportPlan(
        export=export,
        target_game_id=target_game.id if target_game else None,
        player_mapping=player_mapping,
        extension_mapping=extension_mapping,
        location_mapping=location_mapping,
    )
    logger.debug(
        "Planned import of %d matches for '%s': %d unmapped players, %d unmapped extensions",
        len(export.matches),
        export.source_game_title,
        len(plan.unmapped_players),
        len(plan.unmapped_extensions),
    )
    return plan


__all__ = [
    "EXPORT_TYPE",
    "EXPORT_VERSION",
    "MIXED_EXPORT_TITLE",
    "UNKNOWN_GAME_TITLE",
    "ExportExtension",
    "ExportPlayer",
    "ImportFormatError",
    "ImportPlan",
    "MatchExport",
    "build_export",
    "encode_share_string",
    "is_match_export",
    "load_import_payload",
    "match_extension",
    "match_location",
    "match_player",
    "parse_import_text",
    "plan_import",
]
