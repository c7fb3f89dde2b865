"""Which recorded matches a user gets to see."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from domain.common import Match, Player, User


def linked_player_ids(user_id: str, players: Iterable[Player]) -> frozenset[str]:
    """Ids of players that stand for ``user_id``."""
    return frozenset(player.id for player in players if player.linked_user_id == user_id)


def is_visible(match: Match, user_id: str, linked_ids: frozenset[str]) -> bool:
    if match.created_by == user_id:
        return True
    return any(result.player_id in linked_ids for result in match.results)


def visible_matches(
    all_matches: Sequence[Match],
    current_user: User,
    all_players: Iterable[Player],
) -> list[Match]:
    """Matches recorded by the user or naming one of the user's linked players.

    Input order is preserved; callers sort as they need.
    """
    linked_ids = linked_player_ids(current_user.id, all_players)
    return [match for match in all_matches if is_visible(match, current_user.id, linked_ids)]


__all__ = ["is_visible", "linked_player_ids", "visible_matches"]
