"""Player rankings and library-wide statistics over visible matches."""

from __future__ import annotations

import re
from collections import Counter, defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from domain.common import Game, Match, MatchResult, Player
from domain.dates import parse_duration_seconds, parse_match_date
from domain.protocol import OwnershipStatus, WinningCondition

_NON_NUMERIC = re.compile(r"[^0-9.\-]+")
_RATE_TOLERANCE = 0.0001


class RankingSort(str, Enum):
    WIN_RATE = "win_rate"
    BEST_SCORE = "best_score"


class PeriodKind(str, Enum):
    ALL = "all"
    YEAR = "year"
    MONTH = "month"


@dataclass(frozen=True)
class Period:
    """Time window for summaries; ``month`` is only read for ``MONTH``."""

    kind: PeriodKind = PeriodKind.ALL
    year: int | None = None
    month: int | None = None

    def contains(self, value: date | None) -> bool:
        if self.kind == PeriodKind.ALL:
            return True
        if value is None:
            return False
        if self.kind == PeriodKind.YEAR:
            return value.year == self.year
        return value.year == self.year and value.month == self.month


@dataclass(frozen=True)
class PlayerGameStats:
    player: Player
    played: int
    wins: int
    win_rate: int
    best_score: float
    worst_score: float
    avg_score: float


@dataclass(frozen=True)
class RankedWinner:
    player: Player | None
    player_id: str
    wins: int
    rank: int


@dataclass(frozen=True)
class GameBreakdown:
    game: Game
    count: int
    champions: tuple[Player, ...]
    max_wins: int
    top_score: float | None
    top_score_holders: tuple[Player, ...]


@dataclass(frozen=True)
class LibrarySummary:
    total_matches: int
    total_play_seconds: int
    unique_games_played: int
    library_utilization: int
    unique_extensions_played: int
    extension_utilization: int
    ownership: dict[str, int]
    top_winners: tuple[RankedWinner, ...]
    game_breakdown: tuple[GameBreakdown, ...] = field(default_factory=tuple)

    @property
    def play_time_label(self) -> str:
        hours, remainder = divmod(self.total_play_seconds, 3600)
        minutes = remainder // 60
        return f"{hours}u {minutes}m" if minutes > 0 else f"{hours}u"


def parse_score(score: float | str) -> float:
    """Numeric value of a stored score; unreadable scores count as 0."""
    if isinstance(score, (int, float)) and not isinstance(score, bool):
        return float(score)
    cleaned = _NON_NUMERIC.sub("", str(score))
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def match_played_on(match: Match) -> date | None:
    if match.played_on is not None:
        return match.played_on
    return parse_match_date(match.date)


def filter_period(matches: Iterable[Match], period: Period) -> list[Match]:
    return [match for match in matches if period.contains(match_played_on(match))]


def _percentage(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return round(part / whole * 100)


def player_game_stats(
    game: Game,
    matches: Iterable[Match],
    players: Sequence[Player],
    *,
    sort: RankingSort = RankingSort.WIN_RATE,
) -> list[PlayerGameStats]:
    """Per-player record for one game, ranked by ``sort``.

    Results naming unknown players are skipped.
    """
    players_by_id = {player.id: player for player in players}
    lowest_wins = game.winning_condition == WinningCondition.LOWEST
    played: Counter[str] = Counter()
    wins: Counter[str] = Counter()
    scores: dict[str, list[float]] = defaultdict(list)
    order: list[str] = []

    for match in matches:
        if match.game_id != game.id:
            continue
        for result in match.results:
            if result.player_id not in played:
                order.append(result.player_id)
            played[result.player_id] += 1
            if result.is_winner:
                wins[result.player_id] += 1
            scores[result.player_id].append(parse_score(result.score))

    stats: list[PlayerGameStats] = []
    for player_id in order:
        player = players_by_id.get(player_id)
        if player is None:
            continue
        player_scores = scores[player_id]
        best = min(player_scores) if lowest_wins else max(player_scores)
        worst = max(player_scores) if lowest_wins else min(player_scores)
        stats.append(
            PlayerGameStats(
                player=player,
                played=played[player_id],
                wins=wins[player_id],
                win_rate=_percentage(wins[player_id], played[player_id]),
                best_score=best,
                worst_score=worst,
                avg_score=round(sum(player_scores) / len(player_scores), 1),
            )
        )

    if sort == RankingSort.WIN_RATE:
        stats.sort(key=lambda item: (item.win_rate, item.wins, item.played), reverse=True)
    elif lowest_wins:
        stats.sort(key=lambda item: (item.best_score, -item.win_rate))
    else:
        stats.sort(key=lambda item: (-item.best_score, -item.win_rate))
    return stats


def game_champion(stats: Sequence[PlayerGameStats]) -> PlayerGameStats | None:
    """Most wins, then most games played."""
    if not stats:
        return None
    return max(stats, key=lambda item: (item.wins, item.played))


def top_winners(matches: Iterable[Match], players: Sequence[Player]) -> tuple[RankedWinner, ...]:
    """Win counts with competition ranking (1, 1, 3, ...)."""
    players_by_id = {player.id: player for player in players}
    wins: Counter[str] = Counter(
        result.player_id for match in matches for result in match.results if result.is_winner
    )

    ranked: list[RankedWinner] = []
    rank = 1
    previous_wins: int | None = None
    for index, (player_id, count) in enumerate(wins.most_common()):
        if previous_wins is not None and count < previous_wins:
            rank = index + 1
        previous_wins = count
        ranked.append(
            RankedWinner(player=players_by_id.get(player_id), player_id=player_id, wins=count, rank=rank)
        )
    return tuple(ranked)


def _is_better(value: float, best: float, lowest_wins: bool) -> bool:
    return value < best if lowest_wins else value > best


def game_breakdown(
    games: Sequence[Game],
    matches: Iterable[Match],
    players: Sequence[Player],
) -> tuple[GameBreakdown, ...]:
    """Per-game champions and score records, most played first.

    Matches whose game no longer exists are left out.
    """
    games_by_id = {game.id: game for game in games}
    players_by_id = {player.id: player for player in players}
    counts: Counter[int] = Counter()
    wins: dict[int, Counter[str]] = defaultdict(Counter)
    played: dict[int, Counter[str]] = defaultdict(Counter)
    best_scores: dict[int, float] = {}
    best_holders: dict[int, set[str]] = defaultdict(set)

    for match in matches:
        game = games_by_id.get(match.game_id)
        if game is None:
            continue
        lowest_wins = game.winning_condition == WinningCondition.LOWEST
        counts[game.id] += 1
        for result in match.results:
            played[game.id][result.player_id] += 1
            if result.is_winner:
                wins[game.id][result.player_id] += 1
            _record_score(game.id, result, lowest_wins, best_scores, best_holders)

    breakdown: list[GameBreakdown] = []
    for game_id, count in counts.items():
        game_wins = wins[game_id]
        max_wins = max(game_wins.values(), default=0)
        champion_ids = [player_id for player_id, value in game_wins.items() if value == max_wins]
        if len(champion_ids) > 1:
            rates = {player_id: game_wins[player_id] / played[game_id][player_id] for player_id in champion_ids}
            best_rate = max(rates.values())
            champion_ids = [
                player_id for player_id, rate in rates.items() if abs(rate - best_rate) < _RATE_TOLERANCE
            ]

        breakdown.append(
            GameBreakdown(
                game=games_by_id[game_id],
                count=count,
                champions=_known_players_by_name(champion_ids, players_by_id),
                max_wins=max_wins,
                top_score=best_scores.get(game_id),
                top_score_holders=_known_players_by_name(best_holders[game_id], players_by_id),
            )
        )

    breakdown.sort(key=lambda item: item.count, reverse=True)
    return tuple(breakdown)


def _record_score(
    game_id: int,
    result: MatchResult,
    lowest_wins: bool,
    best_scores: dict[int, float],
    best_holders: dict[int, set[str]],
) -> None:
    value = parse_score(result.score)
    current = best_scores.get(game_id)
    if current is None or _is_better(value, current, lowest_wins):
        best_scores[game_id] = value
        best_holders[game_id] = {result.player_id}
    elif value == current:
        best_holders[game_id].add(result.player_id)


def _known_players_by_name(player_ids: Iterable[str], players_by_id: dict[str, Player]) -> tuple[Player, ...]:
    known = [players_by_id[player_id] for player_id in player_ids if player_id in players_by_id]
    return tuple(sorted(known, key=lambda player: player.name))


def ownership_counts(games: Iterable[Game]) -> dict[str, int]:
    counts = {"owned": 0, "wishlist": 0, "none": 0}
    for game in games:
        if game.ownership_status == OwnershipStatus.OWNED:
            counts["owned"] += 1
        elif game.ownership_status == OwnershipStatus.WISHLIST:
            counts["wishlist"] += 1
        else:
            counts["none"] += 1
    return counts


def library_summary(
    games: Sequence[Game],
    matches: Iterable[Match],
    players: Sequence[Player],
    period: Period | None = None,
) -> LibrarySummary:
    """Headline numbers for the statistics overview."""
    selected = filter_period(matches, period or Period())

    known_game_ids = {game.id for game in games}
    unique_games = {match.game_id for match in selected if match.game_id in known_game_ids}
    unique_extensions = {
        extension_id for match in selected for extension_id in (match.extension_ids or ())
    }
    total_extensions = sum(len(game.extensions) for game in games)

    return LibrarySummary(
        total_matches=len(selected),
        total_play_seconds=sum(parse_duration_seconds(match.duration) for match in selected),
        unique_games_played=len(unique_games),
        library_utilization=_percentage(len(unique_games), len(games)),
        unique_extensions_played=len(unique_extensions),
        extension_utilization=_percentage(len(unique_extensions), total_extensions),
        ownership=ownership_counts(games),
        top_winners=top_winners(selected, players),
        game_breakdown=game_breakdown(games, selected, players),
    )


__all__ = [
    "GameBreakdown",
    "LibrarySummary",
    "Period",
    "PeriodKind",
    "PlayerGameStats",
    "RankedWinner",
    "RankingSort",
    "filter_period",
    "game_breakdown",
    "game_champion",
    "library_summary",
    "match_played_on",
    "ownership_counts",
    "parse_score",
    "player_game_stats",
    "top_winners",
]
