"""Score sheet assembly: active columns, totals and winners for a new match."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace

from domain.common import Game, MatchResult, ScoreColumn
from domain.protocol import ColumnType, GameType, Modifier, ScoreType, WinningCondition
from domain.scoring.evaluator import evaluate_sheet
from domain.scoring.formula import FormulaError

DEFAULT_TEAM_ID = "1"


@dataclass(frozen=True)
class ScoredMatch:
    """Results for a match plus any per-entity formula failures."""

    results: tuple[MatchResult, ...]
    errors: dict[str, dict[str, FormulaError]] = field(default_factory=dict)


def standard_columns(row_count: int) -> tuple[ScoreColumn, ...]:
    """Plain numeric rows used by games without a custom sheet."""
    if row_count <= 0:
        raise ValueError("row_count must be greater than 0")
    return tuple(
        ScoreColumn(
            id=f"row_{index}",
            name="Score" if row_count == 1 else f"Rij {index + 1}",
            type=ColumnType.INPUT,
            modifier=Modifier.ADD,
        )
        for index in range(row_count)
    )


def active_columns(
    game: Game,
    extension_ids: Sequence[str] = (),
    *,
    standard_row_count: int = 1,
) -> tuple[ScoreColumn, ...]:
    """Columns in play for ``game`` with the selected extensions."""
    if game.score_type != ScoreType.CUSTOM:
        return standard_columns(standard_row_count)

    columns = list(game.custom_columns)
    for extension_id in extension_ids:
        extension = game.extension(extension_id)
        if extension is not None:
            columns.extend(extension.custom_columns)
    return tuple(columns)


def total_score(columns: Sequence[ScoreColumn], values: Mapping[str, float | None]) -> float:
    """Sum of input columns signed by their modifier."""
    total = 0.0
    for column in columns:
        if column.is_calculated:
            continue
        value = values.get(column.id)
        if value is not None:
            total += column.sign * float(value)
    return total


def _numeric_score(score: float | str) -> float | None:
    if isinstance(score, bool):
        return None
    if isinstance(score, (int, float)):
        return float(score)
    return None


def mark_winners(
    results: Sequence[MatchResult],
    winning_condition: WinningCondition | None = None,
) -> tuple[MatchResult, ...]:
    """Flag every result sharing the best score.

    Results are returned unchanged when any score is not numeric.
    """
    scores = [_numeric_score(result.score) for result in results]
    if not results or any(score is None for score in scores):
        return tuple(results)

    numeric = [score for score in scores if score is not None]
    if winning_condition == WinningCondition.LOWEST:
        best = min(numeric)
    else:
        best = max(numeric)
    return tuple(replace(result, is_winner=score == best) for result, score in zip(results, numeric))


def score_match(
    game: Game,
    participant_ids: Sequence[str],
    entries: Mapping[str, Mapping[str, float]],
    *,
    extension_ids: Sequence[str] = (),
    standard_row_count: int = 1,
    teams: Mapping[str, str] | None = None,
    starting_player_id: str | None = None,
) -> ScoredMatch:
    """Build match results from per-entity column entries.

    ``entries`` is keyed by player id, or by team id for team games, and
    maps column ids to entered values.
    """
    if not participant_ids:
        raise ValueError("a match needs at least one participant")

    columns = active_columns(game, extension_ids, standard_row_count=standard_row_count)
    is_team_game = game.type == GameType.TEAM
    team_lookup = teams or {}

    results: list[MatchResult] = []
    errors: dict[str, dict[str, FormulaError]] = {}
    for player_id in participant_ids:
        team_id = team_lookup.get(player_id, DEFAULT_TEAM_ID) if is_team_game else None
        entity_id = team_id if team_id is not None else player_id
        entity_inputs = entries.get(entity_id, {})

        if game.score_type == ScoreType.CUSTOM:
            evaluation = evaluate_sheet(columns, entity_inputs)
            if evaluation.errors:
                errors[entity_id] = dict(evaluation.errors)
            breakdown = {
                column_id: value
                for column_id, value in evaluation.values.items()
                if value is not None
            }
        else:
            breakdown = {column.id: float(entity_inputs.get(column.id) or 0.0) for column in columns}

        results.append(
            MatchResult(
                player_id=player_id,
                score=total_score(columns, breakdown),
                is_winner=False,
                is_starter=player_id == starting_player_id,
                team_id=team_id,
                score_breakdown=breakdown,
            )
        )

    return ScoredMatch(results=mark_winners(results, game.winning_condition), errors=errors)


__all__ = [
    "DEFAULT_TEAM_ID",
    "ScoredMatch",
    "active_columns",
    "mark_winners",
    "score_match",
    "standard_columns",
    "total_score",
]
