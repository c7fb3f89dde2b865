"""Evaluate a set of score columns for one player or team."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from domain.common import ScoreColumn
from domain.protocol import Modifier
from domain.scoring.formula import (
    CyclicFormulaError,
    FormulaError,
    UnknownColumnError,
)

RESULT_DECIMALS = 2


@dataclass(frozen=True)
class SheetEvaluation:
    """Lenient evaluation outcome.

    ``values`` holds every column; a calculated column that failed maps to
    ``None`` and its error is kept in ``errors``.
    """

    values: dict[str, float | None]
    errors: dict[str, FormulaError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def _index_columns(columns: Sequence[ScoreColumn]) -> dict[str, ScoreColumn]:
    by_id: dict[str, ScoreColumn] = {}
    for column in columns:
        # Later definitions win, matching how extension columns are appended.
        by_id[column.id] = column
    return by_id


def _dependencies(column: ScoreColumn, by_id: Mapping[str, ScoreColumn]) -> list[str]:
    if not column.is_calculated:
        return []
    try:
        references = column.expression.references()
    except FormulaError as exc:
        exc.column_id = column.id
        raise
    for reference in sorted(references):
        if reference not in by_id:
            raise UnknownColumnError(reference, column_id=column.id)
    return sorted(references)


def evaluation_order(columns: Sequence[ScoreColumn]) -> list[str]:
    """Topological order of column ids; dependencies come first.

    Raises ``CyclicFormulaError`` for self-referencing chains and
    ``UnknownColumnError`` / ``FormulaSyntaxError`` for broken formulas
    before any arithmetic happens.
    """
    by_id = _index_columns(columns)
    order: list[str] = []
    done: set[str] = set()

    for root in by_id:
        if root in done:
            continue
        # Explicit stack so long reference chains never hit the recursion limit.
        in_progress = [root]
        stack = [iter(_dependencies(by_id[root], by_id))]
        while stack:
            dependency = next(stack[-1], None)
            if dependency is None:
                stack.pop()
                column_id = in_progress.pop()
                done.add(column_id)
                order.append(column_id)
                continue
            if dependency in done:
                continue
            if dependency in in_progress:
                start = in_progress.index(dependency)
                raise CyclicFormulaError(tuple(in_progress[start:]) + (dependency,))
            in_progress.append(dependency)
            stack.append(iter(_dependencies(by_id[dependency], by_id)))
    return order


def _input_value(inputs: Mapping[str, float], column_id: str) -> float:
    value = inputs.get(column_id)
    return 0.0 if value is None else float(value)


def _referenced_value(column: ScoreColumn, value: float) -> float:
    if not column.is_calculated and column.modifier == Modifier.SUBTRACT:
        return -value
    return value


def _calculate(
    column: ScoreColumn,
    by_id: Mapping[str, ScoreColumn],
    values: Mapping[str, float | None],
) -> float:
    def resolve(reference: str) -> float:
        value = values.get(reference)
        if value is None:
            raise FormulaError(
                f"referenced column '{reference}' has no value",
                column_id=column.id,
            )
        return _referenced_value(by_id[reference], value)

    try:
        result = column.expression.evaluate(resolve)
    except FormulaError as exc:
        if exc.column_id is None:
            exc.column_id = column.id
        raise
    return round(result, RESULT_DECIMALS)


def evaluate(columns: Sequence[ScoreColumn], inputs: Mapping[str, float]) -> dict[str, float]:
    """Values for every column; raises ``FormulaError`` on the first failure."""
    by_id = _index_columns(columns)
    values: dict[str, float | None] = {}
    for column_id in evaluation_order(columns):
        column = by_id[column_id]
        if column.is_calculated:
            values[column_id] = _calculate(column, by_id, values)
        else:
            values[column_id] = _input_value(inputs, column_id)
    return {column_id: float(value) for column_id, value in values.items() if value is not None}


def evaluate_sheet(columns: Sequence[ScoreColumn], inputs: Mapping[str, float]) -> SheetEvaluation:
    """Evaluate column by column, keeping failures per column.

    A column whose formula is broken, cyclic, or divides by zero gets
    ``None``; so does every column depending on it.
    """
    by_id = _index_columns(columns)
    values: dict[str, float | None] = {}
    errors: dict[str, FormulaError] = {}

    for column in by_id.values():
        if not column.is_calculated:
            values[column.id] = _input_value(inputs, column.id)

    try:
        order = evaluation_order(columns)
    except FormulaError:
        order = _partial_order(by_id, errors)

    for column_id in order:
        column = by_id[column_id]
        if not column.is_calculated or column_id in errors:
            continue
        try:
            values[column_id] = _calculate(column, by_id, values)
        except FormulaError as exc:
            errors[column_id] = exc

    for column_id in by_id:
        values.setdefault(column_id, None)
    return SheetEvaluation(values={column_id: values[column_id] for column_id in by_id}, errors=errors)


def _partial_order(by_id: Mapping[str, ScoreColumn], errors: dict[str, FormulaError]) -> list[str]:
    """Order the columns that can be ordered, recording structural errors."""
    order: list[str] = []
    ordered: set[str] = set()
    for column in by_id.values():
        try:
            chain = evaluation_order(_closure(column.id, by_id))
        except FormulaError as exc:
            errors[column.id] = exc
            continue
        for column_id in chain:
            if column_id not in ordered:
                ordered.add(column_id)
                order.append(column_id)
    return order


def _closure(column_id: str, by_id: Mapping[str, ScoreColumn]) -> list[ScoreColumn]:
    """The column and everything it transitively references that exists."""
    seen: dict[str, ScoreColumn] = {}
    pending = [column_id]
    while pending:
        current = pending.pop()
        if current in seen or current not in by_id:
            continue
        column = by_id[current]
        seen[current] = column
        if column.is_calculated:
            pending.extend(column.expression.references())
    return list(seen.values())


__all__ = [
    "RESULT_DECIMALS",
    "SheetEvaluation",
    "evaluate",
    "evaluate_sheet",
    "evaluation_order",
]
