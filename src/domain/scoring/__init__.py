"""Score sheet columns, formulas and totals."""

from domain.scoring.evaluator import SheetEvaluation, evaluate, evaluate_sheet, evaluation_order
from domain.scoring.formula import (
    CyclicFormulaError,
    FormulaArithmeticError,
    FormulaError,
    FormulaSyntaxError,
    UnknownColumnError,
    parse_formula,
)
from domain.scoring.sheet import ScoredMatch, active_columns, mark_winners, score_match, total_score

__all__ = [
    "CyclicFormulaError",
    "FormulaArithmeticError",
    "FormulaError",
    "FormulaSyntaxError",
    "ScoredMatch",
    "SheetEvaluation",
    "UnknownColumnError",
    "active_columns",
    "evaluate",
    "evaluate_sheet",
    "evaluation_order",
    "mark_winners",
    "parse_formula",
    "score_match",
    "total_score",
]
