"""
Point allocation planner.

Turns a type-level point budget (or direct per-question overrides) into
per-question weights whose total equals the assignment maximum. Every check
runs before any value is produced: callers either get a complete plan or a
ValidationError listing everything that was wrong.
"""
import math
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from gradebook.core.config import settings
from gradebook.core.errors import ValidationError
from gradebook.models.records import QuestionRecord, QuestionType
from gradebook.services.question_bank import counts_by_type

# absorbs float noise on top of the configured epsilon
_FLOAT_SLACK = 1e-9


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def check_total(total: float, max_score: float, epsilon: float) -> List[str]:
    if abs(total - max_score) > epsilon + _FLOAT_SLACK:
        return [f"total points {total:g} must equal assignment maximum {max_score:g} (+/- {epsilon:g})"]
    return []


def normalize_budget(budget_by_type: Mapping[Any, Any]) -> Dict[QuestionType, float]:
    """Parse budget keys into QuestionType and validate values; raises ValidationError."""
    errors: List[str] = []
    budget: Dict[QuestionType, float] = {}
    for key, value in budget_by_type.items():
        try:
            qtype = QuestionType.parse(key)
        except ValueError as e:
            errors.append(str(e))
            continue
        if not qtype.gradable:
            errors.append(f"{qtype.name} questions carry no points")
            continue
        if qtype in budget:
            errors.append(f"duplicate budget for {qtype.name}")
            continue
        if not _is_number(value) or value < 0:
            errors.append(f"budget for {qtype.name} must be a non-negative number, got {value!r}")
            continue
        budget[qtype] = float(value)
    if errors:
        raise ValidationError("invalid point budget", errors)
    return budget


def per_type_points(
    counts: Mapping[QuestionType, int],
    budget_by_type: Mapping[Any, Any],
    max_score: float | None = None,
    epsilon: float | None = None,
) -> Dict[QuestionType, float]:
    """Equal split of each type's budget over the questions of that type.

    Difficulty is not weighted: every question of a type gets
    budget / count, unrounded.
    """
    max_score = settings.ASSIGNMENT_MAX_SCORE if max_score is None else max_score
    epsilon = settings.POINTS_EPSILON if epsilon is None else epsilon
    budget = normalize_budget(budget_by_type)

    errors: List[str] = []
    for qtype in QuestionType:
        if not qtype.gradable:
            continue
        count = counts.get(qtype, 0)
        amount = budget.get(qtype, 0.0)
        if count == 0 and amount > 0:
            errors.append(f"unassignable budget: {amount:g} points for {qtype.name} but no questions of that type")
        elif count > 0 and amount <= 0:
            errors.append(f"unassignable budget: {count} {qtype.name} question(s) but no points budgeted")
    errors += check_total(total_points(budget.values()), max_score, epsilon)
    if errors:
        raise ValidationError("point budget rejected", errors)

    return {qtype: budget[qtype] / count for qtype, count in counts.items() if count > 0}


def plan(
    questions: Sequence[QuestionRecord],
    budget_by_type: Mapping[Any, Any],
    max_score: float | None = None,
    epsilon: float | None = None,
) -> Dict[int, float]:
    """Per-question weights for the gradable questions from a type-level budget."""
    gradable = [q for q in questions if q.type.gradable]
    shares = per_type_points(counts_by_type(gradable), budget_by_type, max_score, epsilon)
    return {q.id: shares[q.type] for q in gradable}


def plan_direct(
    questions: Sequence[QuestionRecord],
    per_question_points: Mapping[Any, Any],
    max_score: float | None = None,
    epsilon: float | None = None,
) -> Dict[int, float]:
    """Merge manual per-question overrides over the current weights.

    Overrides may name any subset of the gradable questions; the merged total
    must still equal the assignment maximum.
    """
    max_score = settings.ASSIGNMENT_MAX_SCORE if max_score is None else max_score
    epsilon = settings.POINTS_EPSILON if epsilon is None else epsilon
    gradable = {q.id: q for q in questions if q.type.gradable}

    errors: List[str] = []
    overrides: Dict[int, float] = {}
    for key, value in per_question_points.items():
        try:
            qid = int(key)
        except (TypeError, ValueError):
            errors.append(f"invalid question id {key!r}")
            continue
        if qid not in gradable:
            errors.append(f"question {qid} is not a gradable question of this assignment")
            continue
        if not _is_number(value) or value < 0:
            errors.append(f"points for question {qid} must be a non-negative number, got {value!r}")
            continue
        overrides[qid] = float(value)
    if not overrides and not errors:
        errors.append("no point overrides given")

    merged = {qid: overrides.get(qid, q.points) for qid, q in gradable.items()}
    errors += check_total(total_points(merged.values()), max_score, epsilon)
    if errors:
        raise ValidationError("point overrides rejected", errors)
    return merged


def total_points(weights: Iterable[float]) -> float:
    return math.fsum(weights)
