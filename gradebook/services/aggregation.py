"""
Cross-attempt statistics: best/average scores, completion, score distribution,
pass rate and per-question performance.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from gradebook.models.records import AttemptRecord, QuestionRecord

# (label, lower bound inclusive) over percentage of max score
BUCKETS = (("Excellent", 90.0), ("Good", 70.0), ("Average", 50.0), ("Poor", 0.0))


@dataclass(frozen=True)
class AttemptStats:
    total_attempts: int = 0
    graded_attempts: int = 0
    best: Optional[float] = None
    best_attempt_id: Optional[int] = None
    average: Optional[float] = None
    median: Optional[float] = None
    lowest: Optional[float] = None
    completion_rate: float = 0.0
    attempts_per_user: float = 0.0


@dataclass(frozen=True)
class QuestionPerformance:
    question_id: int
    total_attempts: int  # graded attempts that answered the question
    correct_answers: int
    correct_rate: float
    average_points_earned: float
    max_points: float


@dataclass(frozen=True)
class Distribution:
    counts: Dict[str, int] = field(default_factory=lambda: {label: 0 for label, _ in BUCKETS})

    def as_dict(self) -> Dict[str, int]:
        return dict(self.counts)


def graded(attempts: Sequence[AttemptRecord]) -> List[AttemptRecord]:
    return [a for a in attempts if a.is_graded and a.score is not None]


def group_by_user(attempts: Sequence[AttemptRecord]) -> Dict[str, List[AttemptRecord]]:
    groups: Dict[str, List[AttemptRecord]] = {}
    for a in attempts:
        groups.setdefault(a.user_id, []).append(a)
    for items in groups.values():
        items.sort(key=lambda a: (a.attempt_number, a.id))
    return groups


def _completed_key(a: AttemptRecord):
    # attempts without a completion time lose ties
    return (a.completed_at is None, a.completed_at or datetime.max, a.id)


def best(attempts: Sequence[AttemptRecord]) -> Optional[AttemptRecord]:
    """Highest graded score; ties go to the earliest completed attempt."""
    scored = graded(attempts)
    if not scored:
        return None
    top = max(a.score for a in scored)
    return min((a for a in scored if a.score == top), key=_completed_key)


def average(attempts: Sequence[AttemptRecord]) -> Optional[float]:
    scores = [a.score for a in graded(attempts)]
    return float(np.mean(scores)) if scores else None


def completion_rate(attempts: Sequence[AttemptRecord]) -> float:
    if not attempts:
        return 0.0
    return sum(1 for a in attempts if a.is_completed) / len(attempts)


def stats(attempts: Sequence[AttemptRecord]) -> AttemptStats:
    scored = graded(attempts)
    if not attempts:
        return AttemptStats()
    scores = np.array([a.score for a in scored], dtype=float)
    top = best(attempts)
    return AttemptStats(
        total_attempts=len(attempts),
        graded_attempts=len(scored),
        best=top.score if top else None,
        best_attempt_id=top.id if top else None,
        average=float(scores.mean()) if scores.size else None,
        median=float(np.median(scores)) if scores.size else None,
        lowest=float(scores.min()) if scores.size else None,
        completion_rate=completion_rate(attempts),
        attempts_per_user=len(attempts) / len(group_by_user(attempts)),
    )


def bucket(percentage: float) -> str:
    for label, lower in BUCKETS:
        if percentage >= lower:
            return label
    return "Poor"


def distribution(attempts: Sequence[AttemptRecord], max_score: Optional[float] = None) -> Distribution:
    """Bucket graded attempts by percentage of max: Poor <50, Average <70, Good <90, Excellent."""
    dist = Distribution()
    for a in graded(attempts):
        denominator = max_score if max_score is not None else a.max_score
        pct = (a.score * 100.0 / denominator) if denominator else 0.0
        dist.counts[bucket(min(pct, 100.0))] += 1
    return dist


def pass_rate(attempts: Sequence[AttemptRecord], passing_score: float) -> float:
    scored = graded(attempts)
    if not scored:
        return 0.0
    return sum(1 for a in scored if a.score >= passing_score) / len(scored)


def best_per_user(attempts: Sequence[AttemptRecord]) -> List[AttemptRecord]:
    """Leaderboard: each user's best graded attempt, highest first."""
    tops = [b for b in (best(items) for items in group_by_user(attempts).values()) if b is not None]
    return sorted(tops, key=lambda a: (-a.score, _completed_key(a)))


def question_performance(
    questions: Sequence[QuestionRecord],
    per_question_scores: Sequence[Mapping[int, float]],
    tolerance: float = 1e-9,
) -> List[QuestionPerformance]:
    """Per-question correct rate and mean credit over graded attempts.

    Each mapping holds one graded attempt's credit for the questions it
    answered; an attempt counts towards a question only when it answered it.
    A question counts as answered correctly when it earned its full weight.
    """
    rows = []
    for q in questions:
        if not q.type.gradable:
            continue
        earned = np.array([s[q.id] for s in per_question_scores if q.id in s], dtype=float)
        n = int(earned.size)
        correct = int(np.sum(earned >= q.points - tolerance)) if q.points > 0 and n else 0
        rows.append(QuestionPerformance(
            question_id=q.id,
            total_attempts=n,
            correct_answers=correct,
            correct_rate=(correct / n) if n else 0.0,
            average_points_earned=float(earned.mean()) if n else 0.0,
            max_points=q.points,
        ))
    return rows
