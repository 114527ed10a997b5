"""
Immutable value records the grading services operate on.

ORM rows are converted once, at the storage boundary, so planning and scoring
never touch a session or a mutable row.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Dict, Optional, Tuple, Union

from gradebook.models.orm import AssignmentQuestion, AssignmentAttempt, AttemptAnswer


class QuestionType(IntEnum):
    """Question types as stored by the authoring backend."""
    MULTIPLE_CHOICE = 0
    TRUE_FALSE = 1
    SHORT_ANSWER = 2
    SECTION_HEADING = 3

    @property
    def gradable(self) -> bool:
        return self is not QuestionType.SECTION_HEADING

    @classmethod
    def parse(cls, key: Union[int, str, "QuestionType"]) -> "QuestionType":
        """Accept 0/"0", enum names ("TRUE_FALSE") and the client's labels ("TrueFalse", "tf")."""
        if isinstance(key, QuestionType):
            return key
        if isinstance(key, bool):
            raise ValueError(f"unknown question type: {key!r}")
        if isinstance(key, int):
            return cls(key)
        text = str(key).strip()
        if text.lstrip("-").isdigit():
            return cls(int(text))
        folded = text.replace("_", "").replace("-", "").replace(" ", "").lower()
        try:
            return _TYPE_ALIASES[folded]
        except KeyError:
            raise ValueError(f"unknown question type: {key!r}") from None


_TYPE_ALIASES = {
    "multiplechoice": QuestionType.MULTIPLE_CHOICE, "mc": QuestionType.MULTIPLE_CHOICE,
    "truefalse": QuestionType.TRUE_FALSE, "tf": QuestionType.TRUE_FALSE,
    "shortanswer": QuestionType.SHORT_ANSWER, "sa": QuestionType.SHORT_ANSWER,
    "sectionheading": QuestionType.SECTION_HEADING, "grouptitle": QuestionType.SECTION_HEADING,
}


class AttemptStatus(str, Enum):
    """Attempt lifecycle: not_started -> in_progress -> completed -> graded."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    GRADED = "graded"


@dataclass(frozen=True)
class OptionRecord:
    id: int
    text: str
    is_correct: bool
    order: int = 0


@dataclass(frozen=True)
class QuestionRecord:
    id: int
    type: QuestionType
    points: float
    options: Tuple[OptionRecord, ...] = ()
    difficulty: int = 1
    order: int = 0

    def option(self, option_id: Optional[int]) -> Optional[OptionRecord]:
        return next((o for o in self.options if o.id == option_id), None)

    def with_points(self, points: float) -> "QuestionRecord":
        return QuestionRecord(self.id, self.type, points, self.options, self.difficulty, self.order)

    @classmethod
    def from_orm(cls, row: AssignmentQuestion) -> "QuestionRecord":
        options = sorted(row.options, key=lambda o: (o.order_index, o.id))
        return cls(
            id=row.id,
            type=QuestionType(row.question_type),
            points=float(row.points or 0.0),
            options=tuple(OptionRecord(o.id, o.option_text, bool(o.is_correct), o.order_index) for o in options),
            difficulty=row.difficulty,
            order=row.order_index,
        )


@dataclass(frozen=True)
class AnswerRecord:
    id: Optional[int]
    question_id: int
    option_id: Optional[int] = None
    text: Optional[str] = None

    @classmethod
    def from_orm(cls, row: AttemptAnswer) -> "AnswerRecord":
        return cls(id=row.id, question_id=row.question_id, option_id=row.option_id, text=row.answer_text)


@dataclass(frozen=True)
class AttemptRecord:
    id: int
    user_id: str
    assignment_id: int
    attempt_number: int = 1
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    score: Optional[float] = None
    max_score: float = 10.0
    is_completed: bool = False
    is_graded: bool = False

    @classmethod
    def from_orm(cls, row: AssignmentAttempt) -> "AttemptRecord":
        return cls(
            id=row.id,
            user_id=row.user_id,
            assignment_id=row.assignment_id,
            attempt_number=row.attempt_number,
            started_at=row.started_at,
            completed_at=row.completed_at,
            score=row.score,
            max_score=float(row.max_score),
            is_completed=bool(row.is_completed),
            is_graded=bool(row.is_graded),
        )


@dataclass(frozen=True)
class AnswerGrade:
    """Credit for one stored answer row."""
    points_earned: float
    is_correct: bool


@dataclass(frozen=True)
class AttemptGrade:
    attempt_id: int
    per_question: Dict[int, float]
    total: float
    max_score: float
    answers: Dict[int, AnswerGrade] = field(default_factory=dict)
    anomalies: Tuple[int, ...] = ()  # question ids with malformed payloads

    @property
    def percentage(self) -> float:
        return (self.total / self.max_score * 100.0) if self.max_score > 0 else 0.0
