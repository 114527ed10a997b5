"""
Request/response models for the HTTP layer.

The authoring backend and older clients send PascalCase (QuestionId,
AnswerText) or camelCase keys. WireModel rewrites incoming keys to snake_case
once, here; everything past this module sees one spelling.
"""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from gradebook.models.records import AnswerRecord, AttemptGrade

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake(key: str) -> str:
    return _CAMEL.sub("_", key).lower() if isinstance(key, str) else key


class WireModel(BaseModel):
    @model_validator(mode="before")
    @classmethod
    def normalize_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {to_snake(k): v for k, v in data.items()}
        return data


class RedistributeIn(WireModel):
    points_by_type: Optional[Dict[str, float]] = None
    per_question_points: Optional[Dict[int, float]] = None
    expected_version: Optional[int] = None


class RedistributeOut(BaseModel):
    success: bool
    status: str
    errors: List[str] = []
    points_version: int
    weights: Dict[str, float] = {}
    regraded_attempts: List[int] = []
    flagged_attempts: List[int] = []
    run_id: Optional[str] = None


class AnswerIn(WireModel):
    question_id: int
    option_id: Optional[int] = None
    answer_text: Optional[str] = None

    def to_record(self) -> AnswerRecord:
        return AnswerRecord(id=None, question_id=self.question_id, option_id=self.option_id, text=self.answer_text)


class AnswersIn(WireModel):
    answers: List[AnswerIn] = Field(default_factory=list)

    def to_records(self) -> List[AnswerRecord]:
        return [a.to_record() for a in self.answers]


class GradeOut(BaseModel):
    attempt_id: int
    score: float
    max_score: float
    percentage: float
    per_question_breakdown: Dict[int, float]
    flagged_questions: List[int] = []

    @classmethod
    def from_grade(cls, grade: AttemptGrade) -> "GradeOut":
        return cls(
            attempt_id=grade.attempt_id,
            score=round(grade.total, 4),
            max_score=grade.max_score,
            percentage=round(grade.percentage, 2),
            per_question_breakdown=grade.per_question,
            flagged_questions=list(grade.anomalies),
        )


class AttemptOut(BaseModel):
    id: int
    assignment_id: int
    user_id: str
    attempt_number: int
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    score: Optional[float] = None
    max_score: float
    is_completed: bool
    is_graded: bool

    model_config = {"from_attributes": True}


class OptionOut(BaseModel):
    id: int
    text: str
    is_correct: bool


class QuestionOut(BaseModel):
    id: int
    type: int
    type_name: str
    points: float
    difficulty: int
    options: List[OptionOut]


class QuestionsOut(BaseModel):
    assignment_id: int
    max_score: float
    points_version: int
    total_points: float
    questions: List[QuestionOut]


class ResultsOut(BaseModel):
    assignment_id: int
    max_score: float
    passing_score: float
    total_attempts: int
    graded_attempts: int
    average_score: Optional[float] = None
    median_score: Optional[float] = None
    best_score: Optional[float] = None
    lowest_score: Optional[float] = None
    pass_rate: float
    completion_rate: float
    attempts_per_user: float
    unique_users: int


class RunOut(BaseModel):
    id: str
    assignment_id: int
    status: str
    params: dict
    result: Optional[dict] = None
    error: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
