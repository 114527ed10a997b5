import logging
from datetime import datetime, timezone
from typing import Dict, List, Sequence, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from gradebook.core.errors import NotFoundError, ValidationError
from gradebook.models.orm import AssignmentAttempt, AttemptAnswer
from gradebook.models.records import AnswerRecord, AttemptStatus, QuestionRecord, QuestionType
from gradebook.services.question_bank import QuestionBank

logger = logging.getLogger(__name__)

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class AttemptService:
    """Attempt storage: start, record answers, submit."""

    def __init__(self, db: Session):
        self.db = db
        self.bank = QuestionBank(db)

    def get(self, attempt_id: int) -> AssignmentAttempt:
        attempt = self.db.get(AssignmentAttempt, attempt_id)
        if not attempt:
            raise NotFoundError(f"Attempt {attempt_id} not found")
        return attempt

    def list_for_assignment(self, assignment_id: int, user_id: str | None = None) -> List[AssignmentAttempt]:
        stmt = select(AssignmentAttempt).where(AssignmentAttempt.assignment_id == assignment_id)
        if user_id is not None:
            stmt = stmt.where(AssignmentAttempt.user_id == user_id)
        return list(self.db.scalars(stmt.order_by(AssignmentAttempt.id)).all())

    def start(self, assignment_id: int, user_id: str) -> AssignmentAttempt:
        assignment = self.bank.get_assignment(assignment_id)
        open_attempt = self.db.scalar(select(AssignmentAttempt).where(
            AssignmentAttempt.assignment_id == assignment_id,
            AssignmentAttempt.user_id == user_id,
            AssignmentAttempt.status == AttemptStatus.IN_PROGRESS.value,
        ))
        if open_attempt:
            return open_attempt
        used = self.db.scalar(select(func.count(AssignmentAttempt.id)).where(
            AssignmentAttempt.assignment_id == assignment_id, AssignmentAttempt.user_id == user_id)) or 0
        if used >= assignment.max_attempts:
            raise ValidationError(f"No attempts left ({used}/{assignment.max_attempts})")
        attempt = AssignmentAttempt(
            assignment_id=assignment_id, user_id=user_id, attempt_number=used + 1,
            status=AttemptStatus.IN_PROGRESS.value, started_at=utcnow(),
            max_score=assignment.max_score, is_completed=False, is_graded=False,
        )
        self.db.add(attempt); self.db.commit(); self.db.refresh(attempt)
        logger.info("Started attempt %s for user %s on assignment %s", attempt.id, user_id, assignment_id)
        return attempt

    def _check(self, questions: Dict[int, QuestionRecord], answers: Sequence[AnswerRecord]) -> None:
        errors = []
        seen: Dict[Tuple[int, int | None], int] = {}
        for a in answers:
            q = questions.get(a.question_id)
            if q is None:
                errors.append(f"question {a.question_id} is not a gradable question of this assignment")
                continue
            if q.type in (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE) and q.option(a.option_id) is None:
                errors.append(f"option {a.option_id} does not belong to question {q.id}")
                continue
            key = (q.id, a.option_id if q.type is QuestionType.TRUE_FALSE else None)
            seen[key] = seen.get(key, 0) + 1
            if seen[key] == 2:
                what = f"option {a.option_id}" if q.type is QuestionType.TRUE_FALSE else "it"
                errors.append(f"question {q.id} answered more than once for {what}")
        if errors:
            raise ValidationError("invalid answers", errors)

    def record_answers(self, attempt_id: int, answers: Sequence[AnswerRecord]) -> AssignmentAttempt:
        """Upsert answers: one per MC/SA question, one per TF option."""
        attempt = self.get(attempt_id)
        if attempt.status != AttemptStatus.IN_PROGRESS.value:
            raise ValidationError(f"Attempt {attempt_id} is {attempt.status}; answers can no longer change")
        questions = {q.id: q for q in self.bank.list(attempt.assignment_id)}
        self._check(questions, answers)

        existing = {}
        for row in attempt.answers:
            q = questions.get(row.question_id)
            key = (row.question_id, row.option_id if q and q.type is QuestionType.TRUE_FALSE else None)
            existing[key] = row
        for a in answers:
            q = questions[a.question_id]
            key = (q.id, a.option_id if q.type is QuestionType.TRUE_FALSE else None)
            row = existing.get(key)
            if row is None:
                row = AttemptAnswer(question_id=q.id)
                attempt.answers.append(row)
                existing[key] = row
            row.option_id = a.option_id if q.type is not QuestionType.SHORT_ANSWER else None
            row.answer_text = a.text
            row.points_earned = None
            row.is_correct = None
        self.db.commit(); self.db.refresh(attempt)
        return attempt

    def submit(self, attempt_id: int) -> AssignmentAttempt:
        attempt = self.get(attempt_id)
        if attempt.status != AttemptStatus.IN_PROGRESS.value:
            raise ValidationError(f"Attempt {attempt_id} is {attempt.status}, not in progress")
        attempt.status = AttemptStatus.COMPLETED.value
        attempt.is_completed = True
        attempt.completed_at = utcnow()
        self.db.commit(); self.db.refresh(attempt)
        logger.info("Attempt %s submitted", attempt_id)
        return attempt
