"""
Grading workflow: point redistribution with assignment-wide re-grade, single
attempt grading and results.

Redistribution is all-or-nothing per assignment. The new weights, the bumped
points version and every re-scored attempt are committed in one transaction;
anything short of that is rolled back. Concurrent redistributions are refused
with ConflictError by the Redis lock, by a pending regrade run, or by the
conditional points_version update, whichever trips first.
"""
import logging
import math
import uuid
from datetime import timedelta
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from gradebook.core.cache import assignment_lock
from gradebook.core.config import settings
from gradebook.core.errors import ConflictError, GradingError, NotFoundError, ValidationError
from gradebook.models.orm import Assignment, AssignmentAttempt, AttemptAnswer, RegradeRun
from gradebook.models.records import (
    AnswerGrade, AnswerRecord, AttemptGrade, AttemptRecord, AttemptStatus, QuestionRecord,
)
from gradebook.services import aggregation
from gradebook.services.allocation import plan, plan_direct
from gradebook.services.attempts import AttemptService, utcnow
from gradebook.services.question_bank import QuestionBank
from gradebook.services.scoring import grade_attempt

logger = logging.getLogger(__name__)

REGRADABLE = (AttemptStatus.COMPLETED.value, AttemptStatus.GRADED.value)
PENDING_RUN = ("queued", "running")


@dataclass
class RedistributionResult:
    success: bool
    status: str  # "completed" or "in_progress"
    points_version: int
    weights: Dict[int, float] = field(default_factory=dict)
    regraded_attempts: List[int] = field(default_factory=list)
    flagged_attempts: List[int] = field(default_factory=list)
    run_id: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["weights"] = {str(k): v for k, v in self.weights.items()}
        return data


@dataclass
class AssignmentResults:
    assignment_id: int
    max_score: float
    passing_score: float
    total_attempts: int
    graded_attempts: int
    average_score: Optional[float]
    median_score: Optional[float]
    best_score: Optional[float]
    lowest_score: Optional[float]
    pass_rate: float
    completion_rate: float
    attempts_per_user: float
    unique_users: int


class GradingWorkflow:
    def __init__(self, db: Session, redis=None, queue=None, sync_limit: Optional[int] = None):
        self.db = db
        self.redis = redis
        self.queue = queue
        self.sync_limit = settings.SYNC_REGRADE_LIMIT if sync_limit is None else sync_limit
        self.bank = QuestionBank(db)
        self.attempts = AttemptService(db)

    # ---------- redistribution ----------

    def redistribute(
        self,
        assignment_id: int,
        budget_by_type: Optional[Mapping[Any, Any]] = None,
        per_question_points: Optional[Mapping[Any, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> RedistributionResult:
        if (budget_by_type is None) == (per_question_points is None):
            raise ValidationError("Give either a budget by question type or per-question points")

        with assignment_lock(self.redis, assignment_id):
            assignment = self.bank.get_assignment(assignment_id)
            pending = self._pending_run(assignment_id)
            if pending:
                raise ConflictError(f"Regrade run {pending} for assignment {assignment_id} has not finished yet")
            version = self._current_version(assignment_id)
            if expected_version is not None and expected_version != version:
                raise ConflictError(
                    f"Assignment {assignment_id} points changed (version {version}, expected {expected_version})")

            questions = self.bank.list(assignment_id)
            if budget_by_type is not None:
                weights = plan(questions, budget_by_type, assignment.max_score, settings.POINTS_EPSILON)
            else:
                weights = plan_direct(questions, per_question_points, assignment.max_score, settings.POINTS_EPSILON)

            affected = self._regradable(assignment_id)
            if self.queue is not None and len(affected) > self.sync_limit:
                return self._enqueue(assignment_id, weights, version, len(affected))
            return self._apply(assignment_id, weights, version, affected)

    def _current_version(self, assignment_id: int) -> int:
        return self.db.scalar(select(Assignment.points_version).where(Assignment.id == assignment_id))

    def _pending_run(self, assignment_id: int) -> Optional[str]:
        """Id of an unfinished regrade run; runs idle past the job timeout are failed first."""
        cutoff = utcnow() - timedelta(seconds=settings.REGRADE_JOB_TIMEOUT)
        last_seen = func.coalesce(RegradeRun.started_at, RegradeRun.created_at)
        abandoned = self.db.execute(
            update(RegradeRun)
            .where(RegradeRun.assignment_id == assignment_id, RegradeRun.status.in_(PENDING_RUN), last_seen < cutoff)
            .values(status="failed", error="abandoned: no progress within the job timeout", finished_at=utcnow())
            .execution_options(synchronize_session=False)
        ).rowcount
        if abandoned:
            self.db.commit()
            logger.warning("Failed %d abandoned regrade run(s) of assignment %s", abandoned, assignment_id)
        return self.db.scalar(select(RegradeRun.id).where(
            RegradeRun.assignment_id == assignment_id, RegradeRun.status.in_(PENDING_RUN)).limit(1))

    def _regradable(self, assignment_id: int) -> List[AssignmentAttempt]:
        stmt = (
            select(AssignmentAttempt)
            .options(selectinload(AssignmentAttempt.answers))
            .where(AssignmentAttempt.assignment_id == assignment_id, AssignmentAttempt.status.in_(REGRADABLE))
            .order_by(AssignmentAttempt.id)
        )
        return list(self.db.scalars(stmt).all())

    def _enqueue(self, assignment_id: int, weights: Dict[int, float], version: int, affected: int) -> RedistributionResult:
        run = RegradeRun(
            id=str(uuid.uuid4()), assignment_id=assignment_id, status="queued", created_at=utcnow(),
            params={"weights": {str(k): v for k, v in weights.items()}, "version": version, "attempts": affected},
        )
        self.db.add(run); self.db.commit()
        try:
            self.queue.enqueue("gradebook.jobs.regrade_job.regrade_job", run.id, job_timeout=settings.REGRADE_JOB_TIMEOUT)
        except Exception as e:
            run.status = "failed"; run.error = f"enqueue failed: {e}"; run.finished_at = utcnow()
            self.db.commit()
            logger.exception("Could not enqueue regrade run %s for assignment %s", run.id, assignment_id)
            raise
        logger.info("Queued regrade run %s for assignment %s (%d attempts)", run.id, assignment_id, affected)
        return RedistributionResult(success=True, status="in_progress", points_version=version, weights=weights, run_id=run.id)

    def _apply(self, assignment_id: int, weights: Dict[int, float], version: int,
               attempts: Optional[Sequence[AssignmentAttempt]] = None) -> RedistributionResult:
        try:
            bumped = self.db.execute(
                update(Assignment)
                .where(Assignment.id == assignment_id, Assignment.points_version == version)
                .values(points_version=version + 1)
            ).rowcount
            if bumped != 1:
                raise ConflictError(f"Assignment {assignment_id} points were changed by another redistribution")

            questions = []
            for row in self.bank.rows(assignment_id):
                if row.id not in weights:
                    raise ConflictError(f"Question {row.id} was added after the points were planned")
                row.points = weights[row.id]
                questions.append(QuestionRecord.from_orm(row))

            regraded, flagged = [], []
            for attempt in (self._regradable(assignment_id) if attempts is None else attempts):
                grade = self._store_grade(attempt, questions)
                regraded.append(attempt.id)
                if grade.anomalies:
                    flagged.append(attempt.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Redistributed points of assignment %s (version %d): %d attempts regraded, %d flagged",
                    assignment_id, version + 1, len(regraded), len(flagged))
        return RedistributionResult(success=True, status="completed", points_version=version + 1, weights=weights,
                                    regraded_attempts=regraded, flagged_attempts=flagged)

    def run_queued(self, run_id: str) -> RedistributionResult:
        """Apply a queued redistribution; called from the rq worker."""
        run = self.db.get(RegradeRun, run_id)
        if not run:
            raise NotFoundError(f"Regrade run {run_id} not found")
        if run.status != "queued":
            raise ConflictError(f"Regrade run {run_id} is already {run.status}")
        run.status = "running"; run.started_at = utcnow()
        self.db.commit()

        weights = {int(k): float(v) for k, v in run.params["weights"].items()}
        try:
            result = self._apply(run.assignment_id, weights, int(run.params["version"]))
        except Exception as e:
            run = self.db.get(RegradeRun, run_id)
            run.status = "failed"; run.error = str(e); run.finished_at = utcnow()
            self.db.commit()
            logger.exception("Regrade run %s failed", run_id)
            raise
        result.run_id = run_id
        run = self.db.get(RegradeRun, run_id)
        run.status = "done"; run.result = result.as_dict(); run.finished_at = utcnow()
        self.db.commit()
        return result

    def get_run(self, run_id: str) -> RegradeRun:
        run = self.db.get(RegradeRun, run_id)
        if not run:
            raise NotFoundError(f"Regrade run {run_id} not found")
        return run

    # ---------- grading ----------

    def _store_grade(self, attempt: AssignmentAttempt, questions: Sequence[QuestionRecord]) -> AttemptGrade:
        grade = grade_attempt(
            AttemptRecord.from_orm(attempt), [AnswerRecord.from_orm(a) for a in attempt.answers], questions)
        if grade.anomalies:
            logger.warning("%s", GradingError(attempt.id, grade.anomalies))
        for row in attempt.answers:
            credit = grade.answers.get(row.id, AnswerGrade(0.0, False))
            row.points_earned = credit.points_earned
            row.is_correct = credit.is_correct
        attempt.score = grade.total
        attempt.is_graded = True
        attempt.status = AttemptStatus.GRADED.value
        return grade

    def grade_attempt(self, attempt_id: int) -> AttemptGrade:
        attempt = self.attempts.get(attempt_id)
        if attempt.status not in REGRADABLE:
            raise ValidationError(f"Attempt {attempt_id} is {attempt.status}; only submitted attempts can be graded")
        assignment_id = attempt.assignment_id
        # weights read and score written under one points version; one retry if a redistribution lands in between
        for _ in range(2):
            version = self._current_version(assignment_id)
            questions = self.bank.list(assignment_id)
            try:
                held = self.db.execute(
                    update(Assignment)
                    .where(Assignment.id == assignment_id, Assignment.points_version == version)
                    .values(points_version=version)
                ).rowcount == 1
                if held:
                    grade = self._store_grade(attempt, questions)
                    self.db.commit()
                    logger.info("Graded attempt %s: %.2f/%.2f", attempt_id, grade.total, grade.max_score)
                    return grade
                self.db.rollback()
            except Exception:
                self.db.rollback()
                raise
            logger.info("Points of assignment %s changed while grading attempt %s; grading again", assignment_id, attempt_id)
        raise ConflictError(f"Points of assignment {assignment_id} keep changing; attempt {attempt_id} was not graded")

    def submit_attempt(self, attempt_id: int, answers: Sequence[AnswerRecord] = ()) -> AttemptGrade:
        if answers:
            self.attempts.record_answers(attempt_id, answers)
        self.attempts.submit(attempt_id)
        return self.grade_attempt(attempt_id)

    # ---------- results ----------

    def _attempt_records(self, assignment_id: int) -> List[AttemptRecord]:
        return [AttemptRecord.from_orm(a) for a in self.attempts.list_for_assignment(assignment_id)]

    def passing_score(self, assignment: Assignment) -> float:
        if assignment.passing_score is not None:
            return assignment.passing_score
        return assignment.max_score * settings.DEFAULT_PASSING_PERCENT / 100.0

    def get_results(self, assignment_id: int) -> AssignmentResults:
        assignment = self.bank.get_assignment(assignment_id)
        attempts = self._attempt_records(assignment_id)
        summary = aggregation.stats(attempts)
        passing = self.passing_score(assignment)
        return AssignmentResults(
            assignment_id=assignment_id,
            max_score=assignment.max_score,
            passing_score=passing,
            total_attempts=summary.total_attempts,
            graded_attempts=summary.graded_attempts,
            average_score=summary.average,
            median_score=summary.median,
            best_score=summary.best,
            lowest_score=summary.lowest,
            pass_rate=aggregation.pass_rate(attempts, passing),
            completion_rate=summary.completion_rate,
            attempts_per_user=summary.attempts_per_user,
            unique_users=len(aggregation.group_by_user(attempts)),
        )

    def _per_question_scores(self, assignment_id: int) -> List[Dict[int, float]]:
        rows = self.db.execute(
            select(AttemptAnswer.attempt_id, AttemptAnswer.question_id, AttemptAnswer.points_earned)
            .join(AssignmentAttempt, AssignmentAttempt.id == AttemptAnswer.attempt_id)
            .where(AssignmentAttempt.assignment_id == assignment_id, AssignmentAttempt.is_graded.is_(True))
        ).all()
        graded_ids = self.db.scalars(select(AssignmentAttempt.id).where(
            AssignmentAttempt.assignment_id == assignment_id, AssignmentAttempt.is_graded.is_(True))).all()
        scores: Dict[int, Dict[int, float]] = {aid: {} for aid in graded_ids}
        for attempt_id, question_id, earned in rows:
            per_q = scores[attempt_id]
            per_q[question_id] = math.fsum((per_q.get(question_id, 0.0), earned or 0.0))
        return list(scores.values())

    def get_analytics(self, assignment_id: int) -> Dict[str, Any]:
        results = self.get_results(assignment_id)
        attempts = self._attempt_records(assignment_id)
        graded = aggregation.graded(attempts)
        questions = self.bank.list(assignment_id)
        passed = sum(1 for a in graded if a.score >= results.passing_score)
        return {
            "results": asdict(results),
            "score_distribution": aggregation.distribution(attempts, results.max_score).as_dict(),
            "question_performance": [asdict(p) for p in aggregation.question_performance(
                questions, self._per_question_scores(assignment_id))],
            "attempt_stats": {
                "total_attempts": len(attempts),
                "completed_attempts": sum(1 for a in attempts if a.is_completed),
                "incomplete_attempts": sum(1 for a in attempts if not a.is_completed),
                "passed_attempts": passed,
                "failed_attempts": len(graded) - passed,
                "average_attempts_per_user": results.attempts_per_user,
            },
            "leaderboard": [
                {"user_id": a.user_id, "attempt_id": a.id, "score": a.score, "completed_at": a.completed_at}
                for a in aggregation.best_per_user(attempts)
            ],
        }
