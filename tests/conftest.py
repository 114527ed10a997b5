"""
Shared fixtures: in-memory SQLite database, fakeredis, and a seeded
assignment with one question of every kind.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"

from dataclasses import dataclass, field
from typing import Dict, List

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gradebook.models.orm import Assignment, AssignmentQuestion, Base, QuestionOption
from gradebook.models.records import AnswerRecord, QuestionType
from gradebook.services.attempts import AttemptService


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool, future=True)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fake_redis():
    return fakeredis.FakeStrictRedis(decode_responses=True)


@dataclass
class SeededAssignment:
    id: int
    heading: int
    mc: List[int]
    tf: List[int]
    sa: int
    options: Dict[str, int] = field(default_factory=dict)

    @property
    def gradable(self) -> List[int]:
        return self.mc + self.tf + [self.sa]


def _question(db, assignment_id, qtype, order, points, options=()):
    q = AssignmentQuestion(assignment_id=assignment_id, question_type=int(qtype), difficulty=1,
                           content=f"Q{order}", points=points, order_index=order)
    db.add(q); db.flush()
    rows = []
    for i, (text, correct) in enumerate(options):
        o = QuestionOption(question_id=q.id, option_text=text, is_correct=correct, order_index=i)
        db.add(o); rows.append(o)
    db.flush()
    return q, rows


@pytest.fixture
def seeded(db) -> SeededAssignment:
    """Heading + 3 MultipleChoice + 2 TrueFalse + 1 ShortAnswer, evenly weighted."""
    a = Assignment(title="Geography quiz", max_score=10.0, max_attempts=5, points_version=0)
    db.add(a); db.flush()
    even = 10.0 / 6
    heading, _ = _question(db, a.id, QuestionType.SECTION_HEADING, 0, 0.0)
    opts: Dict[str, int] = {}
    mc = []
    for n in (1, 2, 3):
        q, rows = _question(db, a.id, QuestionType.MULTIPLE_CHOICE, n, even,
                            [("right", True), ("wrong", False), ("also wrong", False)])
        mc.append(q.id)
        opts[f"q{n}_right"], opts[f"q{n}_wrong"] = rows[0].id, rows[1].id
    q4, rows4 = _question(db, a.id, QuestionType.TRUE_FALSE, 4, even, [("Paris is in France", True), ("Lyon is the capital", False)])
    opts["q4_a"], opts["q4_b"] = rows4[0].id, rows4[1].id
    q5, rows5 = _question(db, a.id, QuestionType.TRUE_FALSE, 5, even, [("Seine flows through Paris", True), ("France uses the euro", True)])
    opts["q5_a"], opts["q5_b"] = rows5[0].id, rows5[1].id
    q6, _ = _question(db, a.id, QuestionType.SHORT_ANSWER, 6, even, [("Paris|paris ", True)])
    db.commit()
    return SeededAssignment(id=a.id, heading=heading.id, mc=mc, tf=[q4.id, q5.id], sa=q6.id, options=opts)


@pytest.fixture
def scripted_answers(seeded) -> List[AnswerRecord]:
    """Q1 right, Q2 wrong, Q3 right, Q4 both judgements right, Q5 one of two, Q6 accepted alternative."""
    o = seeded.options
    q1, q2, q3 = seeded.mc
    q4, q5 = seeded.tf
    return [
        AnswerRecord(None, q1, o["q1_right"]),
        AnswerRecord(None, q2, o["q2_wrong"]),
        AnswerRecord(None, q3, o["q3_right"]),
        AnswerRecord(None, q4, o["q4_a"], "true"),
        AnswerRecord(None, q4, o["q4_b"], "false"),
        AnswerRecord(None, q5, o["q5_a"], "true"),
        AnswerRecord(None, q5, o["q5_b"], "false"),
        AnswerRecord(None, seeded.sa, None, " paris"),
    ]


@pytest.fixture
def submit(db):
    """Start, answer and submit an attempt; returns the attempt row (completed, ungraded)."""
    def _submit(assignment_id: int, user_id: str, answers: List[AnswerRecord]):
        svc = AttemptService(db)
        attempt = svc.start(assignment_id, user_id)
        if answers:
            svc.record_answers(attempt.id, answers)
        return svc.submit(attempt.id)
    return _submit
