import pytest

from gradebook.core.errors import NotFoundError, ValidationError
from gradebook.models.orm import Assignment
from gradebook.models.records import AnswerRecord as A, AttemptStatus
from gradebook.services.attempts import AttemptService


def test_start_numbers_attempts_and_resumes_open_one(db, seeded):
    svc = AttemptService(db)
    first = svc.start(seeded.id, "alice")
    assert first.attempt_number == 1 and first.status == AttemptStatus.IN_PROGRESS.value
    assert svc.start(seeded.id, "alice").id == first.id
    svc.submit(first.id)
    second = svc.start(seeded.id, "alice")
    assert second.attempt_number == 2
    assert second.max_score == 10.0


def test_start_respects_max_attempts(db, seeded):
    db.get(Assignment, seeded.id).max_attempts = 1
    db.commit()
    svc = AttemptService(db)
    svc.submit(svc.start(seeded.id, "bob").id)
    with pytest.raises(ValidationError):
        svc.start(seeded.id, "bob")


def test_start_unknown_assignment(db):
    with pytest.raises(NotFoundError):
        AttemptService(db).start(404, "alice")


def test_multiple_choice_answer_is_replaced(db, seeded):
    svc = AttemptService(db)
    attempt = svc.start(seeded.id, "alice")
    q1 = seeded.mc[0]
    svc.record_answers(attempt.id, [A(None, q1, seeded.options["q1_wrong"])])
    attempt = svc.record_answers(attempt.id, [A(None, q1, seeded.options["q1_right"])])
    rows = [r for r in attempt.answers if r.question_id == q1]
    assert len(rows) == 1 and rows[0].option_id == seeded.options["q1_right"]


def test_true_false_keeps_one_answer_per_option(db, seeded):
    svc = AttemptService(db)
    attempt = svc.start(seeded.id, "alice")
    q4 = seeded.tf[0]
    o = seeded.options
    svc.record_answers(attempt.id, [A(None, q4, o["q4_a"], "true"), A(None, q4, o["q4_b"], "true")])
    attempt = svc.record_answers(attempt.id, [A(None, q4, o["q4_b"], "false")])
    judgements = {r.option_id: r.answer_text for r in attempt.answers if r.question_id == q4}
    assert judgements == {o["q4_a"]: "true", o["q4_b"]: "false"}


def test_short_answer_is_replaced(db, seeded):
    svc = AttemptService(db)
    attempt = svc.start(seeded.id, "alice")
    svc.record_answers(attempt.id, [A(None, seeded.sa, None, "Lyon")])
    attempt = svc.record_answers(attempt.id, [A(None, seeded.sa, None, "Paris")])
    assert [r.answer_text for r in attempt.answers] == ["Paris"]


@pytest.mark.parametrize("make", [
    lambda s: [A(None, s.mc[0], s.options["q1_right"]), A(None, s.mc[0], s.options["q1_wrong"])],
    lambda s: [A(None, s.mc[0], s.options["q2_right"])],
    lambda s: [A(None, s.tf[0], s.options["q4_a"], "true"), A(None, s.tf[0], s.options["q4_a"], "false")],
    lambda s: [A(None, s.sa, None, "Paris"), A(None, s.sa, None, "paris")],
    lambda s: [A(None, s.heading, None, "title")],
    lambda s: [A(None, 999, None, "x")],
])
def test_invalid_answers_are_rejected_without_writes(db, seeded, make):
    svc = AttemptService(db)
    attempt = svc.start(seeded.id, "alice")
    with pytest.raises(ValidationError):
        svc.record_answers(attempt.id, make(seeded))
    db.refresh(attempt)
    assert attempt.answers == []


def test_answers_frozen_after_submit(db, seeded):
    svc = AttemptService(db)
    attempt = svc.submit(svc.start(seeded.id, "alice").id)
    assert attempt.is_completed and attempt.completed_at is not None
    with pytest.raises(ValidationError):
        svc.record_answers(attempt.id, [A(None, seeded.sa, None, "Paris")])
    with pytest.raises(ValidationError):
        svc.submit(attempt.id)
