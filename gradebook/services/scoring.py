"""
Scoring engine.

Grades one attempt's answers against the current question weights:

- score_multiple_choice: full points for the single correct selection.
- score_true_false: per-option judgements, each worth points / option count.
- score_short_answer: trimmed, case-insensitive match against the
  "|"-separated alternatives of the correct option(s).
- grade_attempt: applies the per-type rules and totals the gradable questions.

Everything here is a pure function of (questions, answers); the same inputs
always give the same AttemptGrade.
"""
from collections import defaultdict
import math
from typing import Dict, List, Optional, Sequence, Set, Tuple

from gradebook.models.records import (
    AnswerGrade, AnswerRecord, AttemptGrade, AttemptRecord, QuestionRecord, QuestionType,
)

_TRUE = {"true", "t", "1", "yes", "y"}
_FALSE = {"false", "f", "0", "no", "n"}

# (per-question points, per-answer grades keyed by position in the input, malformed?)
QuestionScore = Tuple[float, List[Tuple[int, AnswerGrade]], bool]


def parse_judgement(text: Optional[str]) -> Optional[bool]:
    """Read a true/false judgement; None when it is missing or unrecognizable."""
    if text is None:
        return None
    folded = text.strip().casefold()
    if folded in _TRUE:
        return True
    if folded in _FALSE:
        return False
    return None


def accepted_alternatives(question: QuestionRecord) -> Set[str]:
    alternatives = set()
    for opt in question.options:
        if not opt.is_correct:
            continue
        for alt in (opt.text or "").split("|"):
            alt = alt.strip().casefold()
            if alt:
                alternatives.add(alt)
    return alternatives


def score_multiple_choice(question: QuestionRecord, answers: Sequence[Tuple[int, AnswerRecord]]) -> QuestionScore:
    if not answers:
        return 0.0, [], False
    if len(answers) > 1:
        return 0.0, [(i, AnswerGrade(0.0, False)) for i, _ in answers], True
    i, answer = answers[0]
    option = question.option(answer.option_id)
    if option is None:
        return 0.0, [(i, AnswerGrade(0.0, False))], True
    earned = question.points if option.is_correct else 0.0
    return earned, [(i, AnswerGrade(earned, option.is_correct))], False


def score_true_false(question: QuestionRecord, answers: Sequence[Tuple[int, AnswerRecord]]) -> QuestionScore:
    if not question.options:
        return 0.0, [(i, AnswerGrade(0.0, False)) for i, _ in answers], bool(answers)
    share = question.points / len(question.options)
    seen: Set[int] = set()
    grades: List[Tuple[int, AnswerGrade]] = []
    malformed = False
    earned = 0.0
    for i, answer in answers:
        option = question.option(answer.option_id)
        if option is None or option.id in seen:
            malformed = True
            grades.append((i, AnswerGrade(0.0, False)))
            continue
        seen.add(option.id)
        judgement = parse_judgement(answer.text)
        correct = judgement is not None and judgement == option.is_correct
        points = share if correct else 0.0
        earned += points
        grades.append((i, AnswerGrade(points, correct)))
    return min(earned, question.points), grades, malformed


def score_short_answer(question: QuestionRecord, answers: Sequence[Tuple[int, AnswerRecord]]) -> QuestionScore:
    if not answers:
        return 0.0, [], False
    if len(answers) > 1:
        return 0.0, [(i, AnswerGrade(0.0, False)) for i, _ in answers], True
    i, answer = answers[0]
    submitted = (answer.text or "").strip().casefold()
    correct = bool(submitted) and submitted in accepted_alternatives(question)
    earned = question.points if correct else 0.0
    return earned, [(i, AnswerGrade(earned, correct))], False


SCORERS = {
    QuestionType.MULTIPLE_CHOICE: score_multiple_choice,
    QuestionType.TRUE_FALSE: score_true_false,
    QuestionType.SHORT_ANSWER: score_short_answer,
}


def grade_answers(answers: Sequence[AnswerRecord], questions: Sequence[QuestionRecord], attempt_id: int = 0,
                  max_score: Optional[float] = None) -> AttemptGrade:
    gradable = [q for q in questions if q.type.gradable]
    by_question: Dict[int, List[Tuple[int, AnswerRecord]]] = defaultdict(list)
    for i, answer in enumerate(answers):
        by_question[answer.question_id].append((i, answer))

    per_question: Dict[int, float] = {}
    per_answer: Dict[int, AnswerGrade] = {}
    anomalies: List[int] = []

    def keep(graded: List[Tuple[int, AnswerGrade]]) -> None:
        for i, grade in graded:
            if answers[i].id is not None:
                per_answer[answers[i].id] = grade

    for q in gradable:
        earned, graded, malformed = SCORERS[q.type](q, by_question.get(q.id, []))
        per_question[q.id] = earned
        keep(graded)
        if malformed:
            anomalies.append(q.id)

    headings = {q.id for q in questions if not q.type.gradable}
    for qid, stray in by_question.items():
        if qid in per_question:
            continue
        keep([(i, AnswerGrade(0.0, False)) for i, _ in stray])
        if qid not in headings:
            anomalies.append(qid)

    total = math.fsum(per_question.values())
    if max_score is None:
        max_score = math.fsum(q.points for q in gradable)
    return AttemptGrade(
        attempt_id=attempt_id,
        per_question=per_question,
        total=total,
        max_score=max_score,
        answers=per_answer,
        anomalies=tuple(sorted(set(anomalies))),
    )


def grade_attempt(attempt: AttemptRecord, answers: Sequence[AnswerRecord], questions: Sequence[QuestionRecord]) -> AttemptGrade:
    """Grade one attempt. SectionHeading questions and their answers never count."""
    return grade_answers(answers, questions, attempt_id=attempt.id, max_score=attempt.max_score)
