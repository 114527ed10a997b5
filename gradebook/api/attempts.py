from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from gradebook.api.deps import get_workflow
from gradebook.api.schemas import AnswersIn, AttemptOut, GradeOut
from gradebook.core.auth import STAFF_ROLES, TokenData, require_roles
from gradebook.services.grading_workflow import GradingWorkflow

router = APIRouter()

def _own_attempt(wf: GradingWorkflow, attempt_id: int, user: TokenData):
    attempt = wf.attempts.get(attempt_id)
    if attempt.user_id != user.sub and not user.is_staff():
        raise HTTPException(403, "Not your attempt")
    return attempt

@router.put("/{attempt_id}/answers", response_model=AttemptOut)
def save_answers(attempt_id: int, payload: AnswersIn, user: TokenData = Depends(require_roles("student", *STAFF_ROLES)), wf: GradingWorkflow = Depends(get_workflow)):
    _own_attempt(wf, attempt_id, user)
    return wf.attempts.record_answers(attempt_id, payload.to_records())

@router.post("/{attempt_id}/submit", response_model=GradeOut)
def submit_attempt(attempt_id: int, payload: Optional[AnswersIn] = None, user: TokenData = Depends(require_roles("student", *STAFF_ROLES)), wf: GradingWorkflow = Depends(get_workflow)):
    _own_attempt(wf, attempt_id, user)
    answers = payload.to_records() if payload else []
    return GradeOut.from_grade(wf.submit_attempt(attempt_id, answers))

@router.post("/{attempt_id}/grade", response_model=GradeOut, dependencies=[Depends(require_roles(*STAFF_ROLES))])
def grade_attempt(attempt_id: int, wf: GradingWorkflow = Depends(get_workflow)):
    return GradeOut.from_grade(wf.grade_attempt(attempt_id))
