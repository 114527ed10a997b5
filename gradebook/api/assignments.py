from fastapi import APIRouter, Depends
from gradebook.api.deps import get_workflow
from gradebook.api.schemas import (
    AttemptOut, OptionOut, QuestionOut, QuestionsOut, RedistributeIn, RedistributeOut, ResultsOut,
)
from gradebook.core.auth import STAFF_ROLES, TokenData, require_roles
from gradebook.services.allocation import total_points
from gradebook.services.grading_workflow import GradingWorkflow

router = APIRouter()

@router.get("/{assignment_id}/questions", response_model=QuestionsOut, dependencies=[Depends(require_roles(*STAFF_ROLES))])
def list_questions(assignment_id: int, wf: GradingWorkflow = Depends(get_workflow)):
    assignment = wf.bank.get_assignment(assignment_id)
    questions = wf.bank.list(assignment_id)
    return QuestionsOut(
        assignment_id=assignment_id, max_score=assignment.max_score, points_version=assignment.points_version,
        total_points=total_points(q.points for q in questions),
        questions=[
            QuestionOut(id=q.id, type=int(q.type), type_name=q.type.name, points=q.points, difficulty=q.difficulty,
                        options=[OptionOut(id=o.id, text=o.text, is_correct=o.is_correct) for o in q.options])
            for q in questions
        ],
    )

@router.post("/{assignment_id}/points/redistribute", response_model=RedistributeOut, dependencies=[Depends(require_roles(*STAFF_ROLES))])
def redistribute_points(assignment_id: int, payload: RedistributeIn, wf: GradingWorkflow = Depends(get_workflow)):
    result = wf.redistribute(
        assignment_id,
        budget_by_type=payload.points_by_type,
        per_question_points=payload.per_question_points,
        expected_version=payload.expected_version,
    )
    return RedistributeOut(**result.as_dict())

@router.get("/{assignment_id}/results", response_model=ResultsOut, dependencies=[Depends(require_roles(*STAFF_ROLES))])
def get_results(assignment_id: int, wf: GradingWorkflow = Depends(get_workflow)):
    return ResultsOut(**vars(wf.get_results(assignment_id)))

@router.get("/{assignment_id}/analytics", dependencies=[Depends(require_roles(*STAFF_ROLES))])
def get_analytics(assignment_id: int, wf: GradingWorkflow = Depends(get_workflow)):
    return wf.get_analytics(assignment_id)

@router.post("/{assignment_id}/attempts", response_model=AttemptOut, status_code=201)
def start_attempt(assignment_id: int, user: TokenData = Depends(require_roles("student", *STAFF_ROLES)), wf: GradingWorkflow = Depends(get_workflow)):
    return wf.attempts.start(assignment_id, user.sub)
