from fastapi import APIRouter, Depends
from gradebook.api.deps import get_workflow
from gradebook.api.schemas import RunOut
from gradebook.core.auth import STAFF_ROLES, require_roles
from gradebook.services.grading_workflow import GradingWorkflow

router = APIRouter()

@router.get("/regrade-runs/{run_id}", response_model=RunOut, dependencies=[Depends(require_roles(*STAFF_ROLES))])
def run_detail(run_id: str, wf: GradingWorkflow = Depends(get_workflow)):
    return wf.get_run(run_id)
