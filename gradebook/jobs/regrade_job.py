from rq import get_current_job
from gradebook.core.database import SessionLocal
from gradebook.services.grading_workflow import GradingWorkflow

def regrade_job(run_id: str):
    job = get_current_job()
    if job is not None:
        job.meta.update({"state": "running", "run_id": run_id}); job.save_meta()
    db = SessionLocal()
    try:
        result = GradingWorkflow(db).run_queued(run_id)
    finally:
        db.close()
    if job is not None:
        job.meta.update({"state": "done", "regraded": len(result.regraded_attempts), "flagged": len(result.flagged_attempts)})
        job.save_meta()
    return result.as_dict()
