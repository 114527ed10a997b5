from fastapi import Depends
from sqlalchemy.orm import Session
from gradebook.core.cache import get_redis
from gradebook.core.database import get_db
from gradebook.jobs.queue import get_queue
from gradebook.services.grading_workflow import GradingWorkflow

def get_workflow(db: Session = Depends(get_db), redis=Depends(get_redis), queue=Depends(get_queue)) -> GradingWorkflow:
    return GradingWorkflow(db, redis=redis, queue=queue)
