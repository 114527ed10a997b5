from typing import Optional
from rq import Queue
from redis import Redis
from gradebook.core.config import settings

redis = Redis.from_url(settings.REDIS_URL)
regrade_queue = Queue(settings.RQ_QUEUE, connection=redis, default_timeout=settings.REGRADE_JOB_TIMEOUT)

def get_queue() -> Optional[Queue]:
    """Queue for bulk re-grades, or None to re-grade inline."""
    return regrade_queue if settings.RQ_ENABLED else None
