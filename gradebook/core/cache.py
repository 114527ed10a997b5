import logging
from contextlib import contextmanager
import redis
from redis.exceptions import LockError
from gradebook.core.config import settings
from gradebook.core.errors import ConflictError

logger = logging.getLogger(__name__)

redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)

def get_redis() -> redis.Redis:
    return redis_client

def redistribution_lock_key(assignment_id: int) -> str:
    return f"gradebook:assignment:{assignment_id}:redistribute"

@contextmanager
def assignment_lock(client: redis.Redis | None, assignment_id: int, timeout: int | None = None):
    """Hold the per-assignment redistribution lock or fail with ConflictError."""
    if client is None:
        yield
        return
    lock = client.lock(redistribution_lock_key(assignment_id), timeout=timeout or settings.REDISTRIBUTE_LOCK_TIMEOUT)
    if not lock.acquire(blocking=False):
        raise ConflictError(f"Points of assignment {assignment_id} are being redistributed by another request")
    try:
        yield
    finally:
        try:
            lock.release()
        except LockError:
            logger.warning("Redistribution lock for assignment %s expired before release", assignment_id)
