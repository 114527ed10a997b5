import logging
from rq import Worker
from gradebook.jobs.queue import redis, regrade_queue
from gradebook.core.config import settings

logger = logging.getLogger(__name__)

def main():
    logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    logger.info("Regrade worker listening on queue %s", regrade_queue.name)
    Worker([regrade_queue], connection=redis).work(with_scheduler=True)

if __name__ == "__main__":
    main()
