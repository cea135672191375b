"""
RQ Worker for processing import jobs.

This worker process runs in the background and processes jobs from Redis.

Usage:
    python worker.py

    Or with RQ directly:
    rq worker imports --url redis://localhost:6379/0

Every import stages its archive in settings.scratch_dir and only one
import may use a scratch directory at a time. Run one worker per
scratch directory; to run several workers, give each its own SCRATCH_DIR:

    SCRATCH_DIR=./scratch-1 python worker.py
    SCRATCH_DIR=./scratch-2 python worker.py
"""
import logging
import os
from redis import Redis
from rq import Worker
from config import settings
from import_queue import QUEUE_NAME

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    """Start RQ worker."""
    logger.info("Starting RQ worker for import queue")
    logger.info(f"Redis URL: {settings.redis_url}")
    logger.info(f"Scratch directory: {os.path.abspath(settings.scratch_dir)}")

    redis_conn = Redis.from_url(settings.redis_url)

    worker = Worker([QUEUE_NAME], connection=redis_conn)

    logger.info("Worker ready. Waiting for jobs...")

    worker.work(with_scheduler=False)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Worker shutting down...")
    except Exception as e:
        logger.error(f"Worker error: {e}")
        raise
