"""Import job queue and worker entry point."""
import logging
import traceback

from redis import Redis
from rq import Queue

from config import settings
from database import SessionLocal
from file_manager import FileManager
from importer import EpubImporter, ImportConfig, is_within
from models import ImportJob, ImportStatus
from progress import JobProgressReporter
from schemas import ImportRequest

logger = logging.getLogger(__name__)

QUEUE_NAME = 'imports'

# Redis connection
redis_conn = Redis.from_url(settings.redis_url)
# RQ Queue
job_queue = Queue(QUEUE_NAME, connection=redis_conn)


class ImportQueue:
    """
    Redis-based import queue manager using RQ.

    Enqueues jobs to Redis for background worker processing.
    """

    def __init__(self, queue: Queue = None, session_factory=None):
        """
        Initialize queue.

        Args:
            queue: RQ Queue instance (uses default if None)
            session_factory: Session maker for job lookups
        """
        self.queue = queue or job_queue
        self.session_factory = session_factory or SessionLocal

    def enqueue_job(self, job_id: int) -> bool:
        """
        Enqueue an import job to Redis.

        Non-blocking - returns immediately after queueing.

        Args:
            job_id: ID of the import job

        Returns:
            True if enqueued successfully
        """
        db = self.session_factory()
        try:
            job = db.query(ImportJob).filter_by(id=job_id).first()

            if not job:
                logger.error(f"Job {job_id} not found")
                return False

            logger.info(f"Enqueueing job {job_id} to Redis")

            self.queue.enqueue(
                'import_queue.process_job',
                job_id,
                job_timeout='1h',
                result_ttl=86400,  # Keep result for 24 hours
                failure_ttl=604800,  # Keep failures for 7 days
            )

            logger.info(f"Job {job_id} enqueued successfully")
            return True

        except Exception as e:
            logger.error(f"Failed to enqueue job {job_id}: {e}")
            return False
        finally:
            db.close()

    def process_queued_jobs(self) -> int:
        """
        Enqueue every job still marked as queued in the database.

        Useful for recovery after Redis was flushed.

        Returns:
            Number of jobs enqueued
        """
        db = self.session_factory()
        try:
            queued_jobs = db.query(ImportJob).filter_by(
                status=ImportStatus.QUEUED
            ).all()
            job_ids = [job.id for job in queued_jobs]
        finally:
            db.close()

        logger.info(f"Found {len(job_ids)} queued jobs")

        enqueued = 0
        for job_id in job_ids:
            if self.enqueue_job(job_id):
                enqueued += 1
        return enqueued


def _finish_job(session_factory, job_id: int, status: ImportStatus, novel_id: int = None,
                error_message: str = None):
    """Record the final state of a job."""
    db = session_factory()
    try:
        job = db.query(ImportJob).filter_by(id=job_id).first()
        if job:
            job.status = status
            if novel_id is not None:
                job.novel_id = novel_id
            if error_message:
                job.error_message = error_message
            db.commit()
    except Exception as e:
        logger.error(f"Failed to update job status: {e}")
        db.rollback()
    finally:
        db.close()


def _discard_upload(source_path: str, upload_dir: str):
    """Remove an archive the API saved for this job; leave other sources alone."""
    if not is_within(source_path, upload_dir):
        return
    files = FileManager()
    try:
        if files.exists(source_path):
            files.unlink(source_path)
            logger.info(f"WORKER: Removed uploaded archive {source_path}")
    except OSError as e:
        logger.warning(f"WORKER: Could not remove uploaded archive {source_path}: {e}")


# Worker function (called by RQ worker)
def process_job(
        job_id: int,
        session_factory=None,
        import_config: ImportConfig = None,
        upload_dir: str = None,
) -> bool:
    """
    Run a single import job.

    This function is called by RQ workers.

    Args:
        job_id: ID of the import job to process
        session_factory: Session maker (defaults to the configured database)
        import_config: Storage locations (defaults to settings)
        upload_dir: Directory of API uploads; a source archive inside it is
            deleted once the job finishes (defaults to settings)

    Returns:
        True if the novel was imported
    """
    session_factory = session_factory or SessionLocal
    import_config = import_config or ImportConfig.from_settings(settings)
    upload_dir = upload_dir or settings.upload_dir

    logger.info(f"WORKER: Starting import job {job_id}")

    db = session_factory()
    try:
        job = db.query(ImportJob).filter_by(id=job_id).first()
        if not job:
            logger.error(f"WORKER: Job {job_id} not found in database")
            return False
        request = ImportRequest(source_path=job.source_path, filename=job.filename)
    finally:
        db.close()

    logger.info(f"WORKER: Importing {request.filename} from {request.source_path}")

    importer = EpubImporter(
        import_config,
        session_factory=session_factory,
        reporter=JobProgressReporter(job_id, session_factory),
    )

    try:
        result = importer.import_epub(request)
    except Exception as e:
        logger.error(f"WORKER: Import job {job_id} failed: {type(e).__name__}: {e}")
        logger.error(f"Traceback:\n{traceback.format_exc()}")
        _finish_job(session_factory, job_id, ImportStatus.ERROR, error_message=str(e)[:1000])
        return False
    finally:
        _discard_upload(request.source_path, upload_dir)

    _finish_job(session_factory, job_id, ImportStatus.DONE, novel_id=result.novel_id)
    logger.info(f"WORKER: Import job {job_id} completed, novel {result.novel_id}")
    return True
