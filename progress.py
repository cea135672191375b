"""Progress reporting for running imports."""
import logging
from typing import Optional

from models import ImportJob, ImportStatus

logger = logging.getLogger(__name__)


class ProgressReporter:
    """
    Receives advisory progress notifications from the import pipeline.

    The base class ignores everything; subclasses override what they need.
    """

    def phase(self, title: str, status: Optional[ImportStatus] = None):
        """A new pipeline phase has started."""

    def chapters(self, current: int, total: int):
        """Chapter ingestion counter."""

    def assets(self, current: int, total: int):
        """Asset migration counter."""


class JobProgressReporter(ProgressReporter):
    """
    Record progress on an ImportJob row.

    Each notification commits in its own short session so the API can
    poll the job while the import runs.
    """

    def __init__(self, job_id: int, session_factory):
        self.job_id = job_id
        self.session_factory = session_factory

    def phase(self, title: str, status: Optional[ImportStatus] = None):
        self._update(phase=title, status=status, progress_current=0, progress_total=0)

    def chapters(self, current: int, total: int):
        self._update(
            status=ImportStatus.IMPORTING_CHAPTERS,
            progress_current=current,
            progress_total=total,
        )

    def assets(self, current: int, total: int):
        self._update(
            status=ImportStatus.MIGRATING_ASSETS,
            progress_current=current,
            progress_total=total,
        )

    def _update(self, status: Optional[ImportStatus] = None, **fields):
        db = self.session_factory()
        try:
            job = db.query(ImportJob).filter_by(id=self.job_id).first()
            if job:
                if status is not None:
                    job.status = status
                for name, value in fields.items():
                    setattr(job, name, value)
                db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
