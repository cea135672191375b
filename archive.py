"""Archive staging: copy the EPUB into the scratch directory and extract it."""
import logging
import os
import threading
import zipfile
from contextlib import contextmanager
from typing import Dict

from exceptions import StagingError
from file_manager import FileManager
from translations import get_string

logger = logging.getLogger(__name__)

ARCHIVE_FILENAME = "novel.epub"
EXTRACT_DIRNAME = "epub"

_scratch_locks: Dict[str, threading.Lock] = {}
_meta_lock = threading.Lock()


def unzip(archive_path: str, destination: str) -> None:
    """
    Extract a zip archive into ``destination``.

    Raises zipfile.BadZipFile or OSError unchanged.
    """
    with zipfile.ZipFile(archive_path) as archive:
        archive.extractall(destination)


@contextmanager
def scratch_lock(scratch_dir: str):
    """
    Hold exclusive use of a scratch root for the duration of an import.

    Raises StagingError immediately if another import in this process
    already holds it.
    """
    key = os.path.realpath(scratch_dir)
    with _meta_lock:
        lock = _scratch_locks.setdefault(key, threading.Lock())

    if not lock.acquire(blocking=False):
        raise StagingError(get_string("scratchInUse"), {"scratch_dir": scratch_dir})
    try:
        yield
    finally:
        lock.release()


class ArchiveStager:
    """
    Copy a source archive into a scratch root and extract it.

    The scratch layout is ``<scratch_dir>/novel.epub`` for the copied
    archive and ``<scratch_dir>/epub`` for the extracted tree.
    """

    def __init__(self, scratch_dir: str, files: FileManager = None, decompress=unzip):
        self.scratch_dir = scratch_dir
        self.files = files or FileManager()
        self.decompress = decompress

    @property
    def archive_path(self) -> str:
        return os.path.join(self.scratch_dir, ARCHIVE_FILENAME)

    @property
    def extract_dir(self) -> str:
        return os.path.join(self.scratch_dir, EXTRACT_DIRNAME)

    def stage(self, source_path: str) -> str:
        """
        Copy and extract the archive.

        Args:
            source_path: Location of the user-supplied EPUB

        Returns:
            Path of the extracted directory
        """
        logger.info(f"Staging {source_path} into {self.scratch_dir}")

        try:
            self.files.copy_file(source_path, self.archive_path)
            if self.files.exists(self.extract_dir):
                logger.debug(f"Removing stale extraction directory {self.extract_dir}")
                self.files.unlink(self.extract_dir)
            self.files.mkdir(self.extract_dir)
        except OSError as e:
            raise StagingError(
                get_string("stagingFailed"),
                {"source": source_path, "reason": str(e)},
            ) from e

        self.decompress(self.archive_path, self.extract_dir)

        logger.info(f"Extracted archive to {self.extract_dir}")
        return self.extract_dir
