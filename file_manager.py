"""Filesystem operations used by the import pipeline."""
import logging
import os
import shutil

logger = logging.getLogger(__name__)


class FileManager:
    """
    Thin wrapper around the filesystem.

    Every method may raise OSError. Kept as a class so the pipeline can be
    given a substitute in tests.
    """

    def exists(self, path: str) -> bool:
        """Check whether a file or directory exists."""
        return os.path.exists(path)

    def is_file(self, path: str) -> bool:
        """Check whether a regular file exists."""
        return os.path.isfile(path)

    def mkdir(self, path: str) -> None:
        """Create a directory and any missing parents."""
        os.makedirs(path, exist_ok=True)

    def copy_file(self, src: str, dst: str) -> None:
        """Copy a file, creating the destination directory if needed."""
        parent = os.path.dirname(dst)
        if parent:
            os.makedirs(parent, exist_ok=True)
        shutil.copyfile(src, dst)

    def move_file(self, src: str, dst: str) -> None:
        """Move a file, replacing anything already at the destination."""
        parent = os.path.dirname(dst)
        if parent:
            os.makedirs(parent, exist_ok=True)
        shutil.move(src, dst)

    def read_file(self, path: str) -> str:
        """Read a text file as UTF-8."""
        with open(path, encoding="utf-8", errors="replace") as handle:
            return handle.read()

    def write_file(self, path: str, text: str) -> None:
        """Write text as UTF-8."""
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(text)

    def unlink(self, path: str) -> None:
        """Remove a file or a whole directory tree."""
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        else:
            os.remove(path)
