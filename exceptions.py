"""Exception hierarchy for the EPUB import pipeline."""
from typing import Optional


class EpubImportError(Exception):
    """Base exception for all import errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class StagingError(EpubImportError):
    """Copying the archive or resetting the scratch directory failed."""


class ParseError(EpubImportError):
    """The extracted EPUB could not be turned into novel metadata."""


# ---- Persistence Errors ----

class PersistenceError(EpubImportError):
    """Base exception for database failures during an import."""


class TransactionError(PersistenceError):
    """A persistence transaction failed before committing."""


class NovelInsertError(PersistenceError):
    """The novel row was written but no valid id was assigned."""


class ChapterInsertError(PersistenceError):
    """A chapter row was written but no valid id was assigned."""

    def __init__(self, message: str, position: Optional[int] = None):
        details = {"position": position} if position is not None else {}
        super().__init__(message, details)
        self.position = position
