"""
EPUB import pipeline.

Stages an archive, parses it, registers the novel, ingests every chapter
in order and finally moves the static files the chapters reference into
the novel's storage directory.

Each database write commits on its own. A failure part way through leaves
a partially imported novel behind; ``EpubImporter.delete_novel`` removes
one explicitly.
"""
import enum
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Set, Tuple
from urllib.parse import unquote

from sqlalchemy.exc import SQLAlchemyError

from archive import ArchiveStager, scratch_lock, unzip
from database import SessionLocal
from epub_parser import EpubParser
from exceptions import ChapterInsertError, NovelInsertError, TransactionError
from file_manager import FileManager
from models import Category, Chapter, ImportStatus, LOCAL_PLUGIN_ID, Novel
from progress import ProgressReporter
from schemas import ImportRequest, ParsedChapter, ParsedNovel
from translations import get_string

logger = logging.getLogger(__name__)

# href="..." / src='...' attributes anywhere in chapter markup
ASSET_ATTRIBUTE_PATTERN = re.compile(r"""(href|src)=(["'])(.*?)\2""")
PATH_SEPARATORS = re.compile(r"[\\/]")
EPUB_EXTENSION = re.compile(r"\.epub$", re.IGNORECASE)


@dataclass
class ImportConfig:
    """Locations and constants used by one importer."""
    storage_root: str
    scratch_dir: str
    local_category_id: int = 2
    fallback_title: str = "Untitled"

    @classmethod
    def from_settings(cls, settings) -> "ImportConfig":
        return cls(
            storage_root=os.path.abspath(settings.novel_storage_dir),
            scratch_dir=os.path.abspath(settings.scratch_dir),
            local_category_id=settings.local_category_id,
            fallback_title=settings.fallback_title,
        )

    def novel_dir(self, novel_id: int) -> str:
        return os.path.join(self.storage_root, "local", str(novel_id))


class ContentStatus(str, enum.Enum):
    """What happened to a chapter's content during ingestion."""
    WRITTEN = "written"
    SKIPPED_UNREADABLE = "skipped_unreadable"
    SKIPPED_EMPTY = "skipped_empty"


@dataclass
class ChapterResult:
    chapter_id: int
    position: int
    status: ContentStatus
    asset_paths: List[str] = field(default_factory=list)


@dataclass
class ImportResult:
    novel_id: int
    novel_dir: str
    chapters: List[ChapterResult] = field(default_factory=list)
    assets_moved: int = 0
    assets_missing: int = 0


def basename(path: str) -> str:
    """Last segment of a path, splitting on both slash styles."""
    return PATH_SEPARATORS.split(path)[-1]


def resolve_title(name: Optional[str], filename: str, fallback: str = "Untitled") -> str:
    """Pick the novel title: parsed name, then filename without extension, then fallback."""
    if name:
        return name
    stem = EPUB_EXTENSION.sub("", filename or "")
    return stem or fallback


def decode_path(path: str) -> str:
    """Percent-decode a path, returning it unchanged if it is not valid UTF-8."""
    try:
        return unquote(path, errors="strict")
    except UnicodeDecodeError:
        logger.debug(f"Could not decode chapter path {path!r}, using it as is")
        return path


def is_within(path: str, root: str) -> bool:
    """True if ``path`` resolves to a location inside ``root``."""
    real_root = os.path.realpath(root)
    try:
        return os.path.commonpath([os.path.realpath(path), real_root]) == real_root
    except ValueError:
        return False


def rewrite_content(content: str, source_dir: str, novel_dir: str) -> Tuple[str, List[str]]:
    """
    Point every href/src attribute at the novel's storage directory.

    Args:
        content: Chapter markup
        source_dir: Directory holding the chapter's source file
        novel_dir: Novel storage directory the assets will be moved into

    Returns:
        The rewritten markup and the resolved source path of every
        referenced file, in order of appearance
    """
    asset_paths: List[str] = []

    def replace(match):
        attribute, _, value = match.groups()
        if not value:
            return match.group(0)
        asset_paths.append(os.path.normpath(os.path.join(source_dir, value.lstrip("/"))))
        return f'{attribute}="file://{novel_dir}/{basename(value)}"'

    return ASSET_ATTRIBUTE_PATTERN.sub(replace, content), asset_paths


class EpubImporter:
    """
    Run EPUB imports against one storage root and scratch directory.

    Collaborators default to the real implementations and can be replaced
    individually.
    """

    def __init__(
            self,
            config: ImportConfig,
            session_factory=None,
            files: FileManager = None,
            parser: EpubParser = None,
            reporter: ProgressReporter = None,
            decompress: Callable[[str, str], None] = unzip,
    ):
        self.config = config
        self.session_factory = session_factory or SessionLocal
        self.files = files or FileManager()
        self.parser = parser or EpubParser()
        self.reporter = reporter
        self.stager = ArchiveStager(config.scratch_dir, self.files, decompress)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def import_epub(self, request: ImportRequest) -> ImportResult:
        """
        Import one EPUB archive.

        Args:
            request: Archive location and original filename

        Returns:
            ImportResult describing the created novel
        """
        with scratch_lock(self.config.scratch_dir):
            self._notify("phase", get_string("stagingArchive"), ImportStatus.STAGING)
            extracted_dir = self.stage(request.source_path)

            self._notify("phase", get_string("parsingEpub"), ImportStatus.PARSING)
            parsed = self.extract_metadata(extracted_dir, request.filename)

            self._notify("phase", get_string("savingNovel"), ImportStatus.SAVING)
            novel_id = self.register_novel(parsed, extracted_dir)
            result = ImportResult(novel_id=novel_id, novel_dir=self.config.novel_dir(novel_id))

            release_time = datetime.now(timezone.utc)
            asset_paths: Set[str] = set()
            total = len(parsed.chapters)
            if total:
                self._notify("phase", get_string("importNovel"), ImportStatus.IMPORTING_CHAPTERS)
                self._notify("chapters", 0, total)

            for position, chapter in enumerate(parsed.chapters):
                chapter_result = self.ingest_chapter(novel_id, position, chapter, release_time)
                asset_paths.update(chapter_result.asset_paths)
                result.chapters.append(chapter_result)
                self._notify("chapters", position + 1, total)

            result.assets_moved, result.assets_missing = self.migrate_assets(novel_id, asset_paths)

        logger.info(
            f"Imported novel {novel_id} '{parsed.name}': "
            f"{len(result.chapters)} chapters, "
            f"{result.assets_moved} static files moved, "
            f"{result.assets_missing} missing"
        )
        return result

    def stage(self, source_path: str) -> str:
        """Copy and extract the archive, returning the extracted directory."""
        return self.stager.stage(source_path)

    def extract_metadata(self, extracted_dir: str, filename: str) -> ParsedNovel:
        """Parse the extracted tree and apply the title fallback."""
        parsed = self.parser.parse(extracted_dir)
        parsed.name = resolve_title(parsed.name, filename, self.config.fallback_title)
        return parsed

    def register_novel(self, parsed: ParsedNovel, extracted_dir: str = "") -> int:
        """
        Insert the novel, file it under the local category, create its
        storage directory and move the cover in.

        Returns:
            The new novel id
        """
        # Real path is only known once the id exists
        provisional_path = os.path.join(extracted_dir, parsed.name)
        novel_id = self._insert_row(
            Novel(
                name=parsed.name,
                path=provisional_path,
                plugin_id=LOCAL_PLUGIN_ID,
                in_library=True,
                is_local=True,
            )
        )
        if novel_id is None or novel_id < 0:
            raise NovelInsertError(get_string("novelInsertFailed"), {"name": parsed.name})

        logger.info(f"Created novel {novel_id} '{parsed.name}'")
        self._assign_category(novel_id)

        novel_dir = self.config.novel_dir(novel_id)
        self.files.mkdir(novel_dir)

        cover = None
        if parsed.cover:
            cover_path = os.path.join(novel_dir, basename(parsed.cover))
            if self.files.exists(parsed.cover) and is_within(parsed.cover, self.stager.extract_dir):
                self.files.move_file(parsed.cover, cover_path)
            else:
                logger.warning(f"Cover {parsed.cover} not found in the extracted archive, keeping path {cover_path}")
            cover = "file://" + cover_path

        self._update_novel(
            novel_id,
            name=parsed.name,
            path=novel_dir,
            plugin_id=LOCAL_PLUGIN_ID,
            author=parsed.author,
            artist=parsed.artist,
            summary=parsed.summary,
            cover=cover,
            in_library=True,
            is_local=True,
            total_pages=0,
        )
        return novel_id

    def ingest_chapter(
            self,
            novel_id: int,
            position: int,
            chapter: ParsedChapter,
            release_time: datetime,
    ) -> ChapterResult:
        """
        Insert one chapter row and write its rewritten content to disk.

        Unreadable or empty content is skipped without raising.

        Returns:
            ChapterResult with the asset paths the content references
        """
        novel_dir = self.config.novel_dir(novel_id)
        name = chapter.name or basename(chapter.path) or "unknown"

        def finalize_path(row: Chapter):
            row.path = os.path.join(novel_dir, str(row.id))

        chapter_id = self._insert_row(
            Chapter(
                novel_id=novel_id,
                name=name,
                path=os.path.join(novel_dir, str(position)),
                release_time=release_time,
                position=position,
            ),
            finalize=finalize_path,
        )
        if chapter_id is None or chapter_id < 0:
            raise ChapterInsertError(get_string("chapterInsertFailed"), position=position)

        source_path = decode_path(chapter.path)
        try:
            content = self.files.read_file(source_path)
        except OSError as e:
            logger.warning(f"Skipping content of chapter {chapter_id}: cannot read {source_path}: {e}")
            return ChapterResult(chapter_id, position, ContentStatus.SKIPPED_UNREADABLE)

        if not content:
            logger.warning(f"Skipping content of chapter {chapter_id}: {source_path} is empty")
            return ChapterResult(chapter_id, position, ContentStatus.SKIPPED_EMPTY)

        content, asset_paths = rewrite_content(content, os.path.dirname(source_path), novel_dir)

        chapter_dir = os.path.join(novel_dir, str(chapter_id))
        self.files.mkdir(chapter_dir)
        self.files.write_file(os.path.join(chapter_dir, "index.html"), content)

        return ChapterResult(chapter_id, position, ContentStatus.WRITTEN, asset_paths)

    def migrate_assets(self, novel_id: int, asset_paths: Set[str]) -> Tuple[int, int]:
        """
        Move each referenced file once into the novel directory.

        Returns:
            (moved, missing) counts
        """
        novel_dir = self.config.novel_dir(novel_id)
        unique_paths = sorted(set(asset_paths))
        total = len(unique_paths)

        self._notify("phase", get_string("importStaticFiles"), ImportStatus.MIGRATING_ASSETS)
        self._notify("assets", 0, total)

        moved = 0
        missing = 0
        for count, path in enumerate(unique_paths, start=1):
            if self.files.is_file(path) and is_within(path, self.stager.extract_dir):
                self.files.move_file(path, os.path.join(novel_dir, basename(path)))
                moved += 1
            else:
                logger.debug(f"Static file {path} not found in the extracted archive, skipping")
                missing += 1
            self._notify("assets", count, total)

        return moved, missing

    # ------------------------------------------------------------------
    # Compensating cleanup
    # ------------------------------------------------------------------

    def delete_novel(self, novel_id: int) -> bool:
        """
        Remove a novel's rows and its storage directory.

        Never called by the pipeline itself; use it to clear out a
        partially imported novel.

        Returns:
            True if a novel row was found and deleted
        """
        db = self.session_factory()
        try:
            novel = db.get(Novel, novel_id)
            if novel is not None:
                db.delete(novel)
                db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise TransactionError(
                get_string("transactionFailed"),
                {"table": "novels", "reason": str(e)},
            ) from e
        finally:
            db.close()

        novel_dir = self.config.novel_dir(novel_id)
        if self.files.exists(novel_dir):
            self.files.unlink(novel_dir)

        logger.info(f"Deleted novel {novel_id} (row found: {novel is not None})")
        return novel is not None

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def _insert_row(self, row, finalize: Callable = None) -> Optional[int]:
        """Insert a row in its own transaction and return its id."""
        db = self.session_factory()
        try:
            db.add(row)
            db.flush()
            row_id = row.id
            if row_id is None:
                db.rollback()
                return None
            if finalize:
                finalize(row)
            db.commit()
            return row_id
        except SQLAlchemyError as e:
            db.rollback()
            raise TransactionError(
                get_string("transactionFailed"),
                {"table": row.__tablename__, "reason": str(e)},
            ) from e
        finally:
            db.close()

    def _assign_category(self, novel_id: int):
        db = self.session_factory()
        try:
            novel = db.get(Novel, novel_id)
            category = db.get(Category, self.config.local_category_id)
            if not category:
                category = Category(id=self.config.local_category_id, name="Local", sort=self.config.local_category_id)
                db.add(category)
                logger.info(f"Created category {self.config.local_category_id}")
            novel.categories.append(category)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise TransactionError(
                get_string("transactionFailed"),
                {"table": "novel_categories", "reason": str(e)},
            ) from e
        finally:
            db.close()

    def _update_novel(self, novel_id: int, **fields):
        db = self.session_factory()
        try:
            novel = db.get(Novel, novel_id)
            for name, value in fields.items():
                setattr(novel, name, value)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise TransactionError(
                get_string("transactionFailed"),
                {"table": "novels", "reason": str(e)},
            ) from e
        finally:
            db.close()

    def _notify(self, method: str, *args):
        if self.reporter is None:
            return
        try:
            getattr(self.reporter, method)(*args)
        except Exception as e:
            logger.warning(f"Progress reporter {method} failed: {e}")
