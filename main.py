"""FastAPI application - main entry point."""
from fastapi import FastAPI, Depends, HTTPException, Query, BackgroundTasks, File, UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from typing import Optional
import logging
import os
import shutil
import uuid

from database import get_db
from models import Novel, Chapter, ImportJob, ImportStatus
from schemas import (
    ImportResponse, JobStatusResponse,
    NovelListResponse, NovelDetail, NovelListItem,
    ChapterListResponse, ChapterDetail, ChapterListItem,
)
from import_queue import ImportQueue
from importer import EpubImporter, ImportConfig
from config import settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="EPUB Import API",
    description="Backend API for importing EPUB files into a local novel library",
    version="1.0.0",
)


def get_import_queue() -> ImportQueue:
    """Queue used to hand jobs to the worker."""
    return ImportQueue()


def get_importer() -> EpubImporter:
    """Importer bound to the configured storage locations."""
    return EpubImporter(ImportConfig.from_settings(settings))


def _save_upload(source, upload_path: str):
    with open(upload_path, "wb") as out:
        shutil.copyfileobj(source, out)


def _read_chapter_html(chapter_path: str) -> Optional[str]:
    index_path = os.path.join(chapter_path, "index.html")
    if not os.path.isfile(index_path):
        return None
    with open(index_path, encoding="utf-8") as handle:
        return handle.read()


# ============================================================================
# Import Endpoints
# ============================================================================

@app.post("/imports", response_model=ImportResponse, tags=["Imports"])
async def create_import(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    queue: ImportQueue = Depends(get_import_queue),
):
    """
    Upload an EPUB and queue it for import.

    Returns immediately without waiting for the import to complete.
    Uploading the same file twice creates two separate novels.
    """
    os.makedirs(settings.upload_dir, exist_ok=True)
    upload_path = os.path.join(settings.upload_dir, f"{uuid.uuid4().hex}.epub")
    await run_in_threadpool(_save_upload, file.file, upload_path)

    job = ImportJob(
        source_path=os.path.abspath(upload_path),
        filename=file.filename or "",
        status=ImportStatus.QUEUED,
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)

    logger.info(f"Created import job {job.id} for {job.filename}")

    background_tasks.add_task(queue.enqueue_job, job.id)

    return ImportResponse(
        job_id=job.id,
        status=job.status,
        message="Import job created and queued"
    )


@app.get("/jobs/{job_id}", response_model=JobStatusResponse, tags=["Imports"])
async def get_job_status(
    job_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Get status and progress of an import job."""
    result = await db.execute(
        select(ImportJob).where(ImportJob.id == job_id)
    )
    job = result.scalar_one_or_none()

    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    return JobStatusResponse.model_validate(job)


# ============================================================================
# Novel Endpoints
# ============================================================================

@app.get("/novels", response_model=NovelListResponse, tags=["Novels"])
async def list_novels(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """
    List imported novels with pagination.

    Optionally filter by a search term matched against name and author.
    """
    query = select(Novel)

    if search:
        search_term = f"%{search}%"
        query = query.where(
            or_(
                Novel.name.ilike(search_term),
                Novel.author.ilike(search_term)
            )
        )

    count_query = select(func.count()).select_from(query.subquery())
    total_result = await db.execute(count_query)
    total = total_result.scalar()

    offset = (page - 1) * page_size
    query = query.order_by(Novel.id).offset(offset).limit(page_size)

    result = await db.execute(query)
    novels = result.scalars().all()

    total_pages = (total + page_size - 1) // page_size

    return NovelListResponse(
        items=[NovelListItem.model_validate(n) for n in novels],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages
    )


@app.get("/novels/{novel_id}", response_model=NovelDetail, tags=["Novels"])
async def get_novel(
    novel_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Get detailed information about a specific novel."""
    novel = await db.get(Novel, novel_id)

    if not novel:
        raise HTTPException(status_code=404, detail="Novel not found")

    chapter_count_result = await db.execute(
        select(func.count(Chapter.id)).where(Chapter.novel_id == novel.id)
    )
    chapter_count = chapter_count_result.scalar()

    detail = NovelDetail.model_validate(novel)
    detail.chapter_count = chapter_count
    return detail


@app.delete("/novels/{novel_id}", tags=["Novels"])
def delete_novel(
    novel_id: int,
    importer: EpubImporter = Depends(get_importer),
):
    """
    Delete a novel, its chapters and its storage directory.

    Also clears out what a failed import left behind.
    """
    if not importer.delete_novel(novel_id):
        raise HTTPException(status_code=404, detail="Novel not found")
    return {"deleted": novel_id}


@app.get("/novels/{novel_id}/chapters", response_model=ChapterListResponse, tags=["Chapters"])
async def list_chapters(
    novel_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    db: AsyncSession = Depends(get_db)
):
    """List a novel's chapters in reading order."""
    novel = await db.get(Novel, novel_id)

    if not novel:
        raise HTTPException(status_code=404, detail="Novel not found")

    count_result = await db.execute(
        select(func.count(Chapter.id)).where(Chapter.novel_id == novel.id)
    )
    total = count_result.scalar()

    offset = (page - 1) * page_size
    chapters_result = await db.execute(
        select(Chapter)
        .where(Chapter.novel_id == novel.id)
        .order_by(Chapter.position)
        .offset(offset)
        .limit(page_size)
    )
    chapters = chapters_result.scalars().all()

    total_pages = (total + page_size - 1) // page_size

    return ChapterListResponse(
        items=[ChapterListItem.model_validate(c) for c in chapters],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages
    )


@app.get("/novels/{novel_id}/chapters/{position}", response_model=ChapterDetail, tags=["Chapters"])
async def get_chapter(
    novel_id: int,
    position: int,
    db: AsyncSession = Depends(get_db)
):
    """Get a chapter and its stored HTML."""
    chapter_result = await db.execute(
        select(Chapter)
        .where(
            Chapter.novel_id == novel_id,
            Chapter.position == position
        )
    )
    chapter = chapter_result.scalar_one_or_none()

    if not chapter:
        raise HTTPException(status_code=404, detail="Chapter not found")

    detail = ChapterDetail.model_validate(chapter)
    detail.content = await run_in_threadpool(_read_chapter_html, chapter.path)
    return detail


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "epub-import"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
