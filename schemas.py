"""Pydantic schemas for import data and API request/response validation."""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from models import ImportStatus


# Import Schemas
class ImportRequest(BaseModel):
    """Handle to an EPUB archive plus the filename used as fallback title."""
    source_path: str = Field(..., description="Path of the EPUB archive to import")
    filename: str = Field("", description="Original filename of the archive")


class ParsedChapter(BaseModel):
    """Chapter as reported by the EPUB parser."""
    name: Optional[str] = None
    path: str


class ParsedNovel(BaseModel):
    """Novel metadata and ordered chapters reported by the EPUB parser."""
    name: Optional[str] = None
    cover: Optional[str] = None
    author: Optional[str] = None
    artist: Optional[str] = None
    summary: Optional[str] = None
    chapters: List[ParsedChapter] = []


class ImportResponse(BaseModel):
    """Response after creating an import job."""
    job_id: int
    status: ImportStatus
    message: str

    model_config = ConfigDict(from_attributes=True)


class JobStatusResponse(BaseModel):
    """Job status response."""
    id: int
    filename: str
    status: ImportStatus
    phase: Optional[str] = None
    progress_current: int = 0
    progress_total: int = 0
    novel_id: Optional[int] = None
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Novel Schemas
class NovelListItem(BaseModel):
    """Novel list item for paginated responses."""
    id: int
    name: str
    author: Optional[str] = None
    cover: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NovelDetail(BaseModel):
    """Detailed novel information."""
    id: int
    name: str
    path: str
    plugin_id: str
    in_library: bool
    is_local: bool
    author: Optional[str] = None
    artist: Optional[str] = None
    summary: Optional[str] = None
    cover: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    chapter_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class ChapterListItem(BaseModel):
    """Chapter list item."""
    id: int
    name: str
    position: int
    release_time: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ChapterDetail(BaseModel):
    """Chapter metadata with its stored HTML."""
    id: int
    novel_id: int
    name: str
    path: str
    position: int
    release_time: Optional[datetime] = None
    content: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class NovelListResponse(BaseModel):
    """Paginated novel list response."""
    items: List[NovelListItem]
    total: int
    page: int
    page_size: int
    total_pages: int


class ChapterListResponse(BaseModel):
    """Paginated chapter list response."""
    items: List[ChapterListItem]
    total: int
    page: int
    page_size: int
    total_pages: int
