"""Database models for the EPUB import system."""
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Enum,
    ForeignKey, Index, Table, Boolean
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base
import enum

LOCAL_PLUGIN_ID = "local"


class ImportStatus(str, enum.Enum):
    """Import job states."""
    QUEUED = "queued"
    STAGING = "staging"
    PARSING = "parsing"
    SAVING = "saving"
    IMPORTING_CHAPTERS = "importing_chapters"
    MIGRATING_ASSETS = "migrating_assets"
    DONE = "done"
    ERROR = "error"


# Many-to-many association table
novel_categories = Table(
    'novel_categories',
    Base.metadata,
    Column('novel_id', Integer, ForeignKey('novels.id', ondelete='CASCADE'), primary_key=True),
    Column('category_id', Integer, ForeignKey('categories.id', ondelete='CASCADE'), primary_key=True),
    Index('ix_novel_categories_novel_id', 'novel_id'),
    Index('ix_novel_categories_category_id', 'category_id'),
)


class Novel(Base):
    """Novel model - one imported book."""
    __tablename__ = 'novels'

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(500), nullable=False, index=True)
    path = Column(String(1000), nullable=False)
    plugin_id = Column(String(100), default=LOCAL_PLUGIN_ID, nullable=False)
    in_library = Column(Boolean, default=True, nullable=False)
    is_local = Column(Boolean, default=True, nullable=False)
    author = Column(String(500), nullable=True)
    artist = Column(String(500), nullable=True)
    summary = Column(Text, nullable=True)
    cover = Column(String(1000), nullable=True)
    total_pages = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    chapters = relationship(
        "Chapter",
        back_populates="novel",
        cascade="all, delete-orphan",
        order_by="Chapter.position",
    )
    categories = relationship("Category", secondary=novel_categories, back_populates="novels")

    def __repr__(self):
        return f"<Novel(id={self.id}, name='{self.name}', local={self.is_local})>"


class Chapter(Base):
    """Chapter model. Content lives on disk under ``path``."""
    __tablename__ = 'chapters'

    id = Column(Integer, primary_key=True, index=True)
    novel_id = Column(Integer, ForeignKey('novels.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(500), nullable=False)
    path = Column(String(1000), nullable=False)
    release_time = Column(DateTime(timezone=True), nullable=True)
    position = Column(Integer, nullable=False)

    # Relationships
    novel = relationship("Novel", back_populates="chapters")

    __table_args__ = (
        Index('ix_chapters_novel_position', 'novel_id', 'position'),
    )

    def __repr__(self):
        return f"<Chapter(id={self.id}, novel_id={self.novel_id}, position={self.position})>"


class Category(Base):
    """Library category a novel can be filed under."""
    __tablename__ = 'categories'

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)
    sort = Column(Integer, default=0, nullable=False)

    # Relationships
    novels = relationship("Novel", secondary=novel_categories, back_populates="categories")

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}')>"


class ImportJob(Base):
    """Import job tracking."""
    __tablename__ = 'import_jobs'

    id = Column(Integer, primary_key=True, index=True)
    source_path = Column(String(1000), nullable=False)
    filename = Column(String(500), nullable=False)
    status = Column(Enum(ImportStatus), default=ImportStatus.QUEUED, nullable=False, index=True)
    phase = Column(String(200), nullable=True)
    progress_current = Column(Integer, default=0, nullable=False)
    progress_total = Column(Integer, default=0, nullable=False)
    novel_id = Column(Integer, ForeignKey('novels.id', ondelete='SET NULL'), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<ImportJob(id={self.id}, status='{self.status}', file='{self.filename}')>"
