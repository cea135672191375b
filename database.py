"""Database setup and session management."""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from config import settings

# Async engine for API layer
async_engine = create_async_engine(
    settings.database_url,
    echo=settings.environment == "development",
    future=True,
)

# Sync engine for the import worker and CLI
sync_engine = create_engine(
    settings.database_url_sync,
    echo=settings.environment == "development",
    future=True,
)

# Session makers
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

SessionLocal = sessionmaker(
    sync_engine,
    expire_on_commit=False,
)

# Base class for models
Base = declarative_base()

DEFAULT_CATEGORIES = {
    1: "Default",
    2: "Local",
}


# Dependency for FastAPI
async def get_db():
    """Get async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_sync_db():
    """Get sync database session (for the worker)."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(engine=None, session_factory=None):
    """Create all tables and seed the built-in categories."""
    from models import Category

    engine = engine or sync_engine
    session_factory = session_factory or sessionmaker(engine, expire_on_commit=False)

    Base.metadata.create_all(engine)

    db = session_factory()
    try:
        for category_id, name in DEFAULT_CATEGORIES.items():
            if db.get(Category, category_id) is None:
                db.add(Category(id=category_id, name=name, sort=category_id))
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
