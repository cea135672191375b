"""Tests for the HTTP API."""

import os
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from config import settings
from conftest import chapter_html
from database import get_db
from main import app, get_import_queue, get_importer
from models import ImportJob, ImportStatus
from schemas import ImportRequest


@pytest.fixture
def queue():
    return MagicMock()


@pytest.fixture
def client(db_path, engine, importer, queue, monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))

    async_engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    factory = async_sessionmaker(async_engine, expire_on_commit=False)

    async def override_get_db():
        async with factory() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_import_queue] = lambda: queue
    app.dependency_overrides[get_importer] = lambda: importer
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def imported(importer, build_epub):
    """Import a two-chapter book through the pipeline directly."""
    path = build_epub(
        title="Readable",
        chapters={
            "c1.html": chapter_html("<p>First</p>"),
            "c2.html": chapter_html("<p>Second</p>"),
        },
    )
    return importer.import_epub(ImportRequest(source_path=path, filename="readable.epub"))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_upload_creates_and_enqueues_job(client, queue, session_factory, build_epub):
    with open(build_epub(), "rb") as handle:
        response = client.post(
            "/imports",
            files={"file": ("mybook.epub", handle, "application/epub+zip")},
        )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == ImportStatus.QUEUED.value
    queue.enqueue_job.assert_called_once_with(body["job_id"])

    db = session_factory()
    try:
        job = db.get(ImportJob, body["job_id"])
        assert job.filename == "mybook.epub"
    finally:
        db.close()

    status = client.get(f"/jobs/{body['job_id']}")
    assert status.status_code == 200
    assert status.json()["filename"] == "mybook.epub"


def test_uploaded_archive_is_saved_under_upload_dir(client, session_factory, build_epub):
    source = build_epub()
    with open(source, "rb") as handle:
        response = client.post(
            "/imports",
            files={"file": ("copy.epub", handle, "application/epub+zip")},
        )

    db = session_factory()
    try:
        job = db.get(ImportJob, response.json()["job_id"])
        saved_path = job.source_path
    finally:
        db.close()

    assert os.path.dirname(saved_path) == os.path.abspath(settings.upload_dir)
    with open(saved_path, "rb") as saved, open(source, "rb") as original:
        assert saved.read() == original.read()


def test_unknown_job(client):
    assert client.get("/jobs/12345").status_code == 404


def test_novel_listing_and_detail(client, imported):
    listing = client.get("/novels").json()
    assert listing["total"] == 1
    assert listing["items"][0]["name"] == "Readable"

    detail = client.get(f"/novels/{imported.novel_id}").json()
    assert detail["chapter_count"] == 2
    assert detail["is_local"] is True


def test_search_filters_novels(client, imported):
    assert client.get("/novels", params={"search": "Read"}).json()["total"] == 1
    assert client.get("/novels", params={"search": "nothing"}).json()["total"] == 0


def test_chapters_in_position_order(client, imported):
    chapters = client.get(f"/novels/{imported.novel_id}/chapters").json()
    assert [c["position"] for c in chapters["items"]] == [0, 1]

    chapter = client.get(f"/novels/{imported.novel_id}/chapters/1").json()
    assert "<p>Second</p>" in chapter["content"]


def test_chapter_without_stored_html_has_no_content(client, importer, build_epub):
    result = importer.import_epub(ImportRequest(source_path=build_epub(chapters={"c1.html": ""}), filename="e.epub"))

    chapter = client.get(f"/novels/{result.novel_id}/chapters/0").json()
    assert chapter["content"] is None


def test_missing_novel_and_chapter(client, imported):
    assert client.get("/novels/999").status_code == 404
    assert client.get("/novels/999/chapters").status_code == 404
    assert client.get(f"/novels/{imported.novel_id}/chapters/9").status_code == 404


def test_delete_novel(client, imported):
    assert client.delete(f"/novels/{imported.novel_id}").status_code == 200
    assert client.get(f"/novels/{imported.novel_id}").status_code == 404
    assert client.delete(f"/novels/{imported.novel_id}").status_code == 404
