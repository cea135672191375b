"""Shared pytest fixtures for the EPUB import test suite."""

import zipfile

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def db_path(tmp_path):
    """Return a temporary SQLite database path."""
    return tmp_path / "test_novels.db"


@pytest.fixture
def engine(db_path):
    """Return a sync engine with all tables created."""
    from database import init_db
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Return a session maker bound to the temporary database."""
    return sessionmaker(engine, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Importer fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def import_config(tmp_path):
    """Return an ImportConfig with storage and scratch under tmp_path."""
    from importer import ImportConfig
    return ImportConfig(
        storage_root=str(tmp_path / "storage"),
        scratch_dir=str(tmp_path / "scratch"),
    )


@pytest.fixture
def importer(import_config, session_factory):
    """Return an EpubImporter wired to the temporary database."""
    from importer import EpubImporter
    return EpubImporter(import_config, session_factory=session_factory)


# ---------------------------------------------------------------------------
# EPUB fixture builders
# ---------------------------------------------------------------------------

CONTAINER_XML = """\
<?xml version="1.0" encoding="UTF-8"?>
<container xmlns="urn:oasis:names:tc:opendocument:xmlns:container" version="1.0">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>"""


def build_opf(title="Test Book", chapters=(), extra_metadata="", extra_manifest="", cover_href=None):
    """Build an OPF 2 package listing ``chapters`` (hrefs) in spine order."""
    manifest = []
    spine = []
    for index, href in enumerate(chapters):
        manifest.append(f'<item id="ch{index}" href="{href}" media-type="application/xhtml+xml"/>')
        spine.append(f'<itemref idref="ch{index}"/>')
    cover_meta = ""
    if cover_href:
        manifest.append(f'<item id="cover-img" href="{cover_href}" media-type="image/jpeg"/>')
        cover_meta = '<meta name="cover" content="cover-img"/>'
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="2.0" unique-identifier="id">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/" xmlns:opf="http://www.idpf.org/2007/opf">
    <dc:title>{title}</dc:title>
    {cover_meta}
    {extra_metadata}
  </metadata>
  <manifest>
    {''.join(manifest)}
    {extra_manifest}
  </manifest>
  <spine>
    {''.join(spine)}
  </spine>
</package>"""


def chapter_html(body):
    return f"<html><head><title>c</title></head><body>{body}</body></html>"


@pytest.fixture
def build_epub(tmp_path):
    """
    Return a factory writing an EPUB archive.

    ``chapters`` and ``files`` map paths relative to OEBPS/ to contents.
    The OPF lists ``chapters`` in order unless ``opf`` is given.
    """
    counter = {"n": 0}

    def _build(chapters=None, files=None, title="Test Book", opf=None, filename=None, **opf_kwargs):
        chapters = chapters if chapters is not None else {"c1.html": chapter_html("<p>One</p>")}
        files = files or {}
        counter["n"] += 1
        path = tmp_path / (filename or f"book{counter['n']}.epub")
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED)
            archive.writestr("META-INF/container.xml", CONTAINER_XML)
            archive.writestr(
                "OEBPS/content.opf",
                opf or build_opf(title=title, chapters=list(chapters), **opf_kwargs),
            )
            for href, content in chapters.items():
                archive.writestr(f"OEBPS/{href}", content)
            for href, content in files.items():
                archive.writestr(f"OEBPS/{href}", content)
        return str(path)

    return _build
