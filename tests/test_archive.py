"""Tests for archive staging."""

import os
import zipfile

import pytest

from archive import ArchiveStager, scratch_lock
from exceptions import StagingError


@pytest.fixture
def stager(tmp_path):
    return ArchiveStager(str(tmp_path / "scratch"))


def test_stage_copies_and_extracts(stager, build_epub):
    extracted = stager.stage(build_epub())

    assert extracted == stager.extract_dir
    assert os.path.isfile(stager.archive_path)
    assert os.path.isfile(os.path.join(extracted, "META-INF", "container.xml"))
    assert os.path.isfile(os.path.join(extracted, "OEBPS", "c1.html"))


def test_stale_extraction_is_cleared(stager, build_epub):
    os.makedirs(stager.extract_dir)
    stale = os.path.join(stager.extract_dir, "stale.txt")
    with open(stale, "w") as handle:
        handle.write("old")

    stager.stage(build_epub())

    assert not os.path.exists(stale)


def test_missing_source_raises_staging_error(stager, tmp_path):
    with pytest.raises(StagingError) as exc_info:
        stager.stage(str(tmp_path / "nope.epub"))
    assert "source" in exc_info.value.details


def test_corrupt_archive_propagates(stager, tmp_path):
    broken = tmp_path / "broken.epub"
    broken.write_bytes(b"not a zip file")

    with pytest.raises(zipfile.BadZipFile):
        stager.stage(str(broken))


def test_custom_decompressor_is_used(tmp_path, build_epub):
    calls = []
    stager = ArchiveStager(str(tmp_path / "scratch"), decompress=lambda src, dst: calls.append((src, dst)))

    stager.stage(build_epub())

    assert calls == [(stager.archive_path, stager.extract_dir)]


def test_scratch_lock_refuses_second_holder(tmp_path):
    scratch = str(tmp_path / "scratch")
    with scratch_lock(scratch):
        with pytest.raises(StagingError):
            with scratch_lock(scratch):
                pass

    # released again afterwards
    with scratch_lock(scratch):
        pass


def test_scratch_lock_is_per_directory(tmp_path):
    with scratch_lock(str(tmp_path / "a")):
        with scratch_lock(str(tmp_path / "b")):
            pass
