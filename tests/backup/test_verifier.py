"""Tests for artifact verification."""

import gzip
import zipfile

import pytest
from unittest.mock import patch

from archivist.backup.utils import compute_checksum
from archivist.backup.verifier import IntegrityVerifier
from archivist.exceptions import IntegrityFailure


@pytest.fixture
def verifier():
    return IntegrityVerifier()


def test_plain_dump_with_header(verifier, temp_dir):
    dump = temp_dir / "db.sql"
    dump.write_text("-- MySQL dump 10.13\nCREATE TABLE t (id int);\n")

    verifier.verify_database(dump)


def test_plain_dump_without_header(verifier, temp_dir):
    dump = temp_dir / "db.sql"
    dump.write_text("this is not a dump\n")

    with pytest.raises(IntegrityFailure):
        verifier.verify_database(dump)


def test_missing_or_empty_dump(verifier, temp_dir):
    with pytest.raises(IntegrityFailure):
        verifier.verify_database(temp_dir / "missing.sql")

    (temp_dir / "empty.sql").write_bytes(b"")
    with pytest.raises(IntegrityFailure):
        verifier.verify_database(temp_dir / "empty.sql")


def test_gzip_dump(verifier, temp_dir):
    dump = temp_dir / "db.sql.gz"
    with gzip.open(dump, "wt") as f:
        f.write("-- MySQL dump\n")

    verifier.verify_database(dump)


def test_corrupt_gzip_dump(verifier, temp_dir):
    dump = temp_dir / "db.sql.gz"
    dump.write_bytes(b"not gzip data at all")

    with pytest.raises(IntegrityFailure):
        verifier.verify_database(dump)


def test_gzip_of_nothing(verifier, temp_dir):
    dump = temp_dir / "db.sql.gz"
    with gzip.open(dump, "wb") as f:
        f.write(b"")

    with pytest.raises(IntegrityFailure):
        verifier.verify_database(dump)


def test_archive(verifier, temp_dir):
    archive = temp_dir / "uploads.zip"
    with zipfile.ZipFile(archive, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("a.txt", "a")
        zf.writestr("b/c.txt", "c")

    assert verifier.verify_archive(archive) == 2


def test_empty_archive(verifier, temp_dir):
    archive = temp_dir / "uploads.zip"
    with zipfile.ZipFile(archive, "w"):
        pass

    with pytest.raises(IntegrityFailure):
        verifier.verify_archive(archive)


def test_not_a_zip(verifier, temp_dir):
    archive = temp_dir / "uploads.zip"
    archive.write_bytes(b"PK but not really")

    with pytest.raises(IntegrityFailure):
        verifier.verify_archive(archive)


def test_checksum(verifier, temp_dir):
    artifact = temp_dir / "db.sql.gz"
    artifact.write_bytes(b"payload")
    checksum = compute_checksum(artifact)

    verifier.verify_checksum(artifact, checksum)

    artifact.write_bytes(b"tampered")
    with pytest.raises(IntegrityFailure, match="Checksum mismatch"):
        verifier.verify_checksum(artifact, checksum)

    with pytest.raises(IntegrityFailure, match="not found"):
        verifier.verify_checksum(temp_dir / "gone", checksum)


def test_checksum_uses_shared_helper(verifier, temp_dir):
    artifact = temp_dir / "uploads.zip"
    artifact.write_bytes(b"payload")

    with patch("archivist.backup.verifier.verify_checksum", return_value=False) as helper:
        with pytest.raises(IntegrityFailure, match="expected sha256:abc"):
            verifier.verify_checksum(artifact, "sha256:abc")

    helper.assert_called_once_with(artifact, "sha256:abc")
