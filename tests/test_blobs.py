"""Unit tests for airlane.storage.blobs — write-once local payload store."""

import hashlib
import io
import re

import pytest

from airlane.storage.blobs import CHUNK_SIZE, LocalBlobStore, UploadedFile


@pytest.fixture
def store(tmp_path):
    return LocalBlobStore(str(tmp_path / "blobs"))


class TestUploadedFile:
    def test_extension(self):
        upload = UploadedFile("Report.Final.PDF", io.BytesIO(b"x"))
        assert upload.extension == "pdf"

    def test_no_extension(self):
        assert UploadedFile("Makefile", io.BytesIO(b"x")).extension == ""

    def test_mime_type_guessed(self):
        assert UploadedFile("photo.png", io.BytesIO(b"x")).resolved_mime_type() == "image/png"

    def test_mime_type_fallback(self):
        upload = UploadedFile("blob.zzunknown", io.BytesIO(b"x"))
        assert upload.resolved_mime_type() == "application/octet-stream"

    def test_declared_mime_type_wins(self):
        upload = UploadedFile("a.txt", io.BytesIO(b"x"), mime_type="text/markdown")
        assert upload.resolved_mime_type() == "text/markdown"

    def test_declared_size(self):
        assert UploadedFile("a", io.BytesIO(b"abc"), size=3).determine_size() == 3

    def test_size_measured_by_seeking(self):
        stream = io.BytesIO(b"abcdef")
        stream.seek(2)
        upload = UploadedFile("a", stream)
        assert upload.determine_size() == 4
        assert stream.tell() == 2

    def test_empty_stream(self):
        assert UploadedFile("a", io.BytesIO(b"")).determine_size() == 0

    def test_unseekable_stream(self):
        class Pipe:
            def read(self, n=-1):
                return b""

        assert UploadedFile("a", Pipe()).determine_size() == 0


class TestLocalBlobStore:
    def test_generate_path(self):
        path = LocalBlobStore.generate_path(7, "pdf")
        assert re.fullmatch(r"users/7/[0-9a-f]{32}\.pdf", path)

    def test_generate_path_without_extension(self):
        assert re.fullmatch(r"users/7/[0-9a-f]{32}", LocalBlobStore.generate_path(7))

    def test_generated_paths_are_unique(self):
        assert LocalBlobStore.generate_path(1, "txt") != LocalBlobStore.generate_path(1, "txt")

    def test_write_and_read(self, store):
        data = b"x" * (CHUNK_SIZE * 2 + 10)
        blob = store.write("local", "users/1/a.bin", io.BytesIO(data))
        assert blob.size_bytes == len(data)
        assert blob.checksum == hashlib.sha256(data).hexdigest()
        assert store.exists("local", "users/1/a.bin")
        chunks = list(store.open("local", "users/1/a.bin"))
        assert len(chunks) == 3
        assert b"".join(chunks) == data

    def test_write_once(self, store):
        store.write("local", "users/1/a.bin", io.BytesIO(b"first"))
        with pytest.raises(FileExistsError):
            store.write("local", "users/1/a.bin", io.BytesIO(b"second"))
        assert b"".join(store.open("local", "users/1/a.bin")) == b"first"

    def test_delete(self, store):
        store.write("local", "users/1/a.bin", io.BytesIO(b"data"))
        assert store.delete("local", "users/1/a.bin") is True
        assert not store.exists("local", "users/1/a.bin")
        assert store.delete("local", "users/1/a.bin") is False

    def test_namespaces_are_separate(self, store):
        store.write("local", "users/1/a.bin", io.BytesIO(b"data"))
        assert not store.exists("archive", "users/1/a.bin")

    def test_path_escape_rejected(self, store):
        with pytest.raises(ValueError, match="escapes"):
            store.write("local", "../../etc/passwd", io.BytesIO(b"x"))
