"""Tests for the recordings object store (F2)."""

import base64
import re

import pytest

from speaking.storage.object_store import (
    ObjectStore,
    StorageError,
    get_object_store,
    store_recording,
)


@pytest.fixture
def store(tmp_path):
    store = ObjectStore(tmp_path / "storage")
    store.create_bucket()
    return store


class TestUpload:
    def test_upload_returns_public_url(self, store):
        url = store.upload("u1/answer.webm", b"audio")
        assert url == "/storage/recordings/u1/answer.webm"
        assert (store.bucket_dir / "u1" / "answer.webm").read_bytes() == b"audio"

    def test_upsert(self, store):
        store.upload("a.webm", b"one")
        store.upload("a.webm", b"two")
        assert store.read("a.webm") == b"two"

    def test_no_upsert_rejects_existing(self, store):
        store.upload("a.webm", b"one")
        with pytest.raises(StorageError, match="already exists"):
            store.upload("a.webm", b"two", upsert=False)

    @pytest.mark.parametrize("path", ["", "/etc/passwd", "../escape.webm", "u1/../../x"])
    def test_invalid_paths(self, store, path):
        with pytest.raises(StorageError):
            store.upload(path, b"x")


class TestUploadRecording:
    def test_key_layout(self, store):
        """Keys are <user>/<file id>-<epoch ms>.<ext>."""
        stored = store.upload_recording("user-1", "question-1", b"abc", "audio/webm;codecs=opus")

        assert re.fullmatch(r"user-1/question-1-\d+\.webm", stored.path)
        assert stored.url == f"/storage/recordings/{stored.path}"
        assert stored.content_type == "audio/webm"
        assert stored.size_bytes == 3

    def test_extension_from_content_type(self, store):
        stored = store.upload_recording("user-1", "q", b"abc", "audio/mp4")
        assert stored.path.endswith(".mp4")


class TestReadDelete:
    def test_read_missing(self, store):
        with pytest.raises(StorageError, match="Object not found"):
            store.read("nope.webm")

    def test_delete(self, store):
        store.upload("a.webm", b"x")
        assert store.delete("a.webm") is True
        assert store.delete("a.webm") is False


class TestUrls:
    def test_path_from_url(self, store):
        assert store.path_from_url("/storage/recordings/u1/a.webm") == "u1/a.webm"
        assert store.path_from_url("https://elsewhere/a.webm") is None

    def test_custom_public_base(self, tmp_path):
        store = ObjectStore(tmp_path, bucket="audio", public_base_url="https://cdn.example.com/")
        assert store.public_url("a.webm") == "https://cdn.example.com/audio/a.webm"

    def test_to_data_url(self):
        url = ObjectStore.to_data_url(b"abc", "audio/ogg;codecs=opus")
        assert url == "data:audio/ogg;base64," + base64.b64encode(b"abc").decode()


class TestStoreRecording:
    def test_returns_public_url(self, store):
        url = store_recording(store, "u1", "q1", b"abc", "audio/webm")
        assert url.startswith("/storage/recordings/u1/q1-")

    def test_falls_back_to_data_url(self, store, monkeypatch):
        """Upload failures inline the audio as a data URL."""

        def failing_upload(*args, **kwargs):
            raise StorageError("disk full")

        monkeypatch.setattr(store, "upload", failing_upload)

        url = store_recording(store, "u1", "q1", b"abc", "audio/webm")

        assert url == "data:audio/webm;base64,YWJj"


def test_global_store_creates_bucket(workspace):
    store = get_object_store()
    assert store.bucket_exists()
    assert get_object_store() is store
