"""Local-directory object store for recordings.

Objects live under ``<storage_dir>/<bucket>/<path>`` and are served by the
web app below ``<public_storage_url>/<bucket>/<path>``.
"""

from __future__ import annotations

import base64
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import structlog

from speaking.config.app_config import load_app_config
from speaking.core.transcriber import base_content_type, extension_for

logger = structlog.get_logger(__name__)

DEFAULT_BUCKET = "recordings"


class StorageError(Exception):
    """Object could not be stored or read."""


@dataclass
class StoredObject:
    """An uploaded object and where to fetch it."""

    path: str
    url: str
    size_bytes: int
    content_type: str


class ObjectStore:
    """Bucketed file store with public URLs."""

    def __init__(
        self,
        root: Path,
        bucket: str = DEFAULT_BUCKET,
        public_base_url: str = "/storage",
    ):
        self.root = Path(root)
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")

    @property
    def bucket_dir(self) -> Path:
        return self.root / self.bucket

    def bucket_exists(self) -> bool:
        return self.bucket_dir.is_dir()

    def create_bucket(self) -> None:
        self.bucket_dir.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if not path or relative.is_absolute() or ".." in relative.parts:
            raise StorageError(f"Invalid object path: {path!r}")
        return self.bucket_dir.joinpath(*relative.parts)

    def public_url(self, path: str) -> str:
        """Public URL of an object path."""
        return f"{self.public_base_url}/{self.bucket}/{path}"

    def path_from_url(self, url: str) -> str | None:
        """Object path for a public URL of this bucket, or None."""
        prefix = f"{self.public_base_url}/{self.bucket}/"
        if url.startswith(prefix):
            return url[len(prefix):]
        return None

    def upload(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        upsert: bool = True,
    ) -> str:
        """Write an object and return its public URL.

        Raises:
            StorageError: If the path is invalid, exists without upsert, or
                the write fails
        """
        target = self._resolve(path)
        if target.exists() and not upsert:
            raise StorageError(f"Object already exists: {path}")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to upload {path}: {e}") from e

        logger.debug(
            "storage.uploaded",
            bucket=self.bucket,
            path=path,
            size_kb=round(len(data) / 1024),
            content_type=content_type,
        )
        return self.public_url(path)

    def upload_recording(
        self,
        user_id: str,
        file_id: str,
        data: bytes,
        content_type: str | None = None,
    ) -> StoredObject:
        """Upload a recording under a timestamped per-user key.

        Keys look like ``<user_id>/<file_id>-<epoch ms>.<ext>``.
        """
        content_type = base_content_type(content_type)
        path = f"{user_id}/{file_id}-{int(time.time() * 1000)}.{extension_for(content_type)}"
        url = self.upload(path, data, content_type=content_type)
        return StoredObject(path=path, url=url, size_bytes=len(data), content_type=content_type)

    def read(self, path: str) -> bytes:
        """Read an object.

        Raises:
            StorageError: If the object does not exist
        """
        target = self._resolve(path)
        if not target.is_file():
            raise StorageError(f"Object not found: {path}")
        return target.read_bytes()

    def delete(self, path: str) -> bool:
        """Delete an object, returning False when it did not exist."""
        target = self._resolve(path)
        if not target.is_file():
            return False
        target.unlink()
        logger.debug("storage.deleted", bucket=self.bucket, path=path)
        return True

    @staticmethod
    def to_data_url(data: bytes, content_type: str | None = None) -> str:
        """Inline audio as a base64 data URL."""
        encoded = base64.b64encode(data).decode("ascii")
        return f"data:{base_content_type(content_type)};base64,{encoded}"


def store_recording(
    store: ObjectStore,
    user_id: str,
    file_id: str,
    data: bytes,
    content_type: str | None = None,
) -> str:
    """Upload a recording, falling back to a data URL when storage fails."""
    try:
        return store.upload_recording(user_id, file_id, data, content_type).url
    except StorageError as e:
        logger.warning("storage.upload_failed_using_data_url", file_id=file_id, error=str(e))
        return ObjectStore.to_data_url(data, content_type)


# Global store instance
_object_store: ObjectStore | None = None


def get_object_store() -> ObjectStore:
    """Get the global object store built from configuration."""
    global _object_store
    if _object_store is None:
        config = load_app_config()
        _object_store = ObjectStore(
            root=config.storage_dir,
            public_base_url=config.public_storage_url,
        )
        _object_store.create_bucket()
    return _object_store


def reset_object_store() -> None:
    """Reset the object store (for testing)."""
    global _object_store
    _object_store = None
