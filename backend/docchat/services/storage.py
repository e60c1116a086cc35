import io
import pathlib
import time
from typing import Protocol

from loguru import logger
from minio import Minio
from minio.error import S3Error

from docchat.core.config import Settings


def object_path(name: str, owner_id: str) -> str:
    safe_name = pathlib.PurePath(name or "upload").name
    return f"documents/{owner_id}/{int(time.time() * 1000)}_{safe_name}"


class BlobStore(Protocol):
    def put(self, data: bytes, name: str, media_type: str, owner_id: str) -> str:
        ...

    def delete(self, path: str) -> None:
        ...


class LocalBlobStore:
    """Stores uploads under a local directory, keyed by the same object paths MinIO would use."""

    def __init__(self, root: str):
        self._root = pathlib.Path(root)

    def put(self, data: bytes, name: str, media_type: str, owner_id: str) -> str:
        path = object_path(name, owner_id)
        target = self._root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return path

    def delete(self, path: str) -> None:
        try:
            (self._root / path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed removing {path} from local storage: {e}")


class MinioBlobStore:
    def __init__(self, settings: Settings):
        self._bucket = settings.minio_bucket
        self._client = Minio(
            settings.minio_endpoint.replace("http://", "").replace("https://", ""),
            access_key=settings.minio_root_user,
            secret_key=settings.minio_root_password,
            secure=settings.minio_endpoint.startswith("https"),
        )

    def ensure_bucket(self):
        if not self._client.bucket_exists(self._bucket):
            self._client.make_bucket(self._bucket)

    def put(self, data: bytes, name: str, media_type: str, owner_id: str) -> str:
        self.ensure_bucket()
        path = object_path(name, owner_id)
        self._client.put_object(self._bucket, path, io.BytesIO(data), length=len(data), content_type=media_type)
        return path

    def delete(self, path: str) -> None:
        try:
            self._client.remove_object(self._bucket, path)
        except S3Error as e:
            logger.warning(f"Failed removing object {path} from MinIO: {e}")


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.minio_endpoint:
        return MinioBlobStore(settings)
    return LocalBlobStore(settings.local_storage_dir)
