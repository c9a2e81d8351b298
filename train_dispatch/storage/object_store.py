from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from minio import Minio
from minio.error import MinioException
from urllib3.exceptions import HTTPError

from train_dispatch.core.config import Settings, settings
from train_dispatch.core.errors import StorageUnavailable


@dataclass(frozen=True)
class StoredObject:
    key: str
    uploaded_at: datetime


def newest_first(objects: list[StoredObject]) -> list[StoredObject]:
    """Newest upload first; equal timestamps fall back to descending key order."""
    return sorted(objects, key=lambda o: (o.uploaded_at, o.key), reverse=True)


class ObjectStore:
    backend = "object_store"

    def list_objects(self, bucket: str, prefix: str) -> list[StoredObject]:
        raise NotImplementedError

    def delete(self, bucket: str, key: str) -> None:
        raise NotImplementedError


class LocalObjectStore(ObjectStore):
    """Buckets are directories under ``root``; upload time is the file mtime."""

    backend = "fs"

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, bucket: str, key: str) -> Path:
        base = (self.root / bucket).resolve()
        path = (base / key).resolve()
        if base != path and base not in path.parents:
            raise ValueError(f"Key escapes bucket: {key}")
        return path

    def list_objects(self, bucket: str, prefix: str) -> list[StoredObject]:
        base = self.root / bucket
        out: list[StoredObject] = []
        try:
            if not base.exists():
                return []
            for path in base.rglob("*"):
                if not path.is_file():
                    continue
                key = path.relative_to(base).as_posix()
                if not key.startswith(prefix):
                    continue
                uploaded = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
                out.append(StoredObject(key=key, uploaded_at=uploaded))
        except OSError as exc:
            raise StorageUnavailable(self.backend, str(exc)) from exc
        return sorted(out, key=lambda o: o.key)

    def delete(self, bucket: str, key: str) -> None:
        path = self._path(bucket, key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageUnavailable(self.backend, str(exc)) from exc


class MinioObjectStore(ObjectStore):
    backend = "minio"

    def __init__(self, endpoint: str, access_key: str, secret_key: str, secure: bool = False):
        self.client = Minio(endpoint, access_key=access_key, secret_key=secret_key, secure=secure)

    def list_objects(self, bucket: str, prefix: str) -> list[StoredObject]:
        try:
            return [
                StoredObject(key=obj.object_name, uploaded_at=obj.last_modified)
                for obj in self.client.list_objects(bucket, prefix=prefix, recursive=True)
                if not obj.is_dir
            ]
        except (MinioException, HTTPError) as exc:
            raise StorageUnavailable(self.backend, str(exc)) from exc

    def delete(self, bucket: str, key: str) -> None:
        try:
            self.client.remove_object(bucket, key)
        except (MinioException, HTTPError) as exc:
            raise StorageUnavailable(self.backend, str(exc)) from exc


def build_object_store(config: Settings) -> ObjectStore:
    if config.object_store_backend == "fs":
        return LocalObjectStore(config.local_object_store_path)
    if config.object_store_backend == "minio":
        return MinioObjectStore(
            config.minio_endpoint,
            access_key=config.minio_access_key,
            secret_key=config.minio_secret_key,
            secure=config.minio_secure,
        )
    raise ValueError(f"Unsupported object store backend: {config.object_store_backend}")


object_store = build_object_store(settings)


def get_object_store() -> ObjectStore:
    return object_store
