from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class StorageError(RuntimeError):
    pass


@dataclass(frozen=True)
class StoredFile:
    """What a caller needs to record about bytes it just saved."""

    key: str
    size: int
    sha256: str
    content_type: str


class Storage:
    """Key/value blob store. Keys are slash separated, e.g. documents/<user>/<uuid>/<name>."""

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        raise NotImplementedError

    def open(self, key: str) -> BinaryIO:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def read_bytes(self, key: str) -> bytes:
        fh = self.open(key)
        try:
            return fh.read()
        finally:
            fh.close()

    def save(self, key: str, data: bytes, *, content_type: str | None = None) -> StoredFile:
        content_type = (content_type or DEFAULT_CONTENT_TYPE).strip()
        self.put_bytes(key, data, content_type=content_type)
        return StoredFile(key=key, size=len(data), sha256=hashlib.sha256(data).hexdigest(), content_type=content_type)


@dataclass(frozen=True)
class LocalStorage(Storage):
    root: Path

    def _path(self, key: str) -> Path:
        root = self.root.resolve()
        p = (root / key.lstrip("/").replace("\\", "/")).resolve()
        if root not in p.parents:
            raise StorageError(f"Storage key escapes root: {key}")
        return p

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        target = self._path(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def open(self, key: str) -> BinaryIO:
        target = self._path(key)
        if not target.is_file():
            raise StorageError(f"Stored file not found: {key}")
        return target.open("rb")

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


@dataclass(frozen=True)
class S3Storage(Storage):
    """S3-compatible object storage (DigitalOcean Spaces by default region)."""

    endpoint: str
    region: str
    bucket: str
    access_key_id: str
    secret_access_key: str

    def _client(self):
        import boto3

        return boto3.client(
            "s3",
            endpoint_url=f"https://{self.endpoint}" if self.endpoint else None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
        )

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        try:
            self._client().put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type or DEFAULT_CONTENT_TYPE)
        except Exception as e:
            raise StorageError(f"S3 upload failed for {key}: {e}") from e

    def open(self, key: str) -> BinaryIO:
        try:
            return self._client().get_object(Bucket=self.bucket, Key=key)["Body"]  # type: ignore[return-value]
        except Exception as e:
            raise StorageError(f"S3 download failed for {key}: {e}") from e

    def exists(self, key: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            self._client().head_object(Bucket=self.bucket, Key=key)
        except ClientError:
            return False
        return True

    def delete(self, key: str) -> None:
        try:
            self._client().delete_object(Bucket=self.bucket, Key=key)
        except Exception as e:
            raise StorageError(f"S3 delete failed for {key}: {e}") from e


def storage_from_config(config: dict) -> Storage:
    def cfg(name: str, default: str = "") -> str:
        return (config.get(name) or default).strip()

    if cfg("STORAGE_BACKEND", "local").lower() == "s3":
        return S3Storage(
            endpoint=cfg("S3_ENDPOINT"),
            region=cfg("S3_REGION", "nyc3"),
            bucket=cfg("S3_BUCKET"),
            access_key_id=cfg("S3_ACCESS_KEY_ID"),
            secret_access_key=cfg("S3_SECRET_ACCESS_KEY"),
        )
    root = cfg("LOCAL_STORAGE_ROOT")
    return LocalStorage(root=Path(root) if root else Path(os.getcwd()) / "storage")
