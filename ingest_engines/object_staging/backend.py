"""Durable object stores used for staging (S3, plus a local directory store for dev/tests)."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import BinaryIO, Optional, Protocol

try:  # pragma: no cover
    from botocore.exceptions import BotoCoreError, ClientError  # type: ignore
except Exception:  # pragma: no cover
    BotoCoreError = ClientError = None  # type: ignore

from ingest_engines.common.errors import StorageError

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


class ObjectStore(Protocol):
    """Abstract durable blob storage."""

    def get_object(self, bucket: str, key: str) -> BinaryIO:
        ...

    def put_object(self, bucket: str, key: str, body: BinaryIO) -> bool:
        ...

    def delete_object(self, bucket: str, key: str) -> bool:
        ...


def _aws_errors() -> tuple:
    return tuple(e for e in (ClientError, BotoCoreError) if e is not None)


class S3ObjectStore:
    """S3-backed object store. The client is created lazily from boto3 unless injected."""

    def __init__(self, client: Optional[object] = None, region: Optional[str] = None) -> None:
        if client is not None:
            self.client = client
        else:
            try:
                import boto3  # type: ignore
            except Exception as exc:  # pragma: no cover - import error path
                raise RuntimeError("boto3 is required for S3 object storage") from exc
            self.client = boto3.client("s3", region_name=region)

    def get_object(self, bucket: str, key: str) -> BinaryIO:
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
        except _aws_errors() as exc:
            code = ""
            if ClientError is not None and isinstance(exc, ClientError):
                code = exc.response.get("Error", {}).get("Code", "")
            reason = "object not found" if code in _MISSING_CODES else "object fetch failed"
            raise StorageError(f"S3 {reason}: s3://{bucket}/{key}", details={"code": code}) from exc
        body = response.get("Body")
        if body is None:
            raise StorageError(f"S3 returned no body for s3://{bucket}/{key}")
        return body

    def put_object(self, bucket: str, key: str, body: BinaryIO) -> bool:
        try:
            # upload_fileobj switches to multipart for large segment files.
            self.client.upload_fileobj(body, bucket, key)
        except _aws_errors() as exc:
            raise StorageError(f"S3 upload failed: s3://{bucket}/{key}") from exc
        return True

    def delete_object(self, bucket: str, key: str) -> bool:
        try:
            response = self.client.delete_object(Bucket=bucket, Key=key)
        except _aws_errors() as exc:
            raise StorageError(f"S3 delete failed: s3://{bucket}/{key}") from exc
        status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return status in (200, 204)


class LocalObjectStore:
    """Directory-backed fallback to keep tests/dev working without S3."""

    def __init__(self, root: str) -> None:
        self.root = Path(root)

    def _path(self, bucket: str, key: str) -> Path:
        return self.root / bucket / key

    def get_object(self, bucket: str, key: str) -> BinaryIO:
        path = self._path(bucket, key)
        try:
            return open(path, "rb")
        except OSError as exc:
            raise StorageError(f"object not found: {bucket}/{key}") from exc

    def put_object(self, bucket: str, key: str, body: BinaryIO) -> bool:
        path = self._path(bucket, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as out:
                shutil.copyfileobj(body, out)
        except OSError as exc:
            raise StorageError(f"local upload failed: {bucket}/{key}") from exc
        return True

    def delete_object(self, bucket: str, key: str) -> bool:
        try:
            self._path(bucket, key).unlink()
        except FileNotFoundError:
            return True
        except OSError as exc:
            logger.warning("Local delete failed for %s/%s: %s", bucket, key, exc)
            return False
        return True

    def exists(self, bucket: str, key: str) -> bool:
        return self._path(bucket, key).is_file()
