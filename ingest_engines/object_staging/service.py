from __future__ import annotations

import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO, Optional

from ingest_engines.common.errors import StorageError
from ingest_engines.object_staging.backend import ObjectStore

logger = logging.getLogger(__name__)

_CHUNK = 1024 * 1024


class ObjectStagingService:
    """Moves objects between durable storage and local scratch space.

    Nothing is retried here; every failure surfaces as a ``StorageError`` so the
    queue's redelivery decides what happens next.
    """

    def __init__(self, store: ObjectStore, bucket: str, scratch_dir: str) -> None:
        if not bucket:
            raise RuntimeError("A bucket is required for object staging")
        self.store = store
        self.bucket = bucket
        self.scratch_dir = Path(scratch_dir)

    def get_object(self, key: str, bucket: Optional[str] = None) -> BinaryIO:
        return self.store.get_object(bucket or self.bucket, key)

    def write_to_temp(self, stream: BinaryIO) -> str:
        """Copy ``stream`` into a fresh uniquely named scratch file and return its path."""
        path = self.scratch_dir / uuid.uuid4().hex
        try:
            self.scratch_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as out:
                shutil.copyfileobj(stream, out, _CHUNK)
        except OSError as exc:
            raise StorageError(f"Failed to write scratch file {path}") from exc
        finally:
            close = getattr(stream, "close", None)
            if close:
                close()
        return str(path)

    def make_temp_dir(self, prefix: str = "gops_") -> str:
        path = self.scratch_dir / f"{prefix}{uuid.uuid4().hex}"
        try:
            path.mkdir(parents=True, exist_ok=False)
        except OSError as exc:
            raise StorageError(f"Failed to create scratch directory {path}") from exc
        return str(path)

    def get_from_temp(self, path: str) -> BinaryIO:
        try:
            return open(path, "rb")
        except OSError as exc:
            raise StorageError(f"Scratch file unreadable: {path}") from exc

    def upload_object(self, stream: BinaryIO, key: str, bucket: Optional[str] = None) -> bool:
        return self.store.put_object(bucket or self.bucket, key, stream)

    def delete_object(self, key: str, bucket: Optional[str] = None) -> bool:
        return self.store.delete_object(bucket or self.bucket, key)

    def clean_up_from_temp(self, path: str) -> bool:
        """Remove a scratch file or directory. Already gone counts as success."""
        try:
            if os.path.isdir(path):
                shutil.rmtree(path)
            else:
                os.unlink(path)
        except FileNotFoundError:
            return True
        except OSError as exc:
            logger.warning("Scratch cleanup failed for %s: %s", path, exc)
            return False
        return True
