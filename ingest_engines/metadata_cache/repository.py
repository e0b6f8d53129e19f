"""Per-asset progress and metadata store.

``initialize_record`` is a conditional create and is the only deduplication
primitive in the pipeline: a redelivered ingestion event finds the record
already present and stops there. All other writes replace one flag or one
metadata sub-tree; no ordering between stages is enforced.
"""
from __future__ import annotations

import copy
import logging
import math
import threading
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from pydantic import BaseModel

try:  # pragma: no cover
    import boto3  # type: ignore
    from botocore.exceptions import BotoCoreError, ClientError  # type: ignore
except Exception:  # pragma: no cover
    boto3 = None
    BotoCoreError = ClientError = None  # type: ignore

from ingest_engines.common.errors import StorageError
from ingest_engines.gop_segmenter.models import GopSegment, GopStatus
from ingest_engines.metadata_cache.models import (
    AssetRecord,
    MetadataPath,
    ProcessingStage,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


class MetadataCache(Protocol):
    def initialize_record(self, user_id: str, asset_id: str) -> bool:
        """Create the record if absent. False means it already existed; nothing was written."""
        ...

    def update_progress(self, user_id: str, asset_id: str, stage: ProcessingStage, value: bool = True) -> None:
        ...

    def update_metadata(self, user_id: str, asset_id: str, path: MetadataPath, data: Any) -> None:
        ...

    def record_segments(self, user_id: str, asset_id: str, segments: Sequence[GopSegment]) -> None:
        ...

    def flag_critical_failure(self, user_id: str, asset_id: str) -> None:
        ...

    def get_record(self, user_id: str, asset_id: str) -> Optional[AssetRecord]:
        ...


def normalize_value(value: Any) -> Any:
    """Reduce an arbitrary value to None, bool, number, str, dict or list."""
    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True, mode="json")
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return str(value)
        return value
    if isinstance(value, dict):
        return {str(k): normalize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_value(v) for v in value]
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def to_item_value(value: Any) -> Any:
    """Normalized ``value`` with floats as Decimal, the form the DynamoDB resource layer accepts."""
    value = normalize_value(value)
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_item_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_item_value(v) for v in value]
    return value


def from_item_value(value: Any) -> Any:
    """Inverse of ``to_item_value``: Decimals read back as int or float."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_item_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_item_value(v) for v in value]
    return value


def _segment_entries(segments: Sequence[GopSegment]) -> Tuple[int, int, List[Dict[str, Any]]]:
    ordered = sorted(segments, key=lambda s: s.sequence)
    entries = [
        {"sequence": s.sequence, "key": s.key or s.path, "status": s.status.value}
        for s in ordered
    ]
    completed = sum(1 for s in ordered if s.status == GopStatus.UPLOADED)
    return len(ordered), completed, entries


class InMemoryMetadataCache:
    def __init__(self) -> None:
        self.records: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _require(self, user_id: str, asset_id: str) -> Dict[str, Any]:
        record = self.records.get((user_id, asset_id))
        if record is None:
            raise StorageError(f"No asset record for {user_id}/{asset_id}")
        return record

    def initialize_record(self, user_id: str, asset_id: str) -> bool:
        with self._lock:
            if (user_id, asset_id) in self.records:
                return False
            self.records[(user_id, asset_id)] = AssetRecord.new(user_id, asset_id).to_wire()
        return True

    def update_progress(self, user_id: str, asset_id: str, stage: ProcessingStage, value: bool = True) -> None:
        with self._lock:
            progress = self._require(user_id, asset_id)["progress"]
            progress[stage.value] = bool(value)
            progress["updatedAt"] = utc_now_iso()

    def update_metadata(self, user_id: str, asset_id: str, path: MetadataPath, data: Any) -> None:
        *parents, leaf = path.attribute_path
        with self._lock:
            node = self._require(user_id, asset_id)
            for name in parents:
                node = node.setdefault(name, {})
            node[leaf] = normalize_value(data)

    def record_segments(self, user_id: str, asset_id: str, segments: Sequence[GopSegment]) -> None:
        total, completed, entries = _segment_entries(segments)
        with self._lock:
            self._require(user_id, asset_id)["gops"] = {
                "totalCount": total,
                "completedCount": completed,
                "segments": entries,
            }

    def flag_critical_failure(self, user_id: str, asset_id: str) -> None:
        with self._lock:
            self._require(user_id, asset_id)["hasCriticalFailure"] = True

    def get_record(self, user_id: str, asset_id: str) -> Optional[AssetRecord]:
        with self._lock:
            raw = self.records.get((user_id, asset_id))
            snapshot = copy.deepcopy(raw) if raw is not None else None
        return AssetRecord.model_validate(snapshot) if snapshot is not None else None



class DynamoDBMetadataCache:
    """DynamoDB-backed cache keyed by (userId, assetId) on a boto3 ``Table`` resource."""

    def __init__(self, table_name: Optional[str] = None, table: Optional[object] = None, region: Optional[str] = None) -> None:
        if table is not None:
            self._table = table
            return
        if not table_name:
            raise RuntimeError(
                "METADATASTORAGE_TABLE_NAME config missing for the metadata cache. "
                "Set it to the DynamoDB table name."
            )
        if boto3 is None:
            raise RuntimeError("boto3 is required for the DynamoDB metadata cache")
        try:
            dynamodb = boto3.resource("dynamodb", region_name=region)  # type: ignore
            self._table = dynamodb.Table(table_name)  # type: ignore
        except Exception as exc:
            raise RuntimeError(f"Failed to initialize DynamoDB table: {exc}") from exc

    @staticmethod
    def _key(user_id: str, asset_id: str) -> Dict[str, Any]:
        return {"userId": user_id, "assetId": asset_id}

    @staticmethod
    def _error_code(exc: Exception) -> str:
        if ClientError is not None and isinstance(exc, ClientError):
            return exc.response.get("Error", {}).get("Code", "")
        return ""

    def _aws_errors(self) -> tuple:
        return tuple(e for e in (ClientError, BotoCoreError) if e is not None)

    def _update(self, user_id: str, asset_id: str, expression: str, names: Dict[str, str], values: Dict[str, Any]) -> None:
        try:
            self._table.update_item(
                Key=self._key(user_id, asset_id),
                UpdateExpression=expression,
                ConditionExpression="attribute_exists(userId)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except self._aws_errors() as exc:
            if self._error_code(exc) == CONDITIONAL_CHECK_FAILED:
                raise StorageError(f"No asset record for {user_id}/{asset_id}") from exc
            logger.error("DynamoDB update failed for %s/%s: %s", user_id, asset_id, exc)
            raise StorageError(f"Metadata cache update failed: {exc}") from exc

    def initialize_record(self, user_id: str, asset_id: str) -> bool:
        item = to_item_value(AssetRecord.new(user_id, asset_id).to_wire())
        try:
            self._table.put_item(
                Item=item,
                ConditionExpression="attribute_not_exists(userId) AND attribute_not_exists(assetId)",
            )
        except self._aws_errors() as exc:
            if self._error_code(exc) == CONDITIONAL_CHECK_FAILED:
                logger.info("Asset record %s/%s already exists", user_id, asset_id)
                return False
            logger.error("DynamoDB put failed for %s/%s: %s", user_id, asset_id, exc)
            raise StorageError(f"Metadata cache initialization failed: {exc}") from exc
        return True

    def update_progress(self, user_id: str, asset_id: str, stage: ProcessingStage, value: bool = True) -> None:
        self._update(
            user_id,
            asset_id,
            "SET #progress.#stage = :value, #progress.#updatedAt = :now",
            {"#progress": "progress", "#stage": stage.value, "#updatedAt": "updatedAt"},
            {":value": bool(value), ":now": utc_now_iso()},
        )

    def update_metadata(self, user_id: str, asset_id: str, path: MetadataPath, data: Any) -> None:
        parts = path.attribute_path
        names = {f"#p{i}": name for i, name in enumerate(parts)}
        expression = "SET " + ".".join(names) + " = :data"
        self._update(user_id, asset_id, expression, names, {":data": to_item_value(data)})

    def record_segments(self, user_id: str, asset_id: str, segments: Sequence[GopSegment]) -> None:
        total, completed, entries = _segment_entries(segments)
        self._update(
            user_id,
            asset_id,
            "SET #gops.#total = :total, #gops.#completed = :completed, #gops.#segments = :segments",
            {"#gops": "gops", "#total": "totalCount", "#completed": "completedCount", "#segments": "segments"},
            {":total": total, ":completed": completed, ":segments": to_item_value(entries)},
        )

    def flag_critical_failure(self, user_id: str, asset_id: str) -> None:
        self._update(user_id, asset_id, "SET #flag = :true", {"#flag": "hasCriticalFailure"}, {":true": True})

    def get_record(self, user_id: str, asset_id: str) -> Optional[AssetRecord]:
        try:
            response = self._table.get_item(Key=self._key(user_id, asset_id), ConsistentRead=True)
        except self._aws_errors() as exc:
            raise StorageError(f"Metadata cache read failed: {exc}") from exc
        item = response.get("Item")
        if not item:
            return None
        return AssetRecord.model_validate(from_item_value(item))
