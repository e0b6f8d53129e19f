from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import unquote_plus

from pydantic import BaseModel, ConfigDict, Field

from ingest_engines.common.error_envelope import ErrorEnvelope
from ingest_engines.common.errors import ValidationError
from ingest_engines.common.models import WireModel
from ingest_engines.gop_segmenter.models import GopSegment


class ObjectRef(BaseModel):
    bucket: str
    key: str


class IngestionMessage(BaseModel):
    """One queue message; ``body`` is a bucket notification event serialized as JSON."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    message_id: str = Field(alias="messageId")
    body: str


class IngestionBatch(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    records: List[IngestionMessage] = Field(default_factory=list, alias="Records")


def _record_ref(record: Dict[str, Any]) -> ObjectRef:
    s3 = record.get("s3")
    if isinstance(s3, dict):
        # Notification keys arrive URL-encoded.
        return ObjectRef(bucket=s3["bucket"]["name"], key=unquote_plus(s3["object"]["key"]))
    return ObjectRef(bucket=record["bucket"], key=record["key"])


def parse_notification(body: str) -> List[ObjectRef]:
    """Object references carried by a notification body. Test events carry none."""
    try:
        event = json.loads(body)
        records = event.get("Records") or []
        return [_record_ref(r) for r in records]
    except (ValueError, AttributeError, KeyError, TypeError) as exc:
        raise ValidationError("Malformed ingestion notification", details={"reason": exc.__class__.__name__}) from exc


class OutcomeStatus(str, Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"
    FAILED = "failed"


class ObjectOutcome(WireModel):
    bucket: str
    key: str
    status: OutcomeStatus
    user_id: Optional[str] = None
    asset_id: Optional[str] = None
    task_id: Optional[str] = None
    segments: List[GopSegment] = Field(default_factory=list)
    error: Optional[ErrorEnvelope] = None

    @property
    def needs_retry(self) -> bool:
        return self.status == OutcomeStatus.FAILED


class MessageOutcome(WireModel):
    message_id: str
    objects: List[ObjectOutcome] = Field(default_factory=list)
    error: Optional[ErrorEnvelope] = None

    @property
    def failed(self) -> bool:
        if self.error is not None and self.error.error.retryable:
            return True
        return any(o.needs_retry for o in self.objects)


class BatchItemFailure(WireModel):
    item_identifier: str


class BatchResponse(WireModel):
    batch_item_failures: List[BatchItemFailure] = Field(default_factory=list)
    messages: List[MessageOutcome] = Field(default_factory=list)

    def queue_response(self) -> Dict[str, Any]:
        """Partial-batch response understood by the queue trigger."""
        return {"batchItemFailures": [f.to_wire() for f in self.batch_item_failures]}
