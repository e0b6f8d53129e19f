from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import ConfigDict, Field

from ingest_engines.common.models import WireModel


class TaskType(str, Enum):
    GOP_CREATION = "GOP_CREATION"
    TRANSCODING = "TRANSCODING"


class WorkerType(str, Enum):
    GOP_WORKER = "GOP_WORKER"
    TRANSCODER_WORKER = "TRANSCODER_WORKER"


class Location(WireModel):
    bucket: str
    key: str


class TaskDescriptor(WireModel):
    model_config = ConfigDict(frozen=True)

    task_id: str
    user_id: str
    asset_id: str
    input: Location
    output: Location
    type: TaskType
    worker: WorkerType
    created_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    metadata: Optional[Any] = None


def create_task(
    user_id: str,
    asset_id: str,
    input: Location,
    output: Location,
    type: TaskType,
    worker: WorkerType,
    metadata: Optional[Any] = None,
) -> TaskDescriptor:
    return TaskDescriptor(
        task_id=f"{type.value}-{uuid.uuid4()}",
        user_id=user_id,
        asset_id=asset_id,
        input=input,
        output=output,
        type=type,
        worker=worker,
        metadata=metadata,
    )
