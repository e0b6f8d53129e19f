from __future__ import annotations

import json
import logging
from typing import List, Optional, Protocol

try:  # pragma: no cover
    from botocore.exceptions import BotoCoreError, ClientError  # type: ignore
except Exception:  # pragma: no cover
    BotoCoreError = ClientError = None  # type: ignore

from ingest_engines.common.errors import DispatchError
from ingest_engines.task_dispatch.models import TaskDescriptor

logger = logging.getLogger(__name__)


class TaskQueue(Protocol):
    def send(self, body: str) -> bool:
        """Enqueue one message body. True only when the queue acknowledged it."""
        ...


class SqsTaskQueue:
    def __init__(self, queue_url: Optional[str] = None, client: Optional[object] = None, region: Optional[str] = None) -> None:
        if not queue_url:
            raise RuntimeError("TASKQUEUE_QUEUE_URL config missing for task dispatch.")
        self.queue_url = queue_url
        if client is not None:
            self.client = client
        else:
            try:
                import boto3  # type: ignore
            except Exception as exc:  # pragma: no cover - import error path
                raise RuntimeError("boto3 is required for the SQS task queue") from exc
            self.client = boto3.client("sqs", region_name=region)

    def send(self, body: str) -> bool:
        errors = tuple(e for e in (ClientError, BotoCoreError) if e is not None)
        try:
            response = self.client.send_message(QueueUrl=self.queue_url, MessageBody=body)
        except errors as exc:
            raise DispatchError(f"Unable to send message to task queue: {exc}") from exc
        status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return status == 200 and bool(response.get("MessageId"))


class InMemoryTaskQueue:
    def __init__(self, acknowledge: bool = True) -> None:
        self.acknowledge = acknowledge
        self.messages: List[str] = []

    def send(self, body: str) -> bool:
        if not self.acknowledge:
            return False
        self.messages.append(body)
        return True

    def tasks(self) -> List[dict]:
        return [json.loads(m) for m in self.messages]


def serialize_task(task: TaskDescriptor) -> str:
    payload = task.to_wire()
    if payload.get("metadata") is None:
        payload.pop("metadata", None)
    return json.dumps(payload, separators=(",", ":"))


class TaskDispatcher:
    def __init__(self, queue: TaskQueue) -> None:
        self.queue = queue

    def dispatch(self, task: TaskDescriptor) -> TaskDescriptor:
        """Hand ``task`` to the queue; raises DispatchError unless the queue acknowledged it."""
        if not self.queue.send(serialize_task(task)):
            raise DispatchError(
                "Unable to send message to task queue",
                details={"task_id": task.task_id},
            )
        logger.info("Enqueued %s task %s for %s/%s", task.type.value, task.task_id, task.user_id, task.asset_id)
        return task
