"""Queue-trigger entry point.

The trigger hands over a batch of ingestion messages and expects the
partial-batch response back: only messages listed in ``batchItemFailures``
are redelivered.
"""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from ingest_engines.config.runtime_config import PreprocessingConfig
from ingest_engines.preprocessing.models import IngestionBatch
from ingest_engines.preprocessing.service import PreprocessingService, build_preprocessing_service

logger = logging.getLogger(__name__)

_SERVICE: Optional[PreprocessingService] = None


@lru_cache(maxsize=1)
def _default_service() -> PreprocessingService:
    return build_preprocessing_service(PreprocessingConfig.from_env())


def get_service() -> PreprocessingService:
    return _SERVICE or _default_service()


def set_service(service: Optional[PreprocessingService]) -> None:
    global _SERVICE
    _SERVICE = service


def handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    batch = IngestionBatch.model_validate(event or {})
    logger.info("Received %d ingestion messages", len(batch.records))
    response = get_service().process_batch(batch)
    return response.queue_response()
