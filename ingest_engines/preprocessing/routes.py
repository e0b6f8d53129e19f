from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request

from ingest_engines.common.error_envelope import error_response
from ingest_engines.metadata_cache.models import AssetRecord
from ingest_engines.preprocessing import handler
from ingest_engines.preprocessing.models import BatchResponse, IngestionBatch
from ingest_engines.preprocessing.service import PreprocessingService

router = APIRouter(prefix="/preprocessing", tags=["preprocessing"])


def get_preprocessing_service(request: Request) -> PreprocessingService:
    service = getattr(request.app.state, "preprocessing_service", None)
    return service or handler.get_service()


@router.post("/batches")
def process_batch(
    batch: IngestionBatch,
    service: PreprocessingService = Depends(get_preprocessing_service),
):
    """Run a batch of ingestion messages and return per-message outcomes."""
    response: BatchResponse = service.process_batch(batch)
    return response.to_wire()


@router.get("/assets/{user_id}/{asset_id}")
def get_asset(
    user_id: str,
    asset_id: str,
    service: PreprocessingService = Depends(get_preprocessing_service),
):
    record: Optional[AssetRecord] = service.get_record(user_id, asset_id)
    if record is None:
        error_response(
            code="asset.not_found",
            message=f"No asset record for {user_id}/{asset_id}",
            status_code=404,
            details={"user_id": user_id, "asset_id": asset_id},
        )
    return record.to_wire()
