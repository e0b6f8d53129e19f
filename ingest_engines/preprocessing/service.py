"""Per-object preprocessing pipeline and the batch contract around it.

stage -> validate -> extract -> initialize record -> segment -> upload -> enqueue -> clean up

Stages with a data dependency run in order; the validation probes, the
metadata probes, the segment uploads, and the records of a batch fan out on
thread pools. Nothing is retried in-process: retryable failures are reported
back per message so the queue redelivers them, and the conditional record
create turns a redelivered, already-handled object into a no-op.
"""
from __future__ import annotations

import concurrent.futures
import logging
import os
from typing import List, Optional, Tuple

from ingest_engines.common.error_envelope import envelope_for
from ingest_engines.common.errors import (
    DuplicateError,
    PipelineError,
    SegmentationError,
    StorageError,
    ValidationError,
    log_pipeline_error,
)
from ingest_engines.common.object_keys import KeyOwner, asset_object_key, asset_prefix, get_owner
from ingest_engines.config.runtime_config import PreprocessingConfig
from ingest_engines.content_validation.models import ContentValidationResult
from ingest_engines.content_validation.service import ContentValidationService
from ingest_engines.gop_segmenter.backend import FfmpegGopBackend
from ingest_engines.gop_segmenter.models import GopConfig, GopSegment, GopStatus
from ingest_engines.gop_segmenter.service import GopSegmenter
from ingest_engines.media_probe.backend import FfmpegProbeBackend
from ingest_engines.media_probe.models import PlayabilityResult
from ingest_engines.metadata_cache.models import MetadataPath, ProcessingStage
from ingest_engines.metadata_cache.repository import DynamoDBMetadataCache, InMemoryMetadataCache, MetadataCache
from ingest_engines.metadata_extraction.models import ExtractedMetadata
from ingest_engines.metadata_extraction.service import MetadataExtractionService
from ingest_engines.object_staging.backend import LocalObjectStore, S3ObjectStore
from ingest_engines.object_staging.service import ObjectStagingService
from ingest_engines.preprocessing.models import (
    BatchItemFailure,
    BatchResponse,
    IngestionBatch,
    IngestionMessage,
    MessageOutcome,
    ObjectOutcome,
    OutcomeStatus,
    parse_notification,
)
from ingest_engines.task_dispatch.models import Location, TaskDescriptor, TaskType, WorkerType, create_task
from ingest_engines.task_dispatch.service import InMemoryTaskQueue, SqsTaskQueue, TaskDispatcher

logger = logging.getLogger(__name__)


def next_task_kind(segmented: bool) -> Tuple[TaskType, WorkerType]:
    """Segmented assets go straight to transcoding; others still need GOP creation."""
    if segmented:
        return TaskType.TRANSCODING, WorkerType.TRANSCODER_WORKER
    return TaskType.GOP_CREATION, WorkerType.GOP_WORKER


class PreprocessingService:
    def __init__(
        self,
        staging: ObjectStagingService,
        validator: ContentValidationService,
        extractor: MetadataExtractionService,
        segmenter: GopSegmenter,
        cache: MetadataCache,
        dispatcher: TaskDispatcher,
        segment_locally: bool = True,
        max_workers: int = 4,
    ) -> None:
        self.staging = staging
        self.validator = validator
        self.extractor = extractor
        self.segmenter = segmenter
        self.cache = cache
        self.dispatcher = dispatcher
        self.segment_locally = segment_locally
        self.max_workers = max(1, max_workers)

    # -- single object -------------------------------------------------

    def process_object(self, bucket: str, key: str) -> ObjectOutcome:
        """Run the whole pipeline for one ingested object. Raises PipelineError subclasses."""
        owner = get_owner(key)
        source_path = self.staging.write_to_temp(self.staging.get_object(key, bucket))
        try:
            validation = self.validator.validate_content(source_path)
            if not validation.success:
                self._record_rejection(owner, validation)
                raise ValidationError(
                    validation.error or "Validation failed",
                    details={
                        "basic": validation.basic.to_wire(),
                        "stream": validation.stream.to_wire(),
                    },
                )

            playability = PlayabilityResult(is_playable=validation.stream.is_playable, error=validation.stream.error)
            extracted = self.extractor.extract_all(source_path, playability)

            if not self.cache.initialize_record(owner.user_id, owner.asset_id):
                raise DuplicateError(
                    f"Asset {owner.user_id}/{owner.asset_id} was already ingested",
                    details={"user_id": owner.user_id, "asset_id": owner.asset_id},
                )
            self._record_preprocessing(owner, validation, extracted)

            segments: List[GopSegment] = []
            if self.segment_locally:
                segments = self._segment_and_upload(owner, source_path)
                self.cache.record_segments(owner.user_id, owner.asset_id, segments)
                self.cache.update_progress(owner.user_id, owner.asset_id, ProcessingStage.GOP_CREATION)

            task = self._build_task(owner, bucket, key, segments, extracted)
            self.dispatcher.dispatch(task)
        finally:
            self.staging.clean_up_from_temp(source_path)

        return ObjectOutcome(
            bucket=bucket,
            key=key,
            status=OutcomeStatus.PROCESSED,
            user_id=owner.user_id,
            asset_id=owner.asset_id,
            task_id=task.task_id,
            segments=segments,
        )

    def _record_rejection(self, owner: KeyOwner, validation: ContentValidationResult) -> None:
        """Keep the validation verdict on a new record and mark it as terminally failed."""
        try:
            if not self.cache.initialize_record(owner.user_id, owner.asset_id):
                return
            self.cache.update_progress(owner.user_id, owner.asset_id, ProcessingStage.UPLOAD)
            self.cache.update_metadata(owner.user_id, owner.asset_id, MetadataPath.VALIDATION_BASIC, validation.basic)
            self.cache.update_metadata(owner.user_id, owner.asset_id, MetadataPath.VALIDATION_STREAM, validation.stream)
            self.cache.flag_critical_failure(owner.user_id, owner.asset_id)
        except StorageError as exc:
            logger.warning("Could not record rejection for %s/%s: %s", owner.user_id, owner.asset_id, exc)

    def _record_preprocessing(self, owner: KeyOwner, validation: ContentValidationResult, extracted: ExtractedMetadata) -> None:
        user_id, asset_id = owner.user_id, owner.asset_id
        self.cache.update_progress(user_id, asset_id, ProcessingStage.UPLOAD)
        self.cache.update_metadata(user_id, asset_id, MetadataPath.VALIDATION_BASIC, validation.basic)
        self.cache.update_metadata(user_id, asset_id, MetadataPath.VALIDATION_STREAM, validation.stream)
        self.cache.update_progress(user_id, asset_id, ProcessingStage.VALIDATION)
        self.cache.update_metadata(user_id, asset_id, MetadataPath.TECHNICAL, extracted.technical)
        self.cache.update_metadata(user_id, asset_id, MetadataPath.QUALITY, extracted.quality)
        self.cache.update_metadata(user_id, asset_id, MetadataPath.CONTENT, extracted.content)
        self.cache.update_progress(user_id, asset_id, ProcessingStage.METADATA)

    def _segment_and_upload(self, owner: KeyOwner, source_path: str) -> List[GopSegment]:
        output_dir = self.staging.make_temp_dir()
        try:
            result = self.segmenter.create_segments(source_path, output_dir)
            if not result.success:
                raise SegmentationError(result.error or "GOP segmentation failed")
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                uploaded = list(executor.map(lambda s: self._upload_segment(owner, s), result.segments))
        finally:
            self.staging.clean_up_from_temp(output_dir)
        return sorted(uploaded, key=lambda s: s.sequence)

    def _upload_segment(self, owner: KeyOwner, segment: GopSegment) -> GopSegment:
        key = asset_object_key(owner.user_id, owner.asset_id, os.path.basename(segment.path))
        with self.staging.get_from_temp(segment.path) as stream:
            if not self.staging.upload_object(stream, key):
                raise StorageError(f"Segment upload was not acknowledged: {key}")
        self.staging.clean_up_from_temp(segment.path)
        return segment.model_copy(update={"status": GopStatus.UPLOADED, "key": key})

    def _build_task(
        self,
        owner: KeyOwner,
        bucket: str,
        key: str,
        segments: List[GopSegment],
        extracted: ExtractedMetadata,
    ) -> TaskDescriptor:
        task_type, worker = next_task_kind(self.segment_locally)
        metadata = {
            "technical": extracted.technical.to_wire(),
            "segmentCount": len(segments),
            "segments": [{"sequence": s.sequence, "key": s.key} for s in segments],
        }
        return create_task(
            owner.user_id,
            owner.asset_id,
            input=Location(bucket=bucket, key=key),
            output=Location(bucket=self.staging.bucket, key=asset_prefix(owner.user_id, owner.asset_id) + "/"),
            type=task_type,
            worker=worker,
            metadata=metadata,
        )

    # -- batch ---------------------------------------------------------

    def handle_object(self, bucket: str, key: str) -> ObjectOutcome:
        """process_object with every failure classified instead of raised."""
        try:
            return self.process_object(bucket, key)
        except Exception as exc:
            err = log_pipeline_error(exc, bucket=bucket, key=key)
        if isinstance(err, DuplicateError):
            status = OutcomeStatus.DUPLICATE
        elif err.is_failure:
            status = OutcomeStatus.FAILED
        else:
            status = OutcomeStatus.REJECTED
        owner = _owner_or_none(key)
        return ObjectOutcome(
            bucket=bucket,
            key=key,
            status=status,
            user_id=owner.user_id if owner else None,
            asset_id=owner.asset_id if owner else None,
            error=envelope_for(err),
        )

    def process_message(self, message: IngestionMessage) -> MessageOutcome:
        try:
            refs = parse_notification(message.body)
        except PipelineError as exc:
            err = log_pipeline_error(exc, message_id=message.message_id)
            return MessageOutcome(message_id=message.message_id, error=envelope_for(err))

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            outcomes = list(executor.map(lambda ref: self.handle_object(ref.bucket, ref.key), refs))
        return MessageOutcome(message_id=message.message_id, objects=outcomes)

    def process_batch(self, batch: IngestionBatch) -> BatchResponse:
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            messages = list(executor.map(self.process_message, batch.records))
        failures = [BatchItemFailure(item_identifier=m.message_id) for m in messages if m.failed]
        logger.info("Processed batch of %d messages, %d to redeliver", len(messages), len(failures))
        return BatchResponse(batch_item_failures=failures, messages=messages)

    def get_record(self, user_id: str, asset_id: str):
        return self.cache.get_record(user_id, asset_id)


def _owner_or_none(key: str) -> Optional[KeyOwner]:
    try:
        return get_owner(key)
    except ValidationError:
        return None


def build_preprocessing_service(config: PreprocessingConfig) -> PreprocessingService:
    """Wire the pipeline from one explicit configuration value."""
    if config.storage_backend == "local":
        store = LocalObjectStore(config.local_storage_root or os.path.join(config.scratch_dir, "objects"))
    else:
        store = S3ObjectStore(region=config.region)
    staging = ObjectStagingService(store, config.transport_bucket or "", config.scratch_dir)

    probe_backend = FfmpegProbeBackend(ffprobe_path=config.ffprobe_path, ffmpeg_path=config.ffmpeg_path)
    validator = ContentValidationService(probe_backend, max_size_bytes=config.upload_size_limit)
    extractor = MetadataExtractionService(probe_backend)
    gop_config = GopConfig(output_dir=config.scratch_dir, **config.gop)
    segmenter = GopSegmenter(gop_config, FfmpegGopBackend(ffmpeg_path=config.ffmpeg_path))

    cache: MetadataCache
    if config.metadata_backend == "memory":
        cache = InMemoryMetadataCache()
    else:
        cache = DynamoDBMetadataCache(config.metadata_table, region=config.region)

    if config.queue_backend == "memory":
        queue = InMemoryTaskQueue()
    else:
        queue = SqsTaskQueue(config.task_queue_url, region=config.region)

    return PreprocessingService(
        staging=staging,
        validator=validator,
        extractor=extractor,
        segmenter=segmenter,
        cache=cache,
        dispatcher=TaskDispatcher(queue),
        segment_locally=config.segment_locally,
        max_workers=config.max_workers,
    )
