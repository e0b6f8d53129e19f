from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from ingest_engines.common.models import WireModel


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProcessingStage(str, Enum):
    UPLOAD = "upload"
    VALIDATION = "validation"
    METADATA = "metadata"
    GOP_CREATION = "gopCreation"
    TRANSCODING = "transcoding"
    COMPLETION = "completion"
    DISTRIBUTION = "distribution"


class MetadataPath(str, Enum):
    VALIDATION_BASIC = "validation.basic"
    VALIDATION_STREAM = "validation.stream"
    TECHNICAL = "metadata.technical"
    QUALITY = "metadata.quality"
    CONTENT = "metadata.content"

    @property
    def attribute_path(self) -> Tuple[str, ...]:
        """Location of this sub-tree inside the stored record."""
        head, leaf = self.value.split(".")
        if head == "validation":
            return ("metadata", "validation", leaf)
        return ("metadata", leaf)


class Progress(WireModel):
    upload: bool = False
    validation: bool = False
    metadata: bool = False
    gop_creation: bool = False
    transcoding: bool = False
    completion: bool = False
    distribution: bool = False
    updated_at: Optional[str] = None


class ValidationMetadata(WireModel):
    basic: Optional[Dict[str, Any]] = None
    stream: Optional[Dict[str, Any]] = None


class AssetMetadata(WireModel):
    validation: ValidationMetadata = Field(default_factory=ValidationMetadata)
    technical: Optional[Dict[str, Any]] = None
    quality: Optional[Dict[str, Any]] = None
    content: Optional[Dict[str, Any]] = None


class GopBookkeeping(WireModel):
    total_count: int = 0
    completed_count: int = 0
    segments: List[Dict[str, Any]] = Field(default_factory=list)


class AssetRecord(WireModel):
    user_id: str
    asset_id: str
    created_at: str = Field(default_factory=utc_now_iso)
    metadata: AssetMetadata = Field(default_factory=AssetMetadata)
    progress: Progress = Field(default_factory=Progress)
    gops: GopBookkeeping = Field(default_factory=GopBookkeeping)
    has_critical_failure: bool = False

    @classmethod
    def new(cls, user_id: str, asset_id: str) -> "AssetRecord":
        now = utc_now_iso()
        return cls(user_id=user_id, asset_id=asset_id, created_at=now, progress=Progress(updated_at=now))
