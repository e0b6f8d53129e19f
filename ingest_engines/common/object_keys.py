"""Object key grammar: ``userId/<partition>/<partition>/<assetId>``."""
from __future__ import annotations

from pydantic import BaseModel

from ingest_engines.common.errors import ValidationError

KEY_SEGMENTS = 4


class KeyOwner(BaseModel):
    user_id: str
    asset_id: str


def get_owner(key: str) -> KeyOwner:
    parts = key.split("/")
    if len(parts) != KEY_SEGMENTS:
        raise ValidationError(
            "Invalid key format",
            details={"key": key, "expected_segments": KEY_SEGMENTS, "found_segments": len(parts)},
        )
    # Folder markers and doubled slashes leave empty segments.
    if not all(parts):
        raise ValidationError("Invalid key format", details={"key": key, "empty_segments": parts.count("")})
    return KeyOwner(user_id=parts[0], asset_id=parts[-1])


def asset_prefix(user_id: str, asset_id: str) -> str:
    return f"{user_id}/{asset_id}"


def asset_object_key(user_id: str, asset_id: str, filename: str) -> str:
    return f"{asset_prefix(user_id, asset_id)}/{filename}"
