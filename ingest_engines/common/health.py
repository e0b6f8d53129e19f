"""Health probes. Readiness also requires the ffmpeg and ffprobe binaries to resolve."""
import shutil
from typing import Dict

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ingest_engines.config.runtime_config import get_ffmpeg_path, get_ffprobe_path

router = APIRouter(tags=["system"])


class HealthStatus(BaseModel):
    status: str
    version: str = "0.1.0"
    tools: Dict[str, bool] = Field(default_factory=dict)


def media_tools() -> Dict[str, bool]:
    return {
        "ffmpeg": shutil.which(get_ffmpeg_path()) is not None,
        "ffprobe": shutil.which(get_ffprobe_path()) is not None,
    }


@router.get("/health", response_model=HealthStatus)
def health_check():
    return HealthStatus(status="ok")


@router.get("/ready", response_model=HealthStatus)
def readiness_check():
    tools = media_tools()
    if all(tools.values()):
        return HealthStatus(status="ok", tools=tools)
    return JSONResponse(status_code=503, content=HealthStatus(status="degraded", tools=tools).model_dump())
