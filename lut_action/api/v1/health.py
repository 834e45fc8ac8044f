"""Health check endpoint."""

import platform
import shutil
import sys

from fastapi import APIRouter

from lut_action.config import settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Service health and transcoder availability."""
    ffmpeg = shutil.which(settings.ffmpeg_path)
    ffprobe = shutil.which(settings.ffprobe_path)
    return {
        "status": "healthy",
        "ffmpeg_available": ffmpeg is not None,
        "ffprobe_available": ffprobe is not None,
        "processing_mode": settings.processing_mode,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
