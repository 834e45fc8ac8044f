"""LUT catalog API: list, inspect, upload, validate and delete LUTs."""

import json
import logging
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from lut_action.config import settings
from lut_action.errors import NotFoundError, PayloadValidationError, ResourceLimitError
from lut_action.luts.base import ColorSpace, LUTCreateRequest, LUTDescriptor

logger = logging.getLogger(__name__)

router = APIRouter()

# Set by main.py during lifespan
_registry = None


def set_registry(registry):
    global _registry
    _registry = registry


def _require_registry():
    if _registry is None:
        raise HTTPException(status_code=503, detail="LUT registry not initialized")
    return _registry


def _summary(lut: LUTDescriptor) -> dict:
    return {
        "id": lut.id,
        "name": lut.name,
        "type": lut.type.value,
        "colorspace": lut.colorspace.value,
        "size": lut.size,
        "lattice": lut.lattice,
        "hash": lut.hash,
        "created_at": lut.created_at.isoformat(),
        "deleted_at": lut.deleted_at.isoformat() if lut.deleted_at else None,
    }


async def _read_cube(file: UploadFile) -> bytes:
    """Read an uploaded .cube file, enforcing the extension and size cap."""
    filename = file.filename or ""
    if not filename.lower().endswith(".cube"):
        raise PayloadValidationError("Only .cube files are allowed", details={"field": "file"})

    limit = settings.max_lut_file_bytes
    data = bytearray()
    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        data.extend(chunk)
        if len(data) > limit:
            raise ResourceLimitError(
                f"LUT file exceeds {limit} bytes", code="LUT_TOO_LARGE", details={"max_bytes": limit}
            )
    return bytes(data)


@router.get("/luts")
async def list_luts(include_deleted: bool = False):
    """List LUTs, oldest first."""
    luts = _require_registry().list(include_deleted=include_deleted)
    return {"luts": [_summary(lut) for lut in luts], "count": len(luts)}


@router.get("/luts/{lut_id}")
async def get_lut(lut_id: str):
    lut = _require_registry().get(lut_id)
    if lut is None:
        raise NotFoundError(f"LUT not found: {lut_id}", code="LUT_NOT_FOUND")
    return {
        **_summary(lut),
        "file_size": lut.file_size,
        "metadata": lut.metadata,
        "updated_at": lut.updated_at.isoformat(),
    }


@router.post("/luts", status_code=201)
async def create_lut(
    file: UploadFile = File(...),
    name: Optional[str] = Form(None),
    colorspace: Optional[ColorSpace] = Form(None),
    metadata: Optional[str] = Form(None),
):
    """Upload a .cube file. Byte-identical content returns the existing LUT."""
    registry = _require_registry()
    data = await _read_cube(file)

    extra = {}
    if metadata:
        try:
            extra = json.loads(metadata)
        except json.JSONDecodeError as exc:
            raise PayloadValidationError(
                f"metadata must be a JSON object: {exc}", details={"field": "metadata"}
            ) from exc
        if not isinstance(extra, dict):
            raise PayloadValidationError(
                "metadata must be a JSON object", details={"field": "metadata"}
            )

    default_name = (file.filename or "").rsplit(".", 1)[0] or None
    request = LUTCreateRequest(name=name or default_name, colorspace=colorspace, metadata=extra)
    lut = registry.create(data, request)
    logger.info("Uploaded LUT %s from %s", lut.id, file.filename)
    return {**_summary(lut), "message": "LUT created successfully"}


@router.post("/luts/validate")
async def validate_lut(file: UploadFile = File(...)):
    """Validate a .cube file without storing it."""
    registry = _require_registry()
    data = await _read_cube(file)
    result = registry.validate(data)
    return {
        "valid": result.valid,
        "errors": result.errors,
        "warnings": result.warnings,
        "details": result.details,
    }


@router.delete("/luts/{lut_id}")
async def delete_lut(lut_id: str, hard: bool = False):
    _require_registry().delete(lut_id, hard=hard)
    return {
        "message": "LUT permanently deleted" if hard else "LUT soft deleted",
        "id": lut_id,
    }
