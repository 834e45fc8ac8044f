"""Frame.io custom action webhook.

The first call of an interaction carries no form data and is answered with a
form listing the available LUTs. Frame.io posts again with the user's choice
in ``data``; that call starts a job.
"""

import logging
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ValidationError as PydanticValidationError

from lut_action.auth import signature
from lut_action.config import settings
from lut_action.errors import AuthenticityError, PayloadValidationError
from lut_action.jobs.models import LUTJobRequest
from lut_action.media.filters import LUTApplicationOptions

logger = logging.getLogger(__name__)

router = APIRouter()

# Set by main.py during lifespan
_dispatcher = None
_registry = None


def set_dispatcher(dispatcher):
    global _dispatcher
    _dispatcher = dispatcher


def set_registry(registry):
    global _registry
    _registry = registry


STRENGTH_OPTIONS = [
    {"name": "100%", "value": "1.0"},
    {"name": "75%", "value": "0.75"},
    {"name": "50%", "value": "0.5"},
    {"name": "25%", "value": "0.25"},
]


class _Ref(BaseModel):
    id: str


class _Resource(BaseModel):
    id: str
    type: Literal["file", "folder", "version_stack"]


class CustomActionPayload(BaseModel):
    account_id: str
    action_id: str
    interaction_id: str
    project: _Ref
    resource: _Resource
    type: str
    user: _Ref
    workspace: _Ref
    data: Optional[Dict[str, Any]] = None


def _parse_payload(body: bytes) -> CustomActionPayload:
    try:
        return CustomActionPayload.model_validate_json(body)
    except PydanticValidationError as exc:
        raise PayloadValidationError(
            "Invalid custom action payload",
            details={"errors": [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in exc.errors()
            ]},
        ) from exc


def _parse_strength(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        strength = float(value)
    except (TypeError, ValueError):
        raise PayloadValidationError(f"Invalid strength: {value!r}", details={"field": "data.strength"})
    if not 0.0 < strength <= 1.0:
        raise PayloadValidationError(
            f"strength must be in (0, 1], got {strength}", details={"field": "data.strength"}
        )
    return strength


def _selection_form() -> Dict[str, Any]:
    luts = _registry.list()
    return {
        "title": "Select a LUT",
        "description": "Choose a LUT to apply to your video",
        "fields": [
            {
                "type": "select",
                "label": "LUT",
                "name": "lutId",
                "options": [{"name": lut.name, "value": lut.id} for lut in luts],
            },
            {
                "type": "select",
                "label": "Strength",
                "name": "strength",
                "value": "1.0",
                "options": STRENGTH_OPTIONS,
            },
        ],
    }


@router.post("/webhooks/frameio/custom-action")
async def custom_action(request: Request):
    """Answer a custom action interaction: form first, then job submission."""
    if _dispatcher is None or _registry is None:
        raise HTTPException(status_code=503, detail="Service not initialized")

    raw_body = await request.body()
    sig, ts = signature.headers_from(request.headers)
    outcome = signature.verify(
        sig, ts, raw_body, settings.webhook_secret, max_age=settings.signature_max_age_seconds
    )
    if isinstance(outcome, signature.Rejected):
        raise AuthenticityError(outcome.reason)

    payload = _parse_payload(raw_body)
    data = payload.data or {}
    lut_id = data.get("lutId")

    if not lut_id:
        logger.info("Returning LUT selection form for interaction %s", payload.interaction_id)
        return _selection_form()

    if _registry.get(str(lut_id)) is None:
        raise PayloadValidationError(f"Unknown LUT: {lut_id}", details={"field": "data.lutId"})

    job_request = LUTJobRequest(
        asset_id=payload.resource.id,
        lut_id=str(lut_id),
        requested_by=payload.user.id,
        account_id=payload.account_id,
        workspace_id=payload.workspace.id,
        idempotency_key=payload.interaction_id,
        options=LUTApplicationOptions(strength=_parse_strength(data.get("strength"))),
        metadata={"project_id": payload.project.id, "resource_type": payload.resource.type},
    )
    job = await _dispatcher.submit(job_request)
    logger.info("Started %s for asset %s", job.id, payload.resource.id)

    return {
        "title": "LUT Processing Started",
        "description": f"Your video is being processed with the selected LUT. Job ID: {job.id}",
    }
