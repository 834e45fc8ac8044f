"""Job status API."""

from fastapi import APIRouter, HTTPException

from lut_action.errors import NotFoundError

router = APIRouter()

# Set by main.py during lifespan
_dispatcher = None


def set_dispatcher(dispatcher):
    global _dispatcher
    _dispatcher = dispatcher


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str):
    """Get the current status, progress and outcome of a job."""
    if _dispatcher is None:
        raise HTTPException(status_code=503, detail="Job dispatcher not initialized")

    job = await _dispatcher.get_status(job_id)
    if job is None:
        raise NotFoundError(f"Job not found: {job_id}", code="JOB_NOT_FOUND")

    response = {
        "id": job.id,
        "status": job.status.value,
        "progress": job.progress.model_dump(mode="json"),
        "request": {
            "asset_id": job.request.asset_id,
            "lut_id": job.request.lut_id,
            "requested_by": job.request.requested_by,
        },
        "attempts": job.attempts,
        "created_at": job.created_at.isoformat(),
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
        "updated_at": job.updated_at.isoformat(),
    }
    if job.result is not None:
        response["result"] = job.result.model_dump(mode="json")
    if job.error is not None:
        response["error"] = job.error.model_dump(mode="json")
    return response
