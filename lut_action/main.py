"""LUT Action Service - FastAPI application."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from lut_action.config import settings
from lut_action.errors import LUTActionError
from lut_action.api.v1.router import v1_router
from lut_action.api.v1.health import router as health_root_router
from lut_action.api.v1.webhooks import router as webhooks_router
from lut_action.api.v1 import jobs as jobs_api
from lut_action.api.v1 import luts as luts_api
from lut_action.api.v1 import webhooks as webhooks_api
from lut_action.frameio.client import FrameioClient
from lut_action.jobs.coordinator import JobCoordinator
from lut_action.jobs.pipeline import LUTPipeline
from lut_action.luts.registry import registry
from lut_action.media.runner import TranscodeRunner
from lut_action.storage.transfer import TransferEngine
from lut_action.storage.workspace import JobWorkspace

logger = logging.getLogger(__name__)

# Global coordinator reference
_coordinator = None


async def maintenance_loop(workspace: JobWorkspace, coordinator: JobCoordinator, interval: float) -> None:
    """Periodically remove stale workspaces and expired job records."""
    while True:
        await asyncio.sleep(interval)
        try:
            workspace.cleanup_expired()
            coordinator.purge_expired()
        except OSError as exc:
            logger.error("Maintenance sweep failed: %s", exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    global _coordinator

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting LUT Action Service on port %d", settings.port)
    logger.info("Processing mode: %s", settings.processing_mode)
    logger.info("Scratch dir: %s", settings.tmp_dir)
    if not settings.webhook_secret:
        logger.warning("WEBHOOK_SECRET is not set; all webhook calls will be rejected")

    registry.load()

    workspace = JobWorkspace(settings.processing_dir, max_age_hours=settings.temp_file_max_age_hours)
    transfer = TransferEngine(max_bytes=settings.max_input_bytes)
    store = FrameioClient(
        settings.frameio_access_token,
        base_url=settings.frameio_base_url,
        timeout=settings.frameio_request_timeout_seconds,
    )
    pipeline = LUTPipeline(
        store=store,
        registry=registry,
        workspace=workspace,
        transfer=transfer,
        runner=TranscodeRunner(settings.ffmpeg_path, timeout=settings.transcode_timeout_seconds),
        ffprobe_path=settings.ffprobe_path,
        processing_mode=settings.processing_mode,
    )

    _coordinator = JobCoordinator(worker=pipeline, retention_hours=settings.job_retention_hours)
    await _coordinator.start()
    logger.info("Job coordinator started")

    # Wire collaborators into API endpoints
    jobs_api.set_dispatcher(_coordinator)
    luts_api.set_registry(registry)
    webhooks_api.set_dispatcher(_coordinator)
    webhooks_api.set_registry(registry)

    sweeper = asyncio.create_task(
        maintenance_loop(workspace, _coordinator, settings.sweep_interval_minutes * 60)
    )

    yield

    # Shutdown
    logger.info("Shutting down LUT Action Service")
    sweeper.cancel()
    await asyncio.gather(sweeper, return_exceptions=True)
    await _coordinator.stop()
    await transfer.close()
    await store.close()
    workspace.cleanup_expired()


app = FastAPI(
    title="LUT Action Service",
    description="Applies color-grading LUTs to Frame.io video assets",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(LUTActionError)
async def lut_action_error_handler(request: Request, exc: LUTActionError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: [%s] %s", request.method, request.url.path, exc.code, exc.message)
    else:
        logger.warning("%s %s rejected: [%s] %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(webhooks_router, tags=["webhooks"])
app.include_router(v1_router)  # All /api/v1/* endpoints
