"""The LUT job: fetch the original, grade it, publish the result as a new version."""

import logging
import os
import shutil
import time

from lut_action.errors import NotFoundError, ProcessingError, ResourceLimitError
from lut_action.frameio.client import AssetStore
from lut_action.jobs.coordinator import JobHandle
from lut_action.jobs.models import JobRecord, JobResult, JobStage, JobStatus
from lut_action.luts.registry import LUTRegistry
from lut_action.media import filters
from lut_action.media.probe import probe
from lut_action.media.runner import TranscodeProgress, TranscodeRunner
from lut_action.storage.transfer import TransferEngine
from lut_action.storage.workspace import JobWorkspace

logger = logging.getLogger(__name__)

# Percent bands per stage
DOWNLOAD_BAND = (0.0, 25.0)
PROCESS_BAND = (25.0, 85.0)
UPLOAD_BAND = (85.0, 99.0)


def _scale(band, percent: float) -> float:
    low, high = band
    return round(low + (high - low) * min(100.0, max(0.0, percent)) / 100.0, 1)


def output_filename(asset_name: str, lut_name: str) -> str:
    """``clip.mov`` + ``Film Look`` -> ``clip_LUT_Film Look.mov``."""
    stem, ext = os.path.splitext(asset_name)
    safe_lut = lut_name.replace(os.sep, "_")
    return f"{stem}_LUT_{safe_lut}{ext or '.mp4'}"


class LUTPipeline:
    """Job worker for the coordinator: one asset, one LUT, one new version."""

    def __init__(
        self,
        store: AssetStore,
        registry: LUTRegistry,
        workspace: JobWorkspace,
        transfer: TransferEngine,
        runner: TranscodeRunner,
        ffprobe_path: str = "ffprobe",
        processing_mode: str = "local",
    ):
        self.store = store
        self.registry = registry
        self.workspace = workspace
        self.transfer = transfer
        self.runner = runner
        self.ffprobe_path = ffprobe_path
        self.processing_mode = processing_mode

    async def __call__(self, job: JobRecord, handle: JobHandle) -> JobResult:
        try:
            return await self._process(job, handle)
        finally:
            self.workspace.release(job.id)

    async def _process(self, job: JobRecord, handle: JobHandle) -> JobResult:
        started = time.monotonic()
        request = job.request

        # LUT
        lut = self.registry.get(request.lut_id)
        if lut is None:
            raise NotFoundError(f"LUT not found: {request.lut_id}", code="LUT_NOT_FOUND")
        # Private copy: a delete after this point must not pull the file from under ffmpeg
        lut_path = self.workspace.path_for(job.id, "lut.cube")
        shutil.copyfile(self.registry.file_path(lut.id), lut_path)

        # Asset
        handle.progress(0.0, JobStage.DOWNLOADING, "Resolving asset")
        asset = await self.store.get_asset(request.account_id, request.asset_id)
        max_bytes = self.transfer.max_bytes
        if asset.file_size and max_bytes and asset.file_size > max_bytes:
            raise ResourceLimitError(
                f"Asset exceeds maximum size of {max_bytes} bytes",
                code="ASSET_TOO_LARGE",
                details={"size": asset.file_size, "max_bytes": max_bytes},
            )
        folder_id = asset.parent_id
        if not folder_id:
            raise ProcessingError(f"Asset {asset.id} has no parent folder", code="NO_PARENT_FOLDER")
        download_url = await self.store.get_original_download_url(request.account_id, request.asset_id)

        source = await self._acquire_source(job.id, asset.name, download_url, handle)

        # Transform
        handle.progress(PROCESS_BAND[0], JobStage.PROCESSING, "Analyzing media")
        media = await probe(source, self.ffprobe_path)

        name = output_filename(asset.name, lut.name)
        output_path = self.workspace.path_for(job.id, name)
        recipe = filters.build(
            media, lut_path, request.options,
            input_path=source, output_path=output_path, lut_type=lut.type,
        )

        def on_transcode(p: TranscodeProgress) -> None:
            handle.progress(
                _scale(PROCESS_BAND, p.percent), JobStage.PROCESSING,
                f"Applying LUT: {p.percent:.0f}%", fps=p.fps, elapsed=p.elapsed,
            )

        result = await self.runner.run(recipe, media.duration, on_transcode)
        result.raise_for_status()
        if not os.path.exists(output_path):
            raise ProcessingError("Transcoder produced no output file", code="TRANSCODE_FAILED")

        # Publish
        handle.transition(JobStatus.UPLOADING, message="Uploading graded file")
        handle.progress(UPLOAD_BAND[0], JobStage.UPLOADING, "Uploading graded file")
        file_size = os.path.getsize(output_path)
        plan = await self.store.create_file(request.account_id, folder_id, name, file_size)
        await self.transfer.upload(
            plan.chunks, output_path, plan.media_type,
            lambda percent: handle.progress(_scale(UPLOAD_BAND, percent), JobStage.UPLOADING),
        )

        handle.progress(UPLOAD_BAND[1], JobStage.COMPLETING, "Creating version stack")
        stack_id = await self.store.create_version_stack(
            request.account_id, folder_id, asset.id, plan.file_id
        )
        await self._comment(request.account_id, plan.file_id, lut.name)

        return JobResult(
            output_asset_id=plan.file_id,
            output_version_id=stack_id or plan.file_id,
            duration_ms=int((time.monotonic() - started) * 1000),
            input_properties=media.model_dump(mode="json"),
            output_properties={
                "name": name,
                "file_size": file_size,
                "media_type": plan.media_type,
                "video_codec": recipe.video_codec_args[1],
                "stages": [stage.kind.value for stage in recipe.stages],
            },
            lut_applied={
                "id": lut.id,
                "name": lut.name,
                "type": lut.type.value,
                "colorspace": lut.colorspace.value,
            },
        )

    async def _acquire_source(
        self, job_id: str, asset_name: str, download_url: str, handle: JobHandle
    ) -> str:
        if self.processing_mode == "remote":
            # ffmpeg and ffprobe read the signed URL directly
            handle.progress(DOWNLOAD_BAND[1], JobStage.DOWNLOADING, "Streaming from source")
            return download_url

        ext = os.path.splitext(asset_name)[1] or ".mp4"
        dest = self.workspace.path_for(job_id, f"source{ext}")
        handle.progress(DOWNLOAD_BAND[0], JobStage.DOWNLOADING, "Downloading original")
        await self.transfer.fetch(
            download_url, dest,
            lambda percent: handle.progress(_scale(DOWNLOAD_BAND, percent), JobStage.DOWNLOADING),
        )
        return dest

    async def _comment(self, account_id: str, file_id: str, lut_name: str) -> bool:
        try:
            await self.store.post_comment(
                account_id, file_id, f'LUT "{lut_name}" has been applied to this video'
            )
            return True
        except Exception:
            logger.warning("Failed to post comment on %s, upload succeeded", file_id, exc_info=True)
            return False
