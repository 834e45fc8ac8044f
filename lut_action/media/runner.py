"""Run ffmpeg for a TransformRecipe and report progress from its stderr."""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from lut_action.errors import ProcessingError, ResourceLimitError, TransientTransportError
from lut_action.media.filters import TransformRecipe

logger = logging.getLogger(__name__)

ProgressCallback = Callable[["TranscodeProgress"], None]

_TIME_RE = re.compile(r"time=\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_FPS_RE = re.compile(r"fps=\s*([\d.]+)")

# Bytes of stderr kept for diagnostics.
_ERROR_TAIL_BYTES = 4000


@dataclass
class TranscodeProgress:
    percent: float
    elapsed: float
    fps: Optional[float] = None


@dataclass
class TranscodeResult:
    exit_ok: bool
    returncode: Optional[int]
    error_output: str = ""

    def raise_for_status(self) -> None:
        if not self.exit_ok:
            raise ProcessingError(
                f"ffmpeg exited with code {self.returncode}",
                code="TRANSCODE_FAILED",
                details={"stderr": self.error_output[-_ERROR_TAIL_BYTES:]},
            )


def parse_progress_line(line: str):
    """Return (elapsed_seconds, fps) from an ffmpeg status line, or None."""
    match = _TIME_RE.search(line)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    elapsed = int(hours) * 3600 + int(minutes) * 60 + float(seconds)
    fps_match = _FPS_RE.search(line)
    fps = float(fps_match.group(1)) if fps_match else None
    return elapsed, fps


class TranscodeRunner:
    """Executes ffmpeg under a wall-clock limit.

    ffmpeg rewrites its status line with ``\\r``, so stderr is split on both
    carriage returns and newlines. The progress callback only fires when the
    percentage strictly increases.
    """

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: float = 300.0):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    async def run(
        self,
        recipe: TransformRecipe,
        total_duration: float,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TranscodeResult:
        return await self.run_command(
            recipe.to_command(self.ffmpeg_path), total_duration, on_progress
        )

    async def run_command(
        self,
        argv: Sequence[str],
        total_duration: float,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TranscodeResult:
        logger.info("Running %s (%d args)", argv[0], len(argv) - 1)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise TransientTransportError(
                f"Failed to start transcoder: {exc}", code="TRANSCODER_SPAWN_FAILED"
            ) from exc

        tail: List[str] = []
        last_percent = -1.0

        def handle(line: str) -> None:
            nonlocal last_percent
            tail.append(line)
            if len(tail) > 50:
                del tail[0]
            parsed = parse_progress_line(line)
            if parsed is None or total_duration <= 0:
                return
            elapsed, fps = parsed
            percent = min(100.0, round(elapsed / total_duration * 100, 1))
            if percent > last_percent:
                last_percent = percent
                if on_progress is not None:
                    on_progress(TranscodeProgress(percent=percent, elapsed=elapsed, fps=fps))

        async def pump() -> None:
            buffer = b""
            while True:
                chunk = await proc.stderr.read(4096)
                if not chunk:
                    break
                buffer += chunk
                parts = re.split(rb"[\r\n]", buffer)
                buffer = parts.pop()
                for part in parts:
                    text = part.decode(errors="replace").strip()
                    if text:
                        handle(text)
            if buffer.strip():
                handle(buffer.decode(errors="replace").strip())
            await proc.wait()

        try:
            await asyncio.wait_for(pump(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.error("Transcode exceeded %.0fs, killed pid %s", self.timeout, proc.pid)
            raise ResourceLimitError(
                f"Transcode timed out after {self.timeout:.0f}s",
                code="TRANSCODE_TIMEOUT",
            )

        result = TranscodeResult(
            exit_ok=proc.returncode == 0,
            returncode=proc.returncode,
            error_output="\n".join(tail)[-_ERROR_TAIL_BYTES:],
        )
        if result.exit_ok:
            logger.info("Transcode finished")
        else:
            logger.warning("Transcode failed with code %s", proc.returncode)
        return result
