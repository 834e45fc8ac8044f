"""Media metadata extraction with ffprobe."""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel

from lut_action.errors import ProcessingError, TransientTransportError
from lut_action.luts.base import ColorSpace

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_SECONDS = 60.0


class MediaInfo(BaseModel):
    """Properties of the source video that drive recipe construction."""
    codec: str
    container: str = ""
    width: int = 0
    height: int = 0
    frame_rate: float = 0.0
    duration: float = 0.0
    bitrate: int = 0
    pixel_format: str = ""
    color_primaries: Optional[str] = None
    color_transfer: Optional[str] = None
    colorspace: ColorSpace = ColorSpace.REC709
    has_audio: bool = False
    audio_codec: Optional[str] = None

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


def _parse_frame_rate(value: str) -> float:
    if "/" in value:
        num, den = value.split("/", 1)
        try:
            return float(num) / float(den) if float(den) != 0 else 0.0
        except ValueError:
            return 0.0
    try:
        return float(value)
    except ValueError:
        return 0.0


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def detect_colorspace(transfer: Optional[str], primaries: Optional[str], pixel_format: str = "") -> ColorSpace:
    """Map ffprobe color tags onto the service's color-space vocabulary.

    Untagged sources are assumed to be Rec709, which is what nearly every
    H.264/HEVC delivery file is.
    """
    transfer = (transfer or "").lower()
    primaries = (primaries or "").lower()
    if transfer == "arib-std-b67":
        return ColorSpace.HLG
    if transfer == "smpte2084":
        return ColorSpace.PQ
    if transfer == "linear":
        return ColorSpace.LINEAR
    if primaries in ("smpte432", "smpte431"):
        return ColorSpace.P3D65
    if "log" in pixel_format.lower():
        return ColorSpace.LOGC
    return ColorSpace.REC709


def parse_probe_output(data: Dict[str, Any]) -> MediaInfo:
    """Build MediaInfo from ffprobe's ``-show_format -show_streams`` JSON."""
    streams = data.get("streams", [])
    video = next((s for s in streams if s.get("codec_type") == "video"), None)
    audio = next((s for s in streams if s.get("codec_type") == "audio"), None)
    if video is None:
        raise ProcessingError("No video stream found", code="NO_VIDEO_STREAM")

    fmt = data.get("format", {})
    try:
        duration = float(fmt.get("duration") or video.get("duration") or 0)
    except ValueError:
        duration = 0.0
    pixel_format = video.get("pix_fmt", "")

    return MediaInfo(
        codec=video.get("codec_name", "unknown"),
        container=(fmt.get("format_name") or "").split(",")[0],
        width=_int(video.get("width")),
        height=_int(video.get("height")),
        frame_rate=round(_parse_frame_rate(video.get("r_frame_rate", "0/1")), 3),
        duration=duration,
        bitrate=_int(fmt.get("bit_rate")),
        pixel_format=pixel_format,
        color_primaries=video.get("color_primaries"),
        color_transfer=video.get("color_transfer"),
        colorspace=detect_colorspace(
            video.get("color_transfer"), video.get("color_primaries"), pixel_format
        ),
        has_audio=audio is not None,
        audio_codec=audio.get("codec_name") if audio else None,
    )


async def probe(source: str, ffprobe_path: str = "ffprobe") -> MediaInfo:
    """Run ffprobe against a local path or URL."""
    cmd = [
        ffprobe_path, "-v", "quiet",
        "-print_format", "json",
        "-show_format", "-show_streams",
        source,
    ]
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise TransientTransportError(
            f"ffprobe spawn error: {exc}", code="PROBE_SPAWN_FAILED"
        ) from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=PROBE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise ProcessingError("ffprobe timed out", code="PROBE_FAILED")

    if proc.returncode != 0:
        raise ProcessingError(
            f"ffprobe failed with code {proc.returncode}",
            code="PROBE_FAILED",
            details={"stderr": stderr.decode(errors="replace")[-2000:]},
        )

    try:
        data = json.loads(stdout.decode(errors="replace"))
    except json.JSONDecodeError as exc:
        raise ProcessingError(f"Failed to parse ffprobe output: {exc}", code="PROBE_FAILED") from exc

    info = parse_probe_output(data)
    logger.info(
        "Probed %s: %s %s %.2fs %s audio=%s",
        source if "://" not in source else source.split("?")[0],
        info.codec, info.resolution, info.duration, info.colorspace.value, info.has_audio,
    )
    return info
