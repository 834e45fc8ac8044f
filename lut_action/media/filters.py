"""Filter graph construction: LUT + color metadata -> ffmpeg recipe.

Everything here is pure. The builder never touches the filesystem or spawns
processes; it only decides which stages to run and how to encode them.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from lut_action.errors import PayloadValidationError
from lut_action.luts.base import ColorSpace, LUTType
from lut_action.media.probe import MediaInfo

WORKING_SPACE = ColorSpace.REC709


class Interpolation(str, Enum):
    NEAREST = "nearest"
    TRILINEAR = "trilinear"
    TETRAHEDRAL = "tetrahedral"


class LUTApplicationOptions(BaseModel):
    input_colorspace: Optional[ColorSpace] = None
    output_colorspace: Optional[ColorSpace] = None
    interpolation: Interpolation = Interpolation.TRILINEAR
    strength: Optional[float] = Field(default=None, gt=0.0, le=1.0)


class StageKind(str, Enum):
    COLORSPACE_IN = "colorspace_in"
    SPLIT = "split"
    LUT = "lut"
    BLEND = "blend"
    COLORSPACE_OUT = "colorspace_out"


@dataclass(frozen=True)
class FilterStage:
    kind: StageKind
    expression: str


@dataclass(frozen=True)
class ColorParams:
    """Matrix, transfer curve and primaries as named by ffmpeg's colorspace filter."""
    space: str
    trc: str
    primaries: str


# S-Gamut3 and ARRI Wide Gamut have no colorspace-filter preset; they are
# approximated by the nearest wide-gamut presets.
_COLOR_PARAMS: Dict[ColorSpace, ColorParams] = {
    ColorSpace.REC709: ColorParams(space="bt709", trc="bt709", primaries="bt709"),
    ColorSpace.P3D65: ColorParams(space="bt709", trc="bt709", primaries="smpte432"),
    ColorSpace.SLOG3: ColorParams(space="bt2020ncl", trc="bt2020-10", primaries="bt2020"),
    ColorSpace.LOGC: ColorParams(space="bt470bg", trc="gamma28", primaries="bt470bg"),
}


def conversion_filter(source: ColorSpace, target: ColorSpace) -> Optional[str]:
    """colorspace filter for a known pair, or None when the pair is not mapped."""
    if source == target:
        return None
    src = _COLOR_PARAMS.get(source)
    dst = _COLOR_PARAMS.get(target)
    if src is None or dst is None:
        return None
    return (
        f"colorspace=space={dst.space}:trc={dst.trc}:primaries={dst.primaries}"
        f":ispace={src.space}:itrc={src.trc}:iprimaries={src.primaries}:fast=0"
    )


def _backslash(value: str, chars: str) -> str:
    for char in "\\" + chars:
        value = value.replace(char, "\\" + char)
    return value


def escape_filter_path(path: str) -> str:
    """Escape a path for use as a filter option value inside a filtergraph.

    ffmpeg unescapes twice: once when splitting the graph into filters and
    once when splitting a filter's options.
    """
    return _backslash(_backslash(path, "':"), "'[],;")


def lut_filter(lut_path: str, interpolation: Interpolation, lut_type: LUTType = LUTType.LUT_3D) -> str:
    escaped = escape_filter_path(lut_path)
    if lut_type == LUTType.LUT_1D:
        interp = "nearest" if interpolation == Interpolation.NEAREST else "linear"
        return f"lut1d=file={escaped}:interp={interp}"
    return f"lut3d=file={escaped}:interp={interpolation.value}"


def build_stages(
    media: MediaInfo,
    lut_path: str,
    options: Optional[LUTApplicationOptions] = None,
    lut_type: LUTType = LUTType.LUT_3D,
) -> Tuple[FilterStage, ...]:
    """Ordered filter stages for applying a LUT to ``media``."""
    options = options or LUTApplicationOptions()
    strength = options.strength
    if strength is not None and not 0.0 < strength <= 1.0:
        raise PayloadValidationError(
            f"strength must be in (0, 1], got {strength}",
            details={"field": "strength"},
        )

    stages: List[FilterStage] = []

    input_space = options.input_colorspace or media.colorspace
    pre = conversion_filter(input_space, WORKING_SPACE)
    if pre:
        stages.append(FilterStage(StageKind.COLORSPACE_IN, pre))

    lut = FilterStage(StageKind.LUT, lut_filter(lut_path, options.interpolation, lut_type))
    if strength is not None and strength < 1.0:
        stages.append(FilterStage(StageKind.SPLIT, "split=2"))
        stages.append(lut)
        stages.append(FilterStage(
            StageKind.BLEND, f"blend=all_mode=normal:all_opacity={strength:g}"
        ))
    else:
        stages.append(lut)

    if options.output_colorspace:
        post = conversion_filter(WORKING_SPACE, options.output_colorspace)
        if post:
            stages.append(FilterStage(StageKind.COLORSPACE_OUT, post))

    return tuple(stages)


def select_codec(media: MediaInfo) -> Tuple[str, ...]:
    """Encoder arguments that keep the source codec family where we have a preset for it."""
    codec = media.codec.lower()
    pix_fmt = media.pixel_format or "yuv420p"
    if "h264" in codec or "avc" in codec:
        return ("-c:v", "libx264", "-preset", "slow", "-crf", "18", "-pix_fmt", pix_fmt)
    if "hevc" in codec or "h265" in codec:
        return ("-c:v", "libx265", "-preset", "slow", "-crf", "20", "-pix_fmt", pix_fmt)
    if "prores" in codec:
        # ProRes 422 HQ
        return ("-c:v", "prores_ks", "-profile:v", "3", "-vendor", "apl0", "-pix_fmt", "yuv422p10le")
    return ("-c:v", "libx264", "-preset", "slow", "-crf", "18", "-pix_fmt", "yuv420p")


@dataclass(frozen=True)
class TransformRecipe:
    """A fully decided transcode: stages, encoder and the endpoints they connect."""
    input: str
    output: str
    stages: Tuple[FilterStage, ...]
    video_codec_args: Tuple[str, ...] = ()
    audio_args: Tuple[str, ...] = ()

    @property
    def is_blended(self) -> bool:
        return any(stage.kind == StageKind.SPLIT for stage in self.stages)

    def _of(self, *kinds: StageKind) -> List[str]:
        return [stage.expression for stage in self.stages if stage.kind in kinds]

    def filter_args(self) -> List[str]:
        if not self.is_blended:
            return ["-vf", ",".join(stage.expression for stage in self.stages)]

        pre = self._of(StageKind.COLORSPACE_IN)
        post = self._of(StageKind.COLORSPACE_OUT)
        head = ",".join(pre + self._of(StageKind.SPLIT))
        blend = ",".join(self._of(StageKind.BLEND) + post)
        graph = (
            f"[0:v]{head}[original][grade];"
            f"[grade]{self._of(StageKind.LUT)[0]}[graded];"
            f"[original][graded]{blend}[vout]"
        )
        args = ["-filter_complex", graph, "-map", "[vout]"]
        if self.audio_args:
            args += ["-map", "0:a?"]
        return args

    def to_command(self, ffmpeg_path: str = "ffmpeg") -> List[str]:
        return [
            ffmpeg_path, "-hide_banner", "-y",
            "-i", self.input,
            *self.filter_args(),
            *self.video_codec_args,
            *self.audio_args,
            self.output,
        ]


def build(
    media: MediaInfo,
    lut_path: str,
    options: Optional[LUTApplicationOptions] = None,
    input_path: str = "",
    output_path: str = "",
    lut_type: LUTType = LUTType.LUT_3D,
) -> TransformRecipe:
    """Build the transcode recipe for one job."""
    return TransformRecipe(
        input=input_path,
        output=output_path,
        stages=build_stages(media, lut_path, options, lut_type),
        video_codec_args=select_codec(media),
        audio_args=("-c:a", "copy") if media.has_audio else (),
    )
