"""Tests for filter graph construction."""

import pydantic
import pytest

from lut_action.errors import PayloadValidationError
from lut_action.luts.base import ColorSpace, LUTType
from lut_action.media import filters
from lut_action.media.filters import Interpolation, LUTApplicationOptions, StageKind
from lut_action.media.probe import MediaInfo

LUT_PATH = "/luts/look.cube"


def _media(**overrides):
    values = dict(codec="h264", pixel_format="yuv420p", duration=2.0, has_audio=True)
    values.update(overrides)
    return MediaInfo(**values)


def _kinds(stages):
    return [stage.kind for stage in stages]


class TestStages:

    def test_full_strength_equals_unset(self):
        unset = filters.build_stages(_media(), LUT_PATH, LUTApplicationOptions())
        full = filters.build_stages(_media(), LUT_PATH, LUTApplicationOptions(strength=1.0))
        assert unset == full
        assert _kinds(unset) == [StageKind.LUT]

    def test_partial_strength_splits_and_blends(self):
        stages = filters.build_stages(_media(), LUT_PATH, LUTApplicationOptions(strength=0.5))
        kinds = _kinds(stages)
        assert kinds.count(StageKind.SPLIT) == 1
        assert kinds.count(StageKind.BLEND) == 1
        blend = next(s for s in stages if s.kind == StageKind.BLEND)
        assert "all_opacity=0.5" in blend.expression

    @pytest.mark.parametrize("strength", [0.0, -0.1, 1.5])
    def test_strength_outside_range_rejected_by_options(self, strength):
        with pytest.raises(pydantic.ValidationError):
            LUTApplicationOptions(strength=strength)

    def test_strength_outside_range_rejected_by_builder(self):
        options = LUTApplicationOptions.model_construct(
            strength=1.5, interpolation=Interpolation.TRILINEAR,
            input_colorspace=None, output_colorspace=None,
        )
        with pytest.raises(PayloadValidationError):
            filters.build_stages(_media(), LUT_PATH, options)

    def test_input_conversion_for_log_source(self):
        options = LUTApplicationOptions(input_colorspace=ColorSpace.SLOG3)
        stages = filters.build_stages(_media(), LUT_PATH, options)
        assert _kinds(stages) == [StageKind.COLORSPACE_IN, StageKind.LUT]
        assert "ispace=bt2020ncl" in stages[0].expression
        assert "primaries=bt709" in stages[0].expression

    def test_probed_colorspace_used_when_option_unset(self):
        stages = filters.build_stages(_media(colorspace=ColorSpace.P3D65), LUT_PATH)
        assert stages[0].kind == StageKind.COLORSPACE_IN
        assert "iprimaries=smpte432" in stages[0].expression

    def test_unknown_pair_passes_through(self):
        stages = filters.build_stages(_media(colorspace=ColorSpace.HLG), LUT_PATH)
        assert _kinds(stages) == [StageKind.LUT]

    def test_output_conversion(self):
        options = LUTApplicationOptions(output_colorspace=ColorSpace.P3D65)
        stages = filters.build_stages(_media(), LUT_PATH, options)
        assert stages[-1].kind == StageKind.COLORSPACE_OUT
        assert "primaries=smpte432" in stages[-1].expression

    def test_output_rec709_adds_nothing(self):
        options = LUTApplicationOptions(output_colorspace=ColorSpace.REC709)
        assert _kinds(filters.build_stages(_media(), LUT_PATH, options)) == [StageKind.LUT]

    def test_interpolation(self):
        options = LUTApplicationOptions(interpolation=Interpolation.TETRAHEDRAL)
        stages = filters.build_stages(_media(), LUT_PATH, options)
        assert stages[0].expression.endswith(":interp=tetrahedral")

    def test_1d_lut_uses_lut1d(self):
        stages = filters.build_stages(_media(), LUT_PATH, lut_type=LUTType.LUT_1D)
        assert stages[0].expression == "lut1d=file=/luts/look.cube:interp=linear"


class TestEscaping:

    def test_special_characters(self):
        expression = filters.lut_filter("/tmp/my:lut,v=1's.cube", Interpolation.TRILINEAR)
        assert expression == r"lut3d=file=/tmp/my\\:lut\,v=1\\\'s.cube:interp=trilinear"

    def test_backslash_escaped_at_both_levels(self):
        assert filters.escape_filter_path("a\\b:c") == r"a\\\\b\\:c"

    def test_graph_delimiters(self):
        assert filters.escape_filter_path("/luts/[v1];x.cube") == r"/luts/\[v1\]\;x.cube"

    def test_plain_path_unchanged(self):
        assert filters.escape_filter_path("/luts/look.cube") == "/luts/look.cube"


class TestCodecs:

    @pytest.mark.parametrize("codec, encoder", [
        ("h264", "libx264"),
        ("hevc", "libx265"),
        ("prores", "prores_ks"),
        ("vp9", "libx264"),
    ])
    def test_family(self, codec, encoder):
        args = filters.select_codec(_media(codec=codec))
        assert args[1] == encoder

    def test_prores_profile(self):
        args = filters.select_codec(_media(codec="prores", pixel_format="yuv422p10le"))
        assert args == ("-c:v", "prores_ks", "-profile:v", "3", "-vendor", "apl0", "-pix_fmt", "yuv422p10le")

    def test_hevc_quality(self):
        args = filters.select_codec(_media(codec="hevc", pixel_format="yuv420p10le"))
        assert "-crf" in args and args[args.index("-crf") + 1] == "20"
        assert args[-1] == "yuv420p10le"


class TestRecipe:

    def test_direct_command(self):
        recipe = filters.build(_media(), LUT_PATH, input_path="in.mp4", output_path="out.mp4")
        argv = recipe.to_command("ffmpeg")
        assert argv[0] == "ffmpeg"
        assert argv[argv.index("-i") + 1] == "in.mp4"
        assert argv[argv.index("-vf") + 1] == "lut3d=file=/luts/look.cube:interp=trilinear"
        assert "-filter_complex" not in argv
        assert argv[-3:] == ["-c:a", "copy", "out.mp4"]

    def test_no_audio_no_copy(self):
        recipe = filters.build(_media(has_audio=False), LUT_PATH, input_path="in", output_path="out")
        assert "-c:a" not in recipe.to_command()

    def test_blended_command(self):
        options = LUTApplicationOptions(strength=0.25, input_colorspace=ColorSpace.LOGC)
        recipe = filters.build(_media(), LUT_PATH, options, input_path="in.mp4", output_path="out.mp4")
        assert recipe.is_blended
        argv = recipe.to_command()
        graph = argv[argv.index("-filter_complex") + 1]
        assert graph.startswith("[0:v]colorspace=")
        assert "split=2[original][grade]" in graph
        assert "[grade]lut3d=file=/luts/look.cube:interp=trilinear[graded]" in graph
        assert graph.endswith("blend=all_mode=normal:all_opacity=0.25[vout]")
        assert argv[argv.index("-map") + 1] == "[vout]"
        assert "0:a?" in argv
        assert "-vf" not in argv
