"""Shared fixtures: CUBE builders, registries and stand-in ffmpeg/ffprobe binaries."""

import json
import os
import stat
from pathlib import Path

import pytest

from lut_action.luts.registry import LUTRegistry

PROBE_OUTPUT = {
    "streams": [
        {
            "codec_type": "video",
            "codec_name": "h264",
            "width": 64,
            "height": 64,
            "r_frame_rate": "25/1",
            "pix_fmt": "yuv420p",
        }
    ],
    "format": {"format_name": "mov,mp4,m4a", "duration": "2.0", "bit_rate": "1000"},
}


def make_cube(size=2, title="Identity", with_domain=True, row_delta=0, lut_type="3D"):
    """Identity CUBE text. ``row_delta`` adds (or drops) data rows."""
    lines = []
    if title is not None:
        lines.append(f'TITLE "{title}"')
    lines.append(f"LUT_{lut_type}_SIZE {size}")
    if with_domain:
        lines.append("DOMAIN_MIN 0.0 0.0 0.0")
        lines.append("DOMAIN_MAX 1.0 1.0 1.0")
    step = 1.0 / (size - 1) if size > 1 else 1.0
    rows = []
    if lut_type == "3D":
        for b in range(size):
            for g in range(size):
                for r in range(size):
                    rows.append(f"{r * step:.6f} {g * step:.6f} {b * step:.6f}")
    else:
        for i in range(size):
            rows.append(f"{i * step:.6f} {i * step:.6f} {i * step:.6f}")
    if row_delta < 0:
        rows = rows[:row_delta]
    else:
        rows.extend(["0.5 0.5 0.5"] * row_delta)
    return "\n".join(lines + rows) + "\n"


def write_script(path: Path, body: str) -> str:
    """Write an executable /bin/sh script and return its path."""
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


def fake_ffprobe(directory: Path, output=None) -> str:
    data = json.dumps(output or PROBE_OUTPUT)
    return write_script(directory / "ffprobe", f"cat <<'EOF'\n{data}\nEOF\n")


def fake_ffmpeg(directory: Path, exit_code=0, check_lut=False) -> str:
    """ffmpeg stand-in: prints progress for a 2s clip and writes its last argument.

    With ``check_lut`` it fails like the real binary when the lut3d file is missing.
    """
    body = 'for last; do :; done\n'
    if check_lut:
        body += (
            'for arg; do\n'
            '  case "$arg" in\n'
            '    *lut3d=file=*)\n'
            '      lut=${arg#*lut3d=file=}; lut=${lut%%:interp=*}\n'
            '      [ -f "$lut" ] || { echo "lut3d: $lut: No such file or directory" >&2; exit 1; } ;;\n'
            '  esac\n'
            'done\n'
        )
    body += (
        "printf 'frame=   12 fps=24.0 q=28.0 size=1kB time=00:00:00.50 bitrate=N/A speed=1x\\r' >&2\n"
        "printf 'frame=   25 fps=25.0 q=28.0 size=1kB time=00:00:01.00 bitrate=N/A speed=1x\\r' >&2\n"
        "printf 'frame=   25 fps=25.0 q=28.0 size=1kB time=00:00:01.00 bitrate=N/A speed=1x\\r' >&2\n"
        "printf 'frame=   50 fps=25.0 q=28.0 size=2kB time=00:00:02.00 bitrate=N/A speed=1x\\n' >&2\n"
    )
    if exit_code == 0:
        body += "printf 'graded-video-bytes' > \"$last\"\nexit 0\n"
    else:
        body += f"echo 'Error opening filters!' >&2\nexit {exit_code}\n"
    return write_script(directory / "ffmpeg", body)


@pytest.fixture
def cube_bytes():
    return make_cube().encode()


@pytest.fixture
def registry(tmp_path):
    reg = LUTRegistry(storage_dir=str(tmp_path / "luts"))
    reg.load()
    return reg


@pytest.fixture
def tools_dir(tmp_path):
    path = tmp_path / "bin"
    os.makedirs(path, exist_ok=True)
    return path
