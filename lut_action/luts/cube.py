"""CUBE-format LUT validation and parsing.

File layout:

    TITLE "Film Look"
    LUT_3D_SIZE 33
    DOMAIN_MIN 0.0 0.0 0.0
    DOMAIN_MAX 1.0 1.0 1.0
    0.0 0.0 0.0
    ...

Data rows are RGB triples in row-major order with red varying fastest.
Blank lines and ``#`` comments are ignored anywhere in the file.
"""

import re
from typing import List, Optional, Tuple

import numpy as np

from lut_action.errors import LUTValidationError
from lut_action.luts.base import (
    ColorSpace,
    LUTType,
    LUTValidationResult,
    ParsedLUT,
    Triple,
)

MIN_SIZE = 2
MAX_SIZE = 256

_SIZE_DIRECTIVES = {
    "LUT_3D_SIZE": LUTType.LUT_3D,
    "LUT_1D_SIZE": LUTType.LUT_1D,
}

# Checked in order; the first keyword found in the lowercased title wins.
_COLORSPACE_KEYWORDS: List[Tuple[str, ColorSpace]] = [
    ("rec709", ColorSpace.REC709),
    ("709", ColorSpace.REC709),
    ("p3", ColorSpace.P3D65),
    ("slog", ColorSpace.SLOG3),
    ("logc", ColorSpace.LOGC),
    ("hlg", ColorSpace.HLG),
    ("2084", ColorSpace.PQ),
    ("pq", ColorSpace.PQ),
    ("linear", ColorSpace.LINEAR),
]

_KEYWORD_RE = re.compile(r"^[A-Z][A-Z0-9_]*\b")


def _content_lines(text: str) -> List[Tuple[int, str]]:
    """(line_number, stripped_line) for every non-blank, non-comment line."""
    lines = []
    for number, raw in enumerate(text.splitlines(), start=1):
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append((number, stripped))
    return lines


def _is_directive(line: str) -> bool:
    return bool(_KEYWORD_RE.match(line))


def _parse_triple(parts: List[str]) -> Optional[Triple]:
    if len(parts) != 3:
        return None
    try:
        return (float(parts[0]), float(parts[1]), float(parts[2]))
    except ValueError:
        return None


def infer_colorspace(title: str) -> ColorSpace:
    """Guess the working color space from keywords in a LUT title."""
    lowered = title.lower()
    for keyword, colorspace in _COLORSPACE_KEYWORDS:
        if keyword in lowered:
            return colorspace
    return ColorSpace.UNKNOWN


class _Scan:
    """Single pass over a CUBE file collecting headers, rows and problems."""

    def __init__(self, text: str):
        self.title: Optional[str] = None
        self.type = LUTType.LUT_3D
        self.size = 0
        self.size_directives: List[str] = []
        self.domain_min: Optional[Triple] = None
        self.domain_max: Optional[Triple] = None
        self.rows: List[Triple] = []
        self.data_rows = 0
        self.errors: List[str] = []
        self.warnings: List[str] = []

        for number, line in _content_lines(text):
            if _is_directive(line):
                self._directive(number, line)
                continue
            self.data_rows += 1
            triple = _parse_triple(line.split())
            if triple is None:
                self.errors.append(f"Malformed data row at line {number}: {line[:40]!r}")
            else:
                self.rows.append(triple)

        self._check()

    def _directive(self, number: int, line: str) -> None:
        parts = line.split(None, 1)
        keyword = parts[0]
        rest = parts[1].strip() if len(parts) > 1 else ""
        if keyword == "TITLE":
            self.title = rest.strip("\"'")
        elif keyword in _SIZE_DIRECTIVES:
            self.size_directives.append(keyword)
            self.type = _SIZE_DIRECTIVES[keyword]
            try:
                self.size = int(rest.split()[0])
            except (ValueError, IndexError):
                self.errors.append(f"Invalid {keyword} value at line {number}: {rest!r}")
        elif keyword in ("DOMAIN_MIN", "DOMAIN_MAX"):
            triple = _parse_triple(rest.split())
            if triple is None:
                self.errors.append(f"Invalid {keyword} value at line {number}: {rest!r}")
            elif keyword == "DOMAIN_MIN":
                self.domain_min = triple
            else:
                self.domain_max = triple
        # Other directives (LUT_3D_INPUT_RANGE, vendor keywords) are ignored.

    def _check(self) -> None:
        if not self.size_directives:
            self.errors.append("Missing LUT size declaration (LUT_3D_SIZE or LUT_1D_SIZE)")
        elif len(self.size_directives) > 1:
            self.errors.append(
                f"Multiple LUT size declarations: {', '.join(self.size_directives)}"
            )

        if self.size_directives and not MIN_SIZE <= self.size <= MAX_SIZE:
            self.errors.append(
                f"Invalid LUT size: {self.size} (must be between {MIN_SIZE} and {MAX_SIZE})"
            )
        elif self.size_directives:
            expected = self.expected_rows
            if self.data_rows != expected:
                self.errors.append(
                    f"Data point count mismatch: expected {expected}, got {self.data_rows}"
                )

        if self.title is None:
            self.warnings.append("Missing TITLE field")
        if self.domain_min is None or self.domain_max is None:
            self.warnings.append("Missing DOMAIN_MIN/DOMAIN_MAX fields (using defaults 0.0 to 1.0)")

    @property
    def expected_rows(self) -> int:
        if self.type == LUTType.LUT_3D:
            return self.size ** 3
        return self.size


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise LUTValidationError([f"LUT file is not valid UTF-8 text: {exc}"])


def validate(data: bytes) -> LUTValidationResult:
    """Check a raw CUBE file without building the lattice."""
    try:
        text = _decode(data)
    except LUTValidationError as exc:
        return LUTValidationResult(valid=False, errors=exc.errors)

    scan = _Scan(text)
    title = scan.title or ""
    return LUTValidationResult(
        valid=not scan.errors,
        errors=scan.errors,
        warnings=scan.warnings,
        details={
            "type": scan.type.value,
            "size": scan.size,
            "colorspace": infer_colorspace(title).value,
            "has_title": scan.title is not None,
            "has_domain": scan.domain_min is not None and scan.domain_max is not None,
            "data_rows": scan.data_rows,
        },
    )


def parse(text: str) -> ParsedLUT:
    """Decode CUBE text into a lattice. Raises LUTValidationError when invalid."""
    scan = _Scan(text)
    if scan.errors:
        raise LUTValidationError(scan.errors, scan.warnings)

    table = np.asarray(scan.rows, dtype=np.float64)
    if scan.type == LUTType.LUT_3D:
        # Row index = r + g*N + b*N*N, so a C-order reshape yields [b, g, r].
        table = table.reshape(scan.size, scan.size, scan.size, 3)

    title = scan.title or "Untitled"
    return ParsedLUT(
        title=title,
        type=scan.type,
        size=scan.size,
        domain_min=scan.domain_min or (0.0, 0.0, 0.0),
        domain_max=scan.domain_max or (1.0, 1.0, 1.0),
        table=table,
        colorspace=infer_colorspace(title),
    )


def parse_bytes(data: bytes) -> ParsedLUT:
    return parse(_decode(data))
