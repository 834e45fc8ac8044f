"""LUT data types: catalog descriptors and parsed lattices."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import uuid

import numpy as np
from pydantic import BaseModel, Field


class LUTType(str, Enum):
    LUT_1D = "1D"
    LUT_3D = "3D"


class ColorSpace(str, Enum):
    REC709 = "Rec709"
    P3D65 = "P3D65"
    SLOG3 = "SLog3"
    HLG = "HLG"
    PQ = "PQ"
    LINEAR = "Linear"
    LOGC = "LogC"
    UNKNOWN = "Unknown"


Triple = Tuple[float, float, float]


@dataclass
class ParsedLUT:
    """A decoded CUBE file. Ephemeral: used to populate a descriptor, then dropped.

    ``table`` is indexed ``[b, g, r, channel]`` for 3D LUTs (red varies
    fastest in the file) and ``[i, channel]`` for 1D LUTs.
    """
    title: str
    type: LUTType
    size: int
    domain_min: Triple
    domain_max: Triple
    table: np.ndarray
    colorspace: ColorSpace = ColorSpace.UNKNOWN


@dataclass
class LUTValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)


class LUTCreateRequest(BaseModel):
    name: Optional[str] = None
    colorspace: Optional[ColorSpace] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class LUTDescriptor(BaseModel):
    """Catalog entry for a stored LUT file."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    type: LUTType
    colorspace: ColorSpace = ColorSpace.UNKNOWN
    size: int
    hash: str
    storage_uri: str
    file_size: int
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    deleted_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def lattice(self) -> str:
        if self.type == LUTType.LUT_3D:
            return f"{self.size}x{self.size}x{self.size}"
        return str(self.size)
