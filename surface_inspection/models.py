"""
Data model shared by the inspection pipeline.

Everything here is immutable once built: pixel buffers are read-only
numpy arrays, and results are frozen dataclasses. A pass over a frame
never mutates what the caller handed in.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np


class DefectCategory(str, Enum):
    """Closed set of defect kinds, in evaluation order."""

    DARK_SPOT = "dark_spot"
    SCRATCH = "scratch"
    FLASH = "flash"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def label(self) -> str:
        """Operator-facing label used by stored samples and settings."""
        return _LEGACY_LABELS[self]

    @classmethod
    def parse(cls, value) -> "DefectCategory":
        """
        Resolve a category from its value, member name, or legacy label.

        Raises:
            ValueError: If the value names no known category.
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for category in cls:
            if text in (category.value, category.name, category.label):
                return category
        raise ValueError(f"Unknown defect category: {value!r}")


_DISPLAY_NAMES = {
    DefectCategory.DARK_SPOT: "Dark spot",
    DefectCategory.SCRATCH: "Scratch",
    DefectCategory.FLASH: "Flash",
}

_LEGACY_LABELS = {
    DefectCategory.DARK_SPOT: "黒点",
    DefectCategory.SCRATCH: "キズ",
    DefectCategory.FLASH: "フラッシュ",
}


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """
    RGBA raster, row-major, one byte per channel.

    ``pixels`` is a private read-only copy of shape (height, width, 4),
    so a buffer can be handed to concurrent comparisons without any of
    them seeing another's writes.
    """

    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self):
        pixels = np.array(self.pixels, dtype=np.uint8, copy=True)
        expected = self.width * self.height * 4
        if pixels.size != expected:
            raise ValueError(
                f"Pixel data has {pixels.size} samples, expected "
                f"{expected} for {self.width}x{self.height} RGBA"
            )
        pixels = pixels.reshape(self.height, self.width, 4)
        pixels.flags.writeable = False
        object.__setattr__(self, "pixels", pixels)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelBuffer":
        """Build a buffer from an (H, W, 4) RGBA array."""
        if array.ndim != 3 or array.shape[2] != 4:
            raise ValueError(f"Expected an (H, W, 4) array, got {array.shape}")
        return cls(width=array.shape[1], height=array.shape[0], pixels=array)

    @property
    def data(self) -> np.ndarray:
        """Flat R,G,B,A sample sequence."""
        return self.pixels.reshape(-1)

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[:, :, :3]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.height, self.width


ImagePayload = Union[bytes, bytearray, memoryview, str]


@dataclass(frozen=True)
class ReferenceSample:
    """Operator-registered example image of one defect category."""

    id: str
    category: DefectCategory
    name: str
    image: Any
    created_at: int

    @classmethod
    def create(cls, category, name: str, image) -> "ReferenceSample":
        return cls(
            id=uuid.uuid4().hex,
            category=DefectCategory.parse(category),
            name=name,
            image=image,
            created_at=int(time.time() * 1000),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReferenceSample":
        """
        Accepts both snake_case keys and the stored camelCase ones.

        A missing id gets a fresh one.

        Raises:
            ValueError: If the category is unknown or created_at is not a number.
        """
        return cls(
            id=str(data.get("id") or uuid.uuid4().hex),
            category=DefectCategory.parse(data.get("category", data.get("type"))),
            name=data.get("name", ""),
            image=data.get("image", data.get("imageDataUrl")),
            created_at=int(data.get("created_at", data.get("createdAt", 0))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.category.label,
            "name": self.name,
            "imageDataUrl": self.image,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class BoundingBox:
    x: int
    y: int
    width: int
    height: int

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y,
                "width": self.width, "height": self.height}


@dataclass(frozen=True)
class DefectDetail:
    category: DefectCategory
    confidence: float
    location: Optional[BoundingBox] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.category.label,
            "confidence": self.confidence,
            "location": self.location.to_dict() if self.location else None,
        }


@dataclass(frozen=True)
class SimilarityBreakdown:
    """Per-metric component scores and their weighted total."""

    category: DefectCategory
    components: Dict[str, float]
    total: float


@dataclass(frozen=True)
class MatchResult:
    is_match: bool
    max_confidence: float
    best_index: Optional[int] = None


@dataclass(frozen=True)
class PixelFeatures:
    """Coarse statistics from one strided scan of a native-size frame."""

    width: int
    height: int
    dark_spot_count: int
    average_brightness: float
    irregularity_count: int
    dark_spot_coords: np.ndarray = field(repr=False)
    irregular_coords: np.ndarray = field(repr=False)
    dark_spot_box: Optional[BoundingBox] = None
    irregular_box: Optional[BoundingBox] = None


@dataclass(frozen=True)
class InspectionReport:
    result: str
    defects: List[DefectDetail]
    features: Optional[PixelFeatures] = None

    @property
    def passed(self) -> bool:
        return self.result == "OK"

    @property
    def primary_category(self) -> Optional[DefectCategory]:
        return self.defects[0].category if self.defects else None
