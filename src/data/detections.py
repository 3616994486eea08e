"""Data structures for detections, formula regions and recognition results."""

import math
from dataclasses import dataclass, field
from typing import List, Tuple

from .block_types import FormulaType


@dataclass(frozen=True)
class RawDetection:
    """One row of detector output, in model-input pixels and center form."""

    center_x: float
    center_y: float
    width: float
    height: float
    confidence: float
    class_id: int


@dataclass(frozen=True)
class Detection:
    """A confidence-accepted detection in model-input pixels, top-left form."""

    x: float
    y: float
    width: float
    height: float
    confidence: float
    class_id: int = 0

    @property
    def x2(self) -> float:
        """Right edge x-coordinate."""
        return self.x + self.width

    @property
    def y2(self) -> float:
        """Bottom edge y-coordinate."""
        return self.y + self.height

    @property
    def label(self) -> str:
        """Formula type label for the class id."""
        return FormulaType.label_for(self.class_id)

    def to_corners(self) -> Tuple[float, float, float, float]:
        """Return as (x1, y1, x2, y2)."""
        return (self.x, self.y, self.x2, self.y2)


@dataclass(frozen=True)
class FormulaRegion:
    """A detection mapped into source-image pixel space."""

    x: float
    y: float
    width: float
    height: float
    confidence: float = 1.0
    class_id: int = 0

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    @property
    def label(self) -> str:
        return FormulaType.label_for(self.class_id)

    def to_corners(self) -> Tuple[float, float, float, float]:
        """Return as (x1, y1, x2, y2)."""
        return (self.x, self.y, self.x2, self.y2)

    def to_crop_box(self) -> Tuple[int, int, int, int]:
        """
        Integer (left, top, right, bottom) box covering the region.

        Edges are rounded outwards so that the crop never loses a partial
        pixel row or column of the formula.
        """
        return (
            int(math.floor(self.x)),
            int(math.floor(self.y)),
            int(math.ceil(self.x2)),
            int(math.ceil(self.y2)),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height,
            'confidence': self.confidence,
            'class_id': self.class_id,
            'type': self.label,
        }


@dataclass
class TokenSequence:
    """Token ids produced by the decoder for one region."""

    ids: List[int] = field(default_factory=list)
    truncated: bool = False

    def __len__(self) -> int:
        return len(self.ids)


@dataclass(frozen=True)
class RecognitionResult:
    """Final output for one successfully recognized region."""

    region: FormulaRegion
    latex: str
    token_count: int = 0
    truncated: bool = False
    elapsed_ms: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'region': self.region.to_dict(),
            'latex': self.latex,
            'token_count': self.token_count,
            'truncated': self.truncated,
            'elapsed_ms': self.elapsed_ms,
        }
