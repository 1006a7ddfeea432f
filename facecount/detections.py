"""
Data model shared by the deduplication and clustering steps.

A :class:`Detection` couples a bounding box with the descriptor vector the
upstream recognition model produced for it.  Detections are immutable once
built: the descriptor is stored as a read‑only numpy array so the same
record can be passed through both steps without being copied.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np


class DimensionMismatch(ValueError):
    """Raised when descriptors of different length are compared."""


@dataclass(frozen=True)
class Rect:
    """Axis aligned box given by its top‑left corner and its size (pixels)."""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_corners(cls, x1: float, y1: float, x2: float, y2: float) -> "Rect":
        """Build a box from ``(x1, y1, x2, y2)`` corner coordinates."""
        return cls(float(x1), float(y1), float(x2) - float(x1), float(y2) - float(y1))

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def is_valid(self) -> bool:
        """Whether the box has finite, non‑negative coordinates and a positive area."""
        values = (self.x, self.y, self.width, self.height)
        if not all(math.isfinite(v) for v in values):
            return False
        return self.x >= 0 and self.y >= 0 and self.width > 0 and self.height > 0


@dataclass(frozen=True, eq=False)
class Detection:
    """One detected face.

    Attributes
    ----------
    box: Rect
        Bounding box in image pixel coordinates.
    descriptor: ndarray, shape (dim,)
        Identity embedding.  Converted to a read‑only ``float64`` array.
    score: float, optional
        Detector confidence.  Not used by the core; the application uses it
        to give the deduplicator a stable input order.

    Detections compare by identity.
    """
    box: Rect
    descriptor: np.ndarray = field(repr=False)
    score: Optional[float] = None

    def __post_init__(self) -> None:
        desc = np.array(self.descriptor, dtype=np.float64)
        if desc.ndim != 1:
            raise DimensionMismatch(f"descriptor must be one‑dimensional, got shape {desc.shape}")
        desc.setflags(write=False)
        object.__setattr__(self, "descriptor", desc)

    @property
    def dim(self) -> int:
        return int(self.descriptor.shape[0])

