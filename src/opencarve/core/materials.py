"""
Stock material description.

The material block is the machine's work envelope for one conversion:
every emitted XY coordinate lies inside it and every cut stays within its
thickness.
"""

import math
from dataclasses import dataclass
from typing import Optional

from opencarve.core.exceptions import InvalidDimension


@dataclass(frozen=True)
class Material:
    """Rectangular stock, dimensions in mm."""

    width_mm: float
    height_mm: float
    thickness_mm: float
    min_height_mm: float = 0.0
    max_depth_mm: Optional[float] = None

    def __post_init__(self) -> None:
        for label, value in (
            ("Material width", self.width_mm),
            ("Material height", self.height_mm),
            ("Material thickness", self.thickness_mm),
        ):
            if not math.isfinite(value) or value <= 0:
                raise InvalidDimension(f"{label} must be greater than 0", details={"value": value})
        if self.max_depth_mm is None:
            object.__setattr__(self, "max_depth_mm", self.thickness_mm)

    @property
    def view_box(self) -> str:
        return f"0 0 {self.width_mm:g} {self.height_mm:g}"

    def to_dict(self) -> dict:
        """Serialize to dict for JSON/API."""
        return {
            "widthMm": self.width_mm,
            "heightMm": self.height_mm,
            "thicknessMm": self.thickness_mm,
            "minHeightMm": self.min_height_mm,
            "maxDepthMm": self.max_depth_mm,
        }
