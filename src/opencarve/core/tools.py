"""
Cutting tool definitions.

A Tool is resolved once per request (library entry plus optional diameter
override) and is immutable afterwards.
"""

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional


class ToolShape(Enum):
    """Cutter geometry."""

    FLAT = "flat"  # Flat endmill
    BALL = "ball"  # Ball nose endmill
    VBIT = "vbit"  # V-bit / engraving cutter


LEGACY_TOOL_ID = "legacy"


@dataclass(frozen=True)
class Tool:
    """
    A resolved cutting tool.

    Attributes:
        id: Library id (``legacy`` for the synthetic no-offset tool)
        name: Display name
        shape: Cutter geometry
        diameter_mm: Cutting diameter (always > 0)
        angle_deg: Included angle for V-bits
        max_depth_mm: Deepest cut the tool may take (``inf`` for legacy)
        flute_length_mm: Flute length, informational
        default_feed_rate_xy: Cutting feed (mm/min)
        default_feed_rate_z: Plunge feed (mm/min)
        default_spindle_speed: RPM
        tool_number: Changer slot; 0 means no tool-change block
    """

    id: str
    name: str
    shape: ToolShape
    diameter_mm: float
    max_depth_mm: float
    default_feed_rate_xy: float
    default_feed_rate_z: float
    default_spindle_speed: float
    tool_number: int = 0
    angle_deg: Optional[float] = None
    flute_length_mm: Optional[float] = None

    @property
    def radius_mm(self) -> float:
        return self.diameter_mm / 2.0

    @property
    def is_legacy(self) -> bool:
        return self.id == LEGACY_TOOL_ID

    def with_diameter(self, diameter_mm: Optional[float]) -> "Tool":
        """Return a copy with a new diameter; non-positive overrides are ignored."""
        if diameter_mm is None or not math.isfinite(diameter_mm) or diameter_mm <= 0:
            return self
        return replace(self, diameter_mm=float(diameter_mm))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict for JSON/API."""
        return {
            "id": self.id,
            "name": self.name,
            "shape": self.shape.value,
            "diameterMm": self.diameter_mm,
            "angleDeg": self.angle_deg,
            "maxDepthMm": self.max_depth_mm if math.isfinite(self.max_depth_mm) else None,
            "fluteLengthMm": self.flute_length_mm,
            "defaultFeedRateXY": self.default_feed_rate_xy,
            "defaultFeedRateZ": self.default_feed_rate_z,
            "defaultSpindleSpeed": self.default_spindle_speed,
            "toolNumber": self.tool_number,
        }


def legacy_tool() -> Tool:
    """The tool used when a request names none: flat, unlimited depth, no offset."""
    return Tool(
        id=LEGACY_TOOL_ID,
        name="Legacy toolpath",
        shape=ToolShape.FLAT,
        diameter_mm=1.0,
        max_depth_mm=math.inf,
        default_feed_rate_xy=800.0,
        default_feed_rate_z=300.0,
        default_spindle_speed=12000.0,
        tool_number=0,
    )
