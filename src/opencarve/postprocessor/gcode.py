"""
G-code post processor for 3-axis routers.

Emits a line-oriented RS-274 subset (G0/G1/G21/G90/M3/M5/M6/T) with no arcs
and no canned cycles. Planar polylines are cut in equal step-down passes;
polylines with explicit Z (sliced meshes) are cut in one Z-following pass.
Every emitted XY is clamped to the material rectangle.
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from opencarve.core.materials import Material
from opencarve.core.tools import Tool
from opencarve.slicing.operations import Operation

MIN_PASS_DEPTH_MM = 0.2


def fmt(value: float) -> str:
    """Fixed three-decimal number formatting used for every G-code word."""
    return f"{value + 0.0:.3f}"


def target_depth(cut_depth_mm: float, thickness_mm: float, tool_max_depth_mm: float) -> float:
    """Deepest cut allowed: ``min(|cut|, thickness, tool max depth)``."""
    return min(abs(cut_depth_mm), thickness_mm, tool_max_depth_mm)


def pass_depths(
    cut_depth_mm: float,
    thickness_mm: float,
    tool_max_depth_mm: float,
    max_step_down_mm: float,
) -> List[float]:
    """
    Z levels for a multi-pass cut, shallowest first.

    ``n = ceil(target / max(0.2, maxStepDown))`` equal steps down to
    ``-target``. At least one pass is always returned.
    """
    target = target_depth(cut_depth_mm, thickness_mm, tool_max_depth_mm)
    step = max(MIN_PASS_DEPTH_MM, max_step_down_mm)
    passes = max(1, math.ceil(target / step - 1e-9))
    return [-target * i / passes + 0.0 for i in range(1, passes + 1)]


@dataclass
class GCodeParams:
    """
    Machining parameters for one G-code program.

    Feed rates and spindle speed left as None fall back to each
    operation's tool defaults.
    """

    safe_height_mm: float = 5.0
    cut_depth_mm: float = -1.0
    max_step_down_mm: float = 1.5
    feed_rate_xy: Optional[float] = None
    feed_rate_z: Optional[float] = None
    spindle_speed: Optional[float] = None
    program_name: str = "opencarve"
    comment_prefix: str = "; "
    line_ending: str = "\n"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "GCodeParams":
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        return cls(**{k: v for k, v in d.items() if k in valid_fields})


class GCodePostProcessor:
    """
    Generate a G-code program from operations.

    Example:
        >>> pp = GCodePostProcessor(GCodeParams(cut_depth_mm=-3))
        >>> program = pp.generate(operations, material)
    """

    def __init__(self, params: Optional[GCodeParams] = None):
        self.params = params or GCodeParams()
        self._lines: List[str] = []

    # ── Words ───────────────────────────────────────────────────────────

    def comment(self, text: str) -> str:
        return f"{self.params.comment_prefix}{text}"

    def rapid_move(self, x: Optional[float] = None, y: Optional[float] = None,
                   z: Optional[float] = None) -> str:
        words = ["G0"]
        if x is not None:
            words.append(f"X{fmt(x)}")
        if y is not None:
            words.append(f"Y{fmt(y)}")
        if z is not None:
            words.append(f"Z{fmt(z)}")
        return " ".join(words)

    def linear_move(self, x: float, y: float, z: Optional[float] = None) -> str:
        if z is None:
            return f"G1 X{fmt(x)} Y{fmt(y)}"
        return f"G1 X{fmt(x)} Y{fmt(y)} Z{fmt(z)}"

    # ── Program sections ────────────────────────────────────────────────

    def header(self, operations: Sequence[Operation], material: Material) -> List[str]:
        return [
            self.comment(f"{self.params.program_name} G-code"),
            self.comment(
                f"Material: {material.width_mm:g} x {material.height_mm:g} x "
                f"{material.thickness_mm:g} mm"
            ),
            self.comment(f"Operations: {len(operations)}"),
            "G21",
            "G90",
            self.rapid_move(z=self.params.safe_height_mm),
        ]

    def footer(self) -> List[str]:
        return ["M5", self.rapid_move(x=0, y=0)]

    def tool_change(self, tool: Tool) -> List[str]:
        if not tool.tool_number:
            return []
        return [f"T{tool.tool_number} M6 {self.comment(tool.name)}"]

    def _feeds(self, tool: Tool) -> tuple[float, float, float]:
        p = self.params
        feed_xy = p.feed_rate_xy if p.feed_rate_xy is not None else tool.default_feed_rate_xy
        feed_z = p.feed_rate_z if p.feed_rate_z is not None else tool.default_feed_rate_z
        spindle = p.spindle_speed if p.spindle_speed is not None else tool.default_spindle_speed
        return feed_xy, feed_z, spindle

    def _clamp_xy(self, points: np.ndarray, material: Material) -> np.ndarray:
        xy = np.array(points[:, :2], dtype=float)
        xy[:, 0] = np.clip(xy[:, 0], 0.0, material.width_mm)
        xy[:, 1] = np.clip(xy[:, 1], 0.0, material.height_mm)
        return xy

    def _planar_passes(self, xy: np.ndarray, levels: Sequence[float],
                       feed_xy: float, feed_z: float) -> List[str]:
        lines = []
        safe = self.params.safe_height_mm
        for level in levels:
            lines.append(self.rapid_move(x=xy[0, 0], y=xy[0, 1]))
            lines.append(f"G1 Z{fmt(level)} F{fmt(feed_z)}")
            lines.append(f"G1 F{fmt(feed_xy)}")
            lines.extend(self.linear_move(x, y) for x, y in xy[1:])
            lines.append(self.rapid_move(z=safe))
        return lines

    def _contour_pass(self, xy: np.ndarray, z: np.ndarray, target: float,
                      feed_xy: float, feed_z: float) -> List[str]:
        """Single Z-following pass; relief deeper than the target depth is cut flat at it."""
        z = np.clip(z, -target, 0.0)
        lines = [
            self.rapid_move(x=xy[0, 0], y=xy[0, 1]),
            f"G1 Z{fmt(z[0])} F{fmt(feed_z)}",
            f"G1 F{fmt(feed_xy)}",
        ]
        lines.extend(self.linear_move(x, y, zz) for (x, y), zz in zip(xy[1:], z[1:]))
        lines.append(self.rapid_move(z=self.params.safe_height_mm))
        return lines

    def operation_block(self, operation: Operation, material: Material) -> List[str]:
        tool = operation.tool
        feed_xy, feed_z, spindle = self._feeds(tool)
        target = target_depth(self.params.cut_depth_mm, material.thickness_mm, tool.max_depth_mm)
        levels = pass_depths(
            self.params.cut_depth_mm,
            material.thickness_mm,
            tool.max_depth_mm,
            self.params.max_step_down_mm,
        )

        lines = [self.comment(f"Operation {operation.id} ({operation.strategy}) - {tool.name}")]
        lines.extend(self.tool_change(tool))
        lines.append(f"M3 S{fmt(spindle)}")
        for points in operation.polylines:
            if len(points) == 0:
                continue
            xy = self._clamp_xy(points, material)
            if points.shape[1] > 2:
                lines.extend(self._contour_pass(xy, np.asarray(points[:, 2], dtype=float),
                                                target, feed_xy, feed_z))
            else:
                lines.extend(self._planar_passes(xy, levels, feed_xy, feed_z))
        return lines

    def generate(self, operations: Sequence[Operation], material: Material) -> str:
        """
        Generate the complete program.

        Returns:
            Program text, newline-terminated.
        """
        self._lines = []
        self._lines.extend(self.header(operations, material))
        for operation in operations:
            self._lines.extend(self.operation_block(operation, material))
        self._lines.extend(self.footer())
        ending = self.params.line_ending
        return ending.join(self._lines) + ending
