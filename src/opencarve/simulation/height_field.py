"""
Height-field material-removal simulation.

The stock is a ``rows x cols`` grid of remaining-material heights, starting
at the material thickness. Every toolpath segment is resampled and, at each
sample, the tool footprint lowers the cells under it to the footprint
depth below the stock top. Removal is monotonic: a cell only ever goes
down, and never below the material's minimum height.

The result drives the client-side carving preview; it is not used to
generate G-code.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
from scipy.ndimage import uniform_filter

from opencarve.core.materials import Material
from opencarve.core.tools import Tool, ToolShape
from opencarve.slicing.operations import Operation

logger = logging.getLogger(__name__)

DEFAULT_RESOLUTION = 140
MIN_GRID_SIZE = 2
MAX_GRID_SIZE = 1024
MIN_SAMPLE_STEP_MM = 0.2
TOOL_STEP_FACTOR = 0.35


# ── Tool footprints ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ToolFootprint(ABC):
    """Material removed by a tool centred at a sample point."""

    diameter: float

    @property
    def radius(self) -> float:
        return self.diameter / 2.0

    def distance(self, dx, dy):
        """Distance metric for the footprint (Euclidean by default)."""
        return np.hypot(dx, dy)

    @abstractmethod
    def _removal(self, distance, depth):
        ...

    def removal_at(self, distance, depth):
        """
        Depth removed at ``distance`` from the tool centre.

        Works on scalars and numpy arrays; zero outside the radius and never
        negative.
        """
        distance = np.asarray(distance, dtype=float)
        inside = distance <= self.radius
        removal = np.where(inside, self._removal(np.where(inside, distance, 0.0), depth), 0.0)
        removal = np.maximum(removal, 0.0)
        return float(removal) if removal.ndim == 0 else removal


@dataclass(frozen=True)
class FlatFootprint(ToolFootprint):
    """Square footprint of half-width ``radius``; full depth inside."""

    def distance(self, dx, dy):
        return np.maximum(np.abs(dx), np.abs(dy))

    def _removal(self, distance, depth):
        return np.full_like(distance, depth, dtype=float)


@dataclass(frozen=True)
class BallFootprint(ToolFootprint):
    """Spherical cap: ``depth - (r - sqrt(r^2 - d^2))``."""

    def _removal(self, distance, depth):
        r = self.radius
        return depth - (r - np.sqrt(np.maximum(r * r - distance * distance, 0.0)))


@dataclass(frozen=True)
class VBitFootprint(ToolFootprint):
    """Cone: ``depth - d / tan(angle / 2)``."""

    angle_deg: float = 90.0

    def _removal(self, distance, depth):
        half_angle = self.angle_deg / 2.0 * math.pi / 180.0
        return depth - distance / math.tan(half_angle)


def footprint_for(tool: Tool) -> ToolFootprint:
    """Map a resolved tool onto its footprint."""
    if tool.shape is ToolShape.BALL:
        return BallFootprint(tool.diameter_mm)
    if tool.shape is ToolShape.VBIT:
        return VBitFootprint(tool.diameter_mm, angle_deg=tool.angle_deg or 90.0)
    return FlatFootprint(tool.diameter_mm)


# ── Grid sizing ────────────────────────────────────────────────────────────


def _clamp_size(value: float) -> int:
    return int(min(MAX_GRID_SIZE, max(MIN_GRID_SIZE, round(value))))


def grid_shape(
    material: Material,
    resolution: Optional[int] = None,
    resolution_x: Optional[int] = None,
    resolution_y: Optional[int] = None,
    image_width_px: Optional[float] = None,
    image_height_px: Optional[float] = None,
) -> Tuple[int, int]:
    """
    Grid ``(rows, cols)`` for a simulation.

    Explicit per-axis resolutions win. Otherwise ``resolution`` cells go on
    the long side and the short side follows the source image's pixel
    aspect when known, else the material aspect. Both dimensions are
    clamped to ``[2, 1024]``.
    """
    base = resolution if resolution and resolution > 0 else DEFAULT_RESOLUTION
    if image_width_px and image_height_px and image_width_px > 0 and image_height_px > 0:
        aspect = image_width_px / image_height_px
    else:
        aspect = material.width_mm / material.height_mm

    if aspect >= 1:
        cols, rows = base, base / aspect
    else:
        cols, rows = base * aspect, base

    if resolution_x and resolution_x > 0:
        cols = resolution_x
    if resolution_y and resolution_y > 0:
        rows = resolution_y
    return _clamp_size(rows), _clamp_size(cols)


# ── Simulation ─────────────────────────────────────────────────────────────


@dataclass
class HeightFieldResult:
    """Simulated stock and the parameters that produced it."""

    grid: np.ndarray
    material: Material
    depth_mm: float
    smoothing: bool = False
    smoothing_radius: int = 0

    @property
    def rows(self) -> int:
        return int(self.grid.shape[0])

    @property
    def cols(self) -> int:
        return int(self.grid.shape[1])

    @property
    def cell_width_mm(self) -> float:
        return self.material.width_mm / self.cols

    @property
    def cell_height_mm(self) -> float:
        return self.material.height_mm / self.rows

    def to_preview(self) -> Dict[str, Any]:
        """``heightField`` rows (Y down) and ``heightFieldMeta``."""
        return {
            "heightField": np.round(self.grid, 4).tolist(),
            "heightFieldMeta": {
                "rows": self.rows,
                "cols": self.cols,
                "cellWidthMm": self.cell_width_mm,
                "cellHeightMm": self.cell_height_mm,
                "minHeightMm": self.material.min_height_mm,
                "maxHeightMm": self.material.thickness_mm,
                "maxDepthMm": self.material.max_depth_mm,
                "smoothing": self.smoothing,
                "smoothingRadius": self.smoothing_radius,
                "yAxis": "down",
            },
        }


class HeightFieldSimulator:
    """
    Rasterize operations onto a height grid.

    Example:
        >>> sim = HeightFieldSimulator(material, rows=100, cols=140)
        >>> result = sim.simulate(operations, depth_mm=3.0)
        >>> result.grid.min() >= material.min_height_mm
        True
    """

    def __init__(
        self,
        material: Material,
        rows: int,
        cols: int,
        smoothing: bool = False,
        smoothing_radius: int = 1,
    ):
        self.material = material
        self.rows = int(rows)
        self.cols = int(cols)
        self.smoothing = smoothing
        self.smoothing_radius = max(0, int(smoothing_radius))
        self.cell_w = material.width_mm / self.cols
        self.cell_h = material.height_mm / self.rows
        # Cell centres, Y down.
        self._centers_x = (np.arange(self.cols) + 0.5) * self.cell_w
        self._centers_y = (np.arange(self.rows) + 0.5) * self.cell_h

    def sample_step(self, tool: Tool) -> float:
        """Resampling step along segments for ``tool``."""
        return max(
            MIN_SAMPLE_STEP_MM,
            min(tool.diameter_mm * TOOL_STEP_FACTOR, min(self.cell_w, self.cell_h)),
        )

    def _samples(self, points: np.ndarray, step: float, depth: float) -> np.ndarray:
        """``(M, 3)`` array of ``x, y, cut depth`` along the polyline."""
        has_z = points.shape[1] > 2
        chunks = []
        for p0, p1 in zip(points[:-1], points[1:]):
            length = math.hypot(p1[0] - p0[0], p1[1] - p0[1])
            n = max(1, math.ceil(length / step))
            t = np.linspace(0.0, 1.0, n + 1)[:, None]
            xy = p0[:2] + t * (p1[:2] - p0[:2])
            if has_z:
                z = p0[2] + t[:, 0] * (p1[2] - p0[2])
                d = np.clip(np.minimum(-z, depth), 0.0, None)
            else:
                d = np.full(len(t), depth)
            chunks.append(np.column_stack([xy, d]))
        if not chunks:
            return np.array([[points[0, 0], points[0, 1], depth]]) if len(points) else np.empty((0, 3))
        return np.vstack(chunks)

    def _apply_sample(
        self,
        grid: np.ndarray,
        footprint: ToolFootprint,
        x: float,
        y: float,
        depth: float,
    ) -> None:
        r = footprint.radius
        c0 = max(0, int(math.floor((x - r) / self.cell_w)))
        c1 = min(self.cols - 1, int(math.floor((x + r) / self.cell_w)))
        r0 = max(0, int(math.floor((y - r) / self.cell_h)))
        r1 = min(self.rows - 1, int(math.floor((y + r) / self.cell_h)))
        thickness = self.material.thickness_mm
        floor = self.material.min_height_mm

        if c0 <= c1 and r0 <= r1:
            dx = self._centers_x[c0:c1 + 1][None, :] - x
            dy = self._centers_y[r0:r1 + 1][:, None] - y
            removal = footprint.removal_at(footprint.distance(dx, dy), depth)
            window = grid[r0:r1 + 1, c0:c1 + 1]
            np.maximum(floor, np.minimum(window, thickness - removal), out=window)

        # The cell under the tool centre is always cut.
        col = min(self.cols - 1, max(0, int(x / self.cell_w)))
        row = min(self.rows - 1, max(0, int(y / self.cell_h)))
        grid[row, col] = max(floor, min(grid[row, col], thickness - footprint.removal_at(0.0, depth)))

    def simulate(self, operations: Sequence[Operation], depth_mm: float) -> HeightFieldResult:
        """
        Run the removal simulation.

        Args:
            operations: Operations with polylines in material space
            depth_mm: Target cut depth (positive) for planar polylines;
                polylines with Z cut to ``min(-z, depth_mm)``
        """
        thickness = self.material.thickness_mm
        floor = self.material.min_height_mm
        grid = np.full((self.rows, self.cols), thickness, dtype=float)
        depth = max(0.0, float(depth_mm))

        samples_total = 0
        for operation in operations:
            footprint = footprint_for(operation.tool)
            step = self.sample_step(operation.tool)
            op_depth = min(depth, operation.tool.max_depth_mm)
            for points in operation.polylines:
                if len(points) == 0:
                    continue
                samples = self._samples(np.asarray(points, dtype=float), step, op_depth)
                for x, y, d in samples:
                    self._apply_sample(grid, footprint, x, y, d)
                samples_total += len(samples)

        if self.smoothing and self.smoothing_radius > 0:
            grid = uniform_filter(grid, size=2 * self.smoothing_radius + 1, mode="nearest")
        np.clip(grid, floor, thickness, out=grid)

        logger.debug(
            "Simulated %d samples on %dx%d grid (depth %.3f mm)",
            samples_total, self.rows, self.cols, depth,
        )
        return HeightFieldResult(
            grid=grid,
            material=self.material,
            depth_mm=depth,
            smoothing=self.smoothing,
            smoothing_radius=self.smoothing_radius if self.smoothing else 0,
        )
