"""
Mesh slicer for STL-sourced toolpaths.

Sweeps a plane ``x = const`` across the mesh and turns each plane's
triangle cross-section into one Z-following polyline. This is a planar
contour approximation: every triangle contributes at most one chord per
plane and chords are simply ordered by Y, so multi-component cross sections
are not separated.
"""

import logging
from typing import List

import numpy as np

from opencarve.core.exceptions import NoToolpathsGenerated
from opencarve.core.geometry import Mesh

logger = logging.getLogger(__name__)

MIN_SLICE_STEP_MM = 1.0
DEFAULT_STEP_OVER_PERCENT = 40.0


def slice_step(tool_diameter_mm: float, step_over_percent: float) -> float:
    """Distance between sweep planes: ``max(d * stepOver / 100, 1 mm)``."""
    return max(tool_diameter_mm * step_over_percent / 100.0, MIN_SLICE_STEP_MM)


def _edge_crossings(faces: np.ndarray, x: float) -> tuple[np.ndarray, np.ndarray]:
    """
    Crossing mask ``(F, 3)`` and interpolated ``(y, z)`` points ``(F, 3, 2)``.

    Edge k runs from vertex k to vertex (k + 1) % 3.
    """
    a = faces
    b = np.roll(faces, -1, axis=1)
    ax, bx = a[..., 0], b[..., 0]
    crosses = ((ax <= x) & (x <= bx)) | ((bx <= x) & (x <= ax))

    dx = bx - ax
    with np.errstate(divide="ignore", invalid="ignore"):
        t = np.where(dx != 0, (x - ax) / dx, 0.0)
    # Vertical edges (dx == 0) report their start point.
    points = a[..., 1:] + t[..., None] * (b[..., 1:] - a[..., 1:])
    return crosses, points


def _slice_plane(faces: np.ndarray, x: float) -> np.ndarray:
    crosses, points = _edge_crossings(faces, x)
    has_chord = crosses.sum(axis=1) >= 2
    if not np.any(has_chord):
        return np.empty((0, 3))

    crosses = crosses[has_chord]
    points = points[has_chord]
    rows = np.arange(len(crosses))
    first = np.argmax(crosses, axis=1)
    # Second crossing: edge 1 if edges 0 and 1 both cross, otherwise edge 2.
    second = np.where((first == 0) & crosses[:, 1], 1, 2)
    start = points[rows, first]
    end = points[rows, second]

    # Orient each chord by ascending Y, then order chords by their lower Y.
    swap = end[:, 0] < start[:, 0]
    start[swap], end[swap] = end[swap].copy(), start[swap].copy()
    order = np.argsort(start[:, 0], kind="stable")
    yz = np.stack([start[order], end[order]], axis=1).reshape(-1, 2)

    keep = np.ones(len(yz), dtype=bool)
    keep[1:] = np.any(np.abs(np.diff(yz, axis=0)) > 1e-9, axis=1)
    yz = yz[keep]
    return np.column_stack([np.full(len(yz), x), yz])


def slice_mesh(
    mesh: Mesh,
    tool_diameter_mm: float,
    step_over_percent: float = DEFAULT_STEP_OVER_PERCENT,
) -> List[np.ndarray]:
    """
    Slice a mesh into ``(N, 3)`` polylines, one per sweep plane.

    Args:
        mesh: Mesh in material space
        tool_diameter_mm: Cutter diameter
        step_over_percent: Plane spacing as a percentage of the diameter

    Raises:
        NoToolpathsGenerated: If no plane intersects any triangle
    """
    faces = np.asarray(mesh.faces, dtype=float)
    step = slice_step(tool_diameter_mm, step_over_percent)
    min_x = float(faces[..., 0].min())
    max_x = float(faces[..., 0].max())
    planes = int(np.floor((max_x - min_x) / step + 1e-9)) + 1

    polylines = []
    for i in range(planes):
        line = _slice_plane(faces, min_x + i * step)
        if len(line) >= 2:
            polylines.append(line)

    if not polylines:
        raise NoToolpathsGenerated(
            "No toolpaths generated from mesh",
            details={"faces": len(faces), "step": step},
        )
    logger.debug("Sliced %d faces into %d polylines (step %.3f mm)", len(faces), len(polylines), step)
    return polylines
