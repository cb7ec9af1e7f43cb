"""
Contour offset: tool-radius compensation for open polylines.

Each point moves along the bisector of its adjacent edge normals:

- the unit left-normal of the incoming and of the outgoing segment are
  averaged and renormalized,
- end points use the normal of their single adjacent segment,
- zero-length segments contribute a zero normal,
- a zero bisector (e.g. a 180-degree reversal) leaves the point in place.

This is a local offset. It is not self-intersection aware, so sharp concave
corners may overlap themselves.

The side of the offset is chosen from the operation's strategy label:
``inside``/``pocket`` cut on the right of the path direction, the
``engrave``/``on_path``/``center`` labels cut on the path, and any other
label (``outline`` included) cuts on the left.
"""

from __future__ import annotations

import logging
from dataclasses import replace

import numpy as np

from opencarve.slicing.operations import Operation

logger = logging.getLogger(__name__)

_EPS = 1e-12

INSIDE_STRATEGIES = frozenset({"inside", "pocket"})
ON_PATH_STRATEGIES = frozenset({"engrave", "on_path", "center"})


def strategy_sign(strategy: str) -> int:
    """Offset direction for a strategy label: -1, 0 or +1."""
    label = (strategy or "").strip().lower()
    if label in INSIDE_STRATEGIES:
        return -1
    if label in ON_PATH_STRATEGIES:
        return 0
    return 1


def _unit_left_normals(xy: np.ndarray) -> np.ndarray:
    """Unit left-normal per segment; zero for zero-length segments."""
    d = np.diff(xy, axis=0)
    length = np.hypot(d[:, 0], d[:, 1])
    normals = np.column_stack([-d[:, 1], d[:, 0]])
    nonzero = length > _EPS
    normals[nonzero] /= length[nonzero, None]
    normals[~nonzero] = 0.0
    return normals


def offset_polyline(points: np.ndarray, distance: float) -> np.ndarray:
    """
    Offset a polyline by ``distance`` along the per-point normal bisector.

    Parameters:
        points: ``(N, 2)`` or ``(N, 3)`` array; Z is carried through.
        distance: Signed distance in mm (positive = left of travel direction).

    Returns:
        New array of the same shape. Fewer than two points, or a zero
        distance, return an unchanged copy.
    """
    out = np.array(points, dtype=float, copy=True)
    if len(out) < 2 or distance == 0:
        return out

    normals = _unit_left_normals(out[:, :2])

    bisectors = np.zeros((len(out), 2))
    bisectors[0] = normals[0]
    bisectors[-1] = normals[-1]
    if len(out) > 2:
        bisectors[1:-1] = normals[:-1] + normals[1:]

    length = np.hypot(bisectors[:, 0], bisectors[:, 1])
    valid = length > _EPS
    bisectors[valid] /= length[valid, None]
    bisectors[~valid] = 0.0

    out[:, :2] += bisectors * distance
    return out


def offset_operation(operation: Operation) -> Operation:
    """
    Apply tool-radius compensation to every polyline of an operation.

    The legacy tool and polylines with explicit Z are never offset.
    """
    if operation.tool.is_legacy:
        return operation
    distance = operation.tool.radius_mm * strategy_sign(operation.strategy)
    if distance == 0:
        return operation

    polylines = [
        points if points.shape[1] > 2 else offset_polyline(points, distance)
        for points in operation.polylines
    ]
    logger.debug(
        "Offset operation %s (%s) by %.3f mm", operation.id, operation.strategy, distance
    )
    return replace(operation, polylines=polylines)
