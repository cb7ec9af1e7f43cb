"""
Operation assembly.

An operation binds a tool and a strategy label to a subset of the extracted
polylines. Clients may send a list of operation specs (JSON string or
array); the payload is weakly typed and parsed leniently: malformed entries
are dropped and unknown tools fall back to the request's default tool.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from opencarve.core.config import ToolLibrary
from opencarve.core.exceptions import InvalidOperationsPayload
from opencarve.core.tools import Tool

logger = logging.getLogger(__name__)

DEFAULT_STRATEGY = "outline"
IMPLICIT_OPERATION_ID = "op-1"

# Preview stroke colors, cycled per operation.
OPERATION_COLORS = (
    "#0f172a",
    "#2563eb",
    "#dc2626",
    "#16a34a",
    "#d97706",
    "#7c3aed",
    "#0891b2",
    "#db2777",
)


@dataclass
class OperationSpec:
    """One client-supplied operation entry after lenient parsing."""

    id: str
    tool_id: Optional[str] = None
    strategy: str = DEFAULT_STRATEGY
    geometry_subset: List[int] = field(default_factory=list)


@dataclass
class Operation:
    """
    A tool applied to a set of polylines.

    Attributes:
        id: Operation id (client-supplied or generated)
        tool: Resolved tool
        strategy: Free-form label; decides the offset side
        polylines: Geometry in material space
        color: Preview stroke color
    """

    id: str
    tool: Tool
    strategy: str
    polylines: List[np.ndarray]
    color: str = OPERATION_COLORS[0]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the preview payload."""
        return {
            "id": self.id,
            "strategy": self.strategy,
            "color": self.color,
            "toolId": self.tool.id,
            "toolName": self.tool.name,
            "toolDiameterMm": self.tool.diameter_mm,
            "tool": self.tool.to_dict(),
            "polylines": [polyline_to_points(p) for p in self.polylines],
        }


def polyline_to_points(points: np.ndarray) -> List[Dict[str, float]]:
    """Convert an ``(N, 2|3)`` array to ``[{x, y[, z]}]`` dicts."""
    if points.shape[1] > 2:
        return [{"x": float(x), "y": float(y), "z": float(z)} for x, y, z in points[:, :3]]
    return [{"x": float(x), "y": float(y)} for x, y in points]


def _parse_subset(value: Any) -> List[int]:
    if not isinstance(value, list):
        return []
    indices = []
    for item in value:
        if isinstance(item, bool):
            continue
        if isinstance(item, int):
            indices.append(item)
        elif isinstance(item, float) and item.is_integer():
            indices.append(int(item))
    return indices


def parse_operations_payload(value: Any) -> Optional[List[OperationSpec]]:
    """
    Parse the ``operations`` option.

    Args:
        value: None, a JSON string, or an already-decoded list

    Returns:
        List of specs, or None when the payload is absent or empty

    Raises:
        InvalidOperationsPayload: If a payload is present but is not valid
            JSON or does not decode to a list
    """
    if value is None:
        return None
    if isinstance(value, (str, bytes)):
        text = value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value
        if not text.strip():
            return None
        try:
            value = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidOperationsPayload(
                "Invalid operations payload",
                details={"error": str(e)},
            )
    if not isinstance(value, list):
        raise InvalidOperationsPayload(
            "Operations payload must be a list",
            details={"type": type(value).__name__},
        )
    if not value:
        return None

    specs = []
    for index, entry in enumerate(value):
        if not isinstance(entry, dict):
            logger.debug("Dropping non-object operation entry at index %d", index)
            continue
        tool_id = entry.get("toolId")
        strategy = entry.get("strategy")
        specs.append(
            OperationSpec(
                id=str(entry.get("id") or f"op-{index + 1}"),
                tool_id=str(tool_id) if tool_id else None,
                strategy=str(strategy) if strategy else DEFAULT_STRATEGY,
                geometry_subset=_parse_subset(entry.get("geometrySubset")),
            )
        )
    return specs or None


def _implicit_operation(polylines: Sequence[np.ndarray], tool: Tool) -> Operation:
    return Operation(
        id=IMPLICIT_OPERATION_ID,
        tool=tool,
        strategy=DEFAULT_STRATEGY,
        polylines=list(polylines),
        color=OPERATION_COLORS[0],
    )


def _select_subset(polylines: Sequence[np.ndarray], subset: Sequence[int]) -> List[np.ndarray]:
    if not subset:
        return list(polylines)
    return [polylines[i] for i in subset if 0 <= i < len(polylines)]


def assemble_operations(
    polylines: Sequence[np.ndarray],
    specs: Optional[Sequence[OperationSpec]],
    default_tool: Tool,
    library: ToolLibrary,
) -> List[Operation]:
    """
    Build the operation list for a conversion.

    Without specs a single implicit ``outline`` operation covers all
    geometry with the default tool. Otherwise each spec resolves its tool
    (missing or unknown ids use ``default_tool``) and selects its subset
    (out-of-range indices are dropped; an empty subset means everything).
    Operations that end up with no geometry are dropped; if none remain the
    implicit operation is returned.
    """
    if not specs:
        return [_implicit_operation(polylines, default_tool)]

    operations = []
    for spec in specs:
        tool = default_tool
        if spec.tool_id:
            found = library.get(spec.tool_id)
            if found is None:
                logger.warning(
                    "Operation %s references unknown tool %r, using %s",
                    spec.id, spec.tool_id, default_tool.id,
                )
            else:
                tool = found
        selected = _select_subset(polylines, spec.geometry_subset)
        if not selected:
            logger.debug("Dropping operation %s with no geometry", spec.id)
            continue
        operations.append(
            Operation(
                id=spec.id,
                tool=tool,
                strategy=spec.strategy,
                polylines=selected,
                color=OPERATION_COLORS[len(operations) % len(OPERATION_COLORS)],
            )
        )

    return operations or [_implicit_operation(polylines, default_tool)]
