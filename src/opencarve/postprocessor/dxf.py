"""
Minimal DXF writer.

Writes only an ENTITIES section with one closed LWPOLYLINE per polyline on
layer ``0``. No header, tables or blocks are emitted.
"""

from typing import List, Optional, Sequence

import numpy as np

from opencarve.core.materials import Material
from opencarve.postprocessor.gcode import fmt


def generate_dxf(polylines: Sequence[np.ndarray], material: Optional[Material] = None) -> str:
    """
    Render polylines as DXF group-code pairs.

    Z is dropped. With ``material`` every XY is clamped to its rectangle.
    """
    lines: List[str] = ["0", "SECTION", "2", "ENTITIES"]
    for points in polylines:
        if len(points) == 0:
            continue
        xy = np.array(points[:, :2], dtype=float)
        if material is not None:
            xy[:, 0] = np.clip(xy[:, 0], 0.0, material.width_mm)
            xy[:, 1] = np.clip(xy[:, 1], 0.0, material.height_mm)
        lines.extend(["0", "LWPOLYLINE", "8", "0", "90", str(len(xy)), "70", "1"])
        for x, y in xy:
            lines.extend(["10", fmt(x), "20", fmt(y)])
    lines.extend(["0", "ENDSEC", "0", "EOF"])
    return "\n".join(lines) + "\n"
