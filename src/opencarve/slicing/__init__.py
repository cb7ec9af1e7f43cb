"""
Slicing module - Operations and toolpath generation for 3-axis milling.

- Operation assembly from client operation specs
- Tool-radius offset of planar polylines (local normal bisector)
- Axis-sweep slicing of STL meshes into Z-following polylines
"""

from opencarve.slicing.operations import (
    Operation,
    OperationSpec,
    assemble_operations,
    parse_operations_payload,
)
from opencarve.slicing.contour_offset import offset_operation, offset_polyline, strategy_sign
from opencarve.slicing.mesh_slicer import slice_mesh

__all__ = [
    "Operation",
    "OperationSpec",
    "assemble_operations",
    "parse_operations_payload",
    "offset_operation",
    "offset_polyline",
    "strategy_sign",
    "slice_mesh",
]
