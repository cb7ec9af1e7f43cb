"""
Post processors - G-code and DXF output.

Both writers clamp every XY coordinate to the material rectangle.
"""

from .dxf import generate_dxf
from .gcode import GCodeParams, GCodePostProcessor, pass_depths

__all__ = [
    'GCodeParams',
    'GCodePostProcessor',
    'generate_dxf',
    'pass_depths',
]
