"""
Simulation module - Height-field material removal for previews.
"""

from opencarve.simulation.height_field import (
    BallFootprint,
    FlatFootprint,
    HeightFieldResult,
    HeightFieldSimulator,
    ToolFootprint,
    VBitFootprint,
    footprint_for,
    grid_shape,
)

__all__ = [
    "BallFootprint",
    "FlatFootprint",
    "HeightFieldResult",
    "HeightFieldSimulator",
    "ToolFootprint",
    "VBitFootprint",
    "footprint_for",
    "grid_shape",
]
