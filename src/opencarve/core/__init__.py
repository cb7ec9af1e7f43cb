"""
Core module - Configuration, errors, logging and shared data types.
"""

from opencarve.core.config import ProcessingSettings, ToolConfig, ToolLibrary
from opencarve.core.exceptions import (
    CarveError,
    ConfigurationError,
    InputError,
    ProcessingError,
    UnsupportedFormatError,
)
from opencarve.core.geometry import BoundingBox, Mesh, fit_polylines, scale_mesh
from opencarve.core.materials import Material
from opencarve.core.registry import OutputRecord, OutputRegistry
from opencarve.core.tools import Tool, ToolShape, legacy_tool

__all__ = [
    # Config
    "ProcessingSettings",
    "ToolConfig",
    "ToolLibrary",
    # Exceptions
    "CarveError",
    "ConfigurationError",
    "InputError",
    "ProcessingError",
    "UnsupportedFormatError",
    # Geometry
    "BoundingBox",
    "Mesh",
    "fit_polylines",
    "scale_mesh",
    "Material",
    # Outputs
    "OutputRecord",
    "OutputRegistry",
    # Tools
    "Tool",
    "ToolShape",
    "legacy_tool",
]
