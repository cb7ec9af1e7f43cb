"""
opencarve - CNC toolpath and G-code synthesis.

Turns raster images, SVG, DXF and STL uploads into G-code or DXF output
for 3-axis routers, within material and tool constraints.
"""

__version__ = "0.1.0"
__author__ = "opencarve contributors"

from opencarve.core.config import ProcessingSettings, ToolLibrary
from opencarve.core.registry import OutputRegistry

__all__ = [
    "__version__",
    "ProcessingSettings",
    "ToolLibrary",
    "OutputRegistry",
]
