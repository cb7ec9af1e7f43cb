"""
Geometry input - Upload classification, vector extraction and STL parsing.
"""

from opencarve.geometry.formats import (
    InputCategory,
    OutputFormat,
    check_output_compatibility,
    classify_upload,
    normalize_output_format,
)
from opencarve.geometry.mesh_parser import parse_stl
from opencarve.geometry.vector_extractor import (
    TracedImage,
    dxf_preview_polylines,
    extract_path_data,
    raster_to_svg,
    sample_path,
    svg_to_polylines,
)

__all__ = [
    "InputCategory",
    "OutputFormat",
    "check_output_compatibility",
    "classify_upload",
    "normalize_output_format",
    "parse_stl",
    "TracedImage",
    "dxf_preview_polylines",
    "extract_path_data",
    "raster_to_svg",
    "sample_path",
    "svg_to_polylines",
]
