"""
Upload classification and output-format validation.

An upload is accepted if either its extension or its MIME type appears in
one of the allow-lists below. When both are recognised but disagree, the
extension decides.
"""

from enum import Enum
from pathlib import PurePath
from typing import Optional

from opencarve.core.exceptions import (
    FormatMismatch,
    UnsupportedFileType,
    UnsupportedOutputFormat,
)


class InputCategory(Enum):
    """Kind of geometry an upload carries."""

    RASTER = "raster"
    SVG = "svg"
    DXF = "dxf"
    STL = "stl"


class OutputFormat(Enum):
    GCODE = "gcode"
    DXF = "dxf"

    @property
    def extension(self) -> str:
        return ".gcode" if self is OutputFormat.GCODE else ".dxf"

    @property
    def mime_type(self) -> str:
        return "text/plain" if self is OutputFormat.GCODE else "application/dxf"


EXTENSIONS = {
    InputCategory.RASTER: {".png", ".jpg", ".jpeg"},
    InputCategory.SVG: {".svg"},
    InputCategory.DXF: {".dxf"},
    InputCategory.STL: {".stl"},
}

MIME_TYPES = {
    InputCategory.RASTER: {"image/png", "image/jpeg", "image/jpg", "image/pjpeg", "image/x-png"},
    InputCategory.SVG: {"image/svg+xml"},
    InputCategory.DXF: {"application/dxf", "application/vnd.dxf", "image/vnd.dxf"},
    InputCategory.STL: {"model/stl", "application/sla", "application/vnd.ms-pki.stl"},
}


def file_extension(file_name: Optional[str]) -> str:
    return PurePath(file_name or "").suffix.lower()


def classify_upload(file_name: Optional[str], mime_type: Optional[str]) -> InputCategory:
    """
    Decide which pipeline branch handles an upload.

    Raises:
        UnsupportedFileType: If neither the extension nor the MIME type is known
    """
    ext = file_extension(file_name)
    mime = (mime_type or "").split(";")[0].strip().lower()

    for category, extensions in EXTENSIONS.items():
        if ext in extensions:
            return category
    for category, mimes in MIME_TYPES.items():
        if mime in mimes:
            return category

    raise UnsupportedFileType(
        "Unsupported file type. Upload PNG, JPG, SVG, DXF or STL files.",
        details={"fileName": file_name, "mimeType": mime_type},
    )


def normalize_output_format(value: Optional[str]) -> OutputFormat:
    """
    Map a requested output format onto gcode or dxf.

    Empty values, ``gcode`` and ``nc`` select G-code.

    Raises:
        UnsupportedOutputFormat: For any other value
    """
    normalized = (value or "").strip().lower()
    if normalized in ("", "gcode", "nc"):
        return OutputFormat.GCODE
    if normalized == "dxf":
        return OutputFormat.DXF
    raise UnsupportedOutputFormat(
        "Unsupported output format. Use 'gcode' or 'dxf'.",
        details={"outputFormat": value},
    )


def check_output_compatibility(category: InputCategory, output_format: OutputFormat) -> None:
    """
    Reject input/output pairs the pipeline cannot produce.

    Raises:
        FormatMismatch: DXF input asked for G-code, or STL input asked for DXF
    """
    if category is InputCategory.DXF and output_format is not OutputFormat.DXF:
        raise FormatMismatch("DXF uploads can only be converted to DXF output")
    if category is InputCategory.STL and output_format is not OutputFormat.GCODE:
        raise FormatMismatch("STL uploads can only be converted to G-code output")
