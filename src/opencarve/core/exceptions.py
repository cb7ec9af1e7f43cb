"""
Custom exceptions for opencarve.

All opencarve exceptions inherit from CarveError for easy catching.
Each error carries the HTTP status the API layer reports for it.
"""

from typing import Any


class CarveError(Exception):
    """Base exception for all opencarve errors."""

    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class ConfigurationError(CarveError):
    """Raised when configuration is invalid or missing."""

    pass


# ── Input errors (400) ────────────────────────────────────────────────────


class InputError(CarveError):
    """Raised when request options are missing or invalid."""

    status_code = 400


class InvalidDimension(InputError):
    """Raised when a material or output dimension is missing or not positive."""

    pass


class OutputExceedsMaterial(InputError):
    """Raised when the requested output is larger than the material."""

    pass


class UnknownTool(InputError):
    """Raised when a tool id is not in the tool library."""

    def __init__(
        self,
        message: str,
        tool_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.tool_id = tool_id


class InvalidOperationsPayload(InputError):
    """Raised when the operations payload is present but unparsable."""

    pass


class UnsupportedOutputFormat(InputError):
    """Raised when the requested output format is not gcode or dxf."""

    pass


# ── Format errors (415) ───────────────────────────────────────────────────


class UnsupportedFormatError(CarveError):
    """Raised when an upload cannot be processed in the requested way."""

    status_code = 415


class UnsupportedFileType(UnsupportedFormatError):
    """Raised when neither extension nor MIME type is recognised."""

    pass


class FormatMismatch(UnsupportedFormatError):
    """Raised when an input category cannot produce the requested output."""

    pass


# ── Processing errors (422) ───────────────────────────────────────────────


class ProcessingError(CarveError):
    """Raised when geometry cannot be turned into toolpaths."""

    status_code = 422


class NoVectorPaths(ProcessingError):
    """Raised when no samplable vector paths were found."""

    pass


class MalformedMesh(ProcessingError):
    """Raised when an STL buffer cannot be parsed."""

    pass


class DegenerateGeometry(ProcessingError):
    """Raised when the geometry bounding box has zero or non-finite size."""

    pass


class NoToolpathsGenerated(ProcessingError):
    """Raised when slicing a mesh produced no toolpaths."""

    pass


# ── Unexpected errors (500) ───────────────────────────────────────────────


class TraceError(CarveError):
    """Raised when raster tracing fails."""

    pass
