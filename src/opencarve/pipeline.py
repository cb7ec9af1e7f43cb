"""
Conversion pipeline: uploaded file -> G-code or DXF output.

Chains: classify -> extract (trace/sample or parse STL) -> normalize ->
resolve tools and assemble operations -> offset -> slice (STL) ->
height-field preview -> generate code -> write file -> register output.

Every option is validated before any geometry work starts, and a failure in
any step short-circuits the run: nothing is written to disk or registered.
"""

import math
import re
import time
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar

import numpy as np

from opencarve.core.config import ProcessingSettings, ToolLibrary
from opencarve.core.exceptions import InvalidDimension
from opencarve.core.geometry import check_output_fits, fit_polylines, scale_mesh
from opencarve.core.logging import conversion_context, get_logger
from opencarve.core.materials import Material
from opencarve.core.registry import OutputRecord, OutputRegistry, new_output_id
from opencarve.geometry.formats import (
    InputCategory,
    OutputFormat,
    check_output_compatibility,
    classify_upload,
    normalize_output_format,
)
from opencarve.geometry.mesh_parser import parse_stl
from opencarve.geometry.vector_extractor import (
    dxf_preview_polylines,
    raster_to_svg,
    svg_to_polylines,
)
from opencarve.postprocessor.dxf import generate_dxf
from opencarve.postprocessor.gcode import GCodeParams, GCodePostProcessor, target_depth
from opencarve.simulation.height_field import HeightFieldSimulator, grid_shape
from opencarve.slicing.contour_offset import offset_operation
from opencarve.slicing.mesh_slicer import slice_mesh
from opencarve.slicing.operations import (
    Operation,
    assemble_operations,
    parse_operations_payload,
    polyline_to_points,
)

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_CONVERSION_TYPE = "2d_outline"
DEFAULT_BASE_NAME = "cnc-output"

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}
_UNSAFE_NAME_CHARS = re.compile(r"[^a-z0-9_.-]", re.IGNORECASE)


# ── Option parsing ─────────────────────────────────────────────────────────


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_number(value: Any, default: Optional[float] = None) -> Optional[float]:
    """Lenient float parsing: blanks give ``default``, junk gives NaN."""
    if _is_blank(value):
        return default
    if isinstance(value, bool):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def parse_optional_positive(value: Any) -> Optional[float]:
    """A number that only counts when finite and > 0."""
    number = parse_number(value)
    if number is None or not math.isfinite(number) or number <= 0:
        return None
    return number


def parse_bool(value: Any, default: bool) -> bool:
    """Accept booleans, 1/0 and true/yes/on-style strings."""
    if _is_blank(value):
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_VALUES:
            return True
        if normalized in _FALSE_VALUES:
            return False
    return default


def require_dimension(value: Optional[float], label: str) -> float:
    """
    Validate a required dimension.

    Raises:
        InvalidDimension: If the value is missing, non-finite or not positive
    """
    if value is None:
        raise InvalidDimension(f"{label} is required")
    if not math.isfinite(value) or value <= 0:
        raise InvalidDimension(f"{label} must be greater than 0", details={"value": value})
    return value


def safe_base_name(file_name: Optional[str]) -> str:
    stem = PurePath(file_name or "").stem
    return _UNSAFE_NAME_CHARS.sub("_", stem) or DEFAULT_BASE_NAME


@dataclass
class ConversionOptions:
    """Options bag for one conversion, parsed from form fields or JSON."""

    conversion_type: str = DEFAULT_CONVERSION_TYPE
    material_width_mm: Optional[float] = None
    material_height_mm: Optional[float] = None
    material_thickness_mm: Optional[float] = None
    output_width_mm: Optional[float] = None
    output_height_mm: Optional[float] = None
    keep_aspect_ratio: bool = True
    step: float = 5.0
    tool_id: Optional[str] = None
    tool_diameter_override_mm: Optional[float] = None
    operations: Any = None
    safe_height_mm: float = 5.0
    cut_depth_mm: float = -1.0
    max_step_down_mm: float = 1.5
    step_over_percent: float = 40.0
    feed_rate_xy: Optional[float] = None
    feed_rate_z: Optional[float] = None
    spindle_speed: Optional[float] = None
    height_field_resolution: Optional[int] = None
    height_field_resolution_x: Optional[int] = None
    height_field_resolution_y: Optional[int] = None
    height_field_max_depth_mm: Optional[float] = None
    height_field_smoothing_enabled: bool = False
    height_field_smoothing_radius: int = 1
    image_width_px: Optional[float] = None
    image_height_px: Optional[float] = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "ConversionOptions":
        """
        Parse camelCase request options.

        Parsing never raises; dimensions are validated later by
        :meth:`material` so a DXF passthrough needs none of them.
        """
        def number(key: str, default: Optional[float] = None) -> Optional[float]:
            return parse_number(values.get(key), default)

        def finite(key: str, default: float) -> float:
            value = number(key, default)
            return value if value is not None and math.isfinite(value) else default

        def count(key: str) -> Optional[int]:
            value = parse_optional_positive(values.get(key))
            return int(round(value)) if value is not None else None

        tool_id = values.get("toolId")
        return cls(
            conversion_type=str(values.get("conversionType") or DEFAULT_CONVERSION_TYPE),
            material_width_mm=number("materialWidthMm"),
            material_height_mm=number("materialHeightMm"),
            material_thickness_mm=number("materialThicknessMm"),
            output_width_mm=number("outputWidthMm"),
            output_height_mm=number("outputHeightMm"),
            keep_aspect_ratio=parse_bool(values.get("keepAspectRatio"), True),
            step=finite("step", 5.0),
            tool_id=None if _is_blank(tool_id) else str(tool_id).strip(),
            tool_diameter_override_mm=parse_optional_positive(values.get("toolDiameterOverrideMm")),
            operations=values.get("operations"),
            safe_height_mm=finite("safeHeightMm", 5.0),
            cut_depth_mm=finite("cutDepthMm", -1.0),
            max_step_down_mm=finite("maxStepDownMm", 1.5),
            step_over_percent=parse_optional_positive(values.get("stepOverPercent")) or 40.0,
            feed_rate_xy=parse_optional_positive(values.get("feedRateXY")),
            feed_rate_z=parse_optional_positive(values.get("feedRateZ")),
            spindle_speed=parse_optional_positive(values.get("spindleSpeed")),
            height_field_resolution=count("heightFieldResolution"),
            height_field_resolution_x=count("heightFieldResolutionX"),
            height_field_resolution_y=count("heightFieldResolutionY"),
            height_field_max_depth_mm=parse_optional_positive(values.get("heightFieldMaxDepthMm")),
            height_field_smoothing_enabled=parse_bool(
                values.get("heightFieldSmoothingEnabled"), False
            ),
            height_field_smoothing_radius=count("heightFieldSmoothingRadius") or 1,
            image_width_px=parse_optional_positive(values.get("imageWidthPx")),
            image_height_px=parse_optional_positive(values.get("imageHeightPx")),
        )

    def material(self) -> Material:
        """
        Validated material block.

        Raises:
            InvalidDimension: If a material or output dimension is missing or
                not positive
        """
        width = require_dimension(self.material_width_mm, "Material width")
        height = require_dimension(self.material_height_mm, "Material height")
        thickness = require_dimension(self.material_thickness_mm, "Material thickness")
        require_dimension(self.output_width_mm, "Output width")
        require_dimension(self.output_height_mm, "Output height")
        return Material(width_mm=width, height_mm=height, thickness_mm=thickness)

    def gcode_params(self) -> GCodeParams:
        return GCodeParams(
            safe_height_mm=self.safe_height_mm,
            cut_depth_mm=self.cut_depth_mm,
            max_step_down_mm=self.max_step_down_mm,
            feed_rate_xy=self.feed_rate_xy,
            feed_rate_z=self.feed_rate_z,
            spindle_speed=self.spindle_speed,
        )


@dataclass
class Upload:
    """An uploaded file, fully read into memory."""

    data: bytes
    file_name: str
    mime_type: Optional[str] = None


# ── Pipeline ───────────────────────────────────────────────────────────────


@dataclass
class _Geometry:
    """Intermediate state of a non-passthrough conversion."""

    polylines: List[np.ndarray]
    operations: List[Operation]
    width_mm: float
    height_mm: float
    scale: Dict[str, float]
    image_size: Optional[tuple[float, float]] = None


class ConversionPipeline:
    """
    End-to-end conversion of one upload.

    Usage:
        pipeline = ConversionPipeline(ToolLibrary(), OutputRegistry())
        record = pipeline.process(upload, "gcode", options)
    """

    def __init__(
        self,
        library: ToolLibrary,
        registry: OutputRegistry,
        settings: Optional[ProcessingSettings] = None,
    ):
        self.library = library
        self.registry = registry
        self.settings = settings or ProcessingSettings()

    def process(
        self,
        upload: Upload,
        output_format: Optional[str] = None,
        options: Optional[Mapping[str, Any] | ConversionOptions] = None,
    ) -> OutputRecord:
        """
        Convert an upload and register the output.

        Raises:
            CarveError: Any validation or processing failure; nothing is
                written or registered in that case
        """
        if not isinstance(options, ConversionOptions):
            options = ConversionOptions.from_mapping(options or {})

        with conversion_context(file_name=upload.file_name, conversion_type=options.conversion_type):
            timings: Dict[str, float] = {}
            started = time.perf_counter()

            category = classify_upload(upload.file_name, upload.mime_type)
            fmt = normalize_output_format(output_format)
            check_output_compatibility(category, fmt)

            if category is InputCategory.DXF:
                preview_lines = self._run_step(
                    "dxf_preview", lambda: dxf_preview_polylines(upload.data), timings
                )
                preview = {"polylines": [polyline_to_points(p) for p in preview_lines]} if preview_lines else None
                record = self._store(upload, fmt, upload.data, options.conversion_type, preview)
                logger.info("conversion_complete", output_id=record.id, passthrough=True, timings=timings)
                return record

            material = options.material()
            check_output_fits(material, options.output_width_mm, options.output_height_mm)
            specs = parse_operations_payload(options.operations)
            default_tool = self.library.resolve(options.tool_id, options.tool_diameter_override_mm)

            if category is InputCategory.STL:
                geometry = self._mesh_geometry(upload, material, options, specs, default_tool, timings)
            else:
                geometry = self._vector_geometry(upload, category, material, options, specs, default_tool, timings)

            toolpaths = self._run_step(
                "offset", lambda: [offset_operation(op) for op in geometry.operations], timings
            )
            height_field = self._run_step(
                "height_field",
                lambda: self._simulate(toolpaths, material, options, geometry.image_size),
                timings,
            )

            if fmt is OutputFormat.GCODE:
                content = self._run_step(
                    "gcode",
                    lambda: GCodePostProcessor(options.gcode_params()).generate(toolpaths, material),
                    timings,
                )
            else:
                content = self._run_step(
                    "dxf", lambda: generate_dxf(geometry.polylines, material), timings
                )

            preview = {
                "viewBox": material.view_box,
                "materialWidthMm": material.width_mm,
                "materialHeightMm": material.height_mm,
                "materialThicknessMm": material.thickness_mm,
                "outputWidthMm": geometry.width_mm,
                "outputHeightMm": geometry.height_mm,
                "polylines": [polyline_to_points(p) for p in geometry.polylines],
                "operations": [op.to_dict() for op in toolpaths],
                "tool": default_tool.to_dict(),
                **height_field,
            }
            output = {
                "widthMm": geometry.width_mm,
                "heightMm": geometry.height_mm,
                "requestedWidthMm": options.output_width_mm,
                "requestedHeightMm": options.output_height_mm,
                "keepAspectRatio": options.keep_aspect_ratio,
                "scale": geometry.scale,
            }
            record = self._store(
                upload,
                fmt,
                content.encode("utf-8"),
                options.conversion_type,
                preview,
                material=material.to_dict(),
                output=output,
            )
            logger.info(
                "conversion_complete",
                output_id=record.id,
                operations=len(toolpaths),
                polylines=len(geometry.polylines),
                duration_s=round(time.perf_counter() - started, 3),
                timings=timings,
            )
            return record

    # ── Steps ───────────────────────────────────────────────────────────

    def _run_step(self, name: str, fn: Callable[[], T], timings: Dict[str, float]) -> T:
        """Execute a single step with timing; failures are logged and re-raised."""
        t0 = time.perf_counter()
        try:
            result = fn()
        except Exception as e:
            duration = time.perf_counter() - t0
            logger.warning("pipeline_step_failed", step=name, duration_s=round(duration, 3), error=str(e))
            raise
        duration = time.perf_counter() - t0
        timings[name] = round(duration, 4)
        logger.debug("pipeline_step_complete", step=name, duration_s=round(duration, 3))
        return result

    def _vector_geometry(self, upload, category, material, options, specs, default_tool, timings) -> _Geometry:
        image_size = None
        if category is InputCategory.RASTER:
            traced = self._run_step(
                "trace",
                lambda: raster_to_svg(
                    upload.data,
                    threshold=self.settings.trace_threshold,
                    turd_size=self.settings.trace_turd_size,
                    opt_tolerance=self.settings.trace_opt_tolerance,
                ),
                timings,
            )
            svg_text = traced.svg
            image_size = (traced.width_px, traced.height_px)
        else:
            svg_text = upload.data.decode("utf-8", errors="replace")

        polylines = self._run_step("sample", lambda: svg_to_polylines(svg_text, options.step), timings)
        scaled = self._run_step(
            "normalize",
            lambda: fit_polylines(
                polylines,
                material,
                options.output_width_mm,
                options.output_height_mm,
                options.keep_aspect_ratio,
            ),
            timings,
        )
        operations = assemble_operations(scaled.polylines, specs, default_tool, self.library)
        return _Geometry(
            polylines=scaled.polylines,
            operations=operations,
            width_mm=scaled.width_mm,
            height_mm=scaled.height_mm,
            scale={"x": scaled.scale_x, "y": scaled.scale_y},
            image_size=image_size,
        )

    def _mesh_geometry(self, upload, material, options, specs, default_tool, timings) -> _Geometry:
        mesh = self._run_step("parse_stl", lambda: parse_stl(upload.data), timings)
        scaled = self._run_step(
            "normalize",
            lambda: scale_mesh(
                mesh,
                material,
                options.output_width_mm,
                options.output_height_mm,
                options.keep_aspect_ratio,
            ),
            timings,
        )
        polylines = self._run_step(
            "slice",
            lambda: slice_mesh(scaled.mesh, default_tool.diameter_mm, options.step_over_percent),
            timings,
        )
        operations = assemble_operations(polylines, specs, default_tool, self.library)
        return _Geometry(
            polylines=polylines,
            operations=operations,
            width_mm=scaled.width_mm,
            height_mm=scaled.height_mm,
            scale={"x": scaled.scale_x, "y": scaled.scale_y, "z": scaled.scale_z},
        )

    def _simulate(
        self,
        operations: List[Operation],
        material: Material,
        options: ConversionOptions,
        image_size: Optional[tuple[float, float]],
    ) -> Dict[str, Any]:
        max_depth = options.height_field_max_depth_mm or material.thickness_mm
        max_depth = min(max_depth, material.thickness_mm)
        sim_material = Material(
            width_mm=material.width_mm,
            height_mm=material.height_mm,
            thickness_mm=material.thickness_mm,
            min_height_mm=max(0.0, material.thickness_mm - max_depth),
            max_depth_mm=max_depth,
        )
        image_w, image_h = options.image_width_px, options.image_height_px
        if (not image_w or not image_h) and image_size:
            image_w, image_h = image_size
        rows, cols = grid_shape(
            sim_material,
            resolution=options.height_field_resolution or self.settings.height_field_resolution,
            resolution_x=options.height_field_resolution_x,
            resolution_y=options.height_field_resolution_y,
            image_width_px=image_w,
            image_height_px=image_h,
        )
        simulator = HeightFieldSimulator(
            sim_material,
            rows=rows,
            cols=cols,
            smoothing=options.height_field_smoothing_enabled,
            smoothing_radius=options.height_field_smoothing_radius,
        )
        depth = target_depth(options.cut_depth_mm, material.thickness_mm, max_depth)
        return simulator.simulate(operations, depth).to_preview()

    def _store(
        self,
        upload: Upload,
        fmt: OutputFormat,
        content: bytes,
        conversion_type: str,
        preview: Optional[Dict[str, Any]],
        material: Optional[Dict[str, Any]] = None,
        output: Optional[Dict[str, Any]] = None,
    ) -> OutputRecord:
        """Write the output file, then register it."""
        output_id = new_output_id()
        file_name = f"{safe_base_name(upload.file_name)}-{output_id}{fmt.extension}"
        output_dir = Path(self.settings.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / file_name
        path.write_bytes(content)

        record = OutputRecord(
            id=output_id,
            file_name=file_name,
            path=path,
            mime_type=fmt.mime_type,
            created_at=time.time(),
            conversion_type=conversion_type,
            preview=preview,
            material=material,
            output=output,
        )
        self.registry.add(record)
        return record
