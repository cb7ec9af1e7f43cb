"""
Vector extraction: raster tracing, SVG path sampling and DXF preview.

Raster uploads are traced to SVG with potrace; SVG path ``d`` attributes are
sampled at a fixed arc-length step with svgpathtools. Polylines come out in
source units (pixels for traced images, user units for SVG), Y down.
"""

import io
import logging
import math
import re
from dataclasses import dataclass
from typing import List

import ezdxf
import numpy as np
import potrace
from PIL import Image, UnidentifiedImageError
from svgpathtools import parse_path

from opencarve.core.exceptions import NoVectorPaths, TraceError

logger = logging.getLogger(__name__)

DEFAULT_STEP = 5.0
MIN_STEP = 0.01

_PATH_DATA = re.compile(r"<path\b[^>]*?\bd\s*=\s*[\"']([^\"']+)[\"'][^>]*?>", re.IGNORECASE)


@dataclass
class TracedImage:
    """SVG produced from a raster image, with the source pixel size."""

    svg: str
    width_px: int
    height_px: int


def _xy(point) -> tuple[float, float]:
    # potrace points expose .x/.y; some bindings return plain tuples.
    if hasattr(point, "x"):
        return float(point.x), float(point.y)
    return float(point[0]), float(point[1])


def _curve_to_path_data(curve) -> str:
    x, y = _xy(curve.start_point)
    parts = [f"M{x:.3f},{y:.3f}"]
    for segment in curve.segments:
        ex, ey = _xy(segment.end_point)
        if segment.is_corner:
            cx, cy = _xy(segment.c)
            parts.append(f"L{cx:.3f},{cy:.3f}L{ex:.3f},{ey:.3f}")
        else:
            ax, ay = _xy(segment.c1)
            bx, by = _xy(segment.c2)
            parts.append(f"C{ax:.3f},{ay:.3f} {bx:.3f},{by:.3f} {ex:.3f},{ey:.3f}")
    parts.append("Z")
    return "".join(parts)


def _load_grayscale(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        # Transparent pixels are background, not ink.
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        image = Image.alpha_composite(background, rgba)
    return image.convert("L")


def raster_to_svg(
    data: bytes,
    threshold: float = 0.5,
    turd_size: int = 2,
    opt_tolerance: float = 0.2,
) -> TracedImage:
    """
    Trace dark regions of a PNG/JPEG into an SVG document.

    Each traced contour becomes its own closed ``<path>`` element.

    Args:
        data: Raw image bytes
        threshold: Pixels darker than ``threshold * 255`` are traced
        turd_size: Speckles up to this many pixels are suppressed
        opt_tolerance: Curve optimization tolerance

    Raises:
        TraceError: If the image cannot be decoded or traced
    """
    try:
        image = _load_grayscale(data)
        width, height = image.size
        # potrace treats True pixels as background.
        bitmap = potrace.Bitmap(np.asarray(image) >= threshold * 255.0)
        traced = bitmap.trace(
            turdsize=turd_size,
            turnpolicy=potrace.POTRACE_TURNPOLICY_MINORITY,
            alphamax=1.0,
            opticurve=True,
            opttolerance=opt_tolerance,
        )
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise TraceError("Failed to trace raster image", details={"error": str(e)})

    paths = [_curve_to_path_data(curve) for curve in traced]
    body = "".join(f'<path d="{d}" fill="black"/>' for d in paths)
    svg = (
        f'<svg xmlns="http://www.w3.org/2000/svg" version="1.1" '
        f'width="{width}" height="{height}" viewBox="0 0 {width} {height}">{body}</svg>'
    )
    logger.debug("Traced %dx%d image into %d contours", width, height, len(paths))
    return TracedImage(svg=svg, width_px=width, height_px=height)


def extract_path_data(svg_text: str) -> List[str]:
    """Return the ``d`` attribute of every ``<path>`` element, in document order."""
    return _PATH_DATA.findall(svg_text)


def sample_path(path_data: str, step: float) -> np.ndarray:
    """
    Sample an SVG path at equal arc-length intervals.

    ``count = max(2, ceil(length / step))`` intervals give ``count + 1``
    points including both ends. Paths that cannot be parsed, or whose length
    is zero or non-finite, yield an empty ``(0, 2)`` array.
    """
    empty = np.empty((0, 2))
    try:
        path = parse_path(path_data)
        total = float(path.length()) if len(path) else 0.0
    except (ValueError, IndexError, ZeroDivisionError, AssertionError) as e:
        logger.warning("Skipping unparsable path data: %s", e)
        return empty
    if not math.isfinite(total) or total <= 0:
        return empty

    count = max(2, math.ceil(total / step))
    points = np.empty((count + 1, 2))
    for i in range(count + 1):
        if i == 0:
            t = 0.0
        elif i == count:
            t = 1.0
        else:
            try:
                t = path.ilength(total * i / count)
            except (ValueError, ZeroDivisionError, AssertionError) as e:
                logger.warning("Arc-length lookup failed, skipping path: %s", e)
                return empty
        z = path.point(t)
        points[i] = (z.real, z.imag)
    return points


def svg_to_polylines(svg_text: str, step: float = DEFAULT_STEP) -> List[np.ndarray]:
    """
    Sample every path of an SVG document into polylines.

    Non-positive or non-finite steps fall back to the default step. Steps
    below 0.01 mm are raised to it.

    Raises:
        NoVectorPaths: If the document has no path elements, or none yields
            at least two samples
    """
    if not math.isfinite(step) or step <= 0:
        step = DEFAULT_STEP
    step = max(step, MIN_STEP)

    paths = extract_path_data(svg_text)
    if not paths:
        raise NoVectorPaths("No vector paths found for conversion")

    polylines = [points for points in (sample_path(d, step) for d in paths) if len(points) > 1]
    if not polylines:
        raise NoVectorPaths(
            "Failed to generate toolpaths from vector data",
            details={"paths": len(paths)},
        )
    logger.debug("Sampled %d of %d paths at step %.3f", len(polylines), len(paths), step)
    return polylines


def dxf_preview_polylines(data: bytes) -> List[np.ndarray]:
    """
    Read LWPOLYLINE, POLYLINE and LINE entities from a DXF for previewing.

    Best effort: unreadable documents produce an empty list.
    """
    try:
        doc = ezdxf.read(io.StringIO(data.decode("utf-8", errors="replace")))
    except (ezdxf.DXFError, ValueError, TypeError) as e:
        logger.warning("DXF preview unavailable: %s", e)
        return []

    polylines: List[np.ndarray] = []
    for entity in doc.modelspace().query("LWPOLYLINE POLYLINE LINE"):
        kind = entity.dxftype()
        if kind == "LWPOLYLINE":
            points = [(x, y) for x, y in entity.get_points(format="xy")]
            if entity.closed and points:
                points.append(points[0])
        elif kind == "POLYLINE":
            points = [(v.dxf.location.x, v.dxf.location.y) for v in entity.vertices]
            if entity.is_closed and points:
                points.append(points[0])
        else:
            points = [(entity.dxf.start.x, entity.dxf.start.y), (entity.dxf.end.x, entity.dxf.end.y)]
        if len(points) > 1:
            polylines.append(np.array(points, dtype=float))
    return polylines
