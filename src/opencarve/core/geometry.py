"""
Geometry normalization for opencarve.

Polylines are numpy arrays of shape ``(N, 2)`` (planar) or ``(N, 3)``
(explicit Z, mesh-sourced). Source geometry comes in arbitrary units and
orientation; this module maps it into material space:

1. axis-aligned bounding box over all points,
2. normalization to the unit square,
3. scaling to the requested output size (uniform or per-axis),
4. clamping to the material rectangle.
"""

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from opencarve.core.exceptions import DegenerateGeometry, OutputExceedsMaterial
from opencarve.core.materials import Material

Polyline = np.ndarray


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned XY bounding box."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @classmethod
    def from_points(cls, points: np.ndarray) -> "BoundingBox":
        """
        Compute the box over the finite XY rows of ``points``.

        Raises:
            DegenerateGeometry: If no finite point exists or the box has
                zero or non-finite width or height
        """
        arr = np.asarray(points, dtype=float)
        xy = arr.reshape(-1, arr.shape[-1])[:, :2]
        finite = xy[np.all(np.isfinite(xy), axis=1)]
        if len(finite) == 0:
            raise DegenerateGeometry("Unable to determine geometry bounds")

        lo = finite.min(axis=0)
        hi = finite.max(axis=0)
        box = cls(float(lo[0]), float(lo[1]), float(hi[0]), float(hi[1]))
        if (
            not np.isfinite(box.width)
            or not np.isfinite(box.height)
            or box.width <= 0
            or box.height <= 0
        ):
            raise DegenerateGeometry(
                "Invalid geometry size detected",
                details={"width": box.width, "height": box.height},
            )
        return box

    @classmethod
    def from_polylines(cls, polylines: Sequence[Polyline]) -> "BoundingBox":
        if not polylines:
            raise DegenerateGeometry("Unable to determine geometry bounds")
        return cls.from_points(np.vstack([p[:, :2] for p in polylines]))


@dataclass(frozen=True)
class Mesh:
    """
    Triangle soup parsed from an STL upload.

    Attributes:
        faces: ``(F, 3, 3)`` array, three XYZ vertices per triangle
    """

    faces: np.ndarray

    @property
    def vertices(self) -> np.ndarray:
        """All triangle corners as a ``(3F, 3)`` array (not deduplicated)."""
        return self.faces.reshape(-1, 3)

    @property
    def face_count(self) -> int:
        return int(self.faces.shape[0])


@dataclass
class ScaledGeometry:
    """Polylines in material space plus the footprint actually used."""

    polylines: List[Polyline]
    width_mm: float
    height_mm: float
    scale_x: float
    scale_y: float


def check_output_fits(material: Material, output_width_mm: float, output_height_mm: float) -> None:
    """
    Reject outputs larger than the material.

    Raises:
        OutputExceedsMaterial: If either output dimension exceeds the material
    """
    if output_width_mm > material.width_mm or output_height_mm > material.height_mm:
        raise OutputExceedsMaterial(
            "Output size exceeds material bounds",
            details={
                "output": [output_width_mm, output_height_mm],
                "material": [material.width_mm, material.height_mm],
            },
        )


def normalize_polylines(polylines: Sequence[Polyline], bounds: BoundingBox) -> List[Polyline]:
    """Map XY into ``[0, 1] x [0, 1]`` relative to ``bounds``; Z is untouched."""
    offset = np.array([bounds.min_x, bounds.min_y])
    size = np.array([bounds.width, bounds.height])
    normalized = []
    for points in polylines:
        out = np.array(points, dtype=float, copy=True)
        out[:, :2] = (out[:, :2] - offset) / size
        normalized.append(out)
    return normalized


def _scale_factors(
    bounds: BoundingBox,
    output_width_mm: float,
    output_height_mm: float,
    keep_aspect_ratio: bool,
) -> tuple[float, float, float, float]:
    scale_x = output_width_mm / bounds.width
    scale_y = output_height_mm / bounds.height
    if keep_aspect_ratio:
        uniform = min(scale_x, scale_y)
        return uniform, uniform, bounds.width * uniform, bounds.height * uniform
    return scale_x, scale_y, output_width_mm, output_height_mm


def clamp_to_material(points: Polyline, material: Material) -> Polyline:
    """Clamp XY of ``points`` into the material rectangle (returns a copy)."""
    out = np.array(points, dtype=float, copy=True)
    out[:, 0] = np.clip(out[:, 0], 0.0, material.width_mm)
    out[:, 1] = np.clip(out[:, 1], 0.0, material.height_mm)
    return out


def scale_polylines(
    normalized: Sequence[Polyline],
    bounds: BoundingBox,
    material: Material,
    output_width_mm: float,
    output_height_mm: float,
    keep_aspect_ratio: bool = True,
) -> ScaledGeometry:
    """
    Scale unit-square polylines to the requested output size.

    With ``keep_aspect_ratio`` the footprint is ``bounds * min(sx, sy)`` and
    may be smaller than requested on one axis.
    """
    scale_x, scale_y, width, height = _scale_factors(
        bounds, output_width_mm, output_height_mm, keep_aspect_ratio
    )
    factors = np.array([width, height])

    scaled = []
    for points in normalized:
        out = np.array(points, dtype=float, copy=True)
        out[:, :2] = out[:, :2] * factors
        scaled.append(clamp_to_material(out, material))

    return ScaledGeometry(
        polylines=scaled,
        width_mm=width,
        height_mm=height,
        scale_x=scale_x,
        scale_y=scale_y,
    )


def fit_polylines(
    polylines: Sequence[Polyline],
    material: Material,
    output_width_mm: float,
    output_height_mm: float,
    keep_aspect_ratio: bool = True,
) -> ScaledGeometry:
    """Bounding box, normalization and scaling in one call."""
    check_output_fits(material, output_width_mm, output_height_mm)
    bounds = BoundingBox.from_polylines(polylines)
    return scale_polylines(
        normalize_polylines(polylines, bounds),
        bounds,
        material,
        output_width_mm,
        output_height_mm,
        keep_aspect_ratio,
    )


@dataclass
class ScaledMesh:
    """Mesh in material space; Z is 0 at the mesh top and negative below."""

    mesh: Mesh
    width_mm: float
    height_mm: float
    scale_x: float
    scale_y: float
    scale_z: float


def scale_mesh(
    mesh: Mesh,
    material: Material,
    output_width_mm: float,
    output_height_mm: float,
    keep_aspect_ratio: bool = True,
) -> ScaledMesh:
    """
    Place a mesh in material space.

    X/Y follow the same normalize-and-scale rules as planar polylines, using
    the vertex bounding box. Z is scaled by the smaller XY factor and shifted
    so the highest vertex sits at Z=0.
    """
    check_output_fits(material, output_width_mm, output_height_mm)
    vertices = mesh.vertices
    bounds = BoundingBox.from_points(vertices)
    scale_x, scale_y, width, height = _scale_factors(
        bounds, output_width_mm, output_height_mm, keep_aspect_ratio
    )
    scale_z = min(scale_x, scale_y)

    faces = np.array(mesh.faces, dtype=float, copy=True)
    faces[..., 0] = np.clip((faces[..., 0] - bounds.min_x) * scale_x, 0.0, material.width_mm)
    faces[..., 1] = np.clip((faces[..., 1] - bounds.min_y) * scale_y, 0.0, material.height_mm)
    top = float(np.max(vertices[:, 2]))
    faces[..., 2] = (faces[..., 2] - top) * scale_z

    return ScaledMesh(
        mesh=Mesh(faces=faces),
        width_mm=width,
        height_mm=height,
        scale_x=scale_x,
        scale_y=scale_y,
        scale_z=scale_z,
    )
