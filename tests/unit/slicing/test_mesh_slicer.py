"""
Unit tests for axis-sweep mesh slicing.
"""

import numpy as np
import pytest

from opencarve.core.geometry import Mesh, scale_mesh
from opencarve.core.materials import Material
from opencarve.geometry.mesh_parser import parse_stl
from opencarve.slicing.mesh_slicer import slice_mesh, slice_step


@pytest.mark.slicing
def test_slice_step_has_floor():
    assert slice_step(3.0, 40) == pytest.approx(1.2)
    assert slice_step(1.0, 40) == 1.0


@pytest.mark.slicing
def test_single_triangle():
    faces = np.array([[[0.0, 0.0, 0.0], [10.0, 0.0, 0.0], [0.0, 10.0, 0.0]]])
    polylines = slice_mesh(Mesh(faces=faces), tool_diameter_mm=5.0, step_over_percent=100)
    # planes at x = 0, 5, 10; the last one touches a single vertex
    assert len(polylines) == 2
    np.testing.assert_allclose(polylines[0], [[0, 0, 0], [0, 10, 0]])
    np.testing.assert_allclose(polylines[1], [[5, 0, 0], [5, 5, 0]])


@pytest.mark.slicing
def test_chords_ordered_by_y():
    faces = np.array(
        [
            [[0.0, 8.0, -1.0], [10.0, 8.0, -1.0], [0.0, 12.0, -1.0]],
            [[0.0, 0.0, -2.0], [10.0, 0.0, -2.0], [0.0, 4.0, -2.0]],
        ]
    )
    polylines = slice_mesh(Mesh(faces=faces), tool_diameter_mm=5.0, step_over_percent=100)
    middle = polylines[1]
    assert np.all(middle[:, 0] == 5.0)
    assert np.all(np.diff(middle[:, 1]) >= 0)
    np.testing.assert_allclose(middle[:, 2], [-2, -2, -1, -1])


@pytest.mark.slicing
def test_box_slices_follow_surface(box_stl_ascii):
    material = Material(width_mm=100, height_mm=100, thickness_mm=20)
    scaled = scale_mesh(parse_stl(box_stl_ascii), material, 40, 40)
    polylines = slice_mesh(scaled.mesh, tool_diameter_mm=3.0, step_over_percent=40)

    assert len(polylines) > 20
    for line in polylines:
        assert line.shape[1] == 3
        assert len(line) >= 2
        assert np.all(line[:, 0] == line[0, 0])
        assert line[:, 2].max() <= 1e-9
        assert line[:, 2].min() >= -10 - 1e-9
    xs = [line[0, 0] for line in polylines]
    assert xs == sorted(xs)
