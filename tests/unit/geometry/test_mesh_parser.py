"""
Unit tests for STL parsing.
"""

import numpy as np
import pytest

from opencarve.core.exceptions import MalformedMesh
from opencarve.geometry.mesh_parser import is_ascii_stl, parse_stl

TRIANGLE = [[0.0, 0.0, 0.0], [10.0, 0.0, 0.0], [0.0, 10.0, 1.5]]

ASCII_TRIANGLE = b"""solid fixture
  facet normal 0 0 1
    outer loop
      vertex 0 0 0
      vertex 1.0e1 0 0
      vertex 0 10 1.5
    endloop
  endfacet
endsolid fixture
"""


@pytest.mark.unit
class TestParseStl:
    def test_too_small(self):
        with pytest.raises(MalformedMesh, match="too small"):
            parse_stl(b"\0" * 83)

    def test_binary(self, stl_encoder):
        mesh = parse_stl(stl_encoder([TRIANGLE, TRIANGLE]))
        assert mesh.faces.shape == (2, 3, 3)
        np.testing.assert_allclose(mesh.faces[0], TRIANGLE)

    def test_binary_truncated(self, stl_encoder):
        data = stl_encoder([TRIANGLE, TRIANGLE])
        with pytest.raises(MalformedMesh, match="truncated"):
            parse_stl(data[:-10])

    def test_binary_without_triangles(self, stl_encoder):
        with pytest.raises(MalformedMesh, match="no triangles"):
            parse_stl(stl_encoder([]))

    def test_ascii(self):
        mesh = parse_stl(ASCII_TRIANGLE)
        assert mesh.face_count == 1
        np.testing.assert_allclose(mesh.faces[0], TRIANGLE)

    def test_ascii_partial_facet_dropped(self):
        data = ASCII_TRIANGLE.replace(b"endsolid", b"vertex 5 5 5\nendsolid")
        assert parse_stl(data).face_count == 1

    def test_ascii_without_triangles(self):
        data = b"solid empty" + b" " * 100 + b"\nendsolid empty\n"
        with pytest.raises(MalformedMesh, match="no triangles"):
            parse_stl(data)

    def test_faces_are_read_only(self, stl_encoder):
        mesh = parse_stl(stl_encoder([TRIANGLE]))
        with pytest.raises(ValueError):
            mesh.faces[0, 0, 0] = 1.0

    def test_trimesh_box_both_encodings(self, box_stl_ascii, box_stl_binary):
        ascii_mesh = parse_stl(box_stl_ascii)
        binary_mesh = parse_stl(box_stl_binary)
        assert ascii_mesh.face_count == binary_mesh.face_count == 12
        np.testing.assert_allclose(ascii_mesh.vertices.min(axis=0), [-10, -5, -2.5], atol=1e-5)
        np.testing.assert_allclose(binary_mesh.vertices.max(axis=0), [10, 5, 2.5], atol=1e-5)


def test_is_ascii_stl_ignores_leading_whitespace():
    assert is_ascii_stl(b"   solid name\n")
    assert not is_ascii_stl(b"binary header")
