"""
Unit tests for raster tracing, SVG sampling and the DXF preview reader.
"""

import numpy as np
import pytest

from opencarve.core.exceptions import NoVectorPaths, TraceError
from opencarve.geometry.vector_extractor import (
    dxf_preview_polylines,
    extract_path_data,
    raster_to_svg,
    sample_path,
    svg_to_polylines,
)


@pytest.mark.unit
class TestSamplePath:
    def test_hundred_mm_line_at_step_ten(self):
        points = sample_path("M0,0 L100,0", 10)
        assert points.shape == (11, 2)
        np.testing.assert_allclose(points[:, 0], np.arange(0, 101, 10), atol=1e-6)
        np.testing.assert_allclose(points[:, 1], 0, atol=1e-9)

    def test_short_path_has_at_least_three_points(self):
        points = sample_path("M0,0 L1,0", 10)
        assert len(points) == 3
        np.testing.assert_allclose(points[-1], [1, 0])

    def test_includes_end_points(self):
        points = sample_path("M0 0 L10 0 L10 10 L0 10 Z", 5)
        # 40 units / 5 = 8 intervals
        assert len(points) == 9
        np.testing.assert_allclose(points[0], [0, 0], atol=1e-9)
        np.testing.assert_allclose(points[-1], [0, 0], atol=1e-9)

    def test_curves_are_sampled(self):
        points = sample_path("M0,0 C0,10 10,10 10,0", 1)
        assert len(points) > 10
        assert points[:, 1].max() > 5

    def test_zero_length_path_is_empty(self):
        assert sample_path("M5,5", 1).shape == (0, 2)

    def test_degenerate_arc_is_empty(self):
        # start and end coincide, renderers omit the arc
        assert sample_path("M0 0 A 5 5 0 0 1 0 0", 5).shape == (0, 2)


@pytest.mark.unit
class TestSvgToPolylines:
    def test_extract_path_data_in_order(self):
        svg = (
            '<svg><path id="a" d="M0 0 L1 1"/>'
            "<g><PATH d='M2 2 L3 3' fill='none'></PATH></g></svg>"
        )
        assert extract_path_data(svg) == ["M0 0 L1 1", "M2 2 L3 3"]

    def test_square(self, svg_square):
        polylines = svg_to_polylines(svg_square.decode(), step=5)
        assert len(polylines) == 1
        assert polylines[0].shape == (9, 2)

    def test_invalid_step_uses_default(self, svg_square):
        polylines = svg_to_polylines(svg_square.decode(), step=-1)
        assert polylines[0].shape == (9, 2)

    def test_no_paths(self):
        with pytest.raises(NoVectorPaths, match="No vector paths"):
            svg_to_polylines('<svg><rect width="5" height="5"/></svg>')

    def test_no_usable_paths(self):
        with pytest.raises(NoVectorPaths, match="Failed to generate"):
            svg_to_polylines('<svg><path d="M5 5"/></svg>')

    def test_unusable_paths_are_skipped(self):
        svg = '<svg><path d="M5 5"/><path d="M0 0 L20 0"/></svg>'
        polylines = svg_to_polylines(svg, step=5)
        assert len(polylines) == 1
        assert len(polylines[0]) == 5

    def test_tiny_step_is_floored(self):
        polylines = svg_to_polylines('<svg><path d="M0 0 L1 0"/></svg>', step=1e-9)
        assert len(polylines[0]) <= 102
        np.testing.assert_allclose(polylines[0][-1], [1, 0])

    def test_degenerate_arc_is_skipped(self):
        svg = '<svg><path d="M0 0 A 5 5 0 0 1 0 0"/><path d="M0 0 L20 0"/></svg>'
        polylines = svg_to_polylines(svg, step=5)
        assert len(polylines) == 1
        np.testing.assert_allclose(polylines[0][-1], [20, 0])


@pytest.mark.unit
class TestRasterToSvg:
    def test_traces_dark_square(self, png_bytes):
        traced = raster_to_svg(png_bytes)
        assert (traced.width_px, traced.height_px) == (60, 40)
        assert 'viewBox="0 0 60 40"' in traced.svg
        polylines = svg_to_polylines(traced.svg, step=2)
        assert len(polylines) >= 1
        xs = np.concatenate([p[:, 0] for p in polylines])
        ys = np.concatenate([p[:, 1] for p in polylines])
        assert xs.min() == pytest.approx(20, abs=1.5)
        assert xs.max() == pytest.approx(40, abs=1.5)
        assert ys.min() == pytest.approx(10, abs=1.5)
        assert ys.max() == pytest.approx(30, abs=1.5)

    def test_blank_image_has_no_paths(self):
        import io

        from PIL import Image

        buffer = io.BytesIO()
        Image.new("L", (16, 16), 255).save(buffer, format="PNG")
        traced = raster_to_svg(buffer.getvalue())
        assert extract_path_data(traced.svg) == []

    def test_not_an_image(self):
        with pytest.raises(TraceError):
            raster_to_svg(b"definitely not a png")


@pytest.mark.unit
class TestDxfPreview:
    def test_reads_polylines_and_lines(self, dxf_bytes):
        polylines = dxf_preview_polylines(dxf_bytes)
        assert len(polylines) == 2
        rectangle, line = polylines
        # closed polyline repeats its first point
        assert rectangle.shape == (5, 2)
        np.testing.assert_allclose(rectangle[0], rectangle[-1])
        np.testing.assert_allclose(line, [[0, 0], [30, 20]])
