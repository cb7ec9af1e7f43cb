"""
Unit tests for the G-code and DXF post processors.
"""

import re

import numpy as np
import pytest

from opencarve.core.materials import Material
from opencarve.core.tools import legacy_tool
from opencarve.postprocessor import GCodeParams, GCodePostProcessor, generate_dxf, pass_depths
from opencarve.postprocessor.gcode import fmt, target_depth
from opencarve.slicing.operations import Operation


# ── Shared test fixtures ──────────────────────────────────────────────────


@pytest.fixture
def material():
    return Material(width_mm=100.0, height_mm=50.0, thickness_mm=6.0)


@pytest.fixture
def square_op(library):
    return Operation(
        id="op-1",
        tool=library.resolve("flat-6"),
        strategy="outline",
        polylines=[np.array([[10.0, 10.0], [20.0, 10.0], [20.0, 20.0], [10.0, 20.0], [10.0, 10.0]])],
    )


def xy_words(program):
    return [(float(x), float(y)) for x, y in re.findall(r"X(-?\d+\.\d+) Y(-?\d+\.\d+)", program)]


# ── Numbers and passes ────────────────────────────────────────────────────


class TestPassDepths:
    def test_three_equal_passes(self):
        assert pass_depths(-6, 6, 18, 2) == pytest.approx([-2, -4, -6])

    def test_uneven_split(self):
        assert pass_depths(-5, 10, 18, 2) == pytest.approx([-5 / 3, -10 / 3, -5])

    def test_limited_by_thickness_and_tool(self):
        assert pass_depths(-20, 6, 18, 10)[-1] == pytest.approx(-6)
        assert pass_depths(-20, 30, 4, 10)[-1] == pytest.approx(-4)

    def test_step_down_floor(self):
        assert len(pass_depths(-1, 6, 18, 0)) == 5

    def test_always_one_pass(self):
        assert pass_depths(0, 6, 18, 1.5) == [0.0]

    def test_target_depth(self):
        assert target_depth(-3, 10, 8) == 3
        assert target_depth(3, 10, 8) == 3


def test_fmt():
    assert fmt(1) == "1.000"
    assert fmt(-0.0) == "0.000"
    assert fmt(2.34567) == "2.346"


# ── G-code ─────────────────────────────────────────────────────────────────


class TestGCodePostProcessor:
    def test_multi_pass_program(self, square_op, material):
        params = GCodeParams(cut_depth_mm=-6, max_step_down_mm=2)
        program = GCodePostProcessor(params).generate([square_op], material)
        lines = program.splitlines()

        assert lines[3:6] == ["G21", "G90", "G0 Z5.000"]
        plunges = [line for line in lines if line.startswith("G1 Z")]
        assert plunges == [
            "G1 Z-2.000 F400.000",
            "G1 Z-4.000 F400.000",
            "G1 Z-6.000 F400.000",
        ]
        assert "T3 M6 ; Flat endmill 6mm" in lines
        assert "M3 S14000.000" in lines
        assert lines[-2:] == ["M5", "G0 X0.000 Y0.000"]
        assert program.endswith("\n")

    def test_each_pass_retracts(self, square_op, material):
        params = GCodeParams(cut_depth_mm=-6, max_step_down_mm=2)
        lines = GCodePostProcessor(params).generate([square_op], material).splitlines()
        assert lines.count("G0 Z5.000") == 1 + 3
        assert lines.count("G0 X10.000 Y10.000") == 3

    def test_explicit_feeds_win(self, square_op, material):
        params = GCodeParams(feed_rate_xy=1500, feed_rate_z=100, spindle_speed=9000)
        program = GCodePostProcessor(params).generate([square_op], material)
        assert "F1500.000" in program
        assert "F100.000" in program
        assert "M3 S9000.000" in program
        assert "F1200.000" not in program

    def test_legacy_tool_defaults(self, material):
        op = Operation(
            id="op-1",
            tool=legacy_tool(),
            strategy="outline",
            polylines=[np.array([[0.0, 0.0], [10.0, 10.0]])],
        )
        program = GCodePostProcessor().generate([op], material)
        assert "M6" not in program
        assert "M3 S12000.000" in program
        assert "G1 Z-1.000 F300.000" in program
        assert "G1 F800.000" in program

    def test_coordinates_clamped(self, library, material):
        op = Operation(
            id="op-1",
            tool=library.resolve("flat-3"),
            strategy="outline",
            polylines=[np.array([[-4.0, 10.0], [120.0, 60.0], [50.0, -3.0]])],
        )
        program = GCodePostProcessor().generate([op], material)
        for x, y in xy_words(program):
            assert 0 <= x <= material.width_mm
            assert 0 <= y <= material.height_mm

    def test_z_polylines_single_pass(self, library, material):
        op = Operation(
            id="op-1",
            tool=library.resolve("ball-3"),
            strategy="outline",
            polylines=[np.array([[5.0, 0.0, -1.0], [5.0, 10.0, -2.5], [5.0, 20.0, -40.0]])],
        )
        params = GCodeParams(cut_depth_mm=-3, max_step_down_mm=1)
        lines = GCodePostProcessor(params).generate([op], material).splitlines()
        assert "G1 Z-1.000 F280.000" in lines
        assert "G1 X5.000 Y10.000 Z-2.500" in lines
        # clamped to the target depth
        assert "G1 X5.000 Y20.000 Z-3.000" in lines
        assert sum(line.startswith("G1 Z") for line in lines) == 1

    def test_custom_dialect(self, square_op, material):
        params = GCodeParams(program_name="job-42", comment_prefix="(", line_ending="\r\n")
        program = GCodePostProcessor(params).generate([square_op], material)
        assert program.startswith("(job-42 G-code\r\n")
        assert program.endswith("\r\n")

    def test_params_round_trip_ignores_unknown(self):
        params = GCodeParams.from_dict({"safe_height_mm": 8, "unknown": 1})
        assert params.safe_height_mm == 8
        assert params.to_dict()["cut_depth_mm"] == -1.0


# ── DXF ───────────────────────────────────────────────────────────────────


class TestGenerateDxf:
    def test_exact_output(self):
        dxf = generate_dxf([np.array([[0.0, 0.0], [10.0, 5.0]])])
        assert dxf == (
            "0\nSECTION\n2\nENTITIES\n"
            "0\nLWPOLYLINE\n8\n0\n90\n2\n70\n1\n"
            "10\n0.000\n20\n0.000\n"
            "10\n10.000\n20\n5.000\n"
            "0\nENDSEC\n0\nEOF\n"
        )

    def test_drops_z_and_clamps(self, material):
        dxf = generate_dxf([np.array([[-1.0, 2.0, -3.0], [150.0, 60.0, -3.0]])], material)
        assert "\n0.000\n20\n2.000\n" in dxf
        assert "\n100.000\n20\n50.000\n" in dxf
        assert "-3.000" not in dxf

    def test_empty(self):
        assert generate_dxf([]) == "0\nSECTION\n2\nENTITIES\n0\nENDSEC\n0\nEOF\n"
