"""
Tests for the opencarve command-line interface.
"""

import json

import pytest
from click.testing import CliRunner

from opencarve.cli import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def settings_file(temp_dir):
    path = temp_dir / "settings.yaml"
    path.write_text(f"processing:\n  output_dir: {temp_dir / 'outputs'}\n")
    return path


@pytest.mark.unit
class TestConvertCommand:
    def test_svg_to_gcode(self, runner, temp_dir, settings_file, svg_square):
        source = temp_dir / "square.svg"
        source.write_bytes(svg_square)
        target = temp_dir / "square.gcode"
        preview = temp_dir / "result.json"

        result = runner.invoke(
            main,
            [
                "--settings", str(settings_file),
                "convert", str(source),
                "--material", "100", "100", "10",
                "--size", "60", "40",
                "--tool", "ball-3",
                "--stretch",
                "-o", str(target),
                "--preview-json", str(preview),
            ],
        )
        assert result.exit_code == 0, result.output
        assert "✓" in result.output
        program = target.read_text()
        assert "M3 S14000.000" in program
        data = json.loads(preview.read_text())
        assert data["output"]["widthMm"] == 60
        assert "heightField" in data["preview"]

    def test_conversion_error_exits_non_zero(self, runner, temp_dir, settings_file, svg_square):
        source = temp_dir / "square.svg"
        source.write_bytes(svg_square)
        result = runner.invoke(
            main,
            [
                "--settings", str(settings_file),
                "convert", str(source),
                "--material", "50", "50", "5",
                "--size", "60", "40",
            ],
        )
        assert result.exit_code == 1
        assert "Output size exceeds material bounds" in result.output

    def test_missing_material(self, runner, temp_dir, settings_file, svg_square):
        source = temp_dir / "square.svg"
        source.write_bytes(svg_square)
        result = runner.invoke(main, ["--settings", str(settings_file), "convert", str(source)])
        assert result.exit_code == 1
        assert "Material width is required" in result.output


@pytest.mark.unit
def test_tools_command(runner):
    result = runner.invoke(main, ["tools"])
    assert result.exit_code == 0, result.output
    assert "Tool Library" in result.output
    assert "ball" in result.output


@pytest.mark.unit
def test_convert_help_mentions_relief_clip(runner):
    result = runner.invoke(main, ["convert", "--help"])
    assert result.exit_code == 0
    assert "relief" in result.output
