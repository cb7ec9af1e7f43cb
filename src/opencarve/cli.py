"""
Command-line interface for opencarve.

Provides commands for converting files to G-code/DXF and for inspecting
the tool library.
"""

import json
import mimetypes
import shutil
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from opencarve import __version__
from opencarve.core.config import DEFAULT_TOOL_LIBRARY, ProcessingSettings, ToolLibrary
from opencarve.core.exceptions import CarveError
from opencarve.core.logging import configure_logging
from opencarve.core.registry import OutputRegistry
from opencarve.pipeline import ConversionPipeline, Upload

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--tool-library",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=DEFAULT_TOOL_LIBRARY,
    help="Tool library YAML file",
)
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Processing settings YAML file",
)
@click.option("--log-level", default="WARNING", help="Log level")
@click.option("--json-logs", is_flag=True, help="Emit JSON log lines")
@click.pass_context
def main(
    ctx: click.Context,
    tool_library: Path,
    settings_path: Optional[Path],
    log_level: str,
    json_logs: bool,
) -> None:
    """opencarve - CNC toolpath and G-code synthesis."""
    configure_logging(level=log_level, json_output=json_logs)
    ctx.ensure_object(dict)
    ctx.obj["tool_library"] = tool_library
    ctx.obj["settings_path"] = settings_path


def _load(ctx: click.Context) -> Tuple[ToolLibrary, ProcessingSettings]:
    settings_path = ctx.obj.get("settings_path")
    settings = ProcessingSettings.from_yaml(settings_path) if settings_path else ProcessingSettings()
    library = ToolLibrary(ctx.obj.get("tool_library") or settings.tool_library_path)
    library.load()
    return library, settings


# =============================================================================
# Conversion
# =============================================================================


@main.command("convert")
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", "output_path", type=click.Path(path_type=Path),
              help="Where to copy the generated file")
@click.option("--format", "-f", "output_format", default="gcode", help="gcode or dxf")
@click.option("--material", nargs=3, type=float, metavar="W H T",
              help="Material width, height and thickness (mm)")
@click.option("--size", nargs=2, type=float, metavar="W H", help="Output size (mm)")
@click.option("--stretch", is_flag=True, help="Scale X and Y independently")
@click.option("--tool", "tool_id", default=None, help="Tool library id")
@click.option("--tool-diameter", type=float, default=None, help="Override tool diameter (mm)")
@click.option("--cut-depth", type=float, default=None,
              help="Cut depth (mm, negative); STL relief is clipped to it")
@click.option("--step-down", type=float, default=None, help="Max step-down per pass (mm)")
@click.option("--safe-height", type=float, default=None, help="Retract height (mm)")
@click.option("--step", type=float, default=None, help="Path sampling step")
@click.option("--step-over", type=float, default=None, help="Step-over for STL slicing (%)")
@click.option("--feed-xy", type=float, default=None, help="Cutting feed (mm/min)")
@click.option("--feed-z", type=float, default=None, help="Plunge feed (mm/min)")
@click.option("--spindle", type=float, default=None, help="Spindle speed (RPM)")
@click.option("--conversion-type", default=None,
              type=click.Choice(["2d_outline", "2_5d_heightmap", "3d_model"]))
@click.option("--operations", default=None, help="Operations as a JSON array")
@click.option("--preview-json", type=click.Path(path_type=Path), default=None,
              help="Write the conversion result (with preview) as JSON")
@click.pass_context
def convert(
    ctx: click.Context,
    input_path: Path,
    output_path: Optional[Path],
    output_format: str,
    material: Optional[Tuple[float, float, float]],
    size: Optional[Tuple[float, float]],
    stretch: bool,
    tool_id: Optional[str],
    tool_diameter: Optional[float],
    cut_depth: Optional[float],
    step_down: Optional[float],
    safe_height: Optional[float],
    step: Optional[float],
    step_over: Optional[float],
    feed_xy: Optional[float],
    feed_z: Optional[float],
    spindle: Optional[float],
    conversion_type: Optional[str],
    operations: Optional[str],
    preview_json: Optional[Path],
) -> None:
    """Convert an image, SVG, DXF or STL file."""
    options: Dict[str, Any] = {
        "keepAspectRatio": not stretch,
        "toolId": tool_id,
        "toolDiameterOverrideMm": tool_diameter,
        "cutDepthMm": cut_depth,
        "maxStepDownMm": step_down,
        "safeHeightMm": safe_height,
        "step": step,
        "stepOverPercent": step_over,
        "feedRateXY": feed_xy,
        "feedRateZ": feed_z,
        "spindleSpeed": spindle,
        "conversionType": conversion_type,
        "operations": operations,
    }
    if material:
        options.update(
            materialWidthMm=material[0],
            materialHeightMm=material[1],
            materialThicknessMm=material[2],
        )
    if size:
        options.update(outputWidthMm=size[0], outputHeightMm=size[1])

    try:
        library, settings = _load(ctx)
        pipeline = ConversionPipeline(library, OutputRegistry(), settings)
        upload = Upload(
            data=input_path.read_bytes(),
            file_name=input_path.name,
            mime_type=mimetypes.guess_type(input_path.name)[0],
        )
        record = pipeline.process(upload, output_format, options)
    except CarveError as e:
        console.print(f"[red]✗[/red] Conversion failed: {e.message}")
        raise SystemExit(1)

    destination = record.path
    if output_path:
        shutil.copyfile(record.path, output_path)
        destination = output_path
    if preview_json:
        preview_json.write_text(json.dumps(record.to_dict(), indent=2))

    table = Table(title=f"Converted {input_path.name}")
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("Output", str(destination))
    table.add_row("MIME type", record.mime_type)
    table.add_row("Conversion type", record.conversion_type)
    if record.output:
        table.add_row(
            "Footprint",
            f"{record.output['widthMm']:.2f} x {record.output['heightMm']:.2f} mm",
        )
    if record.preview and record.preview.get("operations"):
        table.add_row("Operations", str(len(record.preview["operations"])))
        table.add_row("Polylines", str(len(record.preview["polylines"])))
    console.print(table)
    console.print(f"[green]✓[/green] Wrote {destination}")


# =============================================================================
# Tool library
# =============================================================================


@main.command("tools")
@click.pass_context
def tools(ctx: click.Context) -> None:
    """List the tools in the library."""
    try:
        library, _ = _load(ctx)
    except CarveError as e:
        console.print(f"[red]✗[/red] Failed to load tool library: {e.message}")
        raise SystemExit(1)

    table = Table(title="Tool Library")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Shape")
    table.add_column("Diameter (mm)", justify="right")
    table.add_column("Max depth (mm)", justify="right")
    table.add_column("Feed XY/Z", justify="right")
    table.add_column("Spindle", justify="right")
    table.add_column("T#", justify="right")

    for tool in library.list_tools():
        shape = tool.shape.value
        if tool.angle_deg:
            shape = f"{shape} {tool.angle_deg:g}°"
        table.add_row(
            tool.id,
            tool.name,
            shape,
            f"{tool.diameter_mm:g}",
            f"{tool.max_depth_mm:g}",
            f"{tool.default_feed_rate_xy:g}/{tool.default_feed_rate_z:g}",
            f"{tool.default_spindle_speed:g}",
            str(tool.tool_number),
        )
    console.print(table)


if __name__ == "__main__":
    main()
