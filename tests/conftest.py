"""
Pytest configuration and shared fixtures.
"""

import io
import tempfile
from pathlib import Path

import numpy as np
import pytest


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_dir):
    """Processing settings writing outputs into the temp directory."""
    from opencarve.core.config import ProcessingSettings

    return ProcessingSettings(output_dir=temp_dir / "outputs")


@pytest.fixture
def library():
    """The bundled tool library."""
    from opencarve.core.config import ToolLibrary

    lib = ToolLibrary()
    lib.load()
    return lib


@pytest.fixture
def registry():
    from opencarve.core.registry import OutputRegistry

    return OutputRegistry()


@pytest.fixture
def pipeline(library, registry, settings):
    from opencarve.pipeline import ConversionPipeline

    return ConversionPipeline(library, registry, settings)


@pytest.fixture
def material_options():
    """Option fields for a 100 x 100 x 10 mm block and a 60 x 40 mm output."""
    return {
        "materialWidthMm": "100",
        "materialHeightMm": "100",
        "materialThicknessMm": "10",
        "outputWidthMm": "60",
        "outputHeightMm": "40",
    }


@pytest.fixture
def svg_square():
    """A 10 x 10 user-unit square as a single closed path."""
    return (
        b'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 10 10">'
        b'<path d="M0 0 L10 0 L10 10 L0 10 Z" fill="none" stroke="black"/>'
        b"</svg>"
    )


@pytest.fixture
def png_bytes():
    """60 x 40 px white image with a black 20 x 20 px square."""
    from PIL import Image, ImageDraw

    image = Image.new("RGB", (60, 40), "white")
    ImageDraw.Draw(image).rectangle([20, 10, 39, 29], fill="black")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def dxf_bytes():
    """A DXF document with one closed rectangle and one line."""
    import ezdxf

    doc = ezdxf.new()
    msp = doc.modelspace()
    msp.add_lwpolyline([(0, 0), (30, 0), (30, 20), (0, 20)], close=True)
    msp.add_line((0, 0), (30, 20))
    stream = io.StringIO()
    doc.write(stream)
    return stream.getvalue().encode("utf-8")


def binary_stl(faces, header=b"binary stl fixture"):
    """Encode ``(F, 3, 3)`` faces as a binary STL buffer."""
    faces = np.asarray(faces, dtype="<f4").reshape(-1, 3, 3)
    records = np.zeros(
        len(faces),
        dtype=[("normal", "<f4", (3,)), ("vertices", "<f4", (3, 3)), ("attribute", "<u2")],
    )
    records["vertices"] = faces
    return (
        header.ljust(80, b"\0")
        + np.array([len(faces)], dtype="<u4").tobytes()
        + records.tobytes()
    )


@pytest.fixture
def box_mesh():
    """A 20 x 10 x 5 box centred at the origin (trimesh)."""
    import trimesh

    return trimesh.creation.box(extents=(20.0, 10.0, 5.0))


@pytest.fixture
def box_stl_ascii(box_mesh):
    import trimesh

    return trimesh.exchange.stl.export_stl_ascii(box_mesh).encode("ascii")


@pytest.fixture
def stl_encoder():
    """The binary STL encoder, for tests that build their own faces."""
    return binary_stl


@pytest.fixture
def box_stl_binary(box_mesh):
    return binary_stl(box_mesh.triangles)
