"""
STL parsing.

Both ASCII and binary STL are supported. The result is a triangle soup:
no vertex welding, normals and attribute bytes are ignored.
"""

import logging
import re

import numpy as np

from opencarve.core.exceptions import MalformedMesh
from opencarve.core.geometry import Mesh

logger = logging.getLogger(__name__)

HEADER_SIZE = 80
MIN_STL_SIZE = 84

_FLOAT = r"([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)"
_VERTEX = re.compile(rf"vertex\s+{_FLOAT}\s+{_FLOAT}\s+{_FLOAT}", re.IGNORECASE)

# 12-byte normal, three vertices, 2-byte attribute count: 50 bytes per record.
_BINARY_TRIANGLE = np.dtype(
    [
        ("normal", "<f4", (3,)),
        ("vertices", "<f4", (3, 3)),
        ("attribute", "<u2"),
    ]
)


def is_ascii_stl(data: bytes) -> bool:
    """ASCII iff the 80-byte header, stripped, starts with ``solid``."""
    header = data[:HEADER_SIZE].decode("ascii", errors="ignore").strip()
    return header.startswith("solid")


def _parse_ascii(data: bytes) -> np.ndarray:
    text = data.decode("ascii", errors="ignore")
    coords = np.array(_VERTEX.findall(text), dtype=float)
    usable = (len(coords) // 3) * 3
    return coords[:usable].reshape(-1, 3, 3)


def _parse_binary(data: bytes) -> np.ndarray:
    count = int(np.frombuffer(data, dtype="<u4", count=1, offset=HEADER_SIZE)[0])
    expected = MIN_STL_SIZE + count * _BINARY_TRIANGLE.itemsize
    if len(data) < expected:
        raise MalformedMesh(
            "STL file is truncated",
            details={"triangles": count, "expectedBytes": expected, "actualBytes": len(data)},
        )
    records = np.frombuffer(data, dtype=_BINARY_TRIANGLE, count=count, offset=MIN_STL_SIZE)
    return records["vertices"].astype(float)


def parse_stl(data: bytes) -> Mesh:
    """
    Parse an ASCII or binary STL buffer.

    Raises:
        MalformedMesh: If the buffer is shorter than 84 bytes, truncated, or
            contains no triangles
    """
    if len(data) < MIN_STL_SIZE:
        raise MalformedMesh("STL file is too small", details={"bytes": len(data)})

    if is_ascii_stl(data):
        faces = _parse_ascii(data)
        kind = "ascii"
    else:
        faces = _parse_binary(data)
        kind = "binary"

    if len(faces) == 0:
        raise MalformedMesh("STL file contains no triangles")

    faces.setflags(write=False)
    logger.debug("Parsed %s STL with %d triangles", kind, len(faces))
    return Mesh(faces=faces)
