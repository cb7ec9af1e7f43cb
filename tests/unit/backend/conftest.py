"""Shared fixtures for backend endpoint tests.

Uses FastAPI TestClient to test endpoints without starting a real server.
"""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def cnc_service(temp_dir):
    """A fresh CNC service writing into the temp directory."""
    from backend.cnc_service import CncService
    from opencarve.core.config import ProcessingSettings

    return CncService(ProcessingSettings(output_dir=temp_dir / "outputs", max_upload_bytes=256 * 1024))


@pytest.fixture
def client(cnc_service):
    """Create a FastAPI TestClient with the opencarve app."""
    from backend.server import app, state

    previous = state.cnc_service
    state.cnc_service = cnc_service
    yield TestClient(app)
    state.cnc_service = previous


@pytest.fixture
def form_fields():
    return {
        "outputFormat": "gcode",
        "materialWidthMm": "100",
        "materialHeightMm": "100",
        "materialThicknessMm": "10",
        "outputWidthMm": "60",
        "outputHeightMm": "40",
    }
