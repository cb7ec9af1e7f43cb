"""
opencarve Backend Server

FastAPI server exposing CNC conversion: uploads are converted to G-code or
DXF by the opencarve pipeline and served back through a download endpoint.
"""

import asyncio
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel
from starlette.datastructures import UploadFile

from backend.cnc_service import CncService
from opencarve import __version__
from opencarve.core.config import ProcessingSettings
from opencarve.core.exceptions import CarveError
from opencarve.core.logging import configure_logging, get_logger

configure_logging(
    level=os.environ.get("OPENCARVE_LOG_LEVEL", "INFO"),
    json_output=os.environ.get("OPENCARVE_JSON_LOGS", "").lower() in ("1", "true", "yes"),
)
logger = get_logger(__name__)

# Optional YAML file with a top-level ``processing`` key
SETTINGS_ENV = "OPENCARVE_SETTINGS"

# Multipart fields that are not conversion options
_RESERVED_FIELDS = {"file", "outputFormat"}

# ---------------------------------------------------------------------------
# Pydantic request/response models
# ---------------------------------------------------------------------------


class ApiResponse(BaseModel):
    """Standard API response wrapper."""
    status: str = "success"
    data: Any = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = __version__
    services: Dict[str, bool] = {}


# ---------------------------------------------------------------------------
# Application state
# ---------------------------------------------------------------------------


def _load_settings() -> ProcessingSettings:
    path = os.environ.get(SETTINGS_ENV)
    return ProcessingSettings.from_yaml(path) if path else ProcessingSettings()


class AppState:
    """Process-wide services shared by all requests."""

    def __init__(self, settings: Optional[ProcessingSettings] = None) -> None:
        self.cnc_service = CncService(settings or _load_settings())


state = AppState()


# ---------------------------------------------------------------------------
# FastAPI app setup
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(application: FastAPI):
    """Application lifespan: log service configuration on startup."""
    summary = state.cnc_service.get_summary()
    logger.info("service_ready", **summary)
    yield


app = FastAPI(
    title="opencarve API",
    version=__version__,
    description="REST API for CNC toolpath and G-code synthesis",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── HTTP Request Logging Middleware ────────────────────────────────────────────


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Log every HTTP request with method, path, status, and duration."""
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "http_request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round(duration_ms, 1),
    )
    return response


@app.exception_handler(CarveError)
async def carve_error_handler(request: Request, exc: CarveError) -> JSONResponse:
    """Map pipeline errors onto their HTTP status."""
    if exc.status_code >= 500:
        logger.error("conversion_error", path=request.url.path, error=str(exc))
    else:
        logger.info("conversion_rejected", path=request.url.path, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "error": exc.message},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return errors in the { status, error } format the frontend expects."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "error": exc.detail},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all so the frontend always gets structured JSON, never raw HTML."""
    logger.error(
        "unhandled_error",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"status": "error", "error": "Internal server error"},
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get("/api/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(services={"cnc": state.cnc_service is not None})


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@app.get("/api/tools")
async def list_tools() -> ApiResponse:
    return ApiResponse(data=state.cnc_service.list_tools())


# ---------------------------------------------------------------------------
# CNC processing
# ---------------------------------------------------------------------------

@app.post("/api/cnc_processing")
async def cnc_processing(request: Request) -> ApiResponse:
    """
    Convert an uploaded image, SVG, DXF or STL file.

    Multipart fields: ``file``, ``outputFormat`` (gcode|dxf) and any
    conversion option (``materialWidthMm``, ``toolId``, ``operations``...).
    """
    service = state.cnc_service
    max_bytes = service.settings.max_upload_bytes

    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes + 64 * 1024:
        raise HTTPException(status_code=413, detail=f"File too large (max {max_bytes} bytes)")

    form = await request.form()
    upload = form.get("file")
    if not isinstance(upload, UploadFile) or not upload.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    contents = await upload.read()
    if len(contents) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File too large: {len(contents)} bytes (max {max_bytes})",
        )
    if len(contents) == 0:
        raise HTTPException(status_code=400, detail="Empty file")

    output_format = form.get("outputFormat")
    options = {
        key: value
        for key, value in form.items()
        if key not in _RESERVED_FIELDS and isinstance(value, str)
    }

    start = time.perf_counter()
    record = await asyncio.to_thread(
        service.convert,
        contents,
        upload.filename,
        upload.content_type,
        output_format if isinstance(output_format, str) else None,
        options,
    )
    processing_ms = (time.perf_counter() - start) * 1000

    data = record.to_dict()
    data.update(
        downloadUrl=f"/api/cnc_processing/download/{record.id}",
        outputFormat=Path(record.file_name).suffix.lstrip("."),
        processingTimeMs=round(processing_ms, 1),
        sizeBytes=record.path.stat().st_size,
    )
    return ApiResponse(data=data)


@app.get("/api/cnc_processing/download/{output_id}")
async def cnc_download(output_id: str) -> FileResponse:
    record = state.cnc_service.get_output(output_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Output not found")
    return FileResponse(
        str(record.path),
        media_type=record.mime_type,
        filename=record.file_name,
    )


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

def run_server(host: str = "localhost", port: int = 8080) -> None:
    """Run the FastAPI server with uvicorn."""
    import uvicorn

    logger.info("server_starting", host=host, port=port)
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    run_server()
