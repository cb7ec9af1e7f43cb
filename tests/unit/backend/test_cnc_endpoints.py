"""Tests for CNC processing and download endpoints."""

import pytest


def post_file(client, name, content, content_type, fields):
    return client.post(
        "/api/cnc_processing",
        files={"file": (name, content, content_type)},
        data=fields,
    )


@pytest.mark.unit
class TestCncProcessing:
    def test_svg_to_gcode(self, client, svg_square, form_fields):
        fields = dict(form_fields, toolId="ball-3", keepAspectRatio="false")
        response = post_file(client, "square.svg", svg_square, "image/svg+xml", fields)
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        data = body["data"]
        assert data["downloadUrl"] == f"/api/cnc_processing/download/{data['id']}"
        assert data["outputFormat"] == "gcode"
        assert data["mimeType"] == "text/plain"
        assert data["sizeBytes"] > 0
        assert data["processingTimeMs"] >= 0
        assert data["output"]["widthMm"] == 60
        assert data["output"]["heightMm"] == 40
        assert data["preview"]["heightFieldMeta"]["yAxis"] == "down"
        assert "path" not in data

    def test_download(self, client, svg_square, form_fields):
        data = post_file(client, "square.svg", svg_square, "image/svg+xml", form_fields).json()["data"]
        response = client.get(data["downloadUrl"])
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert data["fileName"] in response.headers["content-disposition"]
        assert response.text.startswith("; opencarve G-code")
        assert len(response.content) == data["sizeBytes"]

    def test_download_unknown(self, client):
        response = client.get("/api/cnc_processing/download/does-not-exist")
        assert response.status_code == 404
        assert response.json() == {"status": "error", "error": "Output not found"}

    def test_download_after_file_removed(self, client, cnc_service, svg_square, form_fields):
        data = post_file(client, "square.svg", svg_square, "image/svg+xml", form_fields).json()["data"]
        cnc_service.registry.get(data["id"]).path.unlink()
        assert client.get(data["downloadUrl"]).status_code == 404

    def test_dxf_passthrough(self, client, dxf_bytes):
        response = post_file(client, "part.dxf", dxf_bytes, "application/dxf", {"outputFormat": "dxf"})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["outputFormat"] == "dxf"
        assert len(data["preview"]["polylines"]) == 2
        download = client.get(data["downloadUrl"])
        assert download.content == dxf_bytes


@pytest.mark.unit
class TestCncErrors:
    def test_missing_file(self, client, form_fields):
        response = client.post("/api/cnc_processing", data=form_fields)
        assert response.status_code == 400
        assert response.json()["status"] == "error"

    def test_empty_file(self, client, form_fields):
        response = post_file(client, "square.svg", b"", "image/svg+xml", form_fields)
        assert response.status_code == 400

    def test_too_large(self, client, form_fields):
        response = post_file(client, "big.svg", b"<svg>" + b" " * 300000 + b"</svg>", "image/svg+xml", form_fields)
        assert response.status_code == 413
        assert response.json()["status"] == "error"

    def test_unsupported_type(self, client, form_fields):
        response = post_file(client, "notes.txt", b"hello", "text/plain", form_fields)
        assert response.status_code == 415
        assert "Unsupported file type" in response.json()["error"]

    def test_format_mismatch(self, client, svg_square, form_fields):
        response = post_file(client, "part.dxf", svg_square, "application/dxf", form_fields)
        assert response.status_code == 415

    def test_missing_dimension(self, client, svg_square, form_fields):
        fields = dict(form_fields)
        del fields["materialWidthMm"]
        response = post_file(client, "square.svg", svg_square, "image/svg+xml", fields)
        assert response.status_code == 400
        assert response.json() == {"status": "error", "error": "Material width is required"}

    def test_output_exceeds_material(self, client, svg_square, form_fields):
        fields = dict(form_fields, materialWidthMm="50", materialHeightMm="50")
        response = post_file(client, "square.svg", svg_square, "image/svg+xml", fields)
        assert response.status_code == 400
        assert response.json()["error"] == "Output size exceeds material bounds"

    def test_unknown_tool(self, client, svg_square, form_fields):
        fields = dict(form_fields, toolId="unobtainium")
        response = post_file(client, "square.svg", svg_square, "image/svg+xml", fields)
        assert response.status_code == 400

    def test_unsupported_output_format(self, client, svg_square, form_fields):
        fields = dict(form_fields, outputFormat="pdf")
        response = post_file(client, "square.svg", svg_square, "image/svg+xml", fields)
        assert response.status_code == 400

    def test_no_vector_paths(self, client, form_fields):
        response = post_file(client, "empty.svg", b"<svg><rect/></svg>", "image/svg+xml", form_fields)
        assert response.status_code == 422
        assert response.json()["error"] == "No vector paths found for conversion"

    def test_malformed_stl(self, client, form_fields):
        response = post_file(client, "x.stl", b"solid x", "model/stl", form_fields)
        assert response.status_code == 422
