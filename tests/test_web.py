"""Tests for the upload service."""

import io
import json
import threading

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from barscan.config import Settings
from barscan.pipeline.output import XLSX_MEDIA_TYPE
from barscan.web import create_app


def pdf_part(name, *pages):
    return ("pdfs", (name, json.dumps(list(pages)).encode("utf-8"), "application/pdf"))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        upload_dir=tmp_path / "uploads",
        output_dir=tmp_path / "output",
        scratch_dir=tmp_path / "scratch",
    )


@pytest.fixture
def client(settings, rasterizer, decoder):
    app = create_app(settings, rasterizer=rasterizer, decoder=decoder)
    return TestClient(app)


class TestCreateApp:
    """Tests for create_app()."""

    def test_creates_working_folders(self, settings, rasterizer, decoder):
        """Test upload, output and scratch folders exist after start-up."""
        create_app(settings, rasterizer=rasterizer, decoder=decoder)

        assert settings.upload_dir.is_dir()
        assert settings.output_dir.is_dir()
        assert settings.scratch_dir.is_dir()


class TestIndex:
    """Tests for GET /."""

    def test_serves_upload_form(self, client):
        """Test the upload form is served as HTML."""
        resp = client.get("/")

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/html")
        assert 'name="pdfs"' in resp.text


class TestUploadPdfs:
    """Tests for POST /upload-pdfs."""

    def test_no_files_is_client_error(self, client, settings):
        """Test a request without files returns 400 and writes nothing."""
        resp = client.post("/upload-pdfs")

        assert resp.status_code == 400
        assert resp.json()["message"]
        assert list(settings.output_dir.iterdir()) == []

    def test_processes_uploads(self, client, settings):
        """Test one good and one broken PDF give a success and a failure row."""
        resp = client.post(
            "/upload-pdfs",
            files=[
                pdf_part("nf-001.pdf", "EAN13:0123456789012"),
                pdf_part("nf-002.pdf", "!broken"),
            ],
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["message"]
        assert body["filename"].startswith("barcodes-")
        assert body["downloadUrl"] == f"/download/{body['filename']}"

        ws = load_workbook(settings.output_dir / body["filename"])["Barcodes"]
        rows = [list(r) for r in ws.iter_rows(values_only=True)]
        assert rows[0] == ["PDF File", "Page", "Barcode Type", "Decoded Data", "Status / Error"]
        assert rows[1] == ["nf-001.pdf", 1, "EAN13", "0123456789012", "SUCCESS"]
        assert rows[2][:3] == ["nf-002.pdf", "ERROR", "ERROR"]
        assert rows[2][4] == "PROCESSING FAILURE"
        assert len(rows) == 3

    def test_page_without_barcode_gets_placeholder(self, client, settings):
        """Test the service emits the same placeholder rows as the batch runner."""
        resp = client.post("/upload-pdfs", files=[pdf_part("doc.pdf", "", "QRCODE:x")])

        ws = load_workbook(settings.output_dir / resp.json()["filename"])["Barcodes"]
        rows = [list(r) for r in ws.iter_rows(min_row=2, values_only=True)]
        assert rows == [
            ["doc.pdf", 1, None, None, "SUCCESS"],
            ["doc.pdf", 2, "QRCODE", "x", "SUCCESS"],
        ]

    def test_duplicate_names_in_one_request(self, client, settings):
        """Test two uploads with the same name are both processed."""
        resp = client.post(
            "/upload-pdfs",
            files=[pdf_part("scan.pdf", "EAN8:1"), pdf_part("scan.pdf", "EAN8:2")],
        )

        ws = load_workbook(settings.output_dir / resp.json()["filename"])["Barcodes"]
        data = [r[3] for r in ws.iter_rows(min_row=2, values_only=True)]
        assert data == ["1", "2"]

    def test_client_directories_stripped(self, client, settings, rasterizer):
        """Test a path in the uploaded filename cannot escape the upload folder."""
        client.post("/upload-pdfs", files=[pdf_part("../../evil.pdf", "")])

        stored, _ = rasterizer.calls[0]
        assert stored.name == "evil.pdf"
        assert settings.upload_dir in stored.parents

    def test_uploads_and_images_removed(self, client, settings):
        """Test uploaded files and page images are cleaned up afterwards."""
        client.post("/upload-pdfs", files=[pdf_part("a.pdf", "EAN8:1", "")])

        assert list(settings.upload_dir.iterdir()) == []
        assert list(settings.scratch_dir.iterdir()) == []

    def test_export_failure_is_server_error(self, client, monkeypatch):
        """Test a spreadsheet write failure returns 500 JSON."""
        import barscan.web.app as web_app

        def failing_write(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(web_app, "write_workbook", failing_write)

        resp = client.post("/upload-pdfs", files=[pdf_part("a.pdf", "")])

        assert resp.status_code == 500
        assert "message" in resp.json()

    def test_unexpected_error_is_server_error(self, settings, rasterizer, decoder, monkeypatch):
        """Test any unhandled error becomes a 500 JSON body."""
        import barscan.web.app as web_app

        def crashing_pipeline(*args, **kwargs):
            raise RuntimeError("pipeline crashed")

        monkeypatch.setattr(web_app, "process_pdfs", crashing_pipeline)
        client = TestClient(
            create_app(settings, rasterizer=rasterizer, decoder=decoder),
            raise_server_exceptions=False,
        )

        resp = client.post("/upload-pdfs", files=[pdf_part("a.pdf", "")])

        assert resp.status_code == 500
        assert resp.json() == {"message": "Internal server error."}
        assert list(settings.upload_dir.iterdir()) == []

    def test_concurrent_uploads_do_not_mix(self, client, settings):
        """Test parallel requests each get only their own rows."""
        results = {}

        def upload(tag):
            resp = client.post("/upload-pdfs", files=[pdf_part(f"{tag}.pdf", *[f"QRCODE:{tag}"] * 5)])
            ws = load_workbook(settings.output_dir / resp.json()["filename"])["Barcodes"]
            results[tag] = {r[3] for r in ws.iter_rows(min_row=2, values_only=True)}

        threads = [threading.Thread(target=upload, args=(tag,)) for tag in ("left", "right")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == {"left": {"left"}, "right": {"right"}}


class TestDownload:
    """Tests for GET /download/{filename}."""

    def test_download_generated_file(self, client):
        """Test a generated spreadsheet downloads as an attachment."""
        body = client.post("/upload-pdfs", files=[pdf_part("a.pdf", "EAN8:1")]).json()

        resp = client.get(body["downloadUrl"])

        assert resp.status_code == 200
        assert resp.headers["content-type"] == XLSX_MEDIA_TYPE
        assert "attachment" in resp.headers["content-disposition"]
        assert body["filename"] in resp.headers["content-disposition"]
        ws = load_workbook(io.BytesIO(resp.content))["Barcodes"]
        assert ws.max_row == 2

    def test_unknown_file_is_not_found(self, client):
        """Test an unknown name returns 404."""
        resp = client.get("/download/missing.xlsx")
        assert resp.status_code == 404

    def test_path_traversal_is_not_found(self, client, settings):
        """Test encoded path components cannot reach outside the output folder."""
        (settings.upload_dir / "secret.xlsx").write_bytes(b"x")
        resp = client.get("/download/..%2Fuploads%2Fsecret.xlsx")
        assert resp.status_code == 404
