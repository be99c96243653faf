"""
FastAPI upload service.

Routes:
- GET  /                     upload form
- POST /upload-pdfs          process uploaded PDFs into a spreadsheet
- GET  /download/{filename}  fetch a generated spreadsheet
"""

from __future__ import annotations

import logging
import re
import shutil
import uuid
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field

from barscan.config import Settings
from barscan.pipeline.output import XLSX_MEDIA_TYPE, export_filename, write_workbook
from barscan.pipeline.worker import build_adapters, process_pdfs
from barscan.tools import Decoder, Rasterizer

logger = logging.getLogger("barscan.web")

STATIC_DIR = Path(__file__).parent / "static"


class UploadResponse(BaseModel):
    message: str
    filename: str
    download_url: str = Field(serialization_alias="downloadUrl")


def sanitize_filename(filename: str) -> str:
    """Strip any client-supplied directories and characters unsafe on disk."""
    name = Path(filename.replace("\\", "/")).name
    name = re.sub(r"[\x00-\x1f/]", "_", name).strip()
    if name in {"", ".", ".."}:
        return "upload.pdf"
    return name


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


def create_app(
    settings: Settings | None = None,
    *,
    rasterizer: Rasterizer | None = None,
    decoder: Decoder | None = None,
) -> FastAPI:
    """
    Build the upload service.

    The upload, output and scratch folders are created here. Adapters default
    to pdftoppm/zbarimg as configured by `settings`.

    Parameters:
        settings: Service settings (defaults to `Settings.from_env()`)
        rasterizer: Rasterizer adapter override
        decoder: Decoder adapter override

    Returns:
        Configured FastAPI application
    """
    settings = settings or Settings.from_env()
    default_rasterizer, default_decoder = build_adapters(settings, logger)
    rasterizer = rasterizer or default_rasterizer
    decoder = decoder or default_decoder

    for folder in (settings.upload_dir, settings.output_dir, settings.scratch_dir):
        folder.mkdir(parents=True, exist_ok=True)

    app = FastAPI(
        title="Barscan",
        description="Extract barcodes from scanned PDFs into a spreadsheet",
    )
    app.state.settings = settings

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("request_failed", exc_info=exc, extra={"path": request.url.path})
        return error_response(500, "Internal server error.")

    @app.get("/", include_in_schema=False)
    def index() -> FileResponse:
        return FileResponse(STATIC_DIR / "index.html", media_type="text/html")

    # Plain `def`: runs in the threadpool, the pipeline blocks on subprocesses
    @app.post("/upload-pdfs", response_model=UploadResponse)
    def upload_pdfs(pdfs: Optional[List[UploadFile]] = File(default=None)):
        files = [f for f in (pdfs or []) if f.filename]
        if not files:
            return error_response(400, "No PDF files were uploaded.")

        request_id = uuid.uuid4().hex
        request_dir = settings.upload_dir / request_id
        logger.info("upload_received", extra={"request_id": request_id, "files": len(files)})

        try:
            # one sub-folder per file keeps original names even when two uploads share one
            stored: list[Path] = []
            for index, upload in enumerate(files):
                target = request_dir / str(index) / sanitize_filename(upload.filename or "")
                target.parent.mkdir(parents=True, exist_ok=True)
                with target.open("wb") as out:
                    shutil.copyfileobj(upload.file, out)
                stored.append(target)

            run = process_pdfs(
                stored,
                settings.scratch_dir,
                rasterizer=rasterizer,
                decoder=decoder,
                logger=logger,
            )
        finally:
            shutil.rmtree(request_dir, ignore_errors=True)

        filename = export_filename()
        try:
            rows = write_workbook(
                run.records,
                settings.output_dir / filename,
                include_path=False,
                include_status=True,
            )
        except Exception:
            logger.exception("export_failed", extra={"request_id": request_id, "output_file": filename})
            return error_response(500, "Failed to generate the spreadsheet.")

        logger.info(
            "upload_processed",
            extra={
                "request_id": request_id,
                "output_file": filename,
                "rows": rows,
                "failed_files": len(run.failed_files),
            },
        )
        return UploadResponse(
            message="Files processed successfully.",
            filename=filename,
            download_url=f"/download/{filename}",
        )

    @app.get("/download/{filename}")
    def download(filename: str):
        path = settings.output_dir / filename
        if Path(filename).name != filename or not path.is_file():
            return error_response(404, "File not found.")
        return FileResponse(path, filename=filename, media_type=XLSX_MEDIA_TYPE)

    return app
