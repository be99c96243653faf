"""
Barscan CLI

Commands:
- run: Extract barcodes from every PDF under a folder into a spreadsheet
- decode: Decode the barcodes on a single image
- serve: Start the PDF upload web service
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import typer

from barscan.config import Settings
from barscan.pipeline.discovery import ensure_input_dir, find_pdfs
from barscan.pipeline.output import write_workbook
from barscan.pipeline.worker import PdfResult, build_adapters, process_pdfs
from barscan.tools import ToolError

app = typer.Typer(add_completion=False, help="Extract barcodes from scanned PDFs into a spreadsheet")


class JsonFormatter(logging.Formatter):
    """Simple JSON formatter for structured logs."""
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
        }
        # Include any custom attributes passed via `extra=`.
        reserved = {
            "name","msg","args","levelname","levelno","pathname","filename","module",
            "exc_info","exc_text","stack_info","lineno","funcName","created","msecs",
            "relativeCreated","thread","threadName","processName","process","taskName",
        }
        for k, v in record.__dict__.items():
            if k in reserved or k.startswith("_"):
                continue
            try:
                json.dumps(v)
                payload[k] = v
            except TypeError:
                payload[k] = repr(v)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str) -> logging.Logger:
    logger = logging.getLogger("barscan")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.handlers[:] = [handler]
    logger.propagate = False
    return logger


LOGGER = logging.getLogger("barscan")


@app.command("run")
def run_cmd(
    input_dir: Path | None = typer.Option(None, "--input-dir", help="Folder scanned recursively for PDFs [default: pdfs]"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Spreadsheet to write [default: barcodes_exec.xlsx]"),
    scratch_dir: Path | None = typer.Option(None, "--scratch-dir", help="Parent folder for temporary page images"),
    dpi: int | None = typer.Option(None, "--dpi", help="Rasterization resolution [default: 300]"),
    timeout: float | None = typer.Option(
        None, "--timeout", help="Seconds allowed per external tool call (0 disables)"
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Log level"),
) -> None:
    """
    Extract barcodes from every PDF under the input folder.

    Each PDF is rendered page by page with pdftoppm, each page is scanned with
    zbarimg, and all results go to one spreadsheet. Failed files and pages
    are recorded as error rows rather than stopping the run.

    Example:
        barscan run --input-dir pdfs --output barcodes_exec.xlsx
    """
    global LOGGER
    settings = Settings.from_env().override(
        input_dir=input_dir,
        output_path=output,
        scratch_dir=scratch_dir,
        dpi=dpi,
        rasterize_timeout=timeout,
        decode_timeout=timeout,
        log_level=log_level,
    )
    LOGGER = setup_logging(settings.log_level)

    pdf_root = settings.input_dir.expanduser()
    output_path = settings.output_path.expanduser()

    if not ensure_input_dir(pdf_root):
        typer.echo(f"Input folder not found, created: {pdf_root}")
        typer.echo(f"Put your PDFs in '{pdf_root}' and run again.")
        return

    pdfs = find_pdfs(pdf_root)
    if not pdfs:
        typer.echo(f"No PDFs found in {pdf_root} (recursive search).")
        return

    typer.echo(f"Found {len(pdfs)} PDF(s)")

    rasterizer, decoder = build_adapters(settings, LOGGER)

    def on_start(index: int, pdf_path: Path) -> None:
        typer.echo(f"\n--- [{index}/{len(pdfs)}] Processing: {pdf_path.name} ---")

    def on_done(result: PdfResult) -> None:
        if result.success:
            typer.echo(
                f"✅ {result.pages} page(s), "
                f"{result.barcodes} barcode(s), "
                f"{result.pages_failed} page(s) failed "
                f"({result.elapsed_seconds:.1f}s)"
            )
        else:
            typer.echo(f"❌ Failed: {result.records[0].data}", err=True)

    try:
        run = process_pdfs(
            pdfs,
            settings.scratch_dir.expanduser(),
            rasterizer=rasterizer,
            decoder=decoder,
            logger=LOGGER,
            on_start=on_start,
            on_done=on_done,
        )
        rows = write_workbook(run.records, output_path, include_path=True, include_status=False)
    except Exception as e:
        LOGGER.exception("run_failed", extra={"input_dir": str(pdf_root), "output": str(output_path)})
        typer.echo(f"❌ Run failed: {e}", err=True)
        raise typer.Exit(code=1)

    # Final summary
    typer.echo(f"\n{'='*60}")
    typer.echo("📊 Summary:")
    typer.echo(f"  PDFs processed: {len(run.results)}")
    typer.echo(f"  PDFs failed: {len(run.failed_files)}")
    typer.echo(f"  Rows written: {rows}")
    typer.echo(f"  Output: {output_path.resolve()}")

    if run.failed_files:
        typer.echo(f"\n❌ Failed PDFs ({len(run.failed_files)}):")
        for pdf_path in run.failed_files:
            typer.echo(f"  - {pdf_path}")


@app.command("decode")
def decode_cmd(
    image: Path = typer.Argument(..., help="Page image to scan"),
    timeout: float | None = typer.Option(None, "--timeout", help="Seconds allowed for the decoder (0 disables)"),
) -> None:
    """Print the barcodes zbarimg finds on one image, as TYPE<TAB>DATA lines."""
    settings = Settings.from_env().override(decode_timeout=timeout)
    if not image.exists():
        typer.echo(f"Error: Image not found: {image}", err=True)
        raise typer.Exit(code=1)

    _, decoder = build_adapters(settings)
    try:
        pairs = decoder.decode(image)
    except ToolError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)

    if not pairs:
        typer.echo("No barcode found.", err=True)
        raise typer.Exit(code=2)
    for barcode_type, data in pairs:
        typer.echo(f"{barcode_type}\t{data}")


@app.command("serve")
def serve_cmd(
    host: str | None = typer.Option(None, "--host", help="Bind address [default: 127.0.0.1]"),
    port: int | None = typer.Option(None, "--port", help="Bind port [default: 3000]"),
    log_level: str | None = typer.Option(None, "--log-level", help="Log level"),
) -> None:
    """Start the upload service (upload form at http://HOST:PORT/)."""
    import uvicorn

    from barscan.web.app import create_app

    global LOGGER
    settings = Settings.from_env().override(host=host, port=port, log_level=log_level)
    LOGGER = setup_logging(settings.log_level)

    typer.echo(f"\nServer running at http://{settings.host}:{settings.port}")
    typer.echo("Open this URL in your browser to upload PDFs.")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level.lower())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
