"""
PDF processing worker.

Rasterizes one PDF, decodes every page and turns the outcome into
`BarcodeRecord` rows. `process_pdfs` runs a whole batch sequentially inside
one run-scoped scratch directory.
"""

from __future__ import annotations

import logging
import shutil
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator

from barscan.config import Settings, timeout_or_none
from barscan.tools import Decoder, PopplerRasterizer, Rasterizer, ZBarDecoder

from .records import NO_PAGES, BarcodeRecord


LOGGER = logging.getLogger("barscan.pipeline")


@dataclass
class PdfResult:
    """
    Result of processing a single PDF.

    Attributes:
        pdf_path: PDF that was processed
        records: Rows produced for this PDF (never empty)
        pages: Number of page images rendered
        pages_failed: Pages whose decode failed
        elapsed_seconds: Total processing time
        success: False when the whole file failed to rasterize
    """

    pdf_path: Path
    records: list[BarcodeRecord]
    pages: int
    pages_failed: int
    elapsed_seconds: float
    success: bool

    @property
    def barcodes(self) -> int:
        return sum(1 for r in self.records if r.barcode_type is not None and not r.is_error)


@dataclass
class RunResult:
    """All rows of a batch, in input order, plus the per-PDF results."""

    records: list[BarcodeRecord] = field(default_factory=list)
    results: list[PdfResult] = field(default_factory=list)

    @property
    def failed_files(self) -> list[Path]:
        return [r.pdf_path for r in self.results if not r.success]


def build_adapters(settings: Settings, logger: logging.Logger | None = None) -> tuple[Rasterizer, Decoder]:
    """Create the poppler/zbar adapters configured by `settings`."""
    rasterizer = PopplerRasterizer(
        executable=settings.rasterizer_bin,
        dpi=settings.dpi,
        timeout=timeout_or_none(settings.rasterize_timeout),
        logger=logger or LOGGER,
    )
    decoder = ZBarDecoder(
        executable=settings.decoder_bin,
        timeout=timeout_or_none(settings.decode_timeout),
    )
    return rasterizer, decoder


def empty_dir(path: Path) -> None:
    """Make sure `path` exists and holds nothing."""
    path.mkdir(parents=True, exist_ok=True)
    for entry in path.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


@contextmanager
def scratch_workspace(root: Path, run_id: str | None = None) -> Iterator[Path]:
    """
    Yield a uniquely named scratch directory under `root`, removed on exit.

    Each run (a batch or an upload request) gets its own directory, so
    concurrent runs never see each other's page images.
    """
    run_dir = root / (run_id or uuid.uuid4().hex)
    run_dir.mkdir(parents=True, exist_ok=False)
    try:
        yield run_dir
    finally:
        shutil.rmtree(run_dir, ignore_errors=True)


def process_pdf(
    pdf_path: Path,
    scratch_dir: Path,
    *,
    rasterizer: Rasterizer,
    decoder: Decoder,
    source_file: str | None = None,
    logger: logging.Logger | None = None,
) -> PdfResult:
    """
    Process a single PDF: rasterize, decode each page, build rows.

    Rows come out in page order, and within a page in decoder output order:
    - one row per decoded barcode
    - one placeholder row for a page with no barcode
    - one error row for a page whose decode failed (the next page still runs)
    - a single error row for the whole file if rasterization failed
    - a single `NO_PAGES` placeholder if the PDF rendered no images

    The scratch directory is emptied before and after, also on failure.

    Parameters:
        pdf_path: PDF to process
        scratch_dir: Directory for this PDF's page images
        rasterizer: Rasterizer adapter
        decoder: Decoder adapter
        source_file: Name for the rows (defaults to the PDF's file name)
        logger: Logger (defaults to `barscan.pipeline`)

    Returns:
        PdfResult with the rows and statistics
    """
    log = logger or LOGGER
    name = source_file or pdf_path.name
    full_path = str(pdf_path)
    start_time = time.perf_counter()
    records: list[BarcodeRecord] = []
    pages = 0
    pages_failed = 0
    success = True

    empty_dir(scratch_dir)
    try:
        t0 = time.perf_counter()
        images = rasterizer.rasterize(pdf_path, scratch_dir)
        log.info(
            "pdf_rasterized",
            extra={
                "pdf_path": full_path,
                "engine": rasterizer.name,
                "pages": len(images),
                "elapsed_ms": int((time.perf_counter() - t0) * 1000),
            },
        )

        for page_number, image_path in enumerate(images, start=1):
            pages = page_number
            try:
                pairs = decoder.decode(image_path)
            except Exception as e:
                pages_failed += 1
                log.error(
                    "page_decode_failed",
                    extra={"pdf_path": full_path, "page": page_number, "error": str(e)},
                )
                records.append(BarcodeRecord.page_error(name, full_path, page_number, str(e)))
                continue

            log.debug(
                "page_decoded",
                extra={"pdf_path": full_path, "page": page_number, "image": image_path.name, "barcodes": len(pairs)},
            )
            if not pairs:
                records.append(BarcodeRecord.placeholder(name, full_path, page_number))
            for barcode_type, data in pairs:
                records.append(BarcodeRecord.barcode(name, full_path, page_number, barcode_type, data))

        if not images:
            records.append(BarcodeRecord.placeholder(name, full_path, NO_PAGES))

    except Exception as e:
        # Whole-file failure: replace anything gathered so far with one error row
        log.error("pdf_failed", extra={"pdf_path": full_path, "error": str(e)})
        records = [BarcodeRecord.file_error(name, full_path, str(e))]
        pages_failed = 0
        success = False
    finally:
        empty_dir(scratch_dir)

    return PdfResult(
        pdf_path=pdf_path,
        records=records,
        pages=pages,
        pages_failed=pages_failed,
        elapsed_seconds=time.perf_counter() - start_time,
        success=success,
    )


def process_pdfs(
    pdf_paths: Iterable[Path],
    scratch_root: Path,
    *,
    rasterizer: Rasterizer,
    decoder: Decoder,
    logger: logging.Logger | None = None,
    on_start: Callable[[int, Path], None] | None = None,
    on_done: Callable[[PdfResult], None] | None = None,
) -> RunResult:
    """
    Process PDFs one at a time and concatenate their rows in input order.

    Parameters:
        pdf_paths: PDFs to process
        scratch_root: Parent of the run-scoped scratch directory
        rasterizer: Rasterizer adapter
        decoder: Decoder adapter
        logger: Logger (defaults to `barscan.pipeline`)
        on_start: Called with (1-based index, path) before each PDF
        on_done: Called with each PdfResult

    Returns:
        RunResult with every row and per-PDF results
    """
    run = RunResult()
    with scratch_workspace(scratch_root) as scratch_dir:
        for index, pdf_path in enumerate(pdf_paths, start=1):
            if on_start:
                on_start(index, pdf_path)
            result = process_pdf(
                pdf_path,
                scratch_dir,
                rasterizer=rasterizer,
                decoder=decoder,
                logger=logger,
            )
            run.results.append(result)
            run.records.extend(result.records)
            if on_done:
                on_done(result)
    return run
