"""
Output rows of the barcode pipeline.

One `BarcodeRecord` is one spreadsheet row: a decoded barcode, a
"no barcode on this page" placeholder, or an error.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

# Page value of a whole-file failure row
ERROR_PAGE = "ERROR"
# Barcode type value of any failure row (whole file or single page)
ERROR_TYPE = "ERROR"
# Page value of the single row emitted for a PDF that rendered no pages
NO_PAGES = 0

STATUS_SUCCESS = "SUCCESS"
STATUS_FAILURE = "PROCESSING FAILURE"


class BarcodeRecord(BaseModel):
    """
    One row of output.

    Attributes:
        source_file: PDF file name
        source_path: Full path of the PDF as it was processed
        page: 1-based page number, `NO_PAGES`, or `ERROR_PAGE` for a whole-file error
        barcode_type: Symbology reported by the decoder; None when nothing was
            found, `ERROR_TYPE` on failure
        data: Decoded payload; None when nothing was found, the error message on failure
    """

    model_config = ConfigDict(frozen=True)

    source_file: str
    source_path: str | None = None
    page: int | str
    barcode_type: str | None = None
    data: str | None = None

    @property
    def is_error(self) -> bool:
        return self.barcode_type == ERROR_TYPE

    @property
    def status(self) -> str:
        return STATUS_FAILURE if self.is_error else STATUS_SUCCESS

    @classmethod
    def barcode(cls, source_file: str, source_path: str | None, page: int, barcode_type: str, data: str) -> BarcodeRecord:
        return cls(source_file=source_file, source_path=source_path, page=page, barcode_type=barcode_type, data=data)

    @classmethod
    def placeholder(cls, source_file: str, source_path: str | None, page: int) -> BarcodeRecord:
        """Row for a page (or, with `NO_PAGES`, a file) where no barcode was found."""
        return cls(source_file=source_file, source_path=source_path, page=page)

    @classmethod
    def page_error(cls, source_file: str, source_path: str | None, page: int, message: str) -> BarcodeRecord:
        return cls(source_file=source_file, source_path=source_path, page=page, barcode_type=ERROR_TYPE, data=message)

    @classmethod
    def file_error(cls, source_file: str, source_path: str | None, message: str) -> BarcodeRecord:
        return cls(source_file=source_file, source_path=source_path, page=ERROR_PAGE, barcode_type=ERROR_TYPE, data=message)
