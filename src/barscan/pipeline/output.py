"""
Spreadsheet export.

Writes `BarcodeRecord` rows to a single-sheet xlsx workbook with a fixed
column layout, and names the timestamped workbooks produced by the upload
service.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from .records import BarcodeRecord

SHEET_TITLE = "Barcodes"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass(frozen=True)
class Column:
    """
    One spreadsheet column.

    Attributes:
        header: Header cell text
        width: Column width in characters
        value: Extracts the cell value from a record
    """

    header: str
    width: int
    value: Callable[[BarcodeRecord], object]


FILE_COLUMN = Column("PDF File", 30, lambda r: r.source_file)
PATH_COLUMN = Column("Full Path", 60, lambda r: r.source_path)
PAGE_COLUMN = Column("Page", 10, lambda r: r.page)
TYPE_COLUMN = Column("Barcode Type", 20, lambda r: r.barcode_type)
DATA_COLUMN = Column("Decoded Data", 50, lambda r: r.data)
STATUS_COLUMN = Column("Status / Error", 50, lambda r: r.status)


def columns_for(*, include_path: bool = True, include_status: bool = False) -> list[Column]:
    """
    Column layout of the exported sheet.

    The batch runner writes the full path and no status; the upload service
    drops the path and adds the derived status.

    Parameters:
        include_path: Add the "Full Path" column after the file name
        include_status: Add the "Status / Error" column at the end

    Returns:
        Columns in sheet order
    """
    cols = [FILE_COLUMN]
    if include_path:
        cols.append(PATH_COLUMN)
    cols += [PAGE_COLUMN, TYPE_COLUMN, DATA_COLUMN]
    if include_status:
        cols.append(STATUS_COLUMN)
    return cols


def _cell_value(value: object) -> object:
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


def write_workbook(
    records: Iterable[BarcodeRecord],
    path: Path,
    *,
    include_path: bool = True,
    include_status: bool = False,
) -> int:
    """
    Write records to an xlsx file, one row per record, after a header row.

    Creates parent directories if they don't exist. Field values are written
    verbatim, minus control characters xlsx cannot store; None becomes an
    empty cell.

    Parameters:
        records: Rows to write, in order
        path: Destination xlsx path
        include_path: See `columns_for`
        include_status: See `columns_for`

    Returns:
        Number of data rows written

    Example:
        >>> write_workbook(run.records, Path("barcodes_exec.xlsx"))
        12
    """
    cols = columns_for(include_path=include_path, include_status=include_status)

    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    ws.append([c.header for c in cols])
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for idx, col in enumerate(cols, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = col.width

    count = 0
    for record in records:
        ws.append([_cell_value(col.value(record)) for col in cols])
        for cell in ws[ws.max_row]:
            # keep payloads such as "=1+2" as text, not formulas
            if cell.data_type == "f":
                cell.data_type = "s"
        count += 1

    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    return count


def export_filename(now: datetime | None = None) -> str:
    """
    Unique name for a service-generated workbook.

    Embeds a UTC timestamp (to the millisecond) plus a short random token so
    two requests in the same millisecond still get different files.

    Example:
        >>> export_filename()
        'barcodes-20240131T101502123-3f9a1c0d.xlsx'
    """
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%S%f")[:-3]
    return f"barcodes-{stamp}-{uuid.uuid4().hex[:8]}.xlsx"
