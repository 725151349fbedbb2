"""
    Copyright (c) 2025 Bc. Dominik Sabota, VUT FIT Brno

    ptcarvingsort - PhotoRec carving output sorter and reporter

    This program is free software: you can redistribute it and/or modify
    it under the terms of the GNU General Public License as published by
    the Free Software Foundation, either version 3 of the License.
    See <https://www.gnu.org/licenses/> for details.
"""

from pathlib import Path
from typing import Iterable, List, Union

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Font

from .models import ByteRun, ProcessedRecord

SHEET_TITLE = "Carved Files"
HEADERS     = ["S/N", "Filename", "Declared Filename", "File Ext",
               "File Size", "Content Hash", "Byte Runs"]
WIDTHS      = [8, 24, 24, 10, 14, 66, 52]


def byte_run_summary(byte_runs: Iterable[ByteRun]) -> str:
    """Render byte runs one per line, in manifest order, without a trailing newline."""
    return "\n".join(
        f"offset='{run.offset}' img_offset='{run.img_offset}' len='{run.length}'"
        for run in byte_runs
    )


def _clean(value):
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


class ReportWriter:
    """
    Spreadsheet with one row per processed record.

    Use as a context manager; the workbook is closed on every exit path,
    whether or not save() was reached.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path   = Path(path)
        self.rows: List[ProcessedRecord] = []
        self._wb    = Workbook()
        self._ws    = self._wb.active
        self._ws.title = SHEET_TITLE
        self._write_header()

    def __enter__(self) -> "ReportWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __len__(self) -> int:
        return len(self.rows)

    def _write_header(self) -> None:
        bold = Font(bold=True)
        for col, (title, width) in enumerate(zip(HEADERS, WIDTHS), 1):
            cell = self._ws.cell(row=1, column=col, value=title)
            cell.font = bold
            self._ws.column_dimensions[cell.column_letter].width = width
        self._ws.freeze_panes = "A2"

    def append(self, record: ProcessedRecord) -> None:
        self._ws.append([_clean(v) for v in record.as_row()])
        row = self._ws.max_row
        # Manifest text is data, never a formula.
        for cell in self._ws[row]:
            if cell.data_type == "f":
                cell.data_type = "s"
        self._ws.cell(row=row, column=len(HEADERS)).alignment = Alignment(
            vertical="top", wrap_text=True)
        self.rows.append(record)

    def save(self) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._wb.save(str(self.path))
        return self.path

    def close(self) -> None:
        self._wb.close()
