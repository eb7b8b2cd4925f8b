from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Set

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.utils.dataframe import dataframe_to_rows
from openpyxl.worksheet.table import Table, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet

from .errors import ApplicationUnavailableError, SheetCapacityError
from .executor import ResultSet
from .query_files import QueryFile

logger = logging.getLogger(__name__)

SAVE_AS = "save-as"
SAVE_IN_PLACE = "save-in-place"

XLSX_MAX_ROWS = 1_048_576
XLSX_MAX_COLS = 16_384
MAX_SHEET_TITLE = 31
MAX_TABLE_NAME = 255
MAX_CELL_TEXT = 32_767
TABLE_STYLE = "TableStyleMedium2"
LABEL_FONT = Font(bold=True)
LABEL_FILL = PatternFill(start_color="FFFF00", end_color="FFFF00", fill_type="solid")
MIN_COLUMN_WIDTH = 8
MAX_COLUMN_WIDTH = 60

_INVALID_SHEET_CHARS_RE = re.compile(r"[\[\]:*?/\\]")
_TABLE_NAME_STRIP_RE = re.compile(r"[^A-Za-z0-9_]")


@dataclass(frozen=True)
class Block:
    script: str
    header_row: int
    columns: List[str]
    row_count: int
    table_name: Optional[str]
    ref: Optional[str]


def sanitize_identifier(stem: str) -> str:
    cleaned = _TABLE_NAME_STRIP_RE.sub("", stem or "")
    return cleaned or "Query"


def unique_table_name(stem: str, used: Set[str]) -> str:
    """Tbl_<stem>_<NNNN>, with the first counter value not already in *used*."""
    base = sanitize_identifier(stem)
    # room for "Tbl_", "_" and at least four counter digits
    base = base[: MAX_TABLE_NAME - 9]
    counter = 1
    while True:
        name = f"Tbl_{base}_{counter:04d}"
        if name.lower() not in used:
            return name
        counter += 1


def sanitize_sheet_title(title: str) -> str:
    cleaned = _INVALID_SHEET_CHARS_RE.sub("_", title).strip("'")
    return (cleaned or "Report")[:MAX_SHEET_TITLE]


def unique_sheet_title(title: str, existing: Iterable[str]) -> str:
    taken = {name.lower() for name in existing}
    base = sanitize_sheet_title(title)
    if base.lower() not in taken:
        return base
    counter = 2
    while True:
        suffix = f"_{counter}"
        candidate = base[: MAX_SHEET_TITLE - len(suffix)] + suffix
        if candidate.lower() not in taken:
            return candidate
        counter += 1


def table_headers(columns: List[str]) -> List[str]:
    """Non-empty, case-insensitively unique header strings for a table."""
    headers: List[str] = []
    seen: Set[str] = set()
    for idx, col in enumerate(columns, start=1):
        name = clean_cell_text(col).strip() or f"Column{idx}"
        candidate = name
        n = 2
        while candidate.lower() in seen:
            candidate = f"{name}{n}"
            n += 1
        seen.add(candidate.lower())
        headers.append(candidate)
    return headers


def clean_cell_text(value: str) -> str:
    return ILLEGAL_CHARACTERS_RE.sub("", value)[:MAX_CELL_TEXT]


def _set_text(ws: Worksheet, row: int, column: int, value: str) -> None:
    if not value:
        return
    cell = ws.cell(row=row, column=column)
    cell.value = value
    if value.startswith("="):
        # keep formula-looking text as plain strings
        cell.data_type = "s"


@dataclass
class SheetSession:
    """The run's sheet plus its write cursor and the workbook's table names."""

    sheet: Worksheet
    used_table_names: Set[str] = field(default_factory=set)
    cursor_row: int = 1
    blocks: List[Block] = field(default_factory=list)

    def ensure_capacity(self, result: ResultSet) -> None:
        # label row, header row, data rows
        last_row = self.cursor_row + 1 + result.row_count
        if last_row > XLSX_MAX_ROWS or result.column_count > XLSX_MAX_COLS:
            raise SheetCapacityError(
                f"block of {result.row_count} row(s) x {result.column_count} column(s) "
                f"starting at row {self.cursor_row} exceeds the sheet limits "
                f"({XLSX_MAX_ROWS} x {XLSX_MAX_COLS})"
            )


def write_block(session: SheetSession, query_file: QueryFile, result: ResultSet) -> Block:
    session.ensure_capacity(result)
    ws = session.sheet

    label = ws.cell(row=session.cursor_row, column=1, value=clean_cell_text(f"Script: {query_file.name}"))
    label.font = LABEL_FONT
    label.fill = LABEL_FILL
    session.cursor_row += 1

    header_row = session.cursor_row
    headers = table_headers(result.columns)
    for col_idx, name in enumerate(headers, start=1):
        _set_text(ws, header_row, col_idx, name)
    session.cursor_row += 1

    if result.row_count:
        rows = dataframe_to_rows(result.frame, index=False, header=False)
        for row_idx, row in enumerate(rows, start=session.cursor_row):
            for col_idx, value in enumerate(row, start=1):
                _set_text(ws, row_idx, col_idx, clean_cell_text(value))
        session.cursor_row += result.row_count

    table_name: Optional[str] = None
    ref: Optional[str] = None
    if result.column_count and result.row_count:
        table_name = unique_table_name(query_file.stem, session.used_table_names)
        ref = f"A{header_row}:{get_column_letter(result.column_count)}{header_row + result.row_count}"
        table = Table(displayName=table_name, ref=ref)
        table.tableStyleInfo = TableStyleInfo(
            name=TABLE_STYLE,
            showFirstColumn=False,
            showLastColumn=False,
            showRowStripes=True,
            showColumnStripes=False,
        )
        ws.add_table(table)
        session.used_table_names.add(table_name.lower())

    session.cursor_row += 1
    block = Block(
        script=query_file.name,
        header_row=header_row,
        columns=headers,
        row_count=result.row_count,
        table_name=table_name,
        ref=ref,
    )
    session.blocks.append(block)
    return block


def autofit_columns(ws: Worksheet) -> None:
    for col_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, max_col=ws.max_column):
        max_len = max(len(str(cell.value)) if cell.value is not None else 0 for cell in col_cells)
        col_letter = get_column_letter(col_cells[0].column)
        ws.column_dimensions[col_letter].width = min(max(max_len + 2, MIN_COLUMN_WIDTH), MAX_COLUMN_WIDTH)


class ReportDocument:
    """One report workbook for one run: new (save-as) or existing (save-in-place)."""

    def __init__(self, workbook: Workbook, sheet: Worksheet, path: Path, save_mode: str) -> None:
        self.workbook = workbook
        self.sheet = sheet
        self.path = path
        self.save_mode = save_mode
        self.closed = False

    @classmethod
    def create(cls, path: Path, sheet_title: str) -> "ReportDocument":
        try:
            wb = Workbook()
        except Exception as exc:
            raise ApplicationUnavailableError(f"Cannot create workbook: {exc}") from exc
        ws = wb.active
        ws.title = sanitize_sheet_title(sheet_title)
        logger.info("[Report] New workbook, sheet '%s' -> %s", ws.title, path)
        return cls(wb, ws, path, SAVE_AS)

    @classmethod
    def open_existing(cls, path: Path, sheet_title: str) -> "ReportDocument":
        try:
            wb = load_workbook(path)
        except Exception as exc:
            raise ApplicationUnavailableError(f"Cannot open workbook {path}: {exc}") from exc
        title = unique_sheet_title(sheet_title, wb.sheetnames)
        ws = wb.create_sheet(title=title)
        logger.info("[Report] Opened %s, appending sheet '%s'", path, title)
        return cls(wb, ws, path, SAVE_IN_PLACE)

    def table_names(self) -> Set[str]:
        names: Set[str] = set()
        for ws in self.workbook.worksheets:
            names.update(name.lower() for name in ws.tables.keys())
        return names

    def new_session(self) -> SheetSession:
        return SheetSession(sheet=self.sheet, used_table_names=self.table_names())

    def persist(self) -> Path:
        if self.save_mode == SAVE_AS:
            target = Path(self.path).expanduser().resolve()
            target.parent.mkdir(parents=True, exist_ok=True)
            if target.exists():
                target.unlink()
                logger.info("[Report] Replaced existing file %s", target)
        else:
            target = Path(self.path)
        self.workbook.save(target)
        self.path = target
        return target

    def close(self) -> None:
        if self.closed:
            return
        try:
            self.workbook.close()
        except Exception as exc:
            logger.warning("[Report] Closing workbook failed: %s", exc)
        self.closed = True
