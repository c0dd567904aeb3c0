"""
Spreadsheet Import & Export Module

Reads case upload files (.xlsx via openpyxl, .csv), resolves their header row
through the column mapping, validates individual rows, and writes upload
templates and case exports.
"""

import csv
import io
import re
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Sequence, Union

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill, Alignment
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

from .cases import Case, FIELD_MAP
from .column_mapping import (
    ColumnConfiguration, ColumnMapping, IDENTIFIER_KEY, resolve_headers
)
from .errors import ImportFileError, ValidationError
from .logging_config import get_logger


logger = get_logger("loan_recovery.imports")

ImportSource = Union[str, Path, bytes, BinaryIO]

REQUIRED_COLUMNS = ("loanId", "customerName")

SAMPLE_ROWS = [
    {
        IDENTIFIER_KEY: "EMP001", "customerName": "Rajesh Kumar", "loanId": "LN001234567",
        "loanAmount": "500000", "mobileNo": "9876543210", "dpd": "45",
        "outstandingAmount": "450000", "emiAmount": "15000", "pendingDues": "75000",
        "address": "123 MG Road, Sector 15, Gurgaon", "branchName": "Gurgaon Branch",
        "loanType": "Personal Loan", "remarks": "Cooperative customer",
    },
    {
        IDENTIFIER_KEY: "EMP002", "customerName": "Sunita Sharma", "loanId": "LN002345678",
        "loanAmount": "350000", "mobileNo": "9876543220", "dpd": "30",
        "outstandingAmount": "195000", "emiAmount": "12000", "pendingDues": "36000",
        "address": "456 Park Street, Mumbai", "branchName": "Mumbai Branch",
        "loanType": "Home Loan", "remarks": "Needs follow-up",
    },
]


@dataclass
class ParsedImport:
    """Rows of an upload file keyed by internal field key"""
    rows: List[Dict[str, str]]
    mapping: ColumnMapping
    skipped_rows: int = 0

    @property
    def ignored_headers(self) -> List[str]:
        return self.mapping.ignored_headers


def _detect_format(source: ImportSource, file_format: Optional[str]) -> str:
    if file_format:
        return file_format.lower().lstrip(".")
    if isinstance(source, (str, Path)):
        return Path(source).suffix.lower().lstrip(".")
    raise ImportFileError("file_format is required when reading from bytes or a stream")


def _read_xlsx(source: ImportSource) -> List[List[Any]]:
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    workbook = load_workbook(source, read_only=True, data_only=True)
    try:
        sheet = workbook.worksheets[0]
        return [list(row) for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def _read_csv(source: ImportSource) -> List[List[Any]]:
    if isinstance(source, (str, Path)):
        with open(source, newline="", encoding="utf-8-sig") as handle:
            return [row for row in csv.reader(handle)]
    if isinstance(source, bytes):
        text = source.decode("utf-8-sig")
    else:
        text = source.read().decode("utf-8-sig")
    return [row for row in csv.reader(io.StringIO(text))]


def read_sheet(source: ImportSource, file_format: Optional[str] = None) -> List[List[Any]]:
    """Read the first sheet of an upload file as a list of raw rows"""
    fmt = _detect_format(source, file_format)
    try:
        if fmt == "xlsx":
            return _read_xlsx(source)
        if fmt == "csv":
            return _read_csv(source)
    except (OSError, ValueError, KeyError, InvalidFileException, zipfile.BadZipFile) as exc:
        raise ImportFileError(f"Failed to read upload file: {exc}") from exc
    raise ImportFileError(f"Unsupported upload format: {fmt}")


def _is_blank(row: Sequence[Any]) -> bool:
    return all(cell is None or str(cell).strip() == "" for cell in row)


def parse_rows(table: Sequence[Sequence[Any]],
               configurations: Sequence[ColumnConfiguration],
               identifier_header: str = IDENTIFIER_KEY) -> ParsedImport:
    """
    Map a raw table (header row first) to import records.

    The header row is resolved before any data row is looked at. Blank rows
    and rows without an identifier are skipped.
    """
    if not table:
        raise ImportFileError("Upload file is empty")

    mapping = resolve_headers(configurations, list(table[0]), identifier_header)

    rows = []
    skipped = 0
    for raw in table[1:]:
        if not raw or _is_blank(raw):
            continue
        record = mapping.map_row(raw)
        if not record[IDENTIFIER_KEY]:
            skipped += 1
            continue
        rows.append(record)

    if not rows:
        raise ImportFileError("Upload file has no data rows")

    logger.info("Parsed %d rows from upload (%d skipped, %d headers ignored)",
                len(rows), skipped, len(mapping.ignored_headers))
    return ParsedImport(rows=rows, mapping=mapping, skipped_rows=skipped)


def parse_import_file(source: ImportSource,
                      configurations: Sequence[ColumnConfiguration],
                      file_format: Optional[str] = None,
                      identifier_header: str = IDENTIFIER_KEY) -> ParsedImport:
    """Read an upload file and map its rows to internal field keys"""
    return parse_rows(read_sheet(source, file_format), configurations, identifier_header)


def validate_case_row(row: Dict[str, Any],
                      required_columns: Sequence[str] = REQUIRED_COLUMNS) -> List[str]:
    """Return the validation errors for one mapped row (empty when valid)"""
    errors = []
    if not str(row.get(IDENTIFIER_KEY) or "").strip():
        errors.append(f"{IDENTIFIER_KEY} is required")

    for column in required_columns:
        if not str(row.get(column) or "").strip():
            errors.append(f"{column} is required")

    mobile = str(row.get("mobileNo") or "")
    if mobile and not re.fullmatch(r"\d{10}", re.sub(r"\D", "", mobile)):
        errors.append("Invalid mobile number format")

    dpd = str(row.get("dpd") or "").strip()
    if dpd and not re.fullmatch(r"[+-]?\d+", dpd):
        errors.append("DPD must be a number")

    return errors


def check_row(row: Dict[str, Any], required_columns: Sequence[str] = REQUIRED_COLUMNS) -> None:
    """Raise ValidationError carrying every problem in the row"""
    errors = validate_case_row(row, required_columns)
    if errors:
        raise ValidationError("; ".join(errors))


def _style_header(sheet, headers: Sequence[str]) -> None:
    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
    for col_idx, header in enumerate(headers, 1):
        cell = sheet.cell(row=1, column=col_idx)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center")
        sheet.column_dimensions[get_column_letter(col_idx)].width = max(len(header) + 2, 15)


def _workbook_bytes(workbook: Workbook) -> bytes:
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def generate_template(configurations: Sequence[ColumnConfiguration]) -> bytes:
    """Upload template: EMPID followed by the configured display names, plus sample rows"""
    keys = [c.column_name for c in configurations]
    missing = [column for column in REQUIRED_COLUMNS if column not in keys]
    if missing:
        raise ValidationError(
            f"Template generation failed: required columns {missing} are missing from configuration"
        )

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Cases Template"

    headers = [IDENTIFIER_KEY] + [c.display_name for c in configurations]
    sheet.append(headers)
    for sample in SAMPLE_ROWS:
        sheet.append([sample[IDENTIFIER_KEY]] + [sample.get(key, "n/a") for key in keys])
    _style_header(sheet, headers)
    return _workbook_bytes(workbook)


def case_value(case: Case, column_name: str) -> Any:
    """Value of an import column on a stored case"""
    attribute = FIELD_MAP.get(column_name)
    if attribute is not None:
        return getattr(case, attribute)
    return case.extension.get(column_name)


def export_cases(cases: Sequence[Case], configurations: Sequence[ColumnConfiguration]) -> bytes:
    """Write cases to a workbook using the key -> label direction of the mapping"""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Customer Cases"

    headers = [c.display_name for c in configurations]
    sheet.append(headers)
    for case in cases:
        row = []
        for config in configurations:
            value = case_value(case, config.column_name)
            row.append("" if value is None else value)
        sheet.append(row)
    _style_header(sheet, headers)
    return _workbook_bytes(workbook)
