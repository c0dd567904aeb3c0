"""
Tests for reading upload files, row validation, templates and exports
"""

import io
import pytest
from datetime import datetime, timezone

from openpyxl import Workbook, load_workbook

from loan_recovery.cases import Case, ExtensionMap
from loan_recovery.column_mapping import ColumnConfiguration, IDENTIFIER_KEY
from loan_recovery.errors import (
    ImportFileError, MissingIdentifierColumn, NoColumnsMatched, ValidationError
)
from loan_recovery.imports import (
    check_row, export_cases, generate_template, parse_import_file, parse_rows,
    read_sheet, validate_case_row
)


def make_config(column_name, display_name, order):
    now = datetime.now(timezone.utc)
    return ColumnConfiguration(
        id=column_name, created_at=now, updated_at=now, tenant_id="t1",
        column_name=column_name, display_name=display_name, column_order=order
    )


@pytest.fixture
def configurations():
    return [
        make_config("loanId", "Loan ID", 1),
        make_config("customerName", "Customer Name", 2),
        make_config("dpd", "DPD", 3),
        make_config("region", "Region", 4),
    ]


def xlsx_bytes(rows):
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestReadSheet:
    """Raw table extraction"""

    def test_csv_bytes(self):
        table = read_sheet(b"EMPID,Loan ID\nEMP001,LN1\n", file_format="csv")
        assert table == [["EMPID", "Loan ID"], ["EMP001", "LN1"]]

    def test_csv_with_bom(self):
        table = read_sheet(b"\xef\xbb\xbfEMPID,Loan ID\n", file_format="csv")
        assert table[0][0] == "EMPID"

    def test_xlsx_bytes(self):
        table = read_sheet(xlsx_bytes([["EMPID", "Loan ID"], ["EMP001", "LN1"]]), file_format="xlsx")
        assert table == [["EMPID", "Loan ID"], ["EMP001", "LN1"]]

    def test_format_from_path(self, tmp_path):
        path = tmp_path / "cases.csv"
        path.write_text("EMPID,Loan ID\nEMP001,LN1\n", encoding="utf-8")
        assert read_sheet(path)[1] == ["EMP001", "LN1"]

    def test_corrupt_xlsx(self):
        with pytest.raises(ImportFileError):
            read_sheet(b"not a workbook", file_format="xlsx")

    def test_unsupported_format(self):
        with pytest.raises(ImportFileError, match="Unsupported"):
            read_sheet(b"", file_format="ods")

    def test_bytes_need_format(self):
        with pytest.raises(ImportFileError):
            read_sheet(b"EMPID\n")


class TestParseRows:
    """Header resolution then row mapping"""

    def test_rows_keyed_by_internal_field(self, configurations):
        parsed = parse_rows([
            ["EMPID", "Loan ID", "Customer Name", "Branch"],
            ["EMP001", "LN1", "Asha", "Pune"],
        ], configurations)

        assert parsed.rows == [{IDENTIFIER_KEY: "EMP001", "loanId": "LN1", "customerName": "Asha"}]
        assert parsed.ignored_headers == ["Branch"]

    def test_blank_rows_dropped_and_missing_identifier_skipped(self, configurations):
        parsed = parse_rows([
            ["EMPID", "Loan ID"],
            [None, None],
            ["", "LN2"],
            ["EMP001", "LN1"],
        ], configurations)

        assert [r["loanId"] for r in parsed.rows] == ["LN1"]
        assert parsed.skipped_rows == 1

    def test_header_problems_fail_first(self, configurations):
        with pytest.raises(MissingIdentifierColumn):
            parse_rows([["Loan ID", "EMPID"], ["LN1", "EMP001"]], configurations)
        with pytest.raises(NoColumnsMatched):
            parse_rows([["EMPID", "Foo"], ["EMP001", "x"]], configurations)

    def test_no_data_rows(self, configurations):
        with pytest.raises(ImportFileError, match="no data rows"):
            parse_rows([["EMPID", "Loan ID"]], configurations)

    def test_empty_table(self, configurations):
        with pytest.raises(ImportFileError):
            parse_rows([], configurations)

    def test_parse_xlsx_file(self, configurations):
        data = xlsx_bytes([
            ["EMPID", "Loan ID", "Customer Name", "DPD", "Region"],
            ["EMP001", "LN1", "Asha", 45, "West"],
        ])
        parsed = parse_import_file(data, configurations, file_format="xlsx")

        assert parsed.rows[0] == {
            IDENTIFIER_KEY: "EMP001", "loanId": "LN1", "customerName": "Asha",
            "dpd": "45", "region": "West",
        }


class TestValidateCaseRow:
    """Per-row checks"""

    def test_valid_row(self):
        row = {IDENTIFIER_KEY: "EMP001", "loanId": "LN1", "customerName": "Asha",
               "mobileNo": "98765 43210", "dpd": "30"}
        assert validate_case_row(row) == []

    def test_collects_every_error(self):
        row = {IDENTIFIER_KEY: "", "loanId": "", "customerName": "Asha",
               "mobileNo": "12345", "dpd": "thirty"}
        errors = validate_case_row(row)

        assert "EMPID is required" in errors
        assert "loanId is required" in errors
        assert "Invalid mobile number format" in errors
        assert "DPD must be a number" in errors

    def test_check_row_raises(self):
        with pytest.raises(ValidationError, match="customerName is required"):
            check_row({IDENTIFIER_KEY: "EMP001", "loanId": "LN1"})

    def test_required_columns_configurable(self):
        row = {IDENTIFIER_KEY: "EMP001", "loanId": "LN1"}
        assert validate_case_row(row, required_columns=["loanId"]) == []


class TestTemplateAndExport:
    """Workbooks written with openpyxl"""

    def test_template_headers_and_samples(self, configurations):
        workbook = load_workbook(io.BytesIO(generate_template(configurations)))
        rows = list(workbook.active.iter_rows(values_only=True))

        assert rows[0] == ("EMPID", "Loan ID", "Customer Name", "DPD", "Region")
        assert rows[1][0] == "EMP001"
        assert rows[1][4] == "n/a"
        assert len(rows) == 3

    def test_template_requires_loan_and_customer_columns(self):
        with pytest.raises(ValidationError, match="required columns"):
            generate_template([make_config("dpd", "DPD", 1)])

    def test_export_uses_display_labels(self, configurations):
        now = datetime.now(timezone.utc)
        case = Case(id="c1", created_at=now, updated_at=now, tenant_id="t1",
                    loan_id="LN1", customer_name="Asha", dpd=12,
                    extension=ExtensionMap({"region": "West"}))

        workbook = load_workbook(io.BytesIO(export_cases([case], configurations)))
        rows = list(workbook.active.iter_rows(values_only=True))

        assert rows[0] == ("Loan ID", "Customer Name", "DPD", "Region")
        assert rows[1] == ("LN1", "Asha", 12, "West")
