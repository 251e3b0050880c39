"""Tests for the Excel report generator."""

from datetime import date, datetime
from decimal import Decimal

import pytest
from openpyxl import load_workbook

from distrifin.engine.aggregation import ReportBuilder, ReportFilter
from distrifin.engine.matcher import ChequeMatcher
from distrifin.engine.models import (
    Collection,
    CollectionStatus,
    Customer,
    GlobalSettings,
    PaymentType,
    ReconciliationResult,
    Route,
    StatementItem,
)
from distrifin.reports.excel_report import ExcelReportGenerator
from distrifin.reports.formatting import excel_number_format, format_currency


def make_cheque(id: str, number: str, amount: str, customer_id: str = "C001") -> Collection:
    """Helper to create pending test cheques."""
    return Collection(
        collection_id=id,
        customer_id=customer_id,
        payment_type=PaymentType.CHEQUE,
        amount=Decimal(amount),
        status=CollectionStatus.PENDING,
        collection_date=date(2025, 1, 10),
        cheque_number=number,
        bank="BOC",
        realize_date=date(2025, 1, 20),
    )


def make_item(id: str, credit: str, cheque: str = None, debit: str = "0") -> StatementItem:
    """Helper to create test statement lines."""
    return StatementItem(
        id=id,
        date=datetime(2025, 1, 20),
        description=f"CHQ DEPOSIT {cheque or ''}",
        credit=Decimal(credit),
        debit=Decimal(debit),
        cheque_number=cheque,
    )


@pytest.fixture
def sample_result():
    """One match, one bank-direct deposit, one outstanding cheque, one debit."""
    collections = [
        make_cheque("CL1", "001", "5000"),
        make_cheque("CL2", "002", "3000"),
    ]
    items = [
        make_item("S1", "5000", "001"),
        make_item("S2", "2500", "900"),
        make_item("S3", "0", debit="150"),
    ]
    return ChequeMatcher().match(collections, items)


@pytest.fixture
def sample_report():
    collections = [
        Collection("CL1", "C001", PaymentType.CASH, Decimal("1000"),
                   CollectionStatus.RECEIVED, date(2025, 1, 10)),
        make_cheque("CL2", "002", "3000", customer_id="C002"),
    ]
    customers = [
        Customer("C001", "City Grocers", route_id="R01"),
        Customer("C002", "Smith Supermarket", route_id="R02"),
    ]
    routes = [Route("R01", "Colombo Central"), Route("R02", "Kandy Line")]
    return ReportBuilder(collections, customers, routes)


class TestReconciliationWorkbook:
    """Test the reconciliation workbook."""

    def test_generate_creates_file(self, tmp_path, sample_result):
        output = tmp_path / "recon.xlsx"
        result_path = ExcelReportGenerator().generate_reconciliation(sample_result, output)

        assert result_path.exists()
        assert result_path.suffix == ".xlsx"

    def test_report_has_four_tabs(self, tmp_path, sample_result):
        output = tmp_path / "recon.xlsx"
        ExcelReportGenerator().generate_reconciliation(sample_result, output)

        wb = load_workbook(output)
        assert wb.sheetnames == ["Summary", "Matched", "Bank Direct", "Outstanding"]

    def test_summary_tab_has_kpis(self, tmp_path, sample_result):
        output = tmp_path / "recon.xlsx"
        ExcelReportGenerator().generate_reconciliation(sample_result, output)

        ws = load_workbook(output)["Summary"]
        assert ws["A1"].value == "Cheque Reconciliation Report"

        kpis = {ws[f"A{row}"].value: ws[f"B{row}"].value for row in range(5, 10)}
        assert kpis["Match Rate"] == "50.0%"
        assert kpis["System Matches"] == "1"
        assert kpis["Bank-Direct Deposits"] == "1"
        assert kpis["Outstanding Cheques"] == "1"
        assert kpis["Ignored Lines"] == "1"

    def test_matched_tab(self, tmp_path, sample_result):
        output = tmp_path / "recon.xlsx"
        ExcelReportGenerator().generate_reconciliation(sample_result, output)

        ws = load_workbook(output)["Matched"]
        assert ws["A1"].value == "Collection ID"
        assert ws["A2"].value == "CL1"
        assert ws["C2"].value == "001"
        assert ws["F2"].value == 5000
        assert ws["A3"].value is None
        assert ws.freeze_panes == "A2"

    def test_bank_direct_tab(self, tmp_path, sample_result):
        output = tmp_path / "recon.xlsx"
        ExcelReportGenerator().generate_reconciliation(sample_result, output)

        ws = load_workbook(output)["Bank Direct"]
        assert ws["A1"].value == "Date"
        assert ws["B2"].value == "900"
        assert ws["C2"].value == 2500

    def test_outstanding_tab(self, tmp_path, sample_result):
        output = tmp_path / "recon.xlsx"
        ExcelReportGenerator().generate_reconciliation(sample_result, output)

        ws = load_workbook(output)["Outstanding"]
        assert ws["A2"].value == "CL2"
        assert ws["F2"].value == 3000

    def test_empty_result(self, tmp_path):
        output = tmp_path / "empty.xlsx"
        result_path = ExcelReportGenerator().generate_reconciliation(ReconciliationResult(), output)

        wb = load_workbook(result_path)
        assert len(wb.sheetnames) == 4
        assert wb["Matched"]["A2"].value is None

    def test_output_directory_created(self, tmp_path, sample_result):
        output = tmp_path / "subdir" / "nested" / "recon.xlsx"
        assert ExcelReportGenerator().generate_reconciliation(sample_result, output).exists()

    def test_number_formatting_uses_currency(self, tmp_path, sample_result):
        output = tmp_path / "recon.xlsx"
        settings = GlobalSettings(currency_code="USD")
        ExcelReportGenerator(settings).generate_reconciliation(sample_result, output)

        ws = load_workbook(output)["Matched"]
        assert ws["F2"].number_format == '"USD" #,##0.00'


class TestCollectionReportWorkbook:

    def test_report_tab(self, tmp_path, sample_report):
        output = tmp_path / "report.xlsx"
        report = sample_report.build(ReportFilter())
        ExcelReportGenerator().generate_collection_report(report, output)

        wb = load_workbook(output)
        assert wb.sheetnames == ["Report"]

        ws = wb["Report"]
        assert ws["A1"].value == "Date"
        assert ws["I1"].value == "Amount"
        assert ws["B2"].value in ("City Grocers", "Smith Supermarket")
        assert ws["H4"].value == "Total (2)"
        assert ws["I4"].value == 4000

    def test_route_summary_tab(self, tmp_path, sample_report):
        output = tmp_path / "report.xlsx"
        ExcelReportGenerator().generate_collection_report(
            sample_report.build(),
            output,
            route_summary=sample_report.route_summary(),
        )

        ws = load_workbook(output)["Route Summary"]
        rows = {ws[f"A{r}"].value: ws[f"D{r}"].value for r in range(2, 4)}
        assert rows == {"Colombo Central": 1000, "Kandy Line": 3000}

    def test_empty_report_has_total_row(self, tmp_path, sample_report):
        output = tmp_path / "report.xlsx"
        report = sample_report.build(ReportFilter(query="nobody"))
        ExcelReportGenerator().generate_collection_report(report, output)

        ws = load_workbook(output)["Report"]
        assert ws["H2"].value == "Total (0)"
        assert ws["I2"].value == 0


class TestFormatting:

    def test_format_currency_default(self):
        assert format_currency(Decimal("5000")) == "LKR 5,000.00"

    def test_format_currency_settings(self):
        settings = GlobalSettings(currency_code="USD")
        assert format_currency(Decimal("1234567.891"), settings) == "USD 1,234,567.89"

    def test_excel_number_format(self):
        assert excel_number_format() == '"LKR" #,##0.00'
