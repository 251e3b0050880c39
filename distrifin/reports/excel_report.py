"""Excel exports for reconciliation runs and collection reports."""

from datetime import datetime
from pathlib import Path
from typing import List, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from distrifin.engine.aggregation import CollectionReport, RouteSummaryRow
from distrifin.engine.models import GlobalSettings, ReconciliationResult
from distrifin.reports.formatting import excel_number_format


class ExcelReportGenerator:
    """Generate formatted Excel workbooks from reconciliation and report data."""

    # Style constants
    HEADER_FILL = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
    HEADER_FONT = Font(name="Calibri", size=11, bold=True, color="FFFFFF")
    MATCHED_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
    UNMATCHED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
    PENDING_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
    TITLE_FONT = Font(name="Calibri", size=16, bold=True, color="1F4E79")
    SUBTITLE_FONT = Font(name="Calibri", size=12, bold=True, color="1F4E79")
    KPI_FONT = Font(name="Calibri", size=14, bold=True)
    THIN_BORDER = Border(
        left=Side(style="thin"),
        right=Side(style="thin"),
        top=Side(style="thin"),
        bottom=Side(style="thin"),
    )

    def __init__(self, settings: Optional[GlobalSettings] = None):
        self.settings = settings or GlobalSettings()
        self.number_format = excel_number_format(self.settings)

    def generate_reconciliation(
        self,
        result: ReconciliationResult,
        output_path: str | Path,
    ) -> Path:
        """
        Generate a reconciliation workbook with 4 tabs.

        Args:
            result: Outcome of a reconciliation run.
            output_path: Path for the output Excel file.

        Returns:
            Path to the generated report.
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        wb = Workbook()

        # Tab 1: Summary
        self._create_reconciliation_summary_tab(wb, result)

        # Tab 2: System matches
        self._create_matched_tab(wb, result)

        # Tab 3: Bank-direct deposits
        self._create_bank_direct_tab(wb, result)

        # Tab 4: Pending cheques nothing matched
        self._create_outstanding_tab(wb, result)

        wb.save(str(output_path))
        return output_path

    def generate_collection_report(
        self,
        report: CollectionReport,
        output_path: str | Path,
        route_summary: Optional[List[RouteSummaryRow]] = None,
    ) -> Path:
        """
        Export a collection report table, plus a route summary tab when given.

        Args:
            report: Filtered report rows and total.
            output_path: Path for the output Excel file.
            route_summary: Per-route totals to add as a second tab.

        Returns:
            Path to the generated report.
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        wb = Workbook()
        self._create_report_tab(wb, report)
        if route_summary is not None:
            self._create_route_summary_tab(wb, route_summary)

        wb.save(str(output_path))
        return output_path

    def _create_reconciliation_summary_tab(self, wb: Workbook, result: ReconciliationResult) -> None:
        """Create the Summary dashboard tab."""
        ws = wb.active
        ws.title = "Summary"
        ws.sheet_properties.tabColor = "1F4E79"

        # Title
        ws.merge_cells("A1:D1")
        ws["A1"] = "Cheque Reconciliation Report"
        ws["A1"].font = self.TITLE_FONT
        ws["A1"].alignment = Alignment(horizontal="center")

        ws.merge_cells("A2:D2")
        ws["A2"] = f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"
        ws["A2"].alignment = Alignment(horizontal="center")

        kpis = [
            ("Match Rate", f"{result.match_rate:.1f}%"),
            ("System Matches", str(len(result.matches))),
            ("Bank-Direct Deposits", str(len(result.bank_direct))),
            ("Outstanding Cheques", str(len(result.outstanding))),
            ("Ignored Lines", str(result.ignored_count)),
        ]

        ws["A4"] = "Key Performance Indicators"
        ws["A4"].font = self.SUBTITLE_FONT

        for i, (label, value) in enumerate(kpis, start=5):
            ws[f"A{i}"] = label
            ws[f"A{i}"].font = Font(bold=True)
            ws[f"B{i}"] = value
            ws[f"B{i}"].font = self.KPI_FONT

            if label in ("Bank-Direct Deposits", "Outstanding Cheques") and int(value) > 0:
                ws[f"B{i}"].fill = self.UNMATCHED_FILL

        row = len(kpis) + 7
        ws[f"A{row}"] = "Amount Summary"
        ws[f"A{row}"].font = self.SUBTITLE_FONT
        row += 1

        amounts = [
            ("Matched Amount", result.matched_amount),
            ("Bank-Direct Amount", result.bank_direct_amount),
            ("Outstanding Amount", sum(c.amount for c in result.outstanding)),
        ]
        for label, amount in amounts:
            ws[f"A{row}"] = label
            ws[f"A{row}"].font = Font(bold=True)
            ws[f"B{row}"] = float(amount)
            ws[f"B{row}"].number_format = self.number_format
            row += 1

        ws.column_dimensions["A"].width = 25
        ws.column_dimensions["B"].width = 20

    def _create_matched_tab(self, wb: Workbook, result: ReconciliationResult) -> None:
        """Create the Matched tab: cheque paired with its statement line."""
        ws = wb.create_sheet("Matched")
        ws.sheet_properties.tabColor = "00B050"

        headers = [
            "Collection ID", "Customer ID", "Cheque No", "Bank", "Realize Date",
            "Amount", "Statement Date", "Statement Description", "Reason", "Action",
        ]
        self._write_headers(ws, headers)

        for i, match in enumerate(result.matches, start=2):
            cheque = match.collection
            item = match.item

            ws[f"A{i}"] = cheque.collection_id
            ws[f"B{i}"] = cheque.customer_id
            ws[f"C{i}"] = cheque.cheque_number or ""
            ws[f"D{i}"] = cheque.bank or ""
            ws[f"E{i}"] = cheque.realize_date.isoformat() if cheque.realize_date else ""
            ws[f"F{i}"] = float(cheque.amount)
            ws[f"F{i}"].number_format = self.number_format
            ws[f"G{i}"] = item.date.strftime("%Y-%m-%d")
            ws[f"H{i}"] = item.description[:50]
            ws[f"I{i}"] = match.match_reason
            ws[f"J{i}"] = "Will mark as Realized"

            for col in range(1, len(headers) + 1):
                ws.cell(row=i, column=col).fill = self.MATCHED_FILL

        self._auto_width(ws, headers)

    def _create_bank_direct_tab(self, wb: Workbook, result: ReconciliationResult) -> None:
        """Create the Bank Direct tab: deposits with no cheque on record."""
        ws = wb.create_sheet("Bank Direct")
        ws.sheet_properties.tabColor = "FF0000"

        headers = ["Date", "Cheque No", "Credit", "Description", "Reference", "Bank", "Branch"]
        self._write_headers(ws, headers)

        for i, item in enumerate(result.bank_direct, start=2):
            ws[f"A{i}"] = item.date.strftime("%Y-%m-%d")
            ws[f"B{i}"] = item.cheque_number or ""
            ws[f"C{i}"] = float(item.credit)
            ws[f"C{i}"].number_format = self.number_format
            ws[f"D{i}"] = item.description[:80]
            ws[f"E{i}"] = item.reference or ""
            ws[f"F{i}"] = item.bank or ""
            ws[f"G{i}"] = item.branch or ""

            for col in range(1, len(headers) + 1):
                ws.cell(row=i, column=col).fill = self.UNMATCHED_FILL

        self._auto_width(ws, headers)

    def _create_outstanding_tab(self, wb: Workbook, result: ReconciliationResult) -> None:
        """Create the Outstanding tab: pending cheques still waiting to clear."""
        ws = wb.create_sheet("Outstanding")
        ws.sheet_properties.tabColor = "FFC000"

        headers = ["Collection ID", "Customer ID", "Cheque No", "Bank", "Realize Date", "Amount"]
        self._write_headers(ws, headers)

        for i, cheque in enumerate(result.outstanding, start=2):
            ws[f"A{i}"] = cheque.collection_id
            ws[f"B{i}"] = cheque.customer_id
            ws[f"C{i}"] = cheque.cheque_number or ""
            ws[f"D{i}"] = cheque.bank or ""
            ws[f"E{i}"] = cheque.realize_date.isoformat() if cheque.realize_date else ""
            ws[f"F{i}"] = float(cheque.amount)
            ws[f"F{i}"].number_format = self.number_format

            for col in range(1, len(headers) + 1):
                ws.cell(row=i, column=col).fill = self.PENDING_FILL

        self._auto_width(ws, headers)

    def _create_report_tab(self, wb: Workbook, report: CollectionReport) -> None:
        """Create the report table with a closing total row."""
        ws = wb.active
        ws.title = "Report"

        headers = [
            "Date", "Business", "Route", "Type", "Status",
            "Cheque No", "Bank", "Realize Date", "Amount",
        ]
        self._write_headers(ws, headers)

        row = 2
        for entry in report.rows:
            c = entry.collection
            ws[f"A{row}"] = c.collection_date.isoformat() if c.collection_date else ""
            ws[f"B{row}"] = entry.business_name
            ws[f"C{row}"] = entry.route_name
            ws[f"D{row}"] = c.payment_type.value
            ws[f"E{row}"] = c.status.value
            ws[f"F{row}"] = c.cheque_number or ""
            ws[f"G{row}"] = c.bank or ""
            ws[f"H{row}"] = c.realize_date.isoformat() if c.realize_date else ""
            ws[f"I{row}"] = float(c.amount)
            ws[f"I{row}"].number_format = self.number_format
            row += 1

        ws[f"H{row}"] = f"Total ({report.count})"
        ws[f"H{row}"].font = Font(bold=True)
        ws[f"I{row}"] = float(report.total)
        ws[f"I{row}"].font = Font(bold=True)
        ws[f"I{row}"].number_format = self.number_format

        self._auto_width(ws, headers)

    def _create_route_summary_tab(self, wb: Workbook, rows: List[RouteSummaryRow]) -> None:
        """Create the Route Summary tab."""
        ws = wb.create_sheet("Route Summary")

        headers = ["Route", "Customers", "Collections", "Total"]
        self._write_headers(ws, headers)

        for i, summary in enumerate(rows, start=2):
            ws[f"A{i}"] = summary.route_name
            ws[f"B{i}"] = summary.customer_count
            ws[f"C{i}"] = summary.collection_count
            ws[f"D{i}"] = float(summary.total)
            ws[f"D{i}"].number_format = self.number_format

        self._auto_width(ws, headers)

    def _write_headers(self, ws, headers: List[str]) -> None:
        """Write styled header row."""
        for col_idx, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col_idx, value=header)
            cell.font = self.HEADER_FONT
            cell.fill = self.HEADER_FILL
            cell.alignment = Alignment(horizontal="center")
            cell.border = self.THIN_BORDER

        # Freeze top row
        ws.freeze_panes = "A2"

        # Auto-filter
        ws.auto_filter.ref = f"A1:{get_column_letter(len(headers))}1"

    def _auto_width(self, ws, headers: List[str]) -> None:
        """Auto-adjust column widths."""
        for col_idx, header in enumerate(headers, start=1):
            col_letter = get_column_letter(col_idx)
            max_len = len(header) + 4
            ws.column_dimensions[col_letter].width = min(max(max_len, 12), 35)
