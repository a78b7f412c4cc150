"""
Export service for ledger data.

Provides functionality to export a listed period (transactions and budget
aggregates) to XLSX and CSV formats.
"""

import csv
import io
from datetime import datetime
from enum import Enum
from typing import cast

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from budgetledger.config import UNCATEGORIZED_KEY
from budgetledger.models import Period, Transaction

from .aggregator import BudgetStatus
from .amounts import to_major
from .coordinator import PeriodView


class ExportFormat(str, Enum):
    """Supported export formats."""

    CSV = "csv"
    XLSX = "xlsx"


TRANSACTION_HEADERS = [
    "ID",
    "Date",
    "Category",
    "Amount",
    "Description",
    "Recurring Template",
]


class ExportService:
    """Service for exporting a period view to various formats."""

    def _category_name(self, view: PeriodView, transaction: Transaction) -> str:
        key = (
            transaction.category_id
            if transaction.category_id is not None
            else UNCATEGORIZED_KEY
        )
        aggregate = view.aggregates.get(key)
        return aggregate.name if aggregate else "Uncategorized"

    def export_to_csv(self, view: PeriodView) -> io.BytesIO:
        """
        Export the transactions of a period to CSV format.

        Args:
            view: Result of listing a period

        Returns:
            BytesIO buffer containing the CSV data
        """
        buffer = io.BytesIO()
        text_buffer = io.StringIO()

        writer = csv.writer(text_buffer)
        writer.writerow(TRANSACTION_HEADERS)

        for transaction in view.transactions:
            writer.writerow(
                [
                    transaction.id,
                    transaction.occurred_on.isoformat(),
                    self._category_name(view, transaction),
                    f"{to_major(transaction.amount)}",
                    transaction.description or "",
                    transaction.template_id or "",
                ]
            )

        # Convert to bytes
        buffer.write(text_buffer.getvalue().encode("utf-8-sig"))  # BOM for Excel
        buffer.seek(0)

        return buffer

    def export_to_xlsx(self, view: PeriodView) -> io.BytesIO:
        """
        Export a period to XLSX format with formatting.

        The workbook has a "Transactions" sheet and a "Budget" sheet.

        Args:
            view: Result of listing a period

        Returns:
            BytesIO buffer containing the XLSX data
        """
        wb = Workbook()
        ws = cast(Worksheet, wb.active)
        ws.title = "Transactions"

        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(
            start_color="4472C4", end_color="4472C4", fill_type="solid"
        )
        income_fill = PatternFill(
            start_color="C6EFCE", end_color="C6EFCE", fill_type="solid"
        )
        expense_fill = PatternFill(
            start_color="FFC7CE", end_color="FFC7CE", fill_type="solid"
        )

        for col, header in enumerate(TRANSACTION_HEADERS, 1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")

        for row_idx, transaction in enumerate(view.transactions, 2):
            ws.cell(row=row_idx, column=1, value=transaction.id)
            ws.cell(row=row_idx, column=2, value=transaction.occurred_on)
            ws.cell(
                row=row_idx, column=3, value=self._category_name(view, transaction)
            )
            ws.cell(row=row_idx, column=4, value=float(to_major(transaction.amount)))
            ws.cell(row=row_idx, column=5, value=transaction.description or "")
            ws.cell(row=row_idx, column=6, value=transaction.template_id)

            fill = income_fill if transaction.amount > 0 else expense_fill
            for col in range(1, len(TRANSACTION_HEADERS) + 1):
                ws.cell(row=row_idx, column=col).fill = fill

        for row in range(2, len(view.transactions) + 2):
            ws.cell(row=row, column=2).number_format = "yyyy-mm-dd"
            ws.cell(row=row, column=4).number_format = "#,##0.00"

        column_widths = [8, 12, 20, 15, 40, 18]
        for col, width in enumerate(column_widths, 1):
            ws.column_dimensions[get_column_letter(col)].width = width

        ws.freeze_panes = "A2"

        self._add_budget_sheet(wb, view)

        buffer = io.BytesIO()
        wb.save(buffer)
        buffer.seek(0)

        return buffer

    def _add_budget_sheet(self, wb: Workbook, view: PeriodView):
        """Add a per-category budget sheet to the workbook."""
        ws = wb.create_sheet(title="Budget")

        header_font = Font(bold=True)
        title_font = Font(bold=True, size=14)
        over_fill = PatternFill(
            start_color="FFC7CE", end_color="FFC7CE", fill_type="solid"
        )
        near_fill = PatternFill(
            start_color="FFEB9C", end_color="FFEB9C", fill_type="solid"
        )

        ws.cell(row=1, column=1, value=f"Budget {view.period.label}").font = title_font
        ws.cell(
            row=2,
            column=1,
            value=f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}",
        )

        headers = ["Category", "Kind", "Count", "Actual", "Target", "Variance", "Status"]
        table_start = 4
        for col, header in enumerate(headers, 1):
            ws.cell(row=table_start, column=col, value=header).font = header_font

        row = table_start
        for row, agg in enumerate(view.aggregates.values(), table_start + 1):
            ws.cell(row=row, column=1, value=agg.name)
            ws.cell(row=row, column=2, value=agg.kind.value if agg.kind else None)
            ws.cell(row=row, column=3, value=agg.count)
            ws.cell(row=row, column=4, value=float(to_major(agg.actual)))
            if agg.target is not None:
                ws.cell(row=row, column=5, value=float(to_major(agg.target)))
            if agg.variance is not None:
                ws.cell(row=row, column=6, value=float(to_major(agg.variance)))
            ws.cell(row=row, column=7, value=agg.status.value if agg.status else None)

            for col in (4, 5, 6):
                ws.cell(row=row, column=col).number_format = "#,##0.00"

            if agg.status == BudgetStatus.OVER_BUDGET:
                ws.cell(row=row, column=7).fill = over_fill
            elif agg.status == BudgetStatus.NEAR_LIMIT:
                ws.cell(row=row, column=7).fill = near_fill

        net = sum(t.amount for t in view.transactions)
        ws.cell(row=row + 2, column=1, value="Net").font = header_font
        ws.cell(row=row + 2, column=4, value=float(to_major(net))).number_format = (
            "#,##0.00"
        )

        for col, width in enumerate([24, 10, 8, 15, 15, 15, 12], 1):
            ws.column_dimensions[get_column_letter(col)].width = width

    def export(self, view: PeriodView, format: ExportFormat) -> io.BytesIO:
        if ExportFormat(format) == ExportFormat.XLSX:
            return self.export_to_xlsx(view)
        return self.export_to_csv(view)

    def get_filename(self, user_id: str, format: ExportFormat, period: Period) -> str:
        """
        Generate a filename for the export.

        Args:
            user_id: Owner of the exported data
            format: Export format
            period: Exported period

        Returns:
            Suggested filename
        """
        date_str = datetime.now().strftime("%Y%m%d")
        date_range = f"{period.start.strftime('%Y%m%d')}-{period.end.strftime('%Y%m%d')}"
        return f"budget_{user_id}_{date_str}_{date_range}.{ExportFormat(format).value}"
