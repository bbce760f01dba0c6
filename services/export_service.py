"""
Export service: render standardized rows for copy/download.

Two formats:
    - Tab text: header row + one row per record, for clipboard paste
    - Excel: same table with a styled header and status highlighting
"""

from io import BytesIO
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font, Border, Side, PatternFill
from openpyxl.utils import get_column_letter
import structlog

from models.review import RowStatus, StandardizedRow

logger = structlog.get_logger(__name__)

# Status cell fills
STATUS_FILLS = {
    RowStatus.STANDARDIZED.value: PatternFill("solid", start_color="C6EFCE"),
    RowStatus.AUTO_MATCHED.value: PatternFill("solid", start_color="DDEBF7"),
    RowStatus.ADDED.value: PatternFill("solid", start_color="FFF2CC"),
    RowStatus.NO_MATCH.value: PatternFill("solid", start_color="FFC7CE"),
    RowStatus.SKIPPED.value: PatternFill("solid", start_color="EDEDED"),
}

MAX_COLUMN_WIDTH = 50


def export_headers(rows: list[StandardizedRow]) -> list[str]:
    """Column order: first appearance across rows."""
    headers: list[str] = []
    for row in rows:
        for key in row:
            if key not in headers:
                headers.append(key)
    return headers


def _clean_cell(value: Optional[str]) -> str:
    """Tabs and newlines would break the table shape."""
    if value is None:
        return ""
    return str(value).replace("\t", " ").replace("\r", " ").replace("\n", " ")


class ExportService:
    """Service for rendering standardized results."""

    def export_tsv(self, rows: list[StandardizedRow]) -> str:
        """
        Render rows as tab-separated text.

        Args:
            rows: Standardized rows

        Returns:
            Tab-joined header line plus one line per row; empty string for no rows
        """
        if not rows:
            return ""

        headers = export_headers(rows)
        lines = ["\t".join(headers)]
        for row in rows:
            lines.append("\t".join(_clean_cell(row.get(h, "")) for h in headers))

        logger.info("results_exported", format="tsv", rows=len(rows), columns=len(headers))
        return "\n".join(lines)

    def export_excel(self, rows: list[StandardizedRow]) -> BytesIO:
        """
        Render rows as an Excel workbook.

        Returns:
            BytesIO containing the xlsx file
        """
        headers = export_headers(rows)

        wb = Workbook()
        ws = wb.active
        ws.title = "Standardized"

        # Styles
        bold_font = Font(bold=True)
        thin_border = Border(
            bottom=Side(style="thin", color="000000")
        )

        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = bold_font
            cell.border = thin_border

        for row_num, row in enumerate(rows, start=2):
            for col, header in enumerate(headers, start=1):
                value = row.get(header, "")
                cell = ws.cell(row=row_num, column=col, value=value)
                if header.startswith("Status ") and value in STATUS_FILLS:
                    cell.fill = STATUS_FILLS[value]

        for col, header in enumerate(headers, start=1):
            longest = max([len(header)] + [len(str(r.get(header, ""))) for r in rows])
            ws.column_dimensions[get_column_letter(col)].width = min(longest + 2, MAX_COLUMN_WIDTH)

        ws.freeze_panes = "A2"

        logger.info("results_exported", format="xlsx", rows=len(rows), columns=len(headers))

        output = BytesIO()
        wb.save(output)
        output.seek(0)

        return output


# Singleton instance for convenience
_export_service: Optional[ExportService] = None


def get_export_service() -> ExportService:
    """Get or create ExportService instance."""
    global _export_service
    if _export_service is None:
        _export_service = ExportService()
    return _export_service
