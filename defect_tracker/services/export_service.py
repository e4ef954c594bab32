import csv
import io
import logging
from datetime import UTC, datetime

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from defect_tracker.models import iso

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

PRIORITY_FILLS = {
    "critical": PatternFill(start_color="E74C3C", end_color="E74C3C", fill_type="solid"),
    "high": PatternFill(start_color="F39C12", end_color="F39C12", fill_type="solid"),
}

EXPORT_COLUMNS = [
    "ID", "Project", "Title", "Description", "Priority", "Status",
    "Assignee", "Reporter", "Due Date", "Created At", "Resolved At",
]

CSV_BOM = "\ufeff"


def _defect_row(d) -> list:
    return [
        d.id,
        d.project.name if d.project else "",
        d.title,
        (d.description or "").replace("\n", " "),
        d.priority,
        d.status,
        d.assignee.username if d.assignee else "",
        d.reporter.username if d.reporter else "",
        iso(d.due_date) or "",
        iso(d.created_at) or "",
        iso(d.resolved_at) or "",
    ]


def export_defects_csv(defects) -> str:
    """Render defects as CSV, prefixed with a UTF-8 BOM for Excel."""
    buf = io.StringIO()
    buf.write(CSV_BOM)
    writer = csv.writer(buf)
    writer.writerow(EXPORT_COLUMNS)
    for d in defects:
        writer.writerow(_defect_row(d))
    return buf.getvalue()


def _apply_header_style(ws, row: int, col_count: int) -> None:
    """Apply dark-header styling to an Excel row (1-indexed)."""
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Auto-size column widths based on content (capped at 60 chars)."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 12)


def export_defects_xlsx(defects) -> io.BytesIO:
    """
    Generate a styled Excel workbook of defects.
    Returns a BytesIO buffer ready for Flask send_file.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Defects"

    ws.append(EXPORT_COLUMNS)
    _apply_header_style(ws, 1, len(EXPORT_COLUMNS))
    ws.freeze_panes = "A2"

    priority_col = EXPORT_COLUMNS.index("Priority") + 1
    count = 0
    for d in defects:
        ws.append(_defect_row(d))
        fill = PRIORITY_FILLS.get(d.priority)
        if fill is not None:
            ws.cell(row=ws.max_row, column=priority_col).fill = fill
        count += 1
    _auto_width(ws)

    ws.cell(row=ws.max_row + 2, column=1,
            value=f"Generated: {datetime.now(UTC).strftime('%Y-%m-%d %H:%M UTC')}").font = \
        Font(size=9, italic=True, color="666666")

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.info("Exported %d defects to xlsx", count)
    return buf
