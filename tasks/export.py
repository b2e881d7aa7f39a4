from io import BytesIO

import openpyxl
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# (header, width)
COLUMNS = [
    ("SR #", 8),
    ("Title", 30),
    ("Description", 40),
    ("Assigned To", 20),
    ("Assigned To Email", 25),
    ("Assigned By", 20),
    ("Company", 20),
    ("Start Date", 12),
    ("End Date", 12),
    ("Status", 15),
    ("Priority", 10),
    ("Progress", 10),
    ("Total Hours", 12),
    ("Completed Subtasks", 18),
    ("Total Subtasks", 15),
    ("Created At", 12),
]


def report_filename(period):
    """Names the file after the resolved window, not the raw query args."""
    kind = period.get("report_type")
    if kind == "quarterly":
        return f"tasks_report_Q{period['quarter']}_{period['year']}.xlsx"
    if kind == "yearly":
        return f"tasks_report_{period['year']}.xlsx"
    if kind == "custom":
        return f"tasks_report_{period['start_date']}_{period['end_date']}.xlsx"
    return f"tasks_report_{period['month']}_{period['year']}.xlsx"


def _day(iso_value):
    # ISO timestamps and dates both start with YYYY-MM-DD
    return iso_value[:10] if iso_value else ""


def detail_row(index, detail):
    assignee = detail.get("assigned_to") or {}
    author = detail.get("assigned_by") or {}
    return [
        index,
        detail["title"],
        detail.get("description") or "",
        assignee.get("name") or "Unassigned",
        assignee.get("email") or "",
        author.get("name") or "",
        detail.get("company") or "",
        _day(detail.get("start_date")),
        _day(detail.get("end_date")),
        detail["status"],
        detail["priority"],
        f"{detail['progress']}%",
        detail["total_hours"],
        detail["completed_subtasks"],
        detail["total_subtasks"],
        _day(detail.get("created_at")),
    ]


def build_workbook(details):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Tasks Report"

    ws.append([header for header, _ in COLUMNS])
    for i, (_, width) in enumerate(COLUMNS, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width

    header_fill = PatternFill(fill_type="solid", fgColor="FFE0E0E0")
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.fill = header_fill

    for index, detail in enumerate(details, start=1):
        ws.append(detail_row(index, detail))

    return wb


def export_report(details):
    """Renders report details into an in-memory .xlsx stream."""
    out = BytesIO()
    build_workbook(details).save(out)
    out.seek(0)
    return out
