"""Spreadsheet renderings of status snapshots and the user directory."""
from __future__ import annotations

import csv
import io
import re
from typing import Iterable, List, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from .database import parse_timestamp
from .models import Role, RtoStatusEntry, User
from .reports import BUCKET_LABELS, aging_rows, pending_actions, summary_rows
from .validation import TIME_BUCKETS

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MEDIA_TYPE = "text/csv; charset=utf-8"

USER_CSV_HEADERS = ("User/Emp ID", "Name", "Email", "Role", "DL Owner")

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
SECTION_FONT = Font(bold=True, size=12)
TITLE_FONT = Font(bold=True, size=14)

_SHEET_NAME_MAX = 31


def sheet_name_for(uploaded_at: str) -> str:
    """Derive a sheet name from an upload timestamp (``:`` and ``.`` become ``-``)."""

    try:
        text = parse_timestamp(uploaded_at).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
    except ValueError:
        text = uploaded_at
    name = re.sub(r"[:.]", "-", text)
    name = re.sub(r"[\\/?*\[\]]", "-", name)
    return name[:_SHEET_NAME_MAX] or "RTO Status"


def _report_title(uploaded_at: str) -> str:
    try:
        stamp = parse_timestamp(uploaded_at).strftime("%Y-%m-%d %H:%M:%S UTC")
    except ValueError:
        stamp = uploaded_at
    return f"RTO Status Report - {stamp}"


def _style_header(ws, row: int, width: int) -> None:
    for col in range(1, width + 1):
        cell = ws.cell(row=row, column=col)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    for col in range(1, ws.max_column + 1):
        max_len = 0
        for row in ws.iter_rows(min_row=2, max_row=ws.max_row, min_col=col, max_col=col):
            for cell in row:
                if cell.value is not None:
                    max_len = max(max_len, len(str(cell.value)))
        ws.column_dimensions[get_column_letter(col)].width = min(max(max_len + 2, 12), 60)


def _write_entry(ws, entry: RtoStatusEntry) -> None:
    ws.append([_report_title(entry.uploaded_at)])
    ws.cell(row=ws.max_row, column=1).font = TITLE_FONT
    ws.append([])

    ws.append(["Pending Actions Summary"])
    ws.cell(row=ws.max_row, column=1).font = SECTION_FONT
    ws.append(["Status", "Count", "Percentage"])
    _style_header(ws, ws.max_row, 3)
    for row in pending_actions(entry.summary_counts).rows():
        ws.append(list(row))
    ws.append([])

    ws.append(["Overall Status Counts"])
    ws.cell(row=ws.max_row, column=1).font = SECTION_FONT
    ws.append(["Status", "Count"])
    _style_header(ws, ws.max_row, 2)
    for label, count in summary_rows(entry.summary_counts):
        ws.append([label, count])
    ws.append([])

    ws.append(["Aged Request Details"])
    ws.cell(row=ws.max_row, column=1).font = SECTION_FONT
    header = ["Row Labels", *(BUCKET_LABELS[bucket] for bucket in TIME_BUCKETS)]
    ws.append(header)
    _style_header(ws, ws.max_row, len(header))
    for row in aging_rows(entry.aging_matrix):
        ws.append(row)
    ws.cell(row=ws.max_row, column=1).font = Font(bold=True)

    _auto_width(ws)


def build_status_workbook(entries: Sequence[RtoStatusEntry]) -> bytes:
    """Render one worksheet per entry and return the xlsx bytes."""

    if not entries:
        raise ValueError("At least one status entry is required")

    wb = Workbook()
    wb.remove(wb.active)
    for entry in entries:
        ws = wb.create_sheet(sheet_name_for(entry.uploaded_at))
        _write_entry(ws, entry)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def user_export_rows(users: Iterable[User]) -> List[List[str]]:
    """Rows for the user list export; admins are never listed."""

    rows: List[List[str]] = []
    for user in users:
        if user.role == Role.ADMIN.value:
            continue
        if user.is_dl:
            rows.append(["N/A", f"{user.name} (DL)", user.email, user.role, user.dl_owner or "Unknown"])
        else:
            rows.append([user.username, user.name, user.email, user.role, "N/A"])
    return rows


def build_user_csv(rows: Sequence[Sequence[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(USER_CSV_HEADERS)
    writer.writerows(rows)
    return buffer.getvalue()


__all__ = [
    "CSV_MEDIA_TYPE",
    "USER_CSV_HEADERS",
    "XLSX_MEDIA_TYPE",
    "build_status_workbook",
    "build_user_csv",
    "sheet_name_for",
    "user_export_rows",
]
