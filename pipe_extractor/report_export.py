"""
Report export for extraction results.

One row per sheet (sheet name, comma-joined spec positions) plus a summary
block. Excel output uses openpyxl; CSV output uses the stdlib csv module.
Files are written to a temporary file in the target folder and moved into
place, so a failed write never leaves a truncated report behind.
"""

import csv
import os
import tempfile
from datetime import datetime

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from .core.results import SpecPositionSet, sort_key


HEADER_FILL = "4472C4"
ALT_ROW_FILL = "F2F2F2"

SUMMARY_SHEET = "Summary"
DETAILED_SHEET = "Detailed"
UNIQUE_SHEET = "Unique Spec Positions"
NO_PIPES = "(No pipes found)"


class ReportExportError(Exception):
    """The report file could not be written."""


def default_report_filename(now=None, ext=".xlsx"):
    """Pipe_Report_YYYYMMDD_HHMMSS.xlsx"""
    now = now or datetime.now()
    return "Pipe_Report_{0}{1}".format(now.strftime("%Y%m%d_%H%M%S"), ext)


def build_report_rows(results):
    """[(sheet name, "a, b, c")] in result order."""
    return [(r.sheet_name, r.spec_positions_string) for r in results]


def build_summary(results, now=None):
    """Totals for the summary block.

    Distinct values are counted case-insensitively across all sheets.
    """
    now = now or datetime.now()
    distinct = SpecPositionSet()
    for r in results:
        distinct.update(r.spec_positions)
    return {
        "total_sheets": len(results),
        "distinct_spec_positions": len(distinct),
        "generated": now.strftime("%Y-%m-%d %H:%M:%S"),
    }


def summary_lines(summary):
    return [
        ("Total Drawings Processed:", summary["total_sheets"]),
        ("Total Unique Spec Positions:", summary["distinct_spec_positions"]),
        ("Report Generated:", summary["generated"]),
    ]


def build_unique_rows(results):
    """[(value, occurrence count, "sheet, sheet")] sorted case-insensitively.

    A value's occurrence count is the number of sheets it appears on.
    """
    canon = {}
    sheets = {}
    for r in results:
        for v in r.spec_positions:
            k = v.casefold()
            canon.setdefault(k, v)
            sheets.setdefault(k, [])
            if r.sheet_name not in sheets[k]:
                sheets[k].append(r.sheet_name)
    rows = []
    for k in sorted(canon, key=lambda key: sort_key(canon[key])):
        rows.append((canon[k], len(sheets[k]), ", ".join(sheets[k])))
    return rows


def build_detailed_rows(results):
    rows = []
    for r in results:
        if not r.spec_positions:
            rows.append((r.sheet_name, NO_PIPES))
            continue
        for v in r.spec_positions:
            rows.append((r.sheet_name, v))
    return rows


# --- atomic write -----------------------------------------------------------

def _atomic_write(path, write_fn, suffix):
    """Call write_fn(temp_path) then move temp into place."""
    folder = os.path.dirname(os.path.abspath(path))
    try:
        os.makedirs(folder, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".pipe_report_", suffix=suffix, dir=folder)
        os.close(fd)
    except OSError as e:
        raise ReportExportError("Cannot create report in '{0}': {1}".format(folder, e)) from e

    try:
        write_fn(tmp)
        os.replace(tmp, path)
    except Exception as e:
        try:
            if os.path.exists(tmp):
                os.remove(tmp)
        except OSError as cleanup_e:
            print("[WARN] pipe_extractor.report_export: temp file cleanup failed ({0}: {1})".format(
                type(cleanup_e).__name__, cleanup_e))
        raise ReportExportError("Failed to write report '{0}': {1}".format(path, e)) from e
    return path


# --- xlsx -------------------------------------------------------------------

def _style_header(ws, ncols):
    medium = Side(style="medium")
    for c in range(1, ncols + 1):
        cell = ws.cell(row=1, column=c)
        cell.font = Font(bold=True, size=12, color="FFFFFF")
        cell.fill = PatternFill(fill_type="solid", start_color=HEADER_FILL, end_color=HEADER_FILL)
        cell.alignment = Alignment(horizontal="center", vertical="center")
        cell.border = Border(top=medium, bottom=medium, left=medium, right=medium)


def _write_table(ws, headers, rows, wrap_cols=()):
    thin = Side(style="thin")
    ws.append(list(headers))
    _style_header(ws, len(headers))
    for row in rows:
        ws.append(list(row))
        r = ws.max_row
        for c in range(1, len(headers) + 1):
            cell = ws.cell(row=r, column=c)
            cell.border = Border(top=thin, bottom=thin, left=thin, right=thin)
            cell.alignment = Alignment(vertical="top", wrap_text=c in wrap_cols)
            if r % 2 == 0:
                cell.fill = PatternFill(fill_type="solid", start_color=ALT_ROW_FILL, end_color=ALT_ROW_FILL)
    ws.freeze_panes = "A2"
    if rows:
        ws.auto_filter.ref = "A1:{0}{1}".format(chr(ord("A") + len(headers) - 1), ws.max_row)


def _autofit(ws, column, minimum=12, maximum=80):
    width = minimum
    for (value,) in ws.iter_rows(min_col=column, max_col=column, values_only=True):
        if value is not None:
            width = max(width, min(maximum, len(str(value)) + 2))
    ws.column_dimensions[get_column_letter(column)].width = width


def _write_summary_block(ws, summary):
    start = ws.max_row + 2
    ws.cell(row=start, column=1, value="Summary").font = Font(bold=True, size=14)
    for i, (label, value) in enumerate(summary_lines(summary), start=1):
        ws.cell(row=start + i, column=1, value=label).font = Font(size=10)
        ws.cell(row=start + i, column=2, value=value).font = Font(size=10)


def _fill_simple(wb, results, summary, title):
    ws = wb.active
    ws.title = title
    _write_table(ws, ("Drawing Name", "Pipes"), build_report_rows(results), wrap_cols=(2,))
    _autofit(ws, 1)
    ws.column_dimensions["B"].width = 50
    _write_summary_block(ws, summary)


def _fill_detailed(wb, results, summary):
    ws = wb.active
    ws.title = SUMMARY_SHEET
    _write_table(ws, ("Drawing Name", "Pipes"), build_report_rows(results), wrap_cols=(2,))
    _autofit(ws, 1)
    ws.column_dimensions["B"].width = 50
    _write_summary_block(ws, summary)

    ws = wb.create_sheet(DETAILED_SHEET)
    _write_table(ws, ("Drawing Name", "Pipe Spec Position"), build_detailed_rows(results))
    _autofit(ws, 1)
    _autofit(ws, 2)

    ws = wb.create_sheet(UNIQUE_SHEET)
    _write_table(ws, ("Pipe Spec Position", "Occurrence Count", "Found in Drawings"),
                 build_unique_rows(results), wrap_cols=(3,))
    _autofit(ws, 1)
    ws.column_dimensions["B"].width = 18
    ws.column_dimensions["C"].width = 60


def write_report_xlsx(results, path, title="Pipe Report", detailed=False, now=None):
    """Write an Excel report; returns the written path.

    Raises:
        ReportExportError: the file could not be written (no partial file is left)
    """
    summary = build_summary(results, now=now)

    def _write(tmp):
        wb = Workbook()
        if detailed:
            _fill_detailed(wb, results, summary)
        else:
            _fill_simple(wb, results, summary, title)
        wb.save(tmp)

    return _atomic_write(path, _write, ".xlsx")


# --- csv --------------------------------------------------------------------

def write_report_csv(results, path, now=None):
    """Write a CSV report (rows, blank line, summary block); returns the path."""
    summary = build_summary(results, now=now)

    def _write(tmp):
        with open(tmp, "w", newline="", encoding="utf-8-sig") as f:
            w = csv.writer(f)
            w.writerow(["Drawing Name", "Pipes"])
            for row in build_report_rows(results):
                w.writerow(list(row))
            w.writerow([])
            w.writerow(["Summary"])
            for label, value in summary_lines(summary):
                w.writerow([label, value])

    return _atomic_write(path, _write, ".csv")


def write_report(results, path, cfg=None, now=None):
    """Dispatch on extension: .csv -> CSV, anything else -> .xlsx."""
    if str(path).lower().endswith(".csv"):
        return write_report_csv(results, path, now=now)
    title = getattr(cfg, "report_title", "Pipe Report")
    detailed = bool(getattr(cfg, "detailed_report", False))
    return write_report_xlsx(results, path, title=title, detailed=detailed, now=now)
