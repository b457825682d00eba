# tests/test_report_export.py

import csv
import os
from datetime import datetime

import pytest
from openpyxl import load_workbook

from pipe_extractor.config import Config
from pipe_extractor.core.results import SheetResult
from pipe_extractor.report_export import (
    NO_PIPES,
    ReportExportError,
    _atomic_write,
    build_detailed_rows,
    build_report_rows,
    build_summary,
    build_unique_rows,
    default_report_filename,
    write_report,
    write_report_csv,
    write_report_xlsx,
)


NOW = datetime(2024, 3, 5, 14, 7, 9)


def _results():
    return [
        SheetResult("M-101 - Level 1", ["30-40", "10-20"]),
        SheetResult("M-102 - Level 2", ["10-20", "Abc"]),
        SheetResult("M-103 - Roof", []),
        SheetResult("M-104 - Plant", ["abc"]),
    ]


def test_default_filename():
    assert default_report_filename(NOW) == "Pipe_Report_20240305_140709.xlsx"
    assert default_report_filename(NOW, ext=".csv") == "Pipe_Report_20240305_140709.csv"


def test_rows_join_sorted_values():
    assert build_report_rows(_results()) == [
        ("M-101 - Level 1", "10-20, 30-40"),
        ("M-102 - Level 2", "10-20, Abc"),
        ("M-103 - Roof", ""),
        ("M-104 - Plant", "abc"),
    ]


def test_summary_counts_distinct_case_insensitively():
    summary = build_summary(_results(), now=NOW)
    assert summary == {
        "total_sheets": 4,
        "distinct_spec_positions": 3,
        "generated": "2024-03-05 14:07:09",
    }


def test_unique_rows_count_sheets_per_value():
    assert build_unique_rows(_results()) == [
        ("10-20", 2, "M-101 - Level 1, M-102 - Level 2"),
        ("30-40", 1, "M-101 - Level 1"),
        ("Abc", 2, "M-102 - Level 2, M-104 - Plant"),
    ]


def test_detailed_rows_mark_empty_sheets():
    rows = build_detailed_rows(_results())
    assert ("M-103 - Roof", NO_PIPES) in rows
    assert rows[:2] == [("M-101 - Level 1", "10-20"), ("M-101 - Level 1", "30-40")]


def test_csv_report(tmp_path):
    path = str(tmp_path / "report.csv")

    assert write_report_csv(_results(), path, now=NOW) == path

    with open(path, newline="", encoding="utf-8-sig") as f:
        rows = list(csv.reader(f))
    assert rows[0] == ["Drawing Name", "Pipes"]
    assert rows[1] == ["M-101 - Level 1", "10-20, 30-40"]
    assert rows[5] == []
    assert rows[6] == ["Summary"]
    assert rows[7] == ["Total Drawings Processed:", "4"]
    assert rows[8] == ["Total Unique Spec Positions:", "3"]
    assert rows[9] == ["Report Generated:", "2024-03-05 14:07:09"]


def test_xlsx_simple_report(tmp_path):
    path = str(tmp_path / "report.xlsx")

    write_report_xlsx(_results(), path, title="Pipes", now=NOW)

    wb = load_workbook(path)
    assert wb.sheetnames == ["Pipes"]
    ws = wb["Pipes"]
    assert [c.value for c in ws[1]] == ["Drawing Name", "Pipes"]
    assert ws["A2"].value == "M-101 - Level 1"
    assert ws["B2"].value == "10-20, 30-40"
    assert ws["A1"].font.bold
    assert ws.freeze_panes == "A2"
    labels = [ws.cell(row=r, column=1).value for r in range(1, ws.max_row + 1)]
    assert "Summary" in labels
    i = labels.index("Total Drawings Processed:")
    assert ws.cell(row=i + 1, column=2).value == 4


def test_xlsx_detailed_report(tmp_path):
    path = str(tmp_path / "detailed.xlsx")

    write_report(_results(), path, cfg=Config(detailed_report=True), now=NOW)

    wb = load_workbook(path)
    assert wb.sheetnames == ["Summary", "Detailed", "Unique Spec Positions"]
    unique = wb["Unique Spec Positions"]
    assert [c.value for c in unique[2]] == ["10-20", 2, "M-101 - Level 1, M-102 - Level 2"]


def test_write_report_dispatches_on_extension(tmp_path):
    csv_path = str(tmp_path / "out.CSV")
    write_report(_results(), csv_path, now=NOW)
    with open(csv_path, encoding="utf-8-sig") as f:
        assert f.readline().startswith("Drawing Name,Pipes")


def test_failed_write_leaves_no_file(tmp_path):
    path = str(tmp_path / "report.xlsx")

    def _boom(tmp):
        with open(tmp, "w") as f:
            f.write("partial")
        raise IOError("disk full")

    with pytest.raises(ReportExportError):
        _atomic_write(path, _boom, ".xlsx")

    assert os.listdir(str(tmp_path)) == []


def test_existing_report_survives_failed_overwrite(tmp_path):
    path = tmp_path / "report.csv"
    path.write_text("old")

    def _boom(tmp):
        raise RuntimeError("nope")

    with pytest.raises(ReportExportError):
        _atomic_write(str(path), _boom, ".csv")

    assert path.read_text() == "old"
    assert os.listdir(str(tmp_path)) == ["report.csv"]
