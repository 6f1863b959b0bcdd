"""Tests for the period filter, receipt rendering and report persistence."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import openpyxl
import pytest

from supply_chain import data_manager, reports
from supply_chain.constants import PeriodKind


def _row(name, qty, price, total):
    return f"{name:<15}{qty:<5}{price:<10}{total}"


def _sale(name, qty, price, day):
    return data_manager.SaleRow(name, qty, Decimal(price), day)


@pytest.mark.parametrize(
    ("anchor", "expected"),
    [
        (date(2024, 3, 15), date(2024, 3, 10)),
        (date(2024, 3, 10), date(2024, 3, 10)),
        (date(2024, 3, 16), date(2024, 3, 10)),
        (date(2024, 3, 17), date(2024, 3, 17)),
        (date(2024, 1, 2), date(2023, 12, 31)),
    ],
)
def test_start_of_week_is_the_preceding_sunday(anchor, expected):
    assert reports.start_of_week(anchor) == expected


def test_period_window_bounds():
    assert reports.period_window("week", date(2024, 3, 15)) == (date(2024, 3, 10), date(2024, 3, 16))
    assert reports.period_window(PeriodKind.MONTH, date(2024, 2, 20)) == (date(2024, 2, 1), date(2024, 2, 29))
    assert reports.period_window("year", date(2024, 7, 4)) == (date(2024, 1, 1), date(2024, 12, 31))


def test_period_window_rejects_unknown_kind():
    with pytest.raises(ValueError):
        reports.period_window("fortnight", date(2024, 1, 1))


def test_filter_by_period_selects_matching_sales():
    march_sale = _sale("Corn", 2, "10", date(2024, 3, 15))
    sales = [march_sale, _sale("Hay", 1, "7.50", date(2024, 4, 2))]

    assert reports.filter_by_period(sales, "month", date(2024, 3, 1)) == [march_sale]
    assert reports.filter_by_period(sales, "month", date(2024, 4, 1)) == [sales[1]]
    assert reports.filter_by_period(sales, "year", date(2024, 12, 31)) == sales
    assert reports.filter_by_period(sales, "week", date(2024, 3, 11)) == [march_sale]
    assert reports.filter_by_period(sales, "week", date(2024, 3, 17)) == []


def test_build_report_renders_fixed_width_receipt():
    sales = [_sale("Corn", 2, "10", date(2024, 3, 15)), _sale("Hay", 1, "7.50", date(2024, 3, 17))]

    content = reports.build_report(sales, "Monthly Sales Report - March 2024")

    assert content.splitlines() == [
        "=" * 41,
        "Monthly Sales Report - March 2024",
        "=" * 41,
        _row("Item Name", "Qty", "Price", "Total"),
        "-" * 41,
        _row("Corn", 2, "10", "20"),
        _row("Hay", 1, "7.50", "7.50"),
        "-" * 41,
        "Total:   " + "27.50".rjust(25),
        "=" * 41,
    ]
    assert content.endswith("\n")


def test_build_report_with_no_rows_totals_zero():
    content = reports.build_report([], "Empty")
    assert "Total:   " + "0".rjust(25) in content.splitlines()


def test_generate_report_for_week(context):
    report = reports.generate_report(context, "week", date(2024, 3, 15))

    assert report is not None
    assert report.title == "Weekly Sales Report (2024-03-10 to 2024-03-16)"
    assert report.folder == "Week-2024-03-10"
    assert report.file_name == "WeeklySalesReport.txt"
    assert [sale.item_name for sale in report.sales] == ["Corn"]
    assert report.grand_total == Decimal("20")


def test_generate_report_for_month_and_year(context):
    month = reports.generate_report(context, PeriodKind.MONTH, date(2024, 3, 1))
    year = reports.generate_report(context, PeriodKind.YEAR, date(2024, 6, 1))

    assert month.title == "Monthly Sales Report - March 2024"
    assert month.folder == "March"
    assert month.grand_total == Decimal("27.50")
    assert year.title == "Yearly Sales Report - 2024"
    assert year.folder == "2024"
    assert year.grand_total == Decimal("57.50")
    assert [sale.sale_date.year for sale in year.sales] == [2024, 2024, 2024]


def test_generate_report_returns_none_without_sales(context):
    assert reports.generate_report(context, "month", date(2024, 5, 1)) is None


def test_save_report_writes_under_reports_dir(context, seeded_settings):
    report = reports.generate_report(context, "month", date(2024, 3, 1))

    destination = reports.save_report(context, report)

    assert destination == seeded_settings.reports_dir / "March" / "MonthlySalesReport.txt"
    assert destination.read_text(encoding="utf-8") == report.content


def test_save_report_overwrites_previous_copy(context):
    first = reports.generate_report(context, "year", date(2024, 1, 1))
    destination = reports.save_report(context, first)
    destination.write_text("stale\n", encoding="utf-8")

    reports.save_report(context, first)

    assert destination.read_text(encoding="utf-8") == first.content


def test_export_report_workbook_writes_rows(context, tmp_path):
    report = reports.generate_report(context, "month", date(2024, 3, 1))
    destination = reports.export_report_workbook(report, tmp_path / "out" / "march.xlsx")

    workbook = openpyxl.load_workbook(destination)
    sheet = workbook.active

    assert sheet.title == "Month"
    assert sheet.cell(row=1, column=1).value == report.title
    assert [cell.value for cell in sheet[2]] == list(reports.WORKBOOK_COLUMNS)
    assert sheet.cell(row=3, column=1).value == "Corn"
    assert sheet.cell(row=3, column=2).value == 2
    assert sheet.cell(row=3, column=5).value == "2024-03-15"
    assert sheet.cell(row=5, column=1).value == "Total"
    assert float(sheet.cell(row=5, column=4).value) == pytest.approx(27.5)
    assert sheet.cell(row=5, column=1).font.bold


def test_export_report_workbook_wraps_os_errors(context, tmp_path):
    report = reports.generate_report(context, "year", date(2024, 1, 1))
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not folder")

    with pytest.raises(data_manager.StorageError):
        reports.export_report_workbook(report, blocker / "year.xlsx")
