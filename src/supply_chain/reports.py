"""Sales reports over weekly, monthly and yearly windows.

Reports are derived entirely from the sales table: the rows falling inside the
requested window are rendered as a fixed-width receipt with a running grand
total. Saving a report is a separate, explicit step.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import openpyxl
from openpyxl.styles import Font

from . import core_logic, data_manager, log
from .constants import DATE_FORMAT, REPORT_FILE_NAMES, PeriodKind

RULE = "=" * 41
DIVIDER = "-" * 41
WORKBOOK_COLUMNS = ("Item Name", "Quantity Sold", "Price", "Total", "Date of Sale")


@dataclass(frozen=True)
class SalesReport:
    """A rendered report plus the metadata needed to file it."""

    kind: PeriodKind
    start: date
    end: date
    title: str
    folder: str
    file_name: str
    sales: Tuple[data_manager.SaleRow, ...]
    grand_total: Decimal
    content: str


def start_of_week(anchor: date) -> date:
    """Return the Sunday on or before ``anchor``."""

    return anchor - timedelta(days=anchor.isoweekday() % 7)


def period_window(kind: Union[PeriodKind, str], anchor: date) -> Tuple[date, date]:
    """Return the inclusive ``(start, end)`` dates of the window holding ``anchor``."""

    kind = PeriodKind(kind)
    if kind is PeriodKind.WEEK:
        start = start_of_week(anchor)
        return start, start + timedelta(days=6)
    if kind is PeriodKind.MONTH:
        last_day = calendar.monthrange(anchor.year, anchor.month)[1]
        return anchor.replace(day=1), anchor.replace(day=last_day)
    return date(anchor.year, 1, 1), date(anchor.year, 12, 31)


def filter_by_period(
    sales: Iterable[data_manager.SaleRow],
    kind: Union[PeriodKind, str],
    anchor: date,
) -> List[data_manager.SaleRow]:
    """Keep the sales dated inside the week, month or year holding ``anchor``."""

    start, end = period_window(kind, anchor)
    return [sale for sale in sales if start <= sale.sale_date <= end]


def build_report(sales: Sequence[data_manager.SaleRow], title: str) -> str:
    """Render ``sales`` as a fixed-width receipt ending with the grand total."""

    grand_total = Decimal("0")
    lines = [RULE, title, RULE, f"{'Item Name':<15}{'Qty':<5}{'Price':<10}Total", DIVIDER]
    for sale in sales:
        line_total = sale.line_total
        grand_total += line_total
        lines.append(f"{sale.item_name:<15}{sale.quantity_sold:<5}{sale.price:<10}{line_total}")
    lines.extend([DIVIDER, f"Total:   {grand_total:>25}", RULE])
    return "\n".join(lines) + "\n"


def describe_period(kind: PeriodKind, start: date, end: date) -> Tuple[str, str]:
    """Return the report title and the folder name for a window."""

    if kind is PeriodKind.WEEK:
        return (
            f"Weekly Sales Report ({start.strftime(DATE_FORMAT)} to {end.strftime(DATE_FORMAT)})",
            f"Week-{start.strftime(DATE_FORMAT)}",
        )
    if kind is PeriodKind.MONTH:
        return f"Monthly Sales Report - {start.strftime('%B %Y')}", start.strftime("%B")
    return f"Yearly Sales Report - {start.year}", str(start.year)


def generate_report(context: core_logic.RuntimeContext, kind: Union[PeriodKind, str], anchor: date) -> Optional[SalesReport]:
    """Build the report for the window holding ``anchor``.

    Args:
        context (core_logic.RuntimeContext): Runtime context providing the
            sales table path.
        kind (PeriodKind | str): ``week``, ``month`` or ``year``.
        anchor (date): Any date inside the desired window.

    Returns:
        SalesReport | None: The rendered report, or ``None`` when no sale falls
            inside the window.
    """

    kind = PeriodKind(kind)
    start, end = period_window(kind, anchor)
    matching = filter_by_period(data_manager.iter_sales(context.settings.sales_file), kind, anchor)
    if not matching:
        log.info("No sales found for %s window %s..%s", kind.value, start, end)
        return None

    title, folder = describe_period(kind, start, end)
    content = build_report(matching, title)
    grand_total = sum((sale.line_total for sale in matching), Decimal("0"))
    log.info("Generated %s report with %d sale(s), total %s", kind.value, len(matching), grand_total)
    return SalesReport(
        kind=kind,
        start=start,
        end=end,
        title=title,
        folder=folder,
        file_name=REPORT_FILE_NAMES[kind],
        sales=tuple(matching),
        grand_total=grand_total,
        content=content,
    )


def report_path(context: core_logic.RuntimeContext, report: SalesReport) -> Path:
    """Return ``<reports_dir>/<folder>/<file_name>`` for ``report``."""

    return context.settings.reports_dir / report.folder / report.file_name


def save_report(context: core_logic.RuntimeContext, report: SalesReport) -> Path:
    """Write the report text under the configured reports directory.

    Raises:
        data_manager.StorageError: If the file cannot be written.
    """

    destination = report_path(context, report)
    data_manager.rewrite_lines(destination, report.content.splitlines())
    log.info("Saved %s report to '%s'", report.kind.value, destination)
    return destination


def export_report_workbook(report: SalesReport, destination: Path) -> Path:
    """Write the rows of ``report`` to an ``.xlsx`` workbook.

    The sheet holds one row per sale followed by a bold grand total row.

    Raises:
        data_manager.StorageError: If the workbook cannot be saved.
    """

    destination = Path(destination).expanduser().resolve()
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = report.kind.value.capitalize()

    bold_font = Font(bold=True)
    sheet.append([report.title])
    sheet.cell(row=1, column=1).font = bold_font
    sheet.append(list(WORKBOOK_COLUMNS))
    for column_index in range(1, len(WORKBOOK_COLUMNS) + 1):
        sheet.cell(row=2, column=column_index).font = bold_font

    for sale in report.sales:
        sheet.append(
            [
                sale.item_name,
                sale.quantity_sold,
                sale.price,
                sale.line_total,
                sale.sale_date.strftime(DATE_FORMAT),
            ]
        )
    sheet.append(["Total", None, None, report.grand_total, None])
    for cell in sheet[sheet.max_row]:
        cell.font = bold_font

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        workbook.save(destination)
    except OSError as exc:
        log.error("Unable to save report workbook '%s': %s", destination, exc)
        raise data_manager.StorageError(f"Unable to write {destination}: {exc}") from exc
    log.info("Exported %s report workbook to '%s'", report.kind.value, destination)
    return destination
