"""Constants shared by the supply chain ledger modules.

The flat files carry no header row, so the column order and arity recorded here
are the only schema the tables have.
"""

from __future__ import annotations

from enum import Enum


# Bumped whenever a table gains or loses a column.
EXPECTED_SCHEMA_VERSION = "1.0.0"

FIELD_DELIMITER = ","
RECORD_TERMINATOR = "\n"
DATE_FORMAT = "%Y-%m-%d"


class TableName(str, Enum):
    """Enumerate the flat-file tables managed by the data layer."""

    INVENTORY = "inventory"
    SUPPLIERS = "suppliers"
    SALES = "sales"


# Number of delimited fields a valid line of each table splits into.
TABLE_ARITY: dict[TableName, int] = {
    TableName.INVENTORY: 4,
    TableName.SUPPLIERS: 2,
    TableName.SALES: 4,
}


class PeriodKind(str, Enum):
    """Enumerate the windows a sales report can cover."""

    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class SearchKind(str, Enum):
    """Enumerate the tables that support name search."""

    ITEM = "item"
    SUPPLIER = "supplier"


REPORT_FILE_NAMES: dict[PeriodKind, str] = {
    PeriodKind.WEEK: "WeeklySalesReport.txt",
    PeriodKind.MONTH: "MonthlySalesReport.txt",
    PeriodKind.YEAR: "YearlySalesReport.txt",
}


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "FIELD_DELIMITER",
    "RECORD_TERMINATOR",
    "DATE_FORMAT",
    "TableName",
    "TABLE_ARITY",
    "PeriodKind",
    "SearchKind",
    "REPORT_FILE_NAMES",
]
