"""Data access layer for the supply chain ledger.

This module provides low-level helpers that read from and write to the three
flat-file tables (inventory, suppliers, sales). Business logic belongs
elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Record codec: turning one delimited line into a typed record and back.
3. Table operations: loading, appending, searching, filtering, and rewriting
   whole files of lines.
"""


from __future__ import annotations

import configparser
import os
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from . import log
from .constants import DATE_FORMAT, FIELD_DELIMITER, RECORD_TERMINATOR, TABLE_ARITY, TableName


CONFIG_FILE_NAME = "config.ini"
TABLE_ENCODING = "utf-8"
UNDECODABLE_BYTES = "surrogateescape"

# Stored numbers are plain ASCII decimals: no exponents, separators or signs
# other than a leading minus.
_INTEGER_PATTERN = re.compile(r"-?[0-9]+")
_DECIMAL_PATTERN = re.compile(r"-?[0-9]+(?:\.[0-9]+)?")


class StorageError(Exception):
    """Raised when a table file cannot be read or written."""


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    inventory_file: Path
    supplier_file: Path
    sales_file: Path
    reports_dir: Path
    snapshot_log: Path
    store_name: str
    schema_version: str


@dataclass(frozen=True)
class SupplierRow:
    """In-memory view of a line from the supplier table."""

    name: str
    contact: str


@dataclass(frozen=True)
class InventoryRow:
    """In-memory view of a line from the inventory table."""

    name: str
    quantity: int
    price: Decimal
    supplier_name: str


@dataclass(frozen=True)
class SaleRow:
    """In-memory view of a line from the sales table."""

    item_name: str
    quantity_sold: int
    price: Decimal
    sale_date: date

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity_sold


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no parent directory holds ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Validation of required entries happens in :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    Every file entry under ``[Files]`` may be relative; relative entries are
    anchored at ``base_path`` (normally the directory holding ``config.ini``)
    or the current working directory when no base is given.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to resolve relative paths.

    Returns:
        ConfigSettings: Immutable settings with absolute table paths.

    Raises:
        KeyError: If a required section or option is missing.
    """

    try:
        store_name = parser.get("System", "StoreName")
        schema_version = parser.get("System", "SchemaVersion")
        raw_paths = {
            "inventory_file": parser.get("Files", "InventoryFile"),
            "supplier_file": parser.get("Files", "SupplierFile"),
            "sales_file": parser.get("Files", "SalesFile"),
            "reports_dir": parser.get("Files", "ReportsDir"),
            "snapshot_log": parser.get("Files", "SnapshotLog"),
        }
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    if base_path is None:
        base_path = Path.cwd()

    resolved = {}
    for key, raw in raw_paths.items():
        path = Path(raw).expanduser()
        if not path.is_absolute():
            path = (base_path / path).resolve()
        resolved[key] = path

    return ConfigSettings(
        store_name=store_name,
        schema_version=schema_version,
        **resolved,
    )


# ---------------------------------------------------------------------------
# Record codec
# ---------------------------------------------------------------------------


def split_fields(line: str, table: TableName) -> Optional[list[str]]:
    """Split ``line`` and return its fields when the arity matches ``table``."""

    fields = line.split(FIELD_DELIMITER)
    if len(fields) != TABLE_ARITY[table]:
        return None
    return fields


def parse_quantity(raw: str) -> Optional[int]:
    """Parse an integer column such as ``42``, returning ``None`` for anything else."""

    text = raw.strip()
    if not _INTEGER_PATTERN.fullmatch(text):
        return None
    try:
        return int(text)
    except ValueError:
        # Beyond the interpreter's integer string length limit.
        return None


def parse_money(raw: str) -> Optional[Decimal]:
    """Parse a decimal column such as ``12.50``, returning ``None`` for anything else."""

    text = raw.strip()
    if not _DECIMAL_PATTERN.fullmatch(text):
        return None
    return Decimal(text)


def parse_date(raw: str) -> Optional[date]:
    """Parse a ``yyyy-MM-dd`` column, returning ``None`` on failure."""

    try:
        return datetime.strptime(raw.strip(), DATE_FORMAT).date()
    except ValueError:
        return None


def serialize_supplier(record: SupplierRow) -> str:
    """Render a supplier as ``name,contact``."""

    return FIELD_DELIMITER.join([record.name, record.contact])


def serialize_item(record: InventoryRow) -> str:
    """Render an inventory item as ``name,quantity,price,supplierName``."""

    return FIELD_DELIMITER.join(
        [record.name, str(record.quantity), str(record.price), record.supplier_name]
    )


def serialize_sale(record: SaleRow) -> str:
    """Render a sale as ``itemName,quantitySold,price,yyyy-MM-dd``."""

    return FIELD_DELIMITER.join(
        [
            record.item_name,
            str(record.quantity_sold),
            str(record.price),
            record.sale_date.strftime(DATE_FORMAT),
        ]
    )


def deserialize_supplier(line: str) -> Optional[SupplierRow]:
    """Decode a supplier line, or return ``None`` when it is malformed."""

    fields = split_fields(line, TableName.SUPPLIERS)
    if fields is None:
        return None
    name, contact = fields
    return SupplierRow(name=name, contact=contact)


def deserialize_item(line: str) -> Optional[InventoryRow]:
    """Decode an inventory line, or return ``None`` when it is malformed.

    Besides the arity check, the quantity must parse as a non-negative integer
    and the price as a non-negative decimal.
    """

    fields = split_fields(line, TableName.INVENTORY)
    if fields is None:
        return None
    name, quantity_raw, price_raw, supplier_name = fields
    quantity = parse_quantity(quantity_raw)
    price = parse_money(price_raw)
    if quantity is None or price is None or quantity < 0 or price < 0:
        return None
    return InventoryRow(name=name, quantity=quantity, price=price, supplier_name=supplier_name)


def deserialize_sale(line: str) -> Optional[SaleRow]:
    """Decode a sales line, or return ``None`` when it is malformed."""

    fields = split_fields(line, TableName.SALES)
    if fields is None:
        return None
    item_name, quantity_raw, price_raw, date_raw = fields
    quantity_sold = parse_quantity(quantity_raw)
    price = parse_money(price_raw)
    sale_date = parse_date(date_raw)
    if quantity_sold is None or price is None or sale_date is None or quantity_sold <= 0:
        return None
    return SaleRow(item_name=item_name, quantity_sold=quantity_sold, price=price, sale_date=sale_date)


# ---------------------------------------------------------------------------
# Table operations
# ---------------------------------------------------------------------------


def load_lines(path: Path) -> list[str]:
    """Read every line of a table file.

    A missing file is an empty table, not an error. Records are split on
    ``\n`` only (a trailing ``\r`` is dropped), so other Unicode line breaks
    stay inside their field. Bytes that are not valid UTF-8 are carried as
    surrogate escapes: :func:`_iter_table` skips such lines, and rewriting the
    table puts the original bytes back unchanged.

    Raises:
        StorageError: If the file exists but cannot be read.
    """

    path = Path(path)
    if not path.exists():
        return []
    try:
        raw = path.read_bytes()
    except OSError as exc:
        log.error("Unable to read table '%s': %s", path, exc)
        raise StorageError(f"Unable to read {path}: {exc}") from exc

    text = raw.decode(TABLE_ENCODING, errors=UNDECODABLE_BYTES)
    lines = text.split(RECORD_TERMINATOR)
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def append_line(path: Path, line: str) -> None:
    """Append a single line to a table file, creating it when needed.

    The file is opened and closed within the call. If the existing content does
    not end with a newline one is inserted first so the new record never fuses
    with the previous one.

    Raises:
        StorageError: If the file cannot be written.
    """

    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        prefix = RECORD_TERMINATOR if _missing_trailing_newline(path) else ""
        with path.open("a", encoding=TABLE_ENCODING, errors=UNDECODABLE_BYTES, newline="") as handle:
            handle.write(f"{prefix}{line}{RECORD_TERMINATOR}")
    except OSError as exc:
        log.error("Unable to append to table '%s': %s", path, exc)
        raise StorageError(f"Unable to write {path}: {exc}") from exc


def rewrite_lines(path: Path, lines: Iterable[str]) -> None:
    """Replace the entire content of a table file with ``lines``.

    This is the only mutation primitive besides :func:`append_line`. The new
    content goes to a sibling temporary file that is then moved over the
    original, so a failed write leaves the previous content in place.

    Raises:
        StorageError: If the file cannot be written.
    """

    path = Path(path)
    temp_path = path.with_name(f"{path.name}.tmp")
    content = "".join(f"{line}{RECORD_TERMINATOR}" for line in lines)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with temp_path.open("w", encoding=TABLE_ENCODING, errors=UNDECODABLE_BYTES, newline="") as handle:
            handle.write(content)
        os.replace(temp_path, path)
    except OSError as exc:
        log.error("Unable to rewrite table '%s': %s", path, exc)
        if temp_path.exists():
            temp_path.unlink()
        raise StorageError(f"Unable to write {path}: {exc}") from exc


def key_matches(line: str, key: str) -> bool:
    """Return ``True`` when ``line`` starts with ``key`` plus the delimiter.

    The comparison ignores case. Requiring the delimiter right after the key
    keeps ``Corn`` from matching ``Cornflakes``.
    """

    prefix = f"{key}{FIELD_DELIMITER}".casefold()
    return line.casefold().startswith(prefix)


def find_by_key(lines: Sequence[str], key: str) -> Optional[int]:
    """Return the index of the first line whose leading field is ``key``."""

    for index, line in enumerate(lines):
        if key_matches(line, key):
            return index
    return None


def find_line(lines: Sequence[str], key: str) -> Optional[str]:
    """Return the first line whose leading field is ``key``, if any."""

    index = find_by_key(lines, key)
    return None if index is None else lines[index]


def filter_out(lines: Sequence[str], predicate: Callable[[str], bool]) -> tuple[list[str], int]:
    """Drop every line satisfying ``predicate``.

    Returns:
        tuple[list[str], int]: The surviving lines in their original order and
            the number of lines removed.
    """

    kept = [line for line in lines if not predicate(line)]
    return kept, len(lines) - len(kept)


def _missing_trailing_newline(path: Path) -> bool:
    if not path.exists() or path.stat().st_size == 0:
        return False
    with path.open("rb") as handle:
        handle.seek(-1, os.SEEK_END)
        return handle.read(1) != RECORD_TERMINATOR.encode(TABLE_ENCODING)


def _holds_undecodable_bytes(line: str) -> bool:
    try:
        line.encode(TABLE_ENCODING)
    except UnicodeEncodeError:
        return True
    return False


def _iter_table(path: Path, table: TableName, decoder: Callable[[str], Optional[object]]) -> Iterable:
    for number, line in enumerate(load_lines(path), start=1):
        if not line.strip():
            continue
        record = None if _holds_undecodable_bytes(line) else decoder(line)
        if record is None:
            log.warning("Skipping invalid %s record on line %d of '%s': %r", table.value, number, path, line)
            continue
        yield record


def iter_suppliers(path: Path) -> Iterable[SupplierRow]:
    """Stream valid supplier records, skipping malformed lines with a warning."""

    return _iter_table(path, TableName.SUPPLIERS, deserialize_supplier)


def iter_inventory(path: Path) -> Iterable[InventoryRow]:
    """Stream valid inventory records, skipping malformed lines with a warning."""

    return _iter_table(path, TableName.INVENTORY, deserialize_item)


def iter_sales(path: Path) -> Iterable[SaleRow]:
    """Stream valid sale records, skipping malformed lines with a warning."""

    return _iter_table(path, TableName.SALES, deserialize_sale)
