"""Business logic layer for the supply chain ledger.

This module holds the domain rules for suppliers, inventory items and sales.
It consumes the Data Access Layer (DAL) for all I/O: every mutation loads the
affected table, transforms it in memory, and hands the result back to the DAL
to append or rewrite.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from . import data_manager, log
from .constants import (
    DATE_FORMAT,
    EXPECTED_SCHEMA_VERSION,
    FIELD_DELIMITER,
    RECORD_TERMINATOR,
    TABLE_ARITY,
    SearchKind,
    TableName,
)


class ValidationError(ValueError):
    """Raised when caller-supplied input is rejected before any write."""


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced record is unknown."""


class ItemNotFoundError(MissingReferenceError):
    """Raised when a sale targets an item that is not in the inventory."""


class InsufficientStockError(BusinessRuleViolation):
    """Raised when a sale asks for more units than are in stock."""


class InsufficientPaymentError(BusinessRuleViolation):
    """Raised when the amount paid does not cover the sale total."""


class DuplicateRecordError(BusinessRuleViolation):
    """Raised when a new record would reuse an existing key."""


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and the in-memory inventory mirror."""

    settings: data_manager.ConfigSettings
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class SaleCommand:
    """User intent for selling units of an inventory item."""

    item_name: str
    quantity: int
    amount_paid: Decimal
    sale_date: Optional[date] = None


@dataclass(frozen=True)
class SaleReceipt:
    """Outcome of a successful sale."""

    sale: data_manager.SaleRow
    total: Decimal
    amount_paid: Decimal
    change: Decimal
    remaining_quantity: int


# Column positions accepted by the partial-update helpers.
ITEM_FIELDS: Mapping[str, int] = {"name": 0, "quantity": 1, "price": 2, "supplier_name": 3}
SUPPLIER_FIELDS: Mapping[str, int] = {"name": 0, "contact": 1}


# ---------------------------------------------------------------------------
# Runtime/context management
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Resolve ``config.ini`` and build a context with a warm inventory cache.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer searches upward from the current
            working directory.

    Returns:
        RuntimeContext: Context whose inventory cache mirrors the inventory
            table at load time.

    Raises:
        FileNotFoundError: If the configuration file cannot be located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    context = RuntimeContext(settings=settings)
    refresh_inventory(context)
    log.info("Loaded runtime context from '%s'", resolved_config)
    return context


def ensure_schema_version(context: RuntimeContext) -> None:
    """Refuse to operate on tables written for a different column layout.

    Raises:
        RuntimeError: If the configured schema version differs from
            ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Table schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Table schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )


def refresh_inventory(context: RuntimeContext) -> List[data_manager.InventoryRow]:
    """Reload the inventory cache from disk and return the fresh rows.

    Lookups are keyed by the case-folded item name. When the file holds two
    lines whose names differ only in case, the first one wins.
    """
    rows = list(data_manager.iter_inventory(context.settings.inventory_file))
    by_key: Dict[str, data_manager.InventoryRow] = {}
    for row in rows:
        by_key.setdefault(row.name.casefold(), row)
    context._cache["inventory"] = {"all": rows, "by_key": by_key}
    log.debug("Populated inventory cache with %d entries", len(rows))
    return list(rows)


def _inventory_bucket(context: RuntimeContext) -> Dict[str, Any]:
    bucket = context._cache.get("inventory")
    if bucket is None:
        refresh_inventory(context)
        bucket = context._cache["inventory"]
    return bucket


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def list_inventory(context: RuntimeContext) -> List[data_manager.InventoryRow]:
    """Return a copy of the cached inventory in file order."""
    return list(_inventory_bucket(context)["all"])


def list_suppliers(context: RuntimeContext) -> List[data_manager.SupplierRow]:
    """Return every valid supplier record in file order."""
    return list(data_manager.iter_suppliers(context.settings.supplier_file))


def list_sales(context: RuntimeContext) -> List[data_manager.SaleRow]:
    """Return every valid sale record in file order."""
    return list(data_manager.iter_sales(context.settings.sales_file))


def get_item(context: RuntimeContext, name: str) -> data_manager.InventoryRow:
    """Resolve an inventory item by name, ignoring case.

    The lookup is served from the in-memory cache, not from the file.

    Raises:
        ItemNotFoundError: If no cached item carries ``name``.
    """
    try:
        return _inventory_bucket(context)["by_key"][name.strip().casefold()]
    except KeyError as exc:
        log.warning("Inventory lookup failed for '%s'", name)
        raise ItemNotFoundError(f"Inventory item not found: {name}") from exc


def search_by_name(
    context: RuntimeContext,
    kind: Union[SearchKind, str],
    term: str,
) -> List[Union[data_manager.InventoryRow, data_manager.SupplierRow]]:
    """Find items or suppliers whose name contains ``term``, ignoring case.

    Raises:
        ValidationError: If ``term`` is blank or ``kind`` is not a known table.
    """
    needle = require_text(term, "Search term")
    try:
        kind = SearchKind(kind)
    except ValueError as exc:
        raise ValidationError("Search kind must be 'item' or 'supplier'") from exc

    if kind is SearchKind.ITEM:
        rows = data_manager.iter_inventory(context.settings.inventory_file)
    else:
        rows = data_manager.iter_suppliers(context.settings.supplier_file)
    matches = [row for row in rows if needle.casefold() in row.name.casefold()]
    log.info("Search for %s '%s' returned %d match(es)", kind.value, needle, len(matches))
    return matches


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def require_text(value: Optional[str], label: str) -> str:
    """Return ``value`` stripped, rejecting blank input.

    Raises:
        ValidationError: If ``value`` is ``None`` or whitespace.
    """
    if value is None or not str(value).strip():
        log.error("%s validation failed: value is empty", label)
        raise ValidationError(f"{label} cannot be empty")
    return str(value).strip()


def require_storable(value: str, label: str) -> str:
    """Reject text that would split a stored record.

    Raises:
        ValidationError: If ``value`` holds the field delimiter or a line break.
    """
    if any(mark in value for mark in (FIELD_DELIMITER, RECORD_TERMINATOR, "\r")):
        log.error("%s validation failed: %r holds a delimiter or line break", label, value)
        raise ValidationError(f"{label} cannot contain '{FIELD_DELIMITER}' or line breaks")
    return value


def coerce_quantity(value: Union[int, str], *, allow_zero: bool = True) -> int:
    """Parse a stock quantity and enforce its lower bound.

    Raises:
        ValidationError: If ``value`` is not an integer, is negative, or is
            zero while ``allow_zero`` is ``False``.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid quantity: {value!r}")
    quantity = value if isinstance(value, int) else data_manager.parse_quantity(str(value))
    if quantity is None:
        log.error("Quantity validation failed: %r", value)
        raise ValidationError(f"Invalid quantity: {value!r}")
    if quantity < 0 or (quantity == 0 and not allow_zero):
        log.error("Quantity validation failed: %s", quantity)
        bound = "zero or positive" if allow_zero else "greater than zero"
        raise ValidationError(f"Quantity must be {bound}")
    return quantity


def coerce_price(value: Union[Decimal, str, int]) -> Decimal:
    """Parse a monetary amount that must be zero or positive.

    Raises:
        ValidationError: If ``value`` is not numeric or is negative.
    """
    amount = value if isinstance(value, Decimal) else data_manager.parse_money(str(value))
    if amount is None or not amount.is_finite():
        log.error("Monetary value validation failed: %r", value)
        raise ValidationError(f"Invalid amount: {value!r}")
    if amount < Decimal("0"):
        log.error("Monetary value validation failed: %s", amount)
        raise ValidationError("Amount must be zero or positive")
    return amount


# ---------------------------------------------------------------------------
# Inventory ledger
# ---------------------------------------------------------------------------


def apply_quantity_change(item: data_manager.InventoryRow, delta: int) -> data_manager.InventoryRow:
    """Return ``item`` with ``delta`` applied to its quantity, floored at zero.

    Reaching the floor is logged as a warning; the change still succeeds.
    """
    quantity = item.quantity + delta
    if quantity < 0:
        log.warning(
            "Quantity of '%s' cannot drop below zero (requested %s); it has been set to 0",
            item.name,
            quantity,
        )
        quantity = 0
    return replace(item, quantity=quantity)


def add_item(
    context: RuntimeContext,
    *,
    name: str,
    quantity: Union[int, str],
    price: Union[Decimal, str],
    supplier_name: str,
) -> data_manager.InventoryRow:
    """Validate and append a new inventory item.

    Raises:
        ValidationError: For a blank name or supplier, a comma or line break
            in either, or a bad quantity or price. Nothing is written.
        DuplicateRecordError: If an item with the same name already exists.
    """
    record = data_manager.InventoryRow(
        name=require_storable(require_text(name, "Item name"), "Item name"),
        quantity=coerce_quantity(quantity),
        price=coerce_price(price),
        supplier_name=require_storable(require_text(supplier_name, "Supplier name"), "Supplier name"),
    )
    if record.name.casefold() in _inventory_bucket(context)["by_key"]:
        log.error("Inventory item '%s' already exists", record.name)
        raise DuplicateRecordError(f"Inventory item already exists: {record.name}")

    data_manager.append_line(context.settings.inventory_file, data_manager.serialize_item(record))
    bucket = _inventory_bucket(context)
    bucket["all"].append(record)
    bucket["by_key"][record.name.casefold()] = record
    log.info(
        "Added inventory item '%s' (quantity=%s, price=%s, supplier='%s')",
        record.name,
        record.quantity,
        record.price,
        record.supplier_name,
    )
    return record


def record_sale(context: RuntimeContext, command: SaleCommand) -> SaleReceipt:
    """Validate a sale, decrement stock and append the sale record.

    The item is resolved from the in-memory cache. When every rule passes the
    sale line is appended and the inventory table is rewritten with the new
    quantity; when any rule fails neither table is touched.

    Args:
        context (RuntimeContext): Runtime context providing table paths and the
            inventory cache.
        command (SaleCommand): Item, quantity, payment and optional date.

    Returns:
        SaleReceipt: The stored sale together with total, change and remaining
            stock.

    Raises:
        ItemNotFoundError: If the item is unknown.
        ValidationError: If the quantity is not a positive integer or the
            payment is not a valid amount.
        InsufficientStockError: If more units are requested than in stock.
        InsufficientPaymentError: If ``amount_paid`` is below the total.
    """
    item = get_item(context, require_text(command.item_name, "Item name"))
    quantity = coerce_quantity(command.quantity, allow_zero=False)
    amount_paid = coerce_price(command.amount_paid)

    if quantity > item.quantity:
        log.error(
            "Sale of %d '%s' rejected: only %d in stock",
            quantity,
            item.name,
            item.quantity,
        )
        raise InsufficientStockError(
            f"Not enough stock for '{item.name}': requested {quantity}, available {item.quantity}"
        )

    total = item.price * quantity
    if amount_paid < total:
        log.error("Sale of '%s' rejected: paid %s, total %s", item.name, amount_paid, total)
        raise InsufficientPaymentError(f"Amount paid {amount_paid} does not cover total {total}")

    inventory_lines = data_manager.load_lines(context.settings.inventory_file)
    index = data_manager.find_by_key(inventory_lines, item.name)
    if index is None:
        log.warning("Inventory item '%s' is cached but missing from the table", item.name)
        raise ItemNotFoundError(f"Inventory item not found: {item.name}")

    updated = apply_quantity_change(item, -quantity)
    sale = data_manager.SaleRow(
        item_name=item.name,
        quantity_sold=quantity,
        price=item.price,
        sale_date=command.sale_date or date.today(),
    )
    inventory_lines[index] = data_manager.serialize_item(updated)

    data_manager.append_line(context.settings.sales_file, data_manager.serialize_sale(sale))
    data_manager.rewrite_lines(context.settings.inventory_file, inventory_lines)
    refresh_inventory(context)

    change = amount_paid - total
    log.info(
        "Recorded sale of %d '%s' on %s (total=%s, paid=%s, change=%s, remaining=%d)",
        quantity,
        item.name,
        sale.sale_date.strftime(DATE_FORMAT),
        total,
        amount_paid,
        change,
        updated.quantity,
    )
    return SaleReceipt(
        sale=sale,
        total=total,
        amount_paid=amount_paid,
        change=change,
        remaining_quantity=updated.quantity,
    )


def update_item(context: RuntimeContext, name: str, *, field_values: Mapping[str, Optional[str]]) -> bool:
    """Merge non-blank ``field_values`` into the stored item named ``name``.

    Accepted keys are ``name``, ``quantity``, ``price`` and ``supplier_name``.
    Blank or missing values keep the stored field.

    Returns:
        bool: ``True`` when the item was rewritten, ``False`` when no item
            carries ``name``.

    Raises:
        KeyError: If ``field_values`` names an unknown field.
        ValidationError: If the merged record does not validate.
        DuplicateRecordError: If a rename collides with another item.
    """
    updated = _merge_record(
        context.settings.inventory_file,
        TableName.INVENTORY,
        require_text(name, "Item name"),
        field_values,
        ITEM_FIELDS,
        decoder=data_manager.deserialize_item,
        encoder=data_manager.serialize_item,
    )
    if updated:
        refresh_inventory(context)
    return updated


def delete_item(context: RuntimeContext, name: str) -> bool:
    """Remove every inventory line keyed by ``name``.

    Returns:
        bool: ``True`` if at least one line was removed. When nothing matches
            the file is left untouched.
    """
    removed = _delete_by_key(context.settings.inventory_file, TableName.INVENTORY, require_text(name, "Item name"))
    if removed:
        refresh_inventory(context)
    return removed


# ---------------------------------------------------------------------------
# Suppliers
# ---------------------------------------------------------------------------


def add_supplier(context: RuntimeContext, *, name: str, contact: Optional[str]) -> data_manager.SupplierRow:
    """Validate and append a new supplier.

    Raises:
        ValidationError: If ``name`` is blank.
        DuplicateRecordError: If a supplier with the same name already exists.
    """
    record = data_manager.SupplierRow(
        name=require_storable(require_text(name, "Supplier name"), "Supplier name"),
        contact=require_storable((contact or "").strip(), "Contact"),
    )
    lines = data_manager.load_lines(context.settings.supplier_file)
    if data_manager.find_by_key(lines, record.name) is not None:
        log.error("Supplier '%s' already exists", record.name)
        raise DuplicateRecordError(f"Supplier already exists: {record.name}")

    data_manager.append_line(context.settings.supplier_file, data_manager.serialize_supplier(record))
    log.info("Added supplier '%s'", record.name)
    return record


def update_supplier(context: RuntimeContext, name: str, *, field_values: Mapping[str, Optional[str]]) -> bool:
    """Merge non-blank ``field_values`` (``name``, ``contact``) into a supplier.

    Inventory items that reference the old name are not touched.

    Returns:
        bool: ``True`` when the supplier was rewritten, ``False`` when not found.
    """
    return _merge_record(
        context.settings.supplier_file,
        TableName.SUPPLIERS,
        require_text(name, "Supplier name"),
        field_values,
        SUPPLIER_FIELDS,
        decoder=data_manager.deserialize_supplier,
        encoder=data_manager.serialize_supplier,
    )


def delete_supplier(context: RuntimeContext, name: str) -> bool:
    """Remove every supplier line keyed by ``name``.

    Items naming this supplier keep the now dangling reference.
    """
    return _delete_by_key(context.settings.supplier_file, TableName.SUPPLIERS, require_text(name, "Supplier name"))


def snapshot_suppliers(
    context: RuntimeContext,
    destination: Optional[Path] = None,
    *,
    now: Optional[datetime] = None,
) -> int:
    """Append a timestamped copy of every supplier line to a snapshot log.

    This is the periodic job a scheduler (cron, a service manager) runs via
    ``supply-cli snapshot-suppliers``.

    Returns:
        int: Number of supplier lines written.
    """
    destination = Path(destination) if destination is not None else context.settings.snapshot_log
    stamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    lines = [line for line in data_manager.load_lines(context.settings.supplier_file) if line.strip()]
    for line in lines:
        data_manager.append_line(destination, f"{stamp}: {line}")
    log.info("Wrote %d supplier line(s) to snapshot log '%s'", len(lines), destination)
    return len(lines)


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------


def delete_sale(context: RuntimeContext, item_name: str, sale_date: date) -> bool:
    """Remove the sale lines for ``item_name`` recorded on ``sale_date``.

    The item name comparison ignores case; the date must match exactly.
    Malformed lines are never removed.

    Returns:
        bool: ``True`` if at least one sale line was removed.
    """
    target = require_text(item_name, "Item name").casefold()

    def matches(line: str) -> bool:
        fields = data_manager.split_fields(line, TableName.SALES)
        if fields is None:
            return False
        return fields[0].casefold() == target and data_manager.parse_date(fields[3]) == sale_date

    path = context.settings.sales_file
    lines = data_manager.load_lines(path)
    kept, removed = data_manager.filter_out(lines, matches)
    if removed == 0:
        log.warning("No sale of '%s' on %s found", item_name, sale_date)
        return False
    data_manager.rewrite_lines(path, kept)
    log.info("Deleted %d sale record(s) of '%s' on %s", removed, item_name, sale_date)
    return True


# ---------------------------------------------------------------------------
# Shared table mutations
# ---------------------------------------------------------------------------


def _delete_by_key(path: Path, table: TableName, key: str) -> bool:
    lines = data_manager.load_lines(path)
    kept, removed = data_manager.filter_out(lines, lambda line: data_manager.key_matches(line, key))
    if removed == 0:
        log.warning("No %s record keyed '%s' found", table.value, key)
        return False
    data_manager.rewrite_lines(path, kept)
    log.info("Deleted %d %s record(s) keyed '%s'", removed, table.value, key)
    return True


def _merge_record(
    path: Path,
    table: TableName,
    key: str,
    field_values: Mapping[str, Optional[str]],
    columns: Mapping[str, int],
    *,
    decoder: Callable[[str], Any],
    encoder: Callable[[Any], str],
) -> bool:
    unknown = set(field_values) - set(columns)
    if unknown:
        raise KeyError(f"Unknown {table.value} field(s): {', '.join(sorted(unknown))}")

    lines = data_manager.load_lines(path)
    index = data_manager.find_by_key(lines, key)
    if index is None:
        log.warning("No %s record keyed '%s' found", table.value, key)
        return False

    fields = lines[index].split(FIELD_DELIMITER)
    if len(fields) != TABLE_ARITY[table]:
        log.error("Stored %s record keyed '%s' is malformed: %r", table.value, key, lines[index])
        raise ValidationError(f"Stored {table.value} record '{key}' is malformed")

    for column, position in columns.items():
        value = field_values.get(column)
        if value is not None and str(value).strip():
            fields[position] = require_storable(str(value).strip(), column)

    record = decoder(FIELD_DELIMITER.join(fields))
    if record is None:
        log.error("Update of %s record '%s' rejected: merged values %r are invalid", table.value, key, fields)
        raise ValidationError(f"Invalid values for {table.value} record '{key}'")

    if record.name.casefold() != key.casefold():
        clash = data_manager.find_by_key(lines, record.name)
        if clash is not None and clash != index:
            log.error("Rename of %s record '%s' to '%s' collides", table.value, key, record.name)
            raise DuplicateRecordError(f"A {table.value} record named '{record.name}' already exists")

    lines[index] = encoder(record)
    data_manager.rewrite_lines(path, lines)
    log.info("Updated %s record '%s'", table.value, key)
    return True
