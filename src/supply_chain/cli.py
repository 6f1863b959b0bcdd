"""Command-line entry points for the supply chain ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into calls on the business layer, and printing the
outcome. The same command table serves interactive use and scheduled jobs
(``snapshot-suppliers`` is what a cron entry or service manager runs).
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence, Tuple

from . import core_logic, data_manager, log, reports
from .constants import DATE_FORMAT, PeriodKind, SearchKind


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="supply-cli",
        description="Inventory, supplier and sales tracker for a Supply Chain store.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to the nearest config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands."""
    specs = {
        "add-item": register_add_item_command(subparsers),
        "update-item": register_update_item_command(subparsers),
        "delete-item": register_delete_item_command(subparsers),
        "add-supplier": register_add_supplier_command(subparsers),
        "update-supplier": register_update_supplier_command(subparsers),
        "delete-supplier": register_delete_supplier_command(subparsers),
        "sale": register_sale_command(subparsers),
        "delete-sale": register_delete_sale_command(subparsers),
        "snapshot-suppliers": register_snapshot_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as listings and reports."""
    specs = {
        "items": register_items_command(subparsers),
        "suppliers": register_suppliers_command(subparsers),
        "sales": register_sales_command(subparsers),
        "search": register_search_command(subparsers),
        "report": register_report_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _simple_spec(
    name: str,
    help_text: str,
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
    configure: Optional[Callable[[argparse.ArgumentParser], None]] = None,
) -> CommandSpec:
    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        if configure is not None:
            configure(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def register_add_item_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-item``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--quantity", required=True)
        parser.add_argument("--price", required=True)
        parser.add_argument("--supplier-name", required=True)

    return _simple_spec("add-item", "Add an item to the inventory table.", run_add_item, configure)


def register_update_item_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-item``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True, help="Name of the item to update.")
        parser.add_argument("--new-name", default=None)
        parser.add_argument("--quantity", default=None)
        parser.add_argument("--price", default=None)
        parser.add_argument("--supplier-name", default=None)

    return _simple_spec(
        "update-item",
        "Update an inventory item; omitted or blank fields keep their value.",
        run_update_item,
        configure,
    )


def register_delete_item_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-item``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)

    return _simple_spec("delete-item", "Delete an inventory item.", run_delete_item, configure)


def register_add_supplier_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-supplier``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--contact", default="")

    return _simple_spec("add-supplier", "Add a supplier.", run_add_supplier, configure)


def register_update_supplier_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-supplier``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True, help="Name of the supplier to update.")
        parser.add_argument("--new-name", default=None)
        parser.add_argument("--contact", default=None)

    return _simple_spec(
        "update-supplier",
        "Update a supplier; omitted or blank fields keep their value.",
        run_update_supplier,
        configure,
    )


def register_delete_supplier_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-supplier``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)

    return _simple_spec("delete-supplier", "Delete a supplier.", run_delete_supplier, configure)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--item-name", required=True)
        parser.add_argument("--quantity", required=True)
        parser.add_argument("--amount-paid", required=True)
        parser.add_argument("--date", default=None, help="Sale date (yyyy-MM-dd), defaults to today.")

    return _simple_spec("sale", "Record a sale against an inventory item.", run_sale, configure)


def register_delete_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-sale``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--item-name", required=True)
        parser.add_argument("--date", required=True, help="Sale date (yyyy-MM-dd).")

    return _simple_spec("delete-sale", "Delete the sale records of an item on a date.", run_delete_sale, configure)


def register_snapshot_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``snapshot-suppliers``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--output", type=Path, default=None, help="Override the configured snapshot log.")

    return _simple_spec(
        "snapshot-suppliers",
        "Append a timestamped copy of the supplier table to the snapshot log.",
        run_snapshot_suppliers,
        configure,
    )


def register_items_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``items``."""
    return _simple_spec("items", "Display all inventory items.", run_list_items)


def register_suppliers_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``suppliers``."""
    return _simple_spec("suppliers", "Display all suppliers.", run_list_suppliers)


def register_sales_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sales``."""
    return _simple_spec("sales", "Display all recorded sales.", run_list_sales)


def register_search_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``search``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--kind", choices=[member.value for member in SearchKind], required=True)
        parser.add_argument("--term", required=True)

    return _simple_spec("search", "Search items or suppliers by partial name.", run_search, configure)


def register_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``report``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--period", choices=[member.value for member in PeriodKind], required=True)
        parser.add_argument("--date", default=None, help="Any date in the window (yyyy-MM-dd), defaults to today.")
        parser.add_argument("--month", type=int, default=None, help="Month (1-12) overriding --date.")
        parser.add_argument("--year", type=int, default=None, help="Year overriding --date.")
        parser.add_argument("--save", action="store_true", help="Save the report under the reports directory.")
        parser.add_argument("--xlsx", action="store_true", help="Also export the report rows to a workbook.")

    return _simple_spec("report", "Print a weekly, monthly or yearly sales report.", run_report, configure)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    return core_logic.load_runtime_context(config_path)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_item(item: data_manager.InventoryRow) -> str:
    """One-line description of an inventory item."""
    return f"Item Name: {item.name}, Quantity: {item.quantity}, Price: {item.price}, Supplier: {item.supplier_name}"


def format_supplier(supplier: data_manager.SupplierRow) -> str:
    """One-line description of a supplier."""
    return f"Supplier Name: {supplier.name}, Contact: {supplier.contact}"


def format_sale(sale: data_manager.SaleRow) -> str:
    """One-line description of a sale."""
    return (
        f"Item Name: {sale.item_name}, Quantity Sold: {sale.quantity_sold}, "
        f"Price: {sale.price}, Date of Sale: {sale.sale_date.strftime(DATE_FORMAT)}"
    )


def emit_rows(rows: Sequence[Any], formatter: Callable[[Any], str], empty_message: str) -> None:
    if not rows:
        print(empty_message)
        return
    for row in rows:
        print(formatter(row))


# ---------------------------------------------------------------------------
# Argument translation
# ---------------------------------------------------------------------------


def parse_cli_date(raw: Optional[str]) -> Optional[date]:
    """Parse a ``yyyy-MM-dd`` argument.

    Raises:
        core_logic.ValidationError: If ``raw`` is not a valid date.
    """
    if raw is None:
        return None
    try:
        return datetime.strptime(raw.strip(), DATE_FORMAT).date()
    except ValueError as exc:
        raise core_logic.ValidationError(f"Invalid date format: {raw!r}; use yyyy-MM-dd") from exc


def translate_add_item(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an add-item request."""
    return {
        "name": args.name,
        "quantity": args.quantity,
        "price": args.price,
        "supplier_name": args.supplier_name,
    }


def translate_update_item(args: argparse.Namespace) -> Tuple[str, Mapping[str, Optional[str]]]:
    """Translate CLI args into the item key and its partial field values."""
    return args.name, {
        "name": args.new_name,
        "quantity": args.quantity,
        "price": args.price,
        "supplier_name": args.supplier_name,
    }


def translate_update_supplier(args: argparse.Namespace) -> Tuple[str, Mapping[str, Optional[str]]]:
    """Translate CLI args into the supplier key and its partial field values."""
    return args.name, {"name": args.new_name, "contact": args.contact}


def translate_sale(args: argparse.Namespace) -> core_logic.SaleCommand:
    """Translate CLI args into a sale command object."""
    return core_logic.SaleCommand(
        item_name=args.item_name,
        quantity=core_logic.coerce_quantity(args.quantity, allow_zero=False),
        amount_paid=core_logic.coerce_price(args.amount_paid),
        sale_date=parse_cli_date(args.date),
    )


def translate_report(args: argparse.Namespace, *, today: Optional[date] = None) -> Tuple[PeriodKind, date]:
    """Translate CLI args into a period kind and an anchor date.

    ``--month`` and ``--year`` override the matching parts of ``--date``.
    """
    anchor = parse_cli_date(args.date) or today or date.today()
    month = args.month if args.month is not None else anchor.month
    year = args.year if args.year is not None else anchor.year
    if not 1 <= month <= 12:
        raise core_logic.ValidationError("Invalid month. Please enter a number between 1 and 12.")
    if args.month is not None or args.year is not None:
        try:
            anchor = anchor.replace(year=year, month=month)
        except ValueError:
            anchor = date(year, month, 1)
    return PeriodKind(args.period), anchor


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def run_add_item(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-item workflow in the BLL."""
    item = core_logic.add_item(context, **translate_add_item(args))
    print(f"Inventory item '{item.name}' added successfully!")
    return 0


def run_update_item(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the update-item workflow in the BLL."""
    name, field_values = translate_update_item(args)
    if core_logic.update_item(context, name, field_values=field_values):
        print("Inventory item updated successfully.")
    else:
        print("Item not found.")
    return 0


def run_delete_item(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the delete-item workflow in the BLL."""
    if core_logic.delete_item(context, args.name):
        print("Inventory item deleted successfully.")
    else:
        print("Item not found.")
    return 0


def run_add_supplier(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-supplier workflow in the BLL."""
    supplier = core_logic.add_supplier(context, name=args.name, contact=args.contact)
    print(f"Supplier '{supplier.name}' added successfully!")
    return 0


def run_update_supplier(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the update-supplier workflow in the BLL."""
    name, field_values = translate_update_supplier(args)
    if core_logic.update_supplier(context, name, field_values=field_values):
        print("Supplier updated successfully!")
    else:
        print("Supplier not found.")
    return 0


def run_delete_supplier(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the delete-supplier workflow in the BLL."""
    if core_logic.delete_supplier(context, args.name):
        print("Supplier deleted successfully.")
    else:
        print("Supplier not found.")
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale workflow via the BLL and print the receipt summary."""
    receipt = core_logic.record_sale(context, translate_sale(args))
    print(f"Total Price: {receipt.total}")
    if receipt.change:
        print(f"Transaction successful. Your change is {receipt.change}.")
    else:
        print("Transaction successful. No change needed.")
    print(f"Sale of {receipt.sale.quantity_sold} {receipt.sale.item_name}(s) recorded successfully.")
    print(f"Remaining Quantity of {receipt.sale.item_name}: {receipt.remaining_quantity}")
    return 0


def run_delete_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the delete-sale workflow via the BLL."""
    if core_logic.delete_sale(context, args.item_name, parse_cli_date(args.date)):
        print("Sale record deleted successfully.")
    else:
        print("Sale record not found.")
    return 0


def run_snapshot_suppliers(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the supplier snapshot job."""
    count = core_logic.snapshot_suppliers(context, args.output)
    print(f"Logged {count} supplier(s).")
    return 0


def run_list_items(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print every inventory item."""
    emit_rows(core_logic.list_inventory(context), format_item, "No inventory items found.")
    return 0


def run_list_suppliers(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print every supplier."""
    emit_rows(core_logic.list_suppliers(context), format_supplier, "No suppliers found.")
    return 0


def run_list_sales(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print every sale."""
    emit_rows(core_logic.list_sales(context), format_sale, "No sales found.")
    return 0


def run_search(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the items or suppliers whose name contains the search term."""
    formatter = format_item if args.kind == SearchKind.ITEM.value else format_supplier
    matches = core_logic.search_by_name(context, args.kind, args.term)
    emit_rows(matches, formatter, "No records found matching the search term.")
    return 0


def run_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print a sales report and, when asked, save it to disk."""
    kind, anchor = translate_report(args)
    report = reports.generate_report(context, kind, anchor)
    if report is None:
        print(f"No sales found for the selected {kind.value}.")
        return 0
    print(report.content)
    if args.save:
        destination = reports.save_report(context, report)
        print(f"Sales report saved to: {destination}")
    if args.xlsx:
        workbook_path = reports.export_report_workbook(
            report,
            reports.report_path(context, report).with_suffix(".xlsx"),
        )
        print(f"Sales workbook saved to: {workbook_path}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, (data_manager.StorageError, FileNotFoundError)):
        log.error("%s", error)
        return 3
    if isinstance(error, core_logic.ValidationError):
        log.error("%s", error)
        return 4
    log.error("%s", error)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        return dispatch_command(context, args, command_table)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
