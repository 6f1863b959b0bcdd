"""Integration tests describing the end-to-end supply chain workflows.

These scenarios drive the CLI entry point against real files in a temporary
workspace so the data access, business logic and presentation layers are
exercised together.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from supply_chain import cli, core_logic, data_manager, reports


def _run(config_file, *argv: str) -> int:
    return cli.main(["--config", str(config_file), *argv])


def test_stock_sale_and_report_flow(config_bundle, capsys):
    """Walk through supplier, stock, sale and reporting using the CLI."""

    config_file = config_bundle.config_path
    settings = config_bundle.settings

    assert _run(config_file, "add-supplier", "--name", "Acme Feeds", "--contact", "555-0100") == 0
    assert _run(config_file, "add-item", "--name", "Corn", "--quantity", "5", "--price", "10", "--supplier-name", "Acme Feeds") == 0
    assert _run(config_file, "add-item", "--name", "Cornflakes", "--quantity", "8", "--price", "3.25", "--supplier-name", "Acme Feeds") == 0

    assert _run(config_file, "sale", "--item-name", "corn", "--quantity", "2", "--amount-paid", "25", "--date", "2024-03-15") == 0
    assert data_manager.load_lines(settings.inventory_file) == [
        "Corn,3,10,Acme Feeds",
        "Cornflakes,8,3.25,Acme Feeds",
    ]
    assert data_manager.load_lines(settings.sales_file) == ["Corn,2,10,2024-03-15"]

    capsys.readouterr()
    assert _run(config_file, "report", "--period", "week", "--date", "2024-03-15", "--save") == 0
    out = capsys.readouterr().out
    assert "Weekly Sales Report (2024-03-10 to 2024-03-16)" in out

    saved = settings.reports_dir / "Week-2024-03-10" / "WeeklySalesReport.txt"
    assert saved.exists()
    assert "Total:   " + "20".rjust(25) in saved.read_text(encoding="utf-8").splitlines()


def test_rejected_sale_leaves_files_untouched(config_bundle):
    config_file = config_bundle.config_path
    settings = config_bundle.settings
    _run(config_file, "add-item", "--name", "Hay", "--quantity", "1", "--price", "7.50", "--supplier-name", "Green")
    before = (settings.inventory_file.read_bytes(), settings.sales_file.read_bytes())

    assert _run(config_file, "sale", "--item-name", "Hay", "--quantity", "2", "--amount-paid", "50") == 2
    assert _run(config_file, "sale", "--item-name", "Hay", "--quantity", "1", "--amount-paid", "7") == 2
    assert _run(config_file, "sale", "--item-name", "Straw", "--quantity", "1", "--amount-paid", "7") == 2
    assert _run(config_file, "sale", "--item-name", "Hay", "--quantity", "x", "--amount-paid", "7") == 4

    assert (settings.inventory_file.read_bytes(), settings.sales_file.read_bytes()) == before


def test_partial_update_and_delete_flow(config_bundle, capsys):
    config_file = config_bundle.config_path
    settings = config_bundle.settings
    _run(config_file, "add-item", "--name", "Corn", "--quantity", "5", "--price", "10", "--supplier-name", "Acme Feeds")
    _run(config_file, "add-item", "--name", "Cornflakes", "--quantity", "8", "--price", "3.25", "--supplier-name", "Acme Feeds")

    assert _run(config_file, "update-item", "--name", "Corn", "--quantity", "", "--price", "12.50") == 0
    assert data_manager.load_lines(settings.inventory_file)[0] == "Corn,5,12.50,Acme Feeds"

    assert _run(config_file, "delete-item", "--name", "Corn") == 0
    assert data_manager.load_lines(settings.inventory_file) == ["Cornflakes,8,3.25,Acme Feeds"]

    before = settings.inventory_file.read_bytes()
    capsys.readouterr()
    assert _run(config_file, "delete-item", "--name", "Corn") == 0
    assert capsys.readouterr().out.strip() == "Item not found."
    assert settings.inventory_file.read_bytes() == before

    assert _run(config_file, "add-item", "--name", "cornflakes", "--quantity", "1", "--price", "1", "--supplier-name", "X") == 2


def test_layers_agree_after_reload(config_bundle):
    """A fresh context sees exactly what a previous one wrote."""

    first = core_logic.load_runtime_context(config_bundle.config_path)
    core_logic.add_supplier(first, name="Green Pastures", contact="555-0199")
    core_logic.add_item(first, name="Hay", quantity=10, price=Decimal("7.50"), supplier_name="Green Pastures")
    core_logic.record_sale(first, core_logic.SaleCommand("Hay", 4, Decimal("30"), date(2024, 12, 31)))

    second = core_logic.load_runtime_context(config_bundle.config_path)
    assert core_logic.get_item(second, "hay").quantity == 6
    assert core_logic.list_suppliers(second) == [data_manager.SupplierRow("Green Pastures", "555-0199")]

    report = reports.generate_report(second, "year", date(2024, 1, 1))
    assert report.grand_total == Decimal("30.00")
    assert reports.generate_report(second, "year", date(2025, 1, 1)) is None


def test_commands_run_with_a_badly_encoded_line(config_bundle, capsys):
    """One undecodable line is skipped; the rest of the table stays usable."""

    config_file = config_bundle.config_path
    settings = config_bundle.settings
    settings.inventory_file.write_bytes(b"Corn,5,10,Acme Feeds\nCaf\xe9,1,2,X\n")

    assert _run(config_file, "items") == 0
    assert "Item Name: Corn" in capsys.readouterr().out

    assert _run(config_file, "sale", "--item-name", "Corn", "--quantity", "1", "--amount-paid", "10") == 0
    assert settings.inventory_file.read_bytes() == b"Corn,4,10,Acme Feeds\nCaf\xe9,1,2,X\n"
