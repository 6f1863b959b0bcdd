"""Utility for initializing a supply chain ledger workspace.

The module doubles as a script (``supply-setup``) and as a library used by
tests or other tooling. It writes a default ``config.ini`` when none exists and
creates the empty table files and the reports directory it points at.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Sequence
import sys

from . import data_manager
from .constants import EXPECTED_SCHEMA_VERSION

CONFIG_FILE = data_manager.CONFIG_FILE_NAME

DEFAULT_CONFIG_TEMPLATE = (
    "[System]\n"
    "StoreName = {store_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Files]\n"
    "InventoryFile = inventory.txt\n"
    "SupplierFile = suppliers.txt\n"
    "SalesFile = sales.txt\n"
    "ReportsDir = SalesReports\n"
    "SnapshotLog = logs/suppliers_log.txt\n"
)


def write_default_config(
    config_path: Path,
    *,
    store_name: str = "Supply Chain Store",
    overwrite: bool = False,
) -> Path:
    """Write a ``config.ini`` whose table paths are relative to its folder.

    Raises:
        FileExistsError: If ``config_path`` exists and ``overwrite`` is ``False``.
    """

    config_path = config_path.expanduser().resolve()
    if config_path.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing configuration: {config_path}")

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(
        DEFAULT_CONFIG_TEMPLATE.format(store_name=store_name, schema_version=EXPECTED_SCHEMA_VERSION),
        encoding="utf-8",
    )
    return config_path


def load_settings(config_path: Path) -> data_manager.ConfigSettings:
    """Read ``config.ini`` and resolve its paths against the config folder."""

    config_path = config_path.expanduser().resolve()
    parser = data_manager.read_config(config_path)
    return data_manager.parse_settings(parser, base_path=config_path.parent)


def initialize_tables(settings: data_manager.ConfigSettings, *, overwrite: bool = False) -> List[Path]:
    """Create empty table files and the reports directory.

    Existing tables are left alone unless ``overwrite`` is ``True``, in which
    case they are truncated.

    Returns:
        list[Path]: The table files that were created or truncated.
    """

    touched: List[Path] = []
    for path in (settings.inventory_file, settings.supplier_file, settings.sales_file):
        if path.exists() and not overwrite:
            continue
        data_manager.rewrite_lines(path, [])
        touched.append(path)
    settings.reports_dir.mkdir(parents=True, exist_ok=True)
    return touched


def run_from_config(config_path: Path, *, overwrite: bool = False) -> List[Path]:
    """Create a default config when missing, then initialize its tables."""

    if not config_path.exists():
        write_default_config(config_path)
    settings = load_settings(config_path)
    return initialize_tables(settings, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize the supply chain data files")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Truncate existing table files.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Supply Chain Setup Script ---")
    print(f"Using configuration: {config_path}")

    try:
        created = run_from_config(config_path, overwrite=args.force)
    except KeyError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except (data_manager.StorageError, OSError) as exc:
        print(f"\n[ERROR] Unable to write data files: {exc}")
        return 1

    for path in created:
        print(f"Created table file: '{path}'")
    print("\n[SUCCESS] Data files are ready.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
