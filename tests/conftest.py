"""Shared pytest fixtures and utilities for supply chain ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from supply_chain import cli, core_logic, data_manager  # noqa: E402
from supply_chain.setup_data import initialize_tables, write_default_config  # noqa: E402


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    settings: data_manager.ConfigSettings


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates a config file plus empty tables."""

    def _create_config(*, store_name: str = "Test Store") -> ConfigBundle:
        bundle_dir = tmp_path / f"bundle_{uuid.uuid4().hex}"
        config_path = write_default_config(bundle_dir / "config.ini", store_name=store_name)
        parser = data_manager.read_config(config_path)
        settings = data_manager.parse_settings(parser, base_path=config_path.parent)
        initialize_tables(settings)
        return ConfigBundle(directory=bundle_dir, config_path=config_path, settings=settings)

    return _create_config


@pytest.fixture
def config_bundle(config_factory: Callable[..., ConfigBundle]) -> ConfigBundle:
    """Return a fresh config/table bundle."""

    return config_factory()


@pytest.fixture
def config_file(config_bundle: ConfigBundle) -> Path:
    """Convenience fixture returning only the config path."""

    return config_bundle.config_path


@pytest.fixture
def settings(config_bundle: ConfigBundle) -> data_manager.ConfigSettings:
    """Settings resolved from the temporary config file."""

    return config_bundle.settings


@pytest.fixture
def write_table() -> Callable[[Path, Iterable[str]], Path]:
    """Write raw lines to a table file, bypassing the data layer."""

    def _write(path: Path, lines: Iterable[str]) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def seeded_settings(settings, write_table) -> data_manager.ConfigSettings:
    """Settings whose tables hold a small, known data set."""

    write_table(
        settings.inventory_file,
        [
            "Corn,5,10,Acme Feeds",
            "Cornflakes,8,3.25,Acme Feeds",
            "Hay,20,7.50,Green Pastures",
        ],
    )
    write_table(
        settings.supplier_file,
        [
            "Acme Feeds,555-0100",
            "Green Pastures,555-0199",
        ],
    )
    write_table(
        settings.sales_file,
        [
            "Corn,2,10,2024-03-15",
            "Hay,1,7.50,2024-03-17",
            "Hay,4,7.50,2024-04-02",
            "Cornflakes,1,3.25,2023-12-31",
        ],
    )
    return settings


@pytest.fixture
def context(seeded_settings) -> core_logic.RuntimeContext:
    """Runtime context over the seeded tables with a warm inventory cache."""

    context = core_logic.RuntimeContext(settings=seeded_settings)
    core_logic.refresh_inventory(context)
    return context


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return cli.build_parser()


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")
