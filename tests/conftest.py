"""Shared pytest fixtures and utilities for Amelia POS tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from amelia_pos import constants, core_logic, data_manager  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "ShopName = {shop_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Defaults]\n"
    "PageSize = {page_size}\n"
    "ExportDirectory = {export_dir}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    shop_name: str


def make_product(**overrides) -> data_manager.Product:
    """Build a product with sensible defaults; keyword arguments win."""

    values = dict(
        id=f"p-{uuid.uuid4().hex[:8]}",
        name="Cuaderno",
        buy_price=Decimal("50"),
        sell_price=Decimal("80"),
        stock=5,
        barcode="7501234567890",
        category="",
    )
    values.update(overrides)
    return data_manager.Product(**values)


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an empty store workbook in a temp folder."""

    def _create_workbook(*, subdir: str | None = None, filename: str = "amelia_store.xlsx") -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        return data_manager.create_store_workbook(base_dir / filename, overwrite=True)

    return _create_workbook


@pytest.fixture
def store_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh store workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        shop_name: str = "Test Shop",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        page_size: int = 10,
    ) -> ConfigBundle:
        bundle_dir_name = f"bundle_{uuid.uuid4().hex}"
        bundle_dir = tmp_path / bundle_dir_name
        workbook_path = workbook_factory(subdir=bundle_dir_name)
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                shop_name=shop_name,
                schema_version=schema_version,
                page_size=page_size,
                export_dir="exports",
            ),
            encoding="utf-8",
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            shop_name=shop_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="amelia-pos-test", description="Amelia POS")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "amelia_store.xlsx",
        shop_name="Test Shop",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
        export_dir=tmp_path,
    )


@pytest.fixture
def memory_backend() -> data_manager.MemoryBackend:
    return data_manager.MemoryBackend()


@pytest.fixture
def context(
    settings: data_manager.ConfigSettings,
    memory_backend: data_manager.MemoryBackend,
) -> core_logic.RuntimeContext:
    """Assemble a runtime context over an in-memory store."""

    return core_logic.RuntimeContext(settings=settings, store=data_manager.Store(memory_backend))


@pytest.fixture
def categories() -> list[data_manager.Category]:
    return [
        data_manager.Category(id="c-books", name="Libros"),
        data_manager.Category(id="c-office", name="Oficina"),
    ]


@pytest.fixture
def products() -> list[data_manager.Product]:
    return [
        make_product(id="p1", name="Novela", buy_price=Decimal("100"), sell_price=Decimal("150"), stock=4, barcode="1111111111111", category="c-books"),
        make_product(id="p2", name="Lápiz", buy_price=Decimal("5"), sell_price=Decimal("10"), stock=0, barcode="2222222222222", category="c-office"),
        make_product(id="p3", name="Atlas", buy_price=Decimal("300"), sell_price=Decimal("420"), stock=12, barcode="3333333333333", category="c-books"),
        make_product(id="p4", name="Borrador", buy_price=Decimal("3"), sell_price=Decimal("8"), stock=25, barcode="4444444444444", category=""),
    ]


@pytest.fixture
def stocked_context(
    context: core_logic.RuntimeContext,
    categories: list[data_manager.Category],
    products: list[data_manager.Product],
) -> core_logic.RuntimeContext:
    """In-memory context pre-loaded with the sample categories and products."""

    data_manager.save_categories(context.store, categories)
    data_manager.save_products(context.store, products)
    return context


@pytest.fixture
def accept() -> Callable[[str], bool]:
    return lambda message: True


@pytest.fixture
def decline() -> Callable[[str], bool]:
    return lambda message: False


@pytest.fixture
def product_factory() -> Callable[..., data_manager.Product]:
    """Expose :func:`make_product` to test modules."""

    return make_product
