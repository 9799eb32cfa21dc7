"""Unit tests describing the CLI presentation layer contract."""

from __future__ import annotations

import argparse
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path

import pytest

from amelia_pos import cli, core_logic, csv_codec, data_manager


WRITE_COMMANDS = {
    "add-product",
    "update-product",
    "delete-product",
    "add-category",
    "delete-category",
    "import-csv",
    "cart-add",
    "cart-set",
    "cart-remove",
    "cart-clear",
    "checkout",
    "delete-sale",
    "clear-sales",
}

READ_COMMANDS = {
    "products",
    "totals",
    "categories",
    "cart",
    "export-csv",
    "template",
    "sales",
    "receipt",
    "barcode",
}


def _registered_choices(parser: argparse.ArgumentParser):
    for action in parser._actions:
        if isinstance(action, argparse._SubParsersAction):
            return action.choices
    return {}


def _context_for(config_file: Path) -> core_logic.RuntimeContext:
    return core_logic.load_runtime_context(config_file)


# ---------------------------------------------------------------------------
# Parser construction
# ---------------------------------------------------------------------------


def test_build_parser_sets_program_metadata():
    parser = cli.build_parser()
    assert isinstance(parser, argparse.ArgumentParser)
    assert parser.prog == "amelia-pos"
    assert "Amelia" in (parser.description or "")


def test_configure_subcommands_registers_every_command(cli_parser):
    command_table = cli.configure_subcommands(cli_parser)

    assert set(command_table) == WRITE_COMMANDS | READ_COMMANDS
    assert set(_registered_choices(cli_parser)) == WRITE_COMMANDS | READ_COMMANDS


def test_register_write_commands_returns_command_specs(subparsers_action):
    specs = cli.register_write_commands(subparsers_action)
    assert set(specs) == WRITE_COMMANDS
    for spec in specs.values():
        assert isinstance(spec, cli.CommandSpec)
        assert spec.help_text
        assert spec.name in subparsers_action.choices


def test_register_read_commands_returns_command_specs(subparsers_action):
    specs = cli.register_read_commands(subparsers_action)
    assert set(specs) == READ_COMMANDS
    for spec in specs.values():
        assert spec.name in subparsers_action.choices


def test_register_add_product_command_configures_arguments():
    parser = argparse.ArgumentParser(prog="cli")
    subparsers = parser.add_subparsers(dest="command")
    spec = cli.register_add_product_command(subparsers)
    spec.register(subparsers)
    namespace = parser.parse_args(
        [
            "add-product",
            "--name",
            "Cuaderno rayado",
            "--buy-price",
            "45.50",
            "--sell-price",
            "70",
            "--stock",
            "12",
            "--category",
            "c-office",
        ]
    )
    assert namespace.name == "Cuaderno rayado"
    assert namespace.buy_price == Decimal("45.50")
    assert namespace.sell_price == Decimal("70")
    assert namespace.stock == 12
    assert namespace.barcode is None
    assert namespace.category_id == "c-office"


def test_register_products_command_defaults():
    parser = argparse.ArgumentParser(prog="cli")
    subparsers = parser.add_subparsers(dest="command")
    cli.register_products_command(subparsers).register(subparsers)
    namespace = parser.parse_args(["products"])

    assert namespace.search == ""
    assert namespace.category_id == "all"
    assert namespace.stock == "all"
    assert namespace.sort == "name"
    assert namespace.direction == "asc"
    assert namespace.page == 1
    assert namespace.page_size is None


def test_register_sales_command_parses_dates():
    parser = argparse.ArgumentParser(prog="cli")
    subparsers = parser.add_subparsers(dest="command")
    cli.register_sales_command(subparsers).register(subparsers)
    namespace = parser.parse_args(["sales", "--from", "2024-03-01", "--to", "2024-03-31"])

    assert namespace.start_date == date(2024, 3, 1)
    assert namespace.end_date == date(2024, 3, 31)


@pytest.mark.parametrize("raw", ["abc", "-1", "NaN", "1e1000000"])
def test_parse_money_rejects_invalid_amounts(raw):
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_money(raw)


@pytest.mark.parametrize("raw", ["0", "-2", "dos"])
def test_parse_positive_int_rejects_non_positive_values(raw):
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_positive_int(raw)


def test_products_command_rejects_zero_page_size():
    parser = argparse.ArgumentParser(prog="cli")
    subparsers = parser.add_subparsers(dest="command")
    cli.register_products_command(subparsers).register(subparsers)

    assert parser.parse_args(["products", "--page-size", "3"]).page_size == 3
    with pytest.raises(SystemExit):
        parser.parse_args(["products", "--page-size", "0"])


# ---------------------------------------------------------------------------
# Dispatch and error handling
# ---------------------------------------------------------------------------


def test_build_command_table_rejects_duplicates():
    spec = cli.CommandSpec("alpha", "help", lambda subparsers: subparsers.add_parser("alpha"), lambda *_: 0)
    with pytest.raises(ValueError):
        cli.build_command_table([spec, spec])


def test_dispatch_command_unknown_raises(context):
    with pytest.raises(KeyError):
        cli.dispatch_command(context, argparse.Namespace(command="nope"), {})


def test_dispatch_command_runs_executor(context):
    calls = []
    spec = cli.CommandSpec(
        "alpha",
        "help",
        lambda subparsers: subparsers.add_parser("alpha"),
        lambda ctx, args: calls.append(args.command) or 0,
    )
    assert cli.dispatch_command(context, argparse.Namespace(command="alpha"), {"alpha": spec}) == 0
    assert calls == ["alpha"]


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (core_logic.InsufficientStockError("too many"), 2),
        (csv_codec.FormatError(["stock"]), 2),
        (FileNotFoundError("gone"), 3),
        (RuntimeError("schema"), 1),
    ],
)
def test_handle_cli_error_maps_exit_codes(error, expected):
    assert cli.handle_cli_error(error) == expected


def test_prompt_confirm_reads_answer(monkeypatch):
    monkeypatch.setattr("builtins.input", lambda prompt: "Sí")
    assert cli.prompt_confirm("Delete?") is True
    monkeypatch.setattr("builtins.input", lambda prompt: "")
    assert cli.prompt_confirm("Delete?") is False


def test_prompt_confirm_declines_on_eof(monkeypatch):
    def _eof(prompt):
        raise EOFError

    monkeypatch.setattr("builtins.input", _eof)
    assert cli.prompt_confirm("Delete?") is False


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def test_format_receipt_contains_every_part(product_factory):
    product = product_factory(id="p1", name="Pluma", sell_price=Decimal("25"), barcode="9999999999999")
    sale = data_manager.Sale(
        id="s1",
        items=(data_manager.CartItem(product, 2),),
        total=Decimal("50"),
        date=datetime(2024, 6, 1, 15, 0, tzinfo=UTC),
        receipt_number="R-000042",
    )
    text = cli.format_receipt(core_logic.build_receipt(sale, "Librería Amelia"))

    assert "Librería Amelia" in text
    assert "Recibo #R-000042" in text
    assert "Pluma x2" in text
    assert "|9999999999999|" in text
    assert text.splitlines()[-1].strip() == "¡Gracias por su compra!"
    assert any(line.startswith("Total") and line.endswith("C$ 50.00") for line in text.splitlines())


def test_format_money_groups_thousands():
    assert cli.format_money(Decimal("1234.5")) == "C$ 1,234.50"


# ---------------------------------------------------------------------------
# End-to-end through main
# ---------------------------------------------------------------------------


def test_main_add_category_and_list(config_file, capsys):
    assert cli.main(["--config", str(config_file), "add-category", "--name", "Libros"]) == 0
    capsys.readouterr()

    assert cli.main(["--config", str(config_file), "categories"]) == 0
    assert "Libros" in capsys.readouterr().out


def test_main_sale_flow(config_file, capsys):
    base = ["--config", str(config_file)]
    assert cli.main(base + ["add-product", "--name", "Pluma", "--buy-price", "10", "--sell-price", "25", "--stock", "3", "--barcode", "123"]) == 0
    product = core_logic.list_products(_context_for(config_file))[0]

    assert cli.main(base + ["cart-add", "--product-id", product.id, "--quantity", "2"]) == 0
    capsys.readouterr()
    assert cli.main(base + ["checkout"]) == 0
    out = capsys.readouterr().out

    assert "Pluma x2" in out
    assert "C$ 50.00" in out
    context = _context_for(config_file)
    assert core_logic.get_product(context, product.id).stock == 1
    assert len(core_logic.list_sales(context)) == 1
    assert core_logic.list_cart(context) == []


def test_main_cart_add_beyond_stock_returns_two(config_file):
    base = ["--config", str(config_file)]
    cli.main(base + ["add-product", "--name", "Pluma", "--sell-price", "25", "--stock", "1"])
    product = core_logic.list_products(_context_for(config_file))[0]

    assert cli.main(base + ["cart-add", "--product-id", product.id, "--quantity", "2"]) == 2


def test_main_delete_product_without_yes_prompts(config_file, monkeypatch):
    base = ["--config", str(config_file)]
    cli.main(base + ["add-product", "--name", "Pluma", "--sell-price", "25"])
    product = core_logic.list_products(_context_for(config_file))[0]

    monkeypatch.setattr("builtins.input", lambda prompt: "n")
    assert cli.main(base + ["delete-product", "--product-id", product.id]) == 0
    assert len(core_logic.list_products(_context_for(config_file))) == 1

    assert cli.main(base + ["--yes", "delete-product", "--product-id", product.id]) == 0
    assert core_logic.list_products(_context_for(config_file)) == []


def test_main_import_and_export_csv(config_file, tmp_path, capsys):
    source = tmp_path / "import.csv"
    source.write_text(
        "name,buyPrice,sellPrice,stock,barcode,category\n"
        "Regla,2,4,7,111,\n"
        "Roto,1\n"
        "Goma,1,3,9,222,\n",
        encoding="utf-8",
    )
    base = ["--config", str(config_file)]
    assert cli.main(base + ["import-csv", "--file", str(source)]) == 0
    out = capsys.readouterr().out
    assert "Imported 2 products." in out
    assert "Line 3: expected 6 columns, found 2" in out

    destination = tmp_path / "out" / "inventario.csv"
    assert cli.main(base + ["export-csv", "--output", str(destination)]) == 0
    lines = destination.read_text(encoding="utf-8").split("\n")
    assert len(lines) == 3
    assert '"Regla"' in lines[1]


def test_main_products_listing_pages(config_file, capsys):
    base = ["--config", str(config_file)]
    for name in ("Atlas", "Borrador", "Cuaderno"):
        cli.main(base + ["add-product", "--name", name, "--sell-price", "5", "--stock", "1"])
    capsys.readouterr()

    assert cli.main(base + ["products", "--page-size", "2", "--page", "5"]) == 0
    out = capsys.readouterr().out
    assert "Page 2/2 (3 products)" in out
    assert "Cuaderno" in out
    assert "Atlas" not in out


def test_main_unknown_receipt_returns_two(config_file):
    assert cli.main(["--config", str(config_file), "receipt", "--sale-id", "R-000000"]) == 2


def test_main_missing_config_returns_three(tmp_path):
    assert cli.main(["--config", str(tmp_path / "missing.ini"), "totals"]) == 3


def test_main_schema_mismatch_returns_one(config_factory):
    bundle = config_factory(schema_version="0.0.1")
    assert cli.main(["--config", str(bundle.config_path), "totals"]) == 1
