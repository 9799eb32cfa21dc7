"""Command-line entry points for Amelia POS.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into calls on the business layer, and rendering the
results as plain text. Keeping the CLI thin ensures the same parser
configuration can be reused by tests, scripts, or any alternative front-end.
"""

from __future__ import annotations

import argparse
import math
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, csv_codec, log
from .constants import (
    ALL_CATEGORIES,
    TEMPLATE_FILENAME,
    SortDirection,
    SortField,
    StockFilter,
)
from .data_manager import Category, Product, Sale


RECEIPT_WIDTH = 40
CONFIRM_ANSWERS = {"y", "yes", "s", "si", "sí"}


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
        prog="amelia-pos",
        description="Point of sale and inventory tools for the Amelia shop.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to searching upwards from ./).",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Answer yes to every confirmation prompt.",
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
    """Declare commands that change the store."""
    specs = {
        "add-product": register_add_product_command(subparsers),
        "update-product": register_update_product_command(subparsers),
        "delete-product": register_delete_product_command(subparsers),
        "add-category": register_add_category_command(subparsers),
        "delete-category": register_delete_category_command(subparsers),
        "import-csv": register_import_csv_command(subparsers),
        "cart-add": register_cart_add_command(subparsers),
        "cart-set": register_cart_set_command(subparsers),
        "cart-remove": register_cart_remove_command(subparsers),
        "cart-clear": register_cart_clear_command(subparsers),
        "checkout": register_checkout_command(subparsers),
        "delete-sale": register_delete_sale_command(subparsers),
        "clear-sales": register_clear_sales_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only commands such as listings, exports and receipts."""
    specs = {
        "products": register_products_command(subparsers),
        "totals": register_totals_command(subparsers),
        "categories": register_categories_command(subparsers),
        "cart": register_cart_command(subparsers),
        "export-csv": register_export_csv_command(subparsers),
        "template": register_template_command(subparsers),
        "sales": register_sales_command(subparsers),
        "receipt": register_receipt_command(subparsers),
        "barcode": register_barcode_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


# ---------------------------------------------------------------------------
# Argument types
# ---------------------------------------------------------------------------


def parse_money(text: str) -> Decimal:
    """argparse type for prices: a finite, non-negative decimal."""
    try:
        value = Decimal(text)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid amount: {text!r}") from exc
    if not value.is_finite() or not math.isfinite(float(value)) or value < 0:
        raise argparse.ArgumentTypeError(f"invalid amount: {text!r}")
    return value


def parse_positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {text!r}") from exc
    if value <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {text!r}")
    return value


def parse_date(text: str) -> date:
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date (expected YYYY-MM-DD): {text!r}") from exc


def _add_product_fields(parser: argparse.ArgumentParser, *, required: bool) -> None:
    parser.add_argument("--name", required=required)
    parser.add_argument("--buy-price", type=parse_money, default=None)
    parser.add_argument("--sell-price", type=parse_money, default=None)
    parser.add_argument("--stock", type=int, default=None)
    parser.add_argument("--barcode", default=None, help="Defaults to a random 13-digit code for new products.")
    parser.add_argument("--category", dest="category_id", default=None, help="Category id, empty for none.")


# ---------------------------------------------------------------------------
# Write command registrations
# ---------------------------------------------------------------------------


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Add a new product to the inventory."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_product_fields(parser, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_product)


def register_update_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-product``."""
    name = "update-product"
    help_text = "Edit fields of an existing product."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        _add_product_fields(parser, required=False)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_update_product)


def register_delete_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-product``."""
    name = "delete-product"
    help_text = "Delete a product from the inventory."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_product)


def register_add_category_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-category``."""
    name = "add-category"
    help_text = "Create a product category."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_category)


def register_delete_category_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-category``."""
    name = "delete-category"
    help_text = "Delete a category; its products become uncategorized."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--category-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_category)


def register_import_csv_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``import-csv``."""
    name = "import-csv"
    help_text = "Import products from a CSV file, updating products with matching ids."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--file", type=Path, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_import_csv)


def register_cart_add_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cart-add``."""
    name = "cart-add"
    help_text = "Add a product to the cart."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", type=int, default=1)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_cart_add)


def register_cart_set_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cart-set``."""
    name = "cart-set"
    help_text = "Change the quantity of a cart line (0 removes it)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", type=int, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_cart_set)


def register_cart_remove_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cart-remove``."""
    name = "cart-remove"
    help_text = "Remove a product from the cart."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_cart_remove)


def register_cart_clear_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cart-clear``."""
    name = "cart-clear"
    help_text = "Empty the cart."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_cart_clear)


def register_checkout_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``checkout``."""
    name = "checkout"
    help_text = "Complete the sale for the current cart and print the receipt."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_checkout)


def register_delete_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-sale``."""
    name = "delete-sale"
    help_text = "Delete one sale from the history."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True, help="Sale id or receipt number.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_sale)


def register_clear_sales_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``clear-sales``."""
    name = "clear-sales"
    help_text = "Delete the whole sales history."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_clear_sales)


# ---------------------------------------------------------------------------
# Read command registrations
# ---------------------------------------------------------------------------


def register_products_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``products``."""
    name = "products"
    help_text = "List products with optional search, filters, sorting and paging."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--search", default="")
        parser.add_argument("--category", dest="category_id", default=ALL_CATEGORIES)
        parser.add_argument("--stock", choices=[member.value for member in StockFilter], default=StockFilter.ALL.value)
        parser.add_argument("--sort", choices=[member.value for member in SortField], default=SortField.NAME.value)
        parser.add_argument(
            "--direction",
            choices=[member.value for member in SortDirection],
            default=SortDirection.ASC.value,
        )
        parser.add_argument("--page", type=int, default=1)
        parser.add_argument("--page-size", type=parse_positive_int, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_products_report)


def register_totals_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``totals``."""
    name = "totals"
    help_text = "Display inventory value at cost and at sale price."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_totals_report)


def register_categories_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``categories``."""
    name = "categories"
    help_text = "List categories."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_categories_report)


def register_cart_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cart``."""
    name = "cart"
    help_text = "Show the current cart."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_cart_report)


def register_export_csv_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export-csv``."""
    name = "export-csv"
    help_text = "Export the inventory to a dated CSV file."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--output", type=Path, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_export_csv)


def register_template_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``template``."""
    name = "template"
    help_text = "Write an import template CSV with an example row."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--output", type=Path, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_template)


def register_sales_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sales``."""
    name = "sales"
    help_text = "Browse the sales history, newest first."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--search", default="")
        parser.add_argument("--from", dest="start_date", type=parse_date, default=None)
        parser.add_argument("--to", dest="end_date", type=parse_date, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sales_report)


def register_receipt_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``receipt``."""
    name = "receipt"
    help_text = "Print the receipt of a recorded sale."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True, help="Sale id or receipt number.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_receipt)


def register_barcode_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``barcode``."""
    name = "barcode"
    help_text = "Show the barcode value and render options of a product."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_barcode)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


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


def prompt_confirm(message: str) -> bool:
    """Ask a yes/no question on the terminal; anything but yes declines."""
    try:
        answer = input(f"{message} [y/N] ")
    except EOFError:
        return False
    return answer.strip().casefold() in CONFIRM_ANSWERS


def build_confirm(args: argparse.Namespace) -> core_logic.Confirm:
    if getattr(args, "yes", False):
        return lambda message: True
    return prompt_confirm


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def translate_add_product(args: argparse.Namespace, categories: Sequence[Category]) -> Product:
    """Translate CLI args into a new product based on a fresh draft."""
    draft = core_logic.new_product_draft(categories)
    return replace(
        draft,
        name=args.name,
        buy_price=args.buy_price if args.buy_price is not None else draft.buy_price,
        sell_price=args.sell_price if args.sell_price is not None else draft.sell_price,
        stock=args.stock if args.stock is not None else draft.stock,
        barcode=args.barcode if args.barcode is not None else draft.barcode,
        category=args.category_id if args.category_id is not None else draft.category,
    )


def translate_update_product(args: argparse.Namespace, existing: Product) -> Product:
    """Apply only the fields given on the command line to ``existing``."""
    changes = {
        "name": args.name,
        "buy_price": args.buy_price,
        "sell_price": args.sell_price,
        "stock": args.stock,
        "barcode": args.barcode,
        "category": args.category_id,
    }
    return replace(existing, **{key: value for key, value in changes.items() if value is not None})


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def format_money(amount: Decimal) -> str:
    return f"C$ {amount:,.2f}"


def format_product_rows(products: Sequence[Product], categories: Sequence[Category]) -> str:
    header = f"{'ID':<36}  {'Name':<30}  {'Category':<16}  {'Barcode':<13}  {'Buy':>12}  {'Sell':>12}  {'Stock':>5}"
    lines = [header, "-" * len(header)]
    for product in products:
        lines.append(
            f"{product.id:<36}  {product.name[:30]:<30}  "
            f"{core_logic.category_name(categories, product.category)[:16]:<16}  "
            f"{product.barcode:<13}  {format_money(product.buy_price):>12}  "
            f"{format_money(product.sell_price):>12}  {product.stock:>5}"
        )
    return "\n".join(lines)


def _two_columns(left: str, right: str, width: int = RECEIPT_WIDTH) -> str:
    gap = max(width - len(left) - len(right), 1)
    return f"{left}{' ' * gap}{right}"


def format_receipt(receipt: core_logic.Receipt) -> str:
    """Render a receipt as fixed-width text ready for a receipt printer."""
    local_time = receipt.issued_at.astimezone()
    lines = [
        receipt.shop_name.center(RECEIPT_WIDTH).rstrip(),
        local_time.strftime("%Y-%m-%d %H:%M:%S").center(RECEIPT_WIDTH).rstrip(),
        f"Recibo #{receipt.receipt_number}".center(RECEIPT_WIDTH).rstrip(),
        "-" * RECEIPT_WIDTH,
    ]
    for line in receipt.lines:
        lines.append(_two_columns(f"{line.name} x{line.quantity}", format_money(line.line_total)))
        if line.barcode.display_value:
            lines.append(f"  |{line.barcode.value}|")
    lines.append("-" * RECEIPT_WIDTH)
    lines.append(_two_columns("Total", format_money(receipt.total)))
    lines.append("")
    lines.append(receipt.footer.center(RECEIPT_WIDTH).rstrip())
    return "\n".join(lines)


def format_sale_row(sale: Sale) -> str:
    when = sale.date.astimezone().strftime("%Y-%m-%d %H:%M")
    count = sum(item.quantity for item in sale.items)
    return f"{sale.receipt_number:<10}  {when}  {count:>4} items  {format_money(sale.total):>14}  {sale.id}"


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-product workflow in the BLL."""
    product = translate_add_product(args, core_logic.list_categories(context))
    saved = core_logic.save_product(context, product, confirm=build_confirm(args))
    if saved is None:
        print("Cancelled.")
        return 0
    print(f"Added product {saved.id} ({saved.name}), barcode {saved.barcode}")
    return 0


def run_update_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the update-product workflow in the BLL."""
    existing = core_logic.get_product(context, args.product_id)
    saved = core_logic.save_product(context, translate_update_product(args, existing), confirm=build_confirm(args))
    print("Cancelled." if saved is None else f"Updated product {saved.id} ({saved.name})")
    return 0


def run_delete_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the delete-product workflow in the BLL."""
    deleted = core_logic.delete_product(context, args.product_id, confirm=build_confirm(args))
    print(f"Deleted product {args.product_id}" if deleted else "Cancelled.")
    return 0


def run_add_category(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    category = core_logic.add_category(context, args.name)
    print(f"Added category {category.id} ({category.name})")
    return 0


def run_delete_category(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    deleted = core_logic.remove_category(context, args.category_id, confirm=build_confirm(args))
    print(f"Deleted category {args.category_id}" if deleted else "Cancelled.")
    return 0


def run_import_csv(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the CSV import and report row errors once at the end."""
    text = Path(args.file).read_text(encoding="utf-8-sig")
    result = core_logic.import_products_csv(context, text)
    if result.success:
        print(f"Imported {len(result.products)} products.")
    else:
        print("No products could be imported.")
    if result.errors:
        print(f"{len(result.errors)} rows skipped:")
        for message in result.error_messages:
            print(f"  {message}")
    return 0 if result.success else 2


def run_cart_add(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    cart = core_logic.add_product_to_cart(context, args.product_id, args.quantity)
    print(f"Cart: {core_logic.cart_item_count(cart)} items, {format_money(core_logic.cart_total(cart))}")
    return 0


def run_cart_set(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    cart = core_logic.set_cart_quantity(context, args.product_id, args.quantity)
    print(f"Cart: {core_logic.cart_item_count(cart)} items, {format_money(core_logic.cart_total(cart))}")
    return 0


def run_cart_remove(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    cart = core_logic.remove_cart_item(context, args.product_id)
    print(f"Cart: {core_logic.cart_item_count(cart)} items, {format_money(core_logic.cart_total(cart))}")
    return 0


def run_cart_clear(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.clear_cart(context)
    print("Cart emptied.")
    return 0


def run_checkout(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the checkout workflow and print the receipt."""
    sale = core_logic.complete_checkout(context)
    print(format_receipt(core_logic.build_receipt(sale, context.settings.shop_name)))
    return 0


def run_delete_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    deleted = core_logic.delete_sale(context, args.sale_id, confirm=build_confirm(args))
    print(f"Deleted sale {args.sale_id}" if deleted else "Cancelled.")
    return 0


def run_clear_sales(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    cleared = core_logic.clear_sales_history(context, confirm=build_confirm(args))
    print("Sales history cleared." if cleared else "Cancelled.")
    return 0


def run_products_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the product listing with filters, sort and pagination."""
    categories = core_logic.list_categories(context)
    products = core_logic.filter_products(
        core_logic.list_products(context),
        args.search,
        args.category_id,
        args.stock,
    )
    products = core_logic.sort_products(products, args.sort, args.direction, categories)
    page_size = args.page_size if args.page_size is not None else context.settings.page_size
    page = core_logic.clamp_page(args.page, len(products), page_size)
    print(format_product_rows(core_logic.paginate(products, page, page_size), categories))
    print(f"Page {page}/{core_logic.total_pages(len(products), page_size)} ({len(products)} products)")
    return 0


def run_totals_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    totals = core_logic.compute_totals(core_logic.list_products(context))
    print(f"Inventory at cost:     {format_money(totals.total_buy_value)}")
    print(f"Inventory at price:    {format_money(totals.total_sell_value)}")
    print(f"Potential profit:      {format_money(totals.potential_profit)}")
    return 0


def run_categories_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for category in core_logic.list_categories(context):
        print(f"{category.id}  {category.name}")
    return 0


def run_cart_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    cart = core_logic.list_cart(context)
    if not cart:
        print("Cart is empty.")
        return 0
    for item in cart:
        print(_two_columns(f"{item.name} x{item.quantity}", format_money(item.line_total), width=60))
    print(_two_columns(f"{core_logic.cart_item_count(cart)} items", format_money(core_logic.cart_total(cart)), width=60))
    return 0


def run_export_csv(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Write the inventory CSV to ``--output`` or the configured export folder."""
    destination = args.output or context.settings.export_dir / csv_codec.export_filename(date.today())
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(core_logic.export_products_csv(context), encoding="utf-8")
    log.info("Exported inventory CSV to '%s'", destination)
    print(f"Exported inventory to {destination}")
    return 0


def run_template(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    destination = args.output or context.settings.export_dir / TEMPLATE_FILENAME
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(csv_codec.build_template(), encoding="utf-8")
    print(f"Wrote import template to {destination}")
    return 0


def run_sales_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sales history listing."""
    sales = core_logic.filter_sales_history(
        core_logic.list_sales(context),
        args.search,
        args.start_date,
        args.end_date,
    )
    for sale in sales:
        print(format_sale_row(sale))
    print(f"{len(sales)} sales, total {format_money(core_logic.sales_total(sales))}")
    return 0


def run_receipt(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    sale = core_logic.get_sale(context, args.sale_id)
    print(format_receipt(core_logic.build_receipt(sale, context.settings.shop_name)))
    return 0


def run_barcode(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    product = core_logic.get_product(context, args.product_id)
    spec = core_logic.barcode_spec(product.barcode)
    print(f"{spec.value} format={spec.format} width={spec.width} height={spec.height} text={spec.display_value}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    # FormatError and quantity checks surface as ValueError.
    if isinstance(error, (core_logic.BusinessRuleViolation, ValueError)):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
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
