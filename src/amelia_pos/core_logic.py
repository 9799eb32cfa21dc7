"""Business logic layer for Amelia POS.

This module holds the inventory and point-of-sale rules. Pure helpers operate
on plain lists of domain records so they can be reused and tested without any
storage; the ``context`` functions load collections from the persisted store,
apply those helpers and write the results back.

Operations that touch more than one collection (checkout, category deletion,
CSV import) write inside :meth:`~amelia_pos.data_manager.Store.atomic` so the
collections reach disk together.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar, Union

from . import csv_codec, data_manager, log
from .constants import (
    ALL_CATEGORIES,
    EXPECTED_SCHEMA_VERSION,
    LOW_STOCK_THRESHOLD,
    RECEIPT_FOOTER,
    UNCATEGORIZED_LABEL,
    SortDirection,
    SortField,
    StockFilter,
)
from .data_manager import CartItem, Category, Product, Sale


T = TypeVar("T")

Confirm = Callable[[str], bool]
DateBound = Union[date, datetime, None]


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced product, category, or sale is unknown."""


class ValidationError(BusinessRuleViolation):
    """Raised when a record is missing mandatory data."""


class InsufficientStockError(BusinessRuleViolation):
    """Raised when a quantity exceeds the stock available for a product."""


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and the persisted store used by the BLL."""

    settings: data_manager.ConfigSettings
    store: data_manager.Store


@dataclass(frozen=True)
class InventoryTotals:
    total_buy_value: Decimal
    total_sell_value: Decimal
    potential_profit: Decimal


@dataclass(frozen=True)
class CheckoutResult:
    updated_products: Tuple[Product, ...]
    sale: Sale


@dataclass(frozen=True)
class BarcodeSpec:
    """Value and display options handed to an external barcode renderer."""

    value: str
    format: str = "CODE128"
    width: float = 2.0
    height: int = 100
    display_value: bool = True


@dataclass(frozen=True)
class ReceiptLine:
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    barcode: BarcodeSpec


@dataclass(frozen=True)
class Receipt:
    """Printable view of a sale."""

    shop_name: str
    issued_at: datetime
    receipt_number: str
    lines: Tuple[ReceiptLine, ...]
    total: Decimal
    footer: str = RECEIPT_FOOTER


# ---------------------------------------------------------------------------
# Runtime/context management
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and open the persisted store.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Settings plus a store bound to the configured workbook.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    store = data_manager.open_store(settings.data_file)
    log.info("Loaded runtime context for store '%s'", settings.data_file)
    return RuntimeContext(settings=settings, store=store)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate store compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Store schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Store schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Return a context whose store re-reads every key from durable storage."""

    context.store.reload()
    log.info("Reloaded store for '%s'", context.settings.data_file)
    return context


def require_positive_quantity(quantity: int) -> None:
    """Validate that a quantity is strictly positive.

    Raises:
        ValueError: If ``quantity`` is zero or negative.
    """
    if quantity <= 0:
        log.error("Quantity validation failed: %s", quantity)
        raise ValueError("Quantity must be greater than zero")


def _find_by_id(records: Iterable[T], record_id: str) -> Optional[T]:
    for record in records:
        if record.id == record_id:  # type: ignore[attr-defined]
            return record
    return None


# ---------------------------------------------------------------------------
# Inventory queries
# ---------------------------------------------------------------------------


def list_products(context: RuntimeContext) -> List[Product]:
    return data_manager.load_products(context.store)


def list_categories(context: RuntimeContext) -> List[Category]:
    return data_manager.load_categories(context.store)


def get_product(context: RuntimeContext, product_id: str) -> Product:
    """Resolve a product record by its identifier.

    Raises:
        MissingReferenceError: If ``product_id`` is not in the inventory.
    """
    product = _find_by_id(list_products(context), product_id)
    if product is None:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise MissingReferenceError(f"Unknown product id: {product_id}")
    return product


def category_name(categories: Iterable[Category], category_id: str) -> str:
    """Resolve a category id to its display name, ``Sin categoría`` if unknown."""

    category = _find_by_id(categories, category_id) if category_id else None
    return category.name if category is not None else UNCATEGORIZED_LABEL


def compute_totals(products: Iterable[Product]) -> InventoryTotals:
    """Aggregate the stock valuation at buy and sell prices.

    Args:
        products (Iterable[Product]): Products to value.

    Returns:
        InventoryTotals: ``total_buy_value`` is Σ buy_price × stock,
            ``total_sell_value`` is Σ sell_price × stock and
            ``potential_profit`` is their difference.
    """
    total_buy = Decimal("0")
    total_sell = Decimal("0")
    for product in products:
        total_buy += product.buy_price * product.stock
        total_sell += product.sell_price * product.stock
    return InventoryTotals(
        total_buy_value=total_buy,
        total_sell_value=total_sell,
        potential_profit=total_sell - total_buy,
    )


def matches_stock_filter(product: Product, stock_filter: Union[StockFilter, str]) -> bool:
    stock_filter = StockFilter(stock_filter)
    if stock_filter is StockFilter.LOW:
        return 0 < product.stock <= LOW_STOCK_THRESHOLD
    if stock_filter is StockFilter.OUT:
        return product.stock == 0
    return True


def filter_products(
    products: Iterable[Product],
    search_term: str = "",
    category_id: str = ALL_CATEGORIES,
    stock_filter: Union[StockFilter, str] = StockFilter.ALL,
) -> List[Product]:
    """Return the products matching every active filter, in input order.

    A product matches when the search term is empty or found (ignoring case)
    in its name or barcode, when ``category_id`` is ``"all"`` or equal to the
    product's category, and when it passes ``stock_filter``: ``all`` accepts
    everything, ``low`` accepts ``0 < stock <= 10`` and ``out`` accepts
    ``stock == 0``.
    """
    needle = search_term.casefold()
    return [
        product
        for product in products
        if (not needle or needle in product.name.casefold() or needle in product.barcode.casefold())
        and (category_id == ALL_CATEGORIES or product.category == category_id)
        and matches_stock_filter(product, stock_filter)
    ]


def sort_products(
    products: Iterable[Product],
    field: Union[SortField, str] = SortField.NAME,
    direction: Union[SortDirection, str] = SortDirection.ASC,
    categories: Sequence[Category] = (),
) -> List[Product]:
    """Sort products on one column.

    ``category`` sorts by the resolved category name rather than the id, and
    text columns compare case-insensitively. The sort is stable in both
    directions, so products that tie keep their input order, which keeps
    pagination deterministic.
    """
    field = SortField(field)
    descending = SortDirection(direction) is SortDirection.DESC

    if field is SortField.NAME:
        key = lambda product: product.name.casefold()
    elif field is SortField.BUY_PRICE:
        key = lambda product: product.buy_price
    elif field is SortField.SELL_PRICE:
        key = lambda product: product.sell_price
    elif field is SortField.STOCK:
        key = lambda product: product.stock
    else:
        names = {category.id: category.name for category in categories}
        key = lambda product: names.get(product.category, UNCATEGORIZED_LABEL).casefold()

    return sorted(products, key=key, reverse=descending)


def total_pages(count: int, page_size: int) -> int:
    return max(1, math.ceil(count / page_size))


def clamp_page(page: int, count: int, page_size: int) -> int:
    return min(max(page, 1), total_pages(count, page_size))


def paginate(items: Sequence[T], page: int, page_size: int) -> List[T]:
    """Return the 1-based ``page`` of ``items``; clamping is left to the caller."""

    start = (page - 1) * page_size
    return list(items[start:start + page_size])


# ---------------------------------------------------------------------------
# Product maintenance
# ---------------------------------------------------------------------------


def new_product_draft(categories: Sequence[Category] = (), *, rng=None) -> Product:
    """Return a blank product with a fresh id and a random barcode.

    The draft defaults to the first category, as the inventory form does.
    """
    return Product(
        id=csv_codec.generate_id(),
        name="",
        buy_price=Decimal("0"),
        sell_price=Decimal("0"),
        stock=0,
        barcode=csv_codec.generate_barcode(rng),
        category=categories[0].id if categories else "",
    )


def validate_product(product: Product) -> None:
    """Check the fields a product cannot be saved without.

    Raises:
        ValidationError: If the name or barcode is blank, or a price or the
            stock is negative.
    """
    if not product.name.strip() or not product.barcode.strip():
        log.error("Product '%s' rejected: name and barcode are required", product.id)
        raise ValidationError("Product name and barcode are required")
    if product.buy_price < 0 or product.sell_price < 0:
        log.error("Product '%s' rejected: negative price", product.id)
        raise ValidationError("Prices must be zero or positive")
    if product.stock < 0:
        log.error("Product '%s' rejected: negative stock %s", product.id, product.stock)
        raise ValidationError("Stock must be zero or positive")


def save_product(context: RuntimeContext, product: Product, *, confirm: Confirm) -> Optional[Product]:
    """Insert or replace a product in the inventory.

    A product whose id is already present replaces the stored record in place;
    otherwise it is appended. A buy price above the sell price is allowed but
    only after ``confirm`` agrees.

    Args:
        context (RuntimeContext): Runtime context providing the store.
        product (Product): Record to persist.
        confirm (Callable[[str], bool]): Asked to approve a loss-making price.

    Returns:
        Product | None: The saved product, or ``None`` when the user declined.

    Raises:
        ValidationError: If :func:`validate_product` rejects the record.
        MissingReferenceError: If the product points at an unknown category.
    """
    validate_product(product)
    if product.category and _find_by_id(list_categories(context), product.category) is None:
        log.warning("Product '%s' references unknown category '%s'", product.id, product.category)
        raise MissingReferenceError(f"Unknown category id: {product.category}")
    if product.buy_price > product.sell_price:
        message = (
            f"Buy price {product.buy_price} is higher than sell price {product.sell_price}. Continue?"
        )
        if not confirm(message):
            log.info("Save of product '%s' cancelled at price warning", product.id)
            return None

    products = list_products(context)
    for index, existing in enumerate(products):
        if existing.id == product.id:
            products[index] = product
            action = "Updated"
            break
    else:
        products.append(product)
        action = "Added"

    data_manager.save_products(context.store, products)
    log.info("%s product '%s' (%s)", action, product.id, product.name)
    return product


def delete_product(context: RuntimeContext, product_id: str, *, confirm: Confirm) -> bool:
    """Remove a product after confirmation; returns whether it was removed.

    Past sales keep their own snapshot of the product and are not touched.
    """
    product = get_product(context, product_id)
    if not confirm(f"Delete product '{product.name}'?"):
        log.info("Deletion of product '%s' cancelled", product_id)
        return False

    products = [existing for existing in list_products(context) if existing.id != product_id]
    data_manager.save_products(context.store, products)
    log.info("Deleted product '%s'", product_id)
    return True


def merge_products(existing: Iterable[Product], imported: Iterable[Product]) -> List[Product]:
    """Reconcile imported products with the inventory by id.

    Imported records replace existing ones with the same id in place; the rest
    are appended in import order.
    """
    merged = list(existing)
    positions = {product.id: index for index, product in enumerate(merged)}
    for product in imported:
        if product.id in positions:
            merged[positions[product.id]] = product
        else:
            positions[product.id] = len(merged)
            merged.append(product)
    return merged


def import_products_csv(context: RuntimeContext, text: str, *, rng=None) -> csv_codec.DecodeResult:
    """Decode CSV text and merge the accepted products into the inventory.

    Nothing is written unless at least one row validated.

    Raises:
        csv_codec.FormatError: If the header lacks a required column.
    """
    result = csv_codec.decode_products(text, rng=rng)
    if not result.success:
        log.warning("CSV import produced no products (%d errors)", len(result.errors))
        return result

    with context.store.atomic():
        merged = merge_products(list_products(context), result.products)
        data_manager.save_products(context.store, merged)
    log.info(
        "Imported %d products from CSV (%d rows skipped)",
        len(result.products),
        len(result.errors),
    )
    return result


def export_products_csv(context: RuntimeContext) -> str:
    return csv_codec.encode_products(list_products(context))


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def add_category(context: RuntimeContext, name: str) -> Category:
    """Create a category; names are trimmed and unique ignoring case.

    Raises:
        ValidationError: If the trimmed name is empty.
        BusinessRuleViolation: If a category with the same name exists.
    """
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("Category name is required")

    categories = list_categories(context)
    if any(category.name.casefold() == cleaned.casefold() for category in categories):
        log.warning("Category '%s' already exists", cleaned)
        raise BusinessRuleViolation(f"Category '{cleaned}' already exists")

    category = Category(id=csv_codec.generate_id(), name=cleaned)
    data_manager.save_categories(context.store, [*categories, category])
    log.info("Added category '%s' (%s)", category.name, category.id)
    return category


def delete_category(
    categories: Iterable[Category],
    products: Iterable[Product],
    category_id: str,
) -> Tuple[List[Category], List[Product]]:
    """Remove a category and clear it from every product that referenced it.

    Products are kept; only their ``category`` becomes ``""``.
    """
    remaining = [category for category in categories if category.id != category_id]
    cleared = [
        replace(product, category="") if product.category == category_id else product
        for product in products
    ]
    return remaining, cleared


def remove_category(context: RuntimeContext, category_id: str, *, confirm: Confirm) -> bool:
    """Delete a category after confirmation, updating both collections at once.

    Raises:
        MissingReferenceError: If the category does not exist.
    """
    categories = list_categories(context)
    category = _find_by_id(categories, category_id)
    if category is None:
        log.warning("Category lookup failed for id '%s'", category_id)
        raise MissingReferenceError(f"Unknown category id: {category_id}")
    if not confirm(
        f"Delete category '{category.name}'? Its products will be left without a category."
    ):
        log.info("Deletion of category '%s' cancelled", category_id)
        return False

    remaining, products = delete_category(categories, list_products(context), category_id)
    with context.store.atomic():
        data_manager.save_products(context.store, products)
        data_manager.save_categories(context.store, remaining)
    log.info("Deleted category '%s' (%s)", category.name, category_id)
    return True


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------


def add_to_cart(cart: Iterable[CartItem], product: Product, quantity: int = 1) -> List[CartItem]:
    """Add ``quantity`` units of ``product``, merging with an existing line.

    Raises:
        ValueError: If ``quantity`` is not positive.
        InsufficientStockError: If the resulting quantity exceeds stock.
    """
    require_positive_quantity(quantity)
    items = list(cart)
    existing = _find_by_id(items, product.id)
    new_quantity = quantity + (existing.quantity if existing is not None else 0)
    _require_stock(product, new_quantity)

    item = CartItem(product=product, quantity=new_quantity)
    if existing is None:
        return [*items, item]
    return [item if current.id == product.id else current for current in items]


def update_cart_quantity(cart: Iterable[CartItem], product_id: str, quantity: int) -> List[CartItem]:
    """Set a line's quantity; zero or less removes the line.

    Raises:
        MissingReferenceError: If the product is not in the cart.
        InsufficientStockError: If ``quantity`` exceeds the item's stock.
    """
    items = list(cart)
    existing = _find_by_id(items, product_id)
    if existing is None:
        raise MissingReferenceError(f"Product '{product_id}' is not in the cart")
    if quantity <= 0:
        return remove_from_cart(items, product_id)

    _require_stock(existing.product, quantity)
    return [replace(item, quantity=quantity) if item.id == product_id else item for item in items]


def remove_from_cart(cart: Iterable[CartItem], product_id: str) -> List[CartItem]:
    return [item for item in cart if item.id != product_id]


def cart_total(cart: Iterable[CartItem]) -> Decimal:
    return sum((item.line_total for item in cart), Decimal("0"))


def cart_item_count(cart: Iterable[CartItem]) -> int:
    return sum(item.quantity for item in cart)


def _require_stock(product: Product, quantity: int) -> None:
    if quantity > product.stock:
        log.warning(
            "Quantity %s for product '%s' exceeds stock %s",
            quantity,
            product.id,
            product.stock,
        )
        raise InsufficientStockError(
            f"Only {product.stock} units of '{product.name}' in stock (requested {quantity})"
        )


def list_cart(context: RuntimeContext) -> List[CartItem]:
    return data_manager.load_cart(context.store)


def add_product_to_cart(context: RuntimeContext, product_id: str, quantity: int = 1) -> List[CartItem]:
    product = get_product(context, product_id)
    cart = add_to_cart(list_cart(context), product, quantity)
    data_manager.save_cart(context.store, cart)
    log.info("Added %s x '%s' to cart", quantity, product_id)
    return cart


def set_cart_quantity(context: RuntimeContext, product_id: str, quantity: int) -> List[CartItem]:
    cart = update_cart_quantity(list_cart(context), product_id, quantity)
    data_manager.save_cart(context.store, cart)
    log.info("Set cart quantity of '%s' to %s", product_id, quantity)
    return cart


def remove_cart_item(context: RuntimeContext, product_id: str) -> List[CartItem]:
    cart = remove_from_cart(list_cart(context), product_id)
    data_manager.save_cart(context.store, cart)
    log.info("Removed '%s' from cart", product_id)
    return cart


def clear_cart(context: RuntimeContext) -> None:
    data_manager.save_cart(context.store, [])
    log.info("Cleared cart")


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


def generate_receipt_number(when: datetime, existing: Iterable[str] = ()) -> str:
    """Derive the short display number ``R-NNNNNN`` from ``when``.

    The digits are the last six of the epoch timestamp in milliseconds. If the
    number is already used by ``existing`` it is incremented until free, so
    numbers stay unique within one history even for back-to-back sales.
    """
    taken = set(existing)
    number = (int(when.timestamp()) * 1000 + when.microsecond // 1000) % 1_000_000
    for _ in range(1_000_000):
        candidate = f"R-{number:06d}"
        if candidate not in taken:
            return candidate
        number = (number + 1) % 1_000_000
    raise BusinessRuleViolation("No receipt numbers left")


def checkout(
    cart: Sequence[CartItem],
    products: Sequence[Product],
    *,
    timestamp: Optional[datetime] = None,
    existing_receipts: Iterable[str] = (),
) -> CheckoutResult:
    """Turn the cart into a sale and the matching stock decrements.

    The cart is re-checked against current stock here rather than trusted:
    nothing is changed unless every line is still available. Sale items are
    snapshots of the current product records with the cart quantities, so
    later edits to a product never alter a recorded sale.

    Args:
        cart (Sequence[CartItem]): Items being bought.
        products (Sequence[Product]): Current inventory.
        timestamp (datetime | None): Sale time, defaults to now in UTC.
        existing_receipts (Iterable[str]): Receipt numbers already in the
            history, avoided when numbering this sale.

    Returns:
        CheckoutResult: Inventory with decremented stock (order preserved) and
            the new sale.

    Raises:
        BusinessRuleViolation: If the cart is empty.
        MissingReferenceError: If a cart line refers to an unknown product.
        InsufficientStockError: If a line asks for more than is in stock.
    """
    if not cart:
        raise BusinessRuleViolation("Cannot check out an empty cart")

    by_id = {product.id: product for product in products}
    required: Counter = Counter()
    for item in cart:
        require_positive_quantity(item.quantity)
        if item.id not in by_id:
            log.warning("Checkout references unknown product '%s'", item.id)
            raise MissingReferenceError(f"Unknown product id: {item.id}")
        required[item.id] += item.quantity
    for product_id, quantity in required.items():
        _require_stock(by_id[product_id], quantity)

    updated = tuple(
        replace(product, stock=product.stock - required[product.id]) if product.id in required else product
        for product in products
    )
    items = tuple(CartItem(product=by_id[item.id], quantity=item.quantity) for item in cart)
    moment = _as_utc_datetime(timestamp) or datetime.now(UTC)
    sale = Sale(
        id=csv_codec.generate_id(),
        items=items,
        total=cart_total(items),
        date=moment,
        receipt_number=generate_receipt_number(moment, existing_receipts),
    )
    return CheckoutResult(updated_products=updated, sale=sale)


def complete_checkout(context: RuntimeContext, *, timestamp: Optional[datetime] = None) -> Sale:
    """Check out the stored cart and persist stock, history and cart together."""

    history = list_sales(context)
    result = checkout(
        list_cart(context),
        list_products(context),
        timestamp=timestamp,
        existing_receipts=[sale.receipt_number for sale in history],
    )
    with context.store.atomic():
        data_manager.save_products(context.store, result.updated_products)
        data_manager.save_sales_history(context.store, [*history, result.sale])
        data_manager.save_cart(context.store, [])
    log.info(
        "Recorded sale '%s' receipt %s (%d lines, total=%s)",
        result.sale.id,
        result.sale.receipt_number,
        len(result.sale.items),
        result.sale.total,
    )
    return result.sale


# ---------------------------------------------------------------------------
# Sales history
# ---------------------------------------------------------------------------


def list_sales(context: RuntimeContext) -> List[Sale]:
    return data_manager.load_sales_history(context.store)


def get_sale(context: RuntimeContext, sale_id: str) -> Sale:
    """Resolve a sale by id or by receipt number.

    Raises:
        MissingReferenceError: If no sale matches.
    """
    for sale in list_sales(context):
        if sale_id in (sale.id, sale.receipt_number):
            return sale
    log.warning("Sale lookup failed for '%s'", sale_id)
    raise MissingReferenceError(f"Unknown sale: {sale_id}")


def _as_utc_datetime(bound: DateBound) -> Optional[datetime]:
    if bound is None or bound == "":
        return None
    if isinstance(bound, datetime):
        return bound if bound.tzinfo is not None else bound.replace(tzinfo=UTC)
    return datetime.combine(bound, time.min, tzinfo=UTC)


def filter_sales_history(
    history: Iterable[Sale],
    search_term: str = "",
    start_date: DateBound = None,
    end_date: DateBound = None,
) -> List[Sale]:
    """Filter sales by text and date range, newest first.

    The search term matches (ignoring case) the receipt number or the name of
    any sold item. Both date bounds are inclusive; a plain :class:`date` bound
    covers the whole day in UTC. Sales with equal dates keep their input
    order.
    """
    needle = search_term.casefold()
    start = _as_utc_datetime(start_date)
    if isinstance(end_date, datetime):
        end_exclusive = None
        end_inclusive = _as_utc_datetime(end_date)
    else:
        end_inclusive = None
        end_exclusive = _as_utc_datetime(end_date + timedelta(days=1)) if end_date else None

    matches = [
        sale
        for sale in history
        if (
            not needle
            or needle in sale.receipt_number.casefold()
            or any(needle in item.name.casefold() for item in sale.items)
        )
        and (start is None or sale.date >= start)
        and (end_inclusive is None or sale.date <= end_inclusive)
        and (end_exclusive is None or sale.date < end_exclusive)
    ]
    return sorted(matches, key=lambda sale: sale.date, reverse=True)


def sales_total(sales: Iterable[Sale]) -> Decimal:
    return sum((sale.total for sale in sales), Decimal("0"))


def delete_sale(context: RuntimeContext, sale_id: str, *, confirm: Confirm) -> bool:
    """Remove one sale from the history after confirmation."""

    sale = get_sale(context, sale_id)
    if not confirm(f"Delete sale {sale.receipt_number}?"):
        log.info("Deletion of sale '%s' cancelled", sale.id)
        return False

    history = [existing for existing in list_sales(context) if existing.id != sale.id]
    data_manager.save_sales_history(context.store, history)
    log.info("Deleted sale '%s' (receipt %s)", sale.id, sale.receipt_number)
    return True


def clear_sales_history(context: RuntimeContext, *, confirm: Confirm) -> bool:
    """Erase the whole sales history after confirmation."""

    count = len(list_sales(context))
    if not confirm(f"Delete all {count} recorded sales? This cannot be undone."):
        log.info("Clearing of sales history cancelled")
        return False

    data_manager.save_sales_history(context.store, [])
    log.info("Cleared sales history (%d sales)", count)
    return True


# ---------------------------------------------------------------------------
# Receipts and barcodes
# ---------------------------------------------------------------------------


def barcode_spec(value: str, *, width: float = 2.0, height: int = 100, display_value: bool = True) -> BarcodeSpec:
    return BarcodeSpec(value=value, width=width, height=height, display_value=display_value)


def build_receipt(sale: Sale, shop_name: str) -> Receipt:
    """Build the printable view of ``sale``, one barcode per line item."""

    lines = tuple(
        ReceiptLine(
            name=item.name,
            quantity=item.quantity,
            unit_price=item.sell_price,
            line_total=item.line_total,
            barcode=barcode_spec(item.product.barcode, width=1.5, height=40),
        )
        for item in sale.items
    )
    return Receipt(
        shop_name=shop_name,
        issued_at=sale.date,
        receipt_number=sale.receipt_number,
        lines=lines,
        total=sale.total,
    )
