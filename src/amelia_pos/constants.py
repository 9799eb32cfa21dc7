"""Enumerations and fixed values shared across the Amelia POS modules.

Centralises domain constants so that the persistence layer, the CSV codec, the
business logic and the CLI agree on storage keys, column names and filter
vocabularies.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating the store.
EXPECTED_SCHEMA_VERSION = "1.0.0"

DEFAULT_SHOP_NAME = "Librería Amelia"
UNCATEGORIZED_LABEL = "Sin categoría"
RECEIPT_FOOTER = "¡Gracias por su compra!"

# Products with 0 < stock <= LOW_STOCK_THRESHOLD count as "low".
LOW_STOCK_THRESHOLD = 10
DEFAULT_PAGE_SIZE = 10
BARCODE_LENGTH = 13

ALL_CATEGORIES = "all"


class StorageKey(str, Enum):
    """Enumerate the durable storage slots, one per collection."""

    PRODUCTS = "amelia-products"
    CATEGORIES = "amelia-categories"
    CART = "amelia-cart"
    SALES_HISTORY = "amelia-sales-history"


class StockFilter(str, Enum):
    """Enumerate the stock-level filters offered by the inventory view."""

    ALL = "all"
    LOW = "low"
    OUT = "out"


class SortField(str, Enum):
    """Enumerate the product columns the inventory view can sort on."""

    NAME = "name"
    BUY_PRICE = "buyPrice"
    SELL_PRICE = "sellPrice"
    STOCK = "stock"
    CATEGORY = "category"


class SortDirection(str, Enum):
    """Enumerate sort directions."""

    ASC = "asc"
    DESC = "desc"


PRODUCT_CSV_HEADERS: tuple[str, ...] = (
    "id",
    "name",
    "buyPrice",
    "sellPrice",
    "stock",
    "barcode",
    "category",
)
TEMPLATE_CSV_HEADERS: tuple[str, ...] = PRODUCT_CSV_HEADERS[1:]
REQUIRED_IMPORT_HEADERS: tuple[str, ...] = ("name", "buyPrice", "sellPrice", "stock", "barcode")
TEMPLATE_EXAMPLE_ROW: tuple[str, ...] = ("Producto Ejemplo", "100", "150", "10", "1234567890123", "")

EXPORT_FILENAME_PREFIX = "inventario-libreria-amelia"
TEMPLATE_FILENAME = "plantilla-inventario.csv"

STORAGE_SHEET = "Storage"
STORAGE_COLUMNS: tuple[str, ...] = ("Key", "Chunk", "Value")


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_SHOP_NAME",
    "UNCATEGORIZED_LABEL",
    "RECEIPT_FOOTER",
    "LOW_STOCK_THRESHOLD",
    "DEFAULT_PAGE_SIZE",
    "BARCODE_LENGTH",
    "ALL_CATEGORIES",
    "StorageKey",
    "StockFilter",
    "SortField",
    "SortDirection",
    "PRODUCT_CSV_HEADERS",
    "TEMPLATE_CSV_HEADERS",
    "REQUIRED_IMPORT_HEADERS",
    "TEMPLATE_EXAMPLE_ROW",
    "EXPORT_FILENAME_PREFIX",
    "TEMPLATE_FILENAME",
    "STORAGE_SHEET",
    "STORAGE_COLUMNS",
]
