"""Data access layer for Amelia POS.

This module owns everything that touches durable storage. Business rules
belong in :mod:`amelia_pos.core_logic`.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening and persisting the ``.xlsx`` store file.
3. The persisted key-value :class:`Store` and its pluggable backends.
4. Record conversion: turning domain dataclasses into the JSON-ready
   structures kept under each storage key and back again.
"""


from __future__ import annotations

import configparser
import json
import math
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Protocol, Sequence, Tuple, TypeVar

from openpyxl.styles import Font
from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import DEFAULT_PAGE_SIZE, STORAGE_COLUMNS, STORAGE_SHEET, StorageKey


CONFIG_FILE_NAME = "config.ini"

# Excel refuses cells longer than 32767 characters; payloads are split below that.
CELL_CHUNK_SIZE = 32_000

T = TypeVar("T")


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    shop_name: str
    schema_version: str
    page_size: int = DEFAULT_PAGE_SIZE
    export_dir: Path = field(default_factory=Path.cwd)


@dataclass(frozen=True)
class Product:
    """A sellable inventory item."""

    id: str
    name: str
    buy_price: Decimal
    sell_price: Decimal
    stock: int
    barcode: str
    category: str = ""


@dataclass(frozen=True)
class Category:
    """A named grouping for products."""

    id: str
    name: str


@dataclass(frozen=True)
class CartItem:
    """Snapshot of a product together with the quantity being bought."""

    product: Product
    quantity: int

    @property
    def id(self) -> str:
        return self.product.id

    @property
    def name(self) -> str:
        return self.product.name

    @property
    def sell_price(self) -> Decimal:
        return self.product.sell_price

    @property
    def line_total(self) -> Decimal:
        return self.product.sell_price * self.quantity


@dataclass(frozen=True)
class Sale:
    """Immutable record of a completed transaction."""

    id: str
    items: Tuple[CartItem, ...]
    total: Decimal
    date: datetime
    receipt_number: str


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification, which allows the caller to deliberately target a
    non-standard location. When no explicit path is given the function walks up
    from the current working directory toward the filesystem root looking for a
    file named ``CONFIG_FILE_NAME``. The first match that exists on disk is
    considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search. May be relative to the current working directory.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data. Required entries are validated later by
            :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    Every ``[System]`` option is mandatory. ``[Defaults]`` options fall back to
    built-in values when absent. Relative paths (``DataFile`` and
    ``ExportDirectory``) are anchored to ``base_path`` when provided, or to the
    current working directory otherwise, and resolved to absolute form.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used as the anchor for relative
            paths.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
        ValueError: If ``PageSize`` is not a positive integer.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        shop_name = parser.get("System", "ShopName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    page_size = parser.getint("Defaults", "PageSize", fallback=DEFAULT_PAGE_SIZE)
    if page_size <= 0:
        raise ValueError(f"PageSize must be a positive integer, got {page_size}")
    export_dir_raw = parser.get("Defaults", "ExportDirectory", fallback=".")

    if base_path is None:
        base_path = Path.cwd()

    return ConfigSettings(
        data_file=_anchor_path(Path(data_file_raw), base_path),
        shop_name=shop_name,
        schema_version=schema_version,
        page_size=page_size,
        export_dir=_anchor_path(Path(export_dir_raw), base_path),
    )


def _anchor_path(candidate: Path, base_path: Path) -> Path:
    candidate = candidate.expanduser()
    if not candidate.is_absolute():
        candidate = base_path / candidate
    return candidate.resolve()


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def open_workbook(data_file: Path) -> Workbook:
    """Open the store workbook and return a live ``openpyxl`` workbook.

    Args:
        data_file (Path): Filesystem path to the store ``.xlsx`` file.

    Returns:
        Workbook: ``openpyxl`` workbook instance backed by the provided file.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def create_store_workbook(destination: Path, *, overwrite: bool = False) -> Path:
    """Create an empty store workbook at ``destination``.

    The workbook holds a single ``Storage`` sheet with a bold header row and no
    entries, which every reader treats as "all collections empty".

    Args:
        destination (Path): Target ``.xlsx`` path.
        overwrite (bool): Replace an existing file instead of refusing.

    Returns:
        Path: The resolved destination.

    Raises:
        FileExistsError: If the file exists and ``overwrite`` is ``False``.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing store workbook: {destination}"
        )

    workbook = openpyxl.Workbook()
    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)
    _create_storage_sheet(workbook)

    save_workbook(workbook, destination)
    log.info("Created store workbook '%s'", destination)
    return destination


def _create_storage_sheet(workbook: Workbook):
    sheet = workbook.create_sheet(title=STORAGE_SHEET, index=0)
    bold_font = Font(bold=True)
    for column_index, column_name in enumerate(STORAGE_COLUMNS, start=1):
        cell = sheet.cell(row=1, column=column_index)
        cell.value = column_name
        cell.font = bold_font
    return sheet


def iter_storage_entries(workbook: Workbook) -> Iterator[Tuple[str, str]]:
    """Yield ``(key, payload)`` pairs stored on the ``Storage`` worksheet.

    Payload chunks are re-joined in ``Chunk`` order. A workbook without the
    sheet yields nothing, and fully empty rows are skipped.

    Args:
        workbook (Workbook): Workbook to read.

    Yields:
        tuple[str, str]: Storage key and its serialized payload.
    """

    if STORAGE_SHEET not in workbook.sheetnames:
        return

    chunks: Dict[str, List[Tuple[int, str]]] = {}
    sheet = workbook[STORAGE_SHEET]
    for raw in sheet.iter_rows(min_row=2, max_col=len(STORAGE_COLUMNS), values_only=True):
        if not any(cell is not None for cell in raw):
            continue
        key, chunk_index, value = raw
        if key is None:
            continue
        chunks.setdefault(str(key), []).append(
            (int(chunk_index or 0), "" if value is None else str(value))
        )

    for key, parts in chunks.items():
        parts.sort(key=lambda part: part[0])
        yield key, "".join(value for _, value in parts)


def write_storage_entries(workbook: Workbook, entries: Mapping[str, str]) -> None:
    """Replace the ``Storage`` worksheet content with ``entries``.

    Payloads longer than :data:`CELL_CHUNK_SIZE` are written across several
    rows numbered from zero in the ``Chunk`` column. The sheet is recreated
    rather than cleared so appended rows always start right under the header.
    """

    if STORAGE_SHEET in workbook.sheetnames:
        workbook.remove(workbook[STORAGE_SHEET])
    sheet = _create_storage_sheet(workbook)

    for key, payload in entries.items():
        pieces = [payload[i:i + CELL_CHUNK_SIZE] for i in range(0, len(payload), CELL_CHUNK_SIZE)] or [""]
        for index, piece in enumerate(pieces):
            sheet.append([key, index, piece])


# ---------------------------------------------------------------------------
# Persisted store
# ---------------------------------------------------------------------------


class Serializer(Protocol):
    def dumps(self, value: Any) -> str: ...

    def loads(self, raw: str) -> Any: ...


class JsonSerializer:
    """Default payload format: compact UTF-8 JSON."""

    def dumps(self, value: Any) -> str:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))

    def loads(self, raw: str) -> Any:
        return json.loads(raw)


class StorageBackend(Protocol):
    def read(self, key: str) -> Optional[str]: ...

    def write(self, key: str, raw: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def flush(self) -> None: ...

    def reload(self) -> None: ...


class MemoryBackend:
    """Dict-backed storage used by tests and embedders."""

    def __init__(self, entries: Optional[Mapping[str, str]] = None) -> None:
        self.entries: Dict[str, str] = dict(entries or {})
        self.flush_count = 0

    def read(self, key: str) -> Optional[str]:
        return self.entries.get(key)

    def write(self, key: str, raw: str) -> None:
        self.entries[key] = raw

    def delete(self, key: str) -> None:
        self.entries.pop(key, None)

    def flush(self) -> None:
        self.flush_count += 1

    def reload(self) -> None:
        return None


class WorkbookBackend:
    """Storage backend that keeps every key on the ``Storage`` worksheet.

    Entries are read once when the backend is opened. Writes update the
    in-memory copy and :meth:`flush` rewrites the sheet and saves the file, so
    the store decides when a group of writes reaches disk.
    """

    def __init__(self, data_file: Path) -> None:
        self.data_file = Path(data_file).expanduser().resolve()
        self.workbook = open_workbook(self.data_file)
        self._entries: Dict[str, str] = dict(iter_storage_entries(self.workbook))
        log.debug("Loaded %d storage entries from '%s'", len(self._entries), self.data_file)

    def read(self, key: str) -> Optional[str]:
        return self._entries.get(key)

    def write(self, key: str, raw: str) -> None:
        self._entries[key] = raw

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def flush(self) -> None:
        write_storage_entries(self.workbook, self._entries)
        save_workbook(self.workbook, self.data_file)
        log.debug("Flushed %d storage entries to '%s'", len(self._entries), self.data_file)

    def reload(self) -> None:
        self.workbook = open_workbook(self.data_file)
        self._entries = dict(iter_storage_entries(self.workbook))


_MISSING = object()


class Store:
    """Persisted key-value state shared by every collection.

    ``get`` lazily reads a key from the backend the first time it is asked for
    and caches the decoded value; absent or undecodable payloads fall back to
    the supplied default and are logged rather than raised. ``set`` updates the
    cached value and writes the whole payload through to the backend in the
    same call.

    Writes made inside :meth:`atomic` are flushed together when the outermost
    block exits, and are undone (in memory and in the backend) if the block or
    that flush raises. A bare ``set`` behaves like a one-write block.
    """

    def __init__(self, backend: StorageBackend, serializer: Optional[Serializer] = None) -> None:
        self.backend = backend
        self.serializer = serializer or JsonSerializer()
        self._values: Dict[str, Any] = {}
        self._depth = 0
        self._undo: Optional[Dict[str, Tuple[Any, Optional[str]]]] = None

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._values:
            return self._values[key]

        value = default
        raw = self.backend.read(key)
        if raw is not None:
            try:
                value = self.serializer.loads(raw)
            except ValueError as exc:
                log.warning("Discarding unreadable payload for key '%s': %s", key, exc)
        self._values[key] = value
        return value

    def set(self, key: str, value: Any) -> None:
        raw = self.serializer.dumps(value)
        if self._depth == 0:
            with self.atomic():
                self._write(key, value, raw)
        else:
            self._write(key, value, raw)

    @contextmanager
    def atomic(self) -> Iterator["Store"]:
        outermost = self._depth == 0
        if outermost:
            self._undo = {}
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if outermost:
                self._rollback()
            raise
        self._depth -= 1
        if outermost:
            # A failed flush rolls back like a failed block.
            try:
                self.backend.flush()
            except BaseException:
                self._rollback()
                raise
            self._undo = None

    def reload(self) -> None:
        """Drop cached values so the next ``get`` re-reads durable storage."""

        self._values.clear()
        self.backend.reload()

    def _write(self, key: str, value: Any, raw: str) -> None:
        if self._undo is not None and key not in self._undo:
            self._undo[key] = (self._values.get(key, _MISSING), self.backend.read(key))
        self._values[key] = value
        self.backend.write(key, raw)

    def _rollback(self) -> None:
        undo, self._undo = self._undo or {}, None
        for key, (value, raw) in undo.items():
            if value is _MISSING:
                self._values.pop(key, None)
            else:
                self._values[key] = value
            if raw is None:
                self.backend.delete(key)
            else:
                self.backend.write(key, raw)
        log.warning("Rolled back %d storage keys after a failed write", len(undo))


def open_store(data_file: Path) -> Store:
    """Open a :class:`Store` over the workbook at ``data_file``."""

    return Store(WorkbookBackend(data_file))


# ---------------------------------------------------------------------------
# Record conversion
# ---------------------------------------------------------------------------


def serialize_product(record: Product) -> Dict[str, Any]:
    """Convert a product into its stored JSON object.

    Money is written as decimal strings so no precision is lost on the way
    through JSON.
    """

    return {
        "id": record.id,
        "name": record.name,
        "buyPrice": str(record.buy_price),
        "sellPrice": str(record.sell_price),
        "stock": record.stock,
        "barcode": record.barcode,
        "category": record.category,
    }


def deserialize_product(raw: Mapping[str, Any]) -> Product:
    """Convert a stored JSON object into a :class:`Product`.

    ``id`` and ``name`` are mandatory. Prices are accepted as JSON numbers or
    decimal strings; everything else falls back to an empty or zero value.

    Raises:
        KeyError: If ``id`` or ``name`` is missing.
        ValueError: If ``stock`` is not an integer. Negative stock reads as zero.
        decimal.InvalidOperation: If a price is not a number.
    """

    return Product(
        id=str(raw["id"]),
        name=str(raw["name"]),
        buy_price=_to_decimal(raw.get("buyPrice", 0)),
        sell_price=_to_decimal(raw.get("sellPrice", 0)),
        stock=max(int(raw.get("stock", 0)), 0),
        barcode=str(raw.get("barcode") or ""),
        category=str(raw.get("category") or ""),
    )


def serialize_category(record: Category) -> Dict[str, Any]:
    return {"id": record.id, "name": record.name}


def deserialize_category(raw: Mapping[str, Any]) -> Category:
    return Category(id=str(raw["id"]), name=str(raw["name"]))


def serialize_cart_item(record: CartItem) -> Dict[str, Any]:
    """Flatten a cart item into the product object plus ``quantity``."""

    payload = serialize_product(record.product)
    payload["quantity"] = record.quantity
    return payload


def deserialize_cart_item(raw: Mapping[str, Any]) -> CartItem:
    return CartItem(product=deserialize_product(raw), quantity=int(raw["quantity"]))


def serialize_sale(record: Sale) -> Dict[str, Any]:
    return {
        "id": record.id,
        "items": [serialize_cart_item(item) for item in record.items],
        "total": str(record.total),
        "date": record.date.isoformat(),
        "receiptNumber": record.receipt_number,
    }


def deserialize_sale(raw: Mapping[str, Any]) -> Sale:
    """Convert a stored JSON object into a :class:`Sale`.

    Dates are ISO-8601 strings; values without an offset are treated as UTC.
    """

    return Sale(
        id=str(raw["id"]),
        items=tuple(deserialize_cart_item(item) for item in raw.get("items", [])),
        total=_to_decimal(raw.get("total", 0)),
        date=parse_timestamp(str(raw["date"])),
        receipt_number=str(raw.get("receiptNumber") or ""),
    )


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is present."""

    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment


def _to_decimal(raw: Any) -> Decimal:
    value = Decimal(str(raw))
    if not value.is_finite() or not math.isfinite(float(value)):
        raise ValueError(f"Non-finite amount: {raw!r}")
    return value


def _load_collection(store: Store, key: StorageKey, deserialize: Callable[[Mapping[str, Any]], T]) -> List[T]:
    raw = store.get(key.value, [])
    if not isinstance(raw, list):
        log.warning("Ignoring stored value for '%s': expected a list, got %s", key.value, type(raw).__name__)
        return []

    records: List[T] = []
    for index, entry in enumerate(raw):
        try:
            records.append(deserialize(entry))
        except (KeyError, TypeError, ValueError, AttributeError, InvalidOperation) as exc:
            log.warning("Skipping malformed record %d under '%s': %s", index, key.value, exc)
    return records


def _save_collection(store: Store, key: StorageKey, records: Sequence[T], serialize: Callable[[T], Dict[str, Any]]) -> None:
    store.set(key.value, [serialize(record) for record in records])


def load_products(store: Store) -> List[Product]:
    return _load_collection(store, StorageKey.PRODUCTS, deserialize_product)


def save_products(store: Store, products: Sequence[Product]) -> None:
    _save_collection(store, StorageKey.PRODUCTS, products, serialize_product)


def load_categories(store: Store) -> List[Category]:
    return _load_collection(store, StorageKey.CATEGORIES, deserialize_category)


def save_categories(store: Store, categories: Sequence[Category]) -> None:
    _save_collection(store, StorageKey.CATEGORIES, categories, serialize_category)


def load_cart(store: Store) -> List[CartItem]:
    return _load_collection(store, StorageKey.CART, deserialize_cart_item)


def save_cart(store: Store, cart: Sequence[CartItem]) -> None:
    _save_collection(store, StorageKey.CART, cart, serialize_cart_item)


def load_sales_history(store: Store) -> List[Sale]:
    return _load_collection(store, StorageKey.SALES_HISTORY, deserialize_sale)


def save_sales_history(store: Store, sales: Sequence[Sale]) -> None:
    _save_collection(store, StorageKey.SALES_HISTORY, sales, serialize_sale)
