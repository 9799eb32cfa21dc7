"""CSV import and export of the product catalogue.

Export writes one row per product with only the ``name`` column quoted. Import
is deliberately forgiving: the header must name the required columns, but
individual bad rows are collected as :class:`RowError` values and skipped so a
single typo does not throw away an otherwise good spreadsheet.
"""

from __future__ import annotations

import math
import random
import re
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from . import log
from .constants import (
    BARCODE_LENGTH,
    EXPORT_FILENAME_PREFIX,
    PRODUCT_CSV_HEADERS,
    REQUIRED_IMPORT_HEADERS,
    TEMPLATE_CSV_HEADERS,
    TEMPLATE_EXAMPLE_ROW,
)
from .data_manager import Product


_LEADING_INTEGER = re.compile(r"\s*([+-]?\d+)")


class FormatError(ValueError):
    """Raised when the CSV header does not carry every required column."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing: Tuple[str, ...] = tuple(missing)
        super().__init__(f"Missing required columns: {', '.join(self.missing)}")


@dataclass(frozen=True)
class RowError:
    """A data row that was rejected during import."""

    line_number: int
    message: str

    def __str__(self) -> str:
        return f"Line {self.line_number}: {self.message}"


@dataclass(frozen=True)
class DecodeResult:
    """Validated products plus every row-level problem found on the way."""

    products: Tuple[Product, ...] = ()
    errors: Tuple[RowError, ...] = ()

    @property
    def success(self) -> bool:
        return len(self.products) > 0

    @property
    def error_messages(self) -> List[str]:
        return [str(error) for error in self.errors]


def generate_id() -> str:
    return str(uuid.uuid4())


def generate_barcode(rng: Optional[random.Random] = None) -> str:
    """Return a random numeric barcode of :data:`BARCODE_LENGTH` digits."""

    rng = rng or random
    return "".join(str(rng.randrange(10)) for _ in range(BARCODE_LENGTH))


def export_filename(day: date) -> str:
    return f"{EXPORT_FILENAME_PREFIX}-{day.isoformat()}.csv"


def quote_field(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def encode_products(products: Iterable[Product]) -> str:
    """Render products as CSV text with the full export header.

    Args:
        products (Iterable[Product]): Products in the order they should appear.

    Returns:
        str: Header line followed by one line per product, joined with ``\\n``
            and without a trailing newline.
    """

    lines = [",".join(PRODUCT_CSV_HEADERS)]
    for product in products:
        lines.append(
            ",".join(
                [
                    product.id,
                    quote_field(product.name),
                    str(product.buy_price),
                    str(product.sell_price),
                    str(product.stock),
                    product.barcode,
                    product.category,
                ]
            )
        )
    return "\n".join(lines)


def build_template() -> str:
    """Return the import template: header without ``id`` and one example row."""

    return "\n".join([",".join(TEMPLATE_CSV_HEADERS), ",".join(TEMPLATE_EXAMPLE_ROW)])


def parse_csv_line(line: str) -> List[str]:
    """Split one CSV line into fields, honouring double-quoted sections.

    A double quote toggles the quoted state, except that two consecutive
    quotes inside a quoted section produce one literal quote. Commas split
    fields only outside quotes. The quotes themselves are not kept.
    """

    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    index = 0
    length = len(line)

    while index < length:
        char = line[index]
        if char == '"':
            if in_quotes and index + 1 < length and line[index + 1] == '"':
                current.append('"')
                index += 1
            else:
                in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
        index += 1

    fields.append("".join(current))
    return fields


def parse_header(line: str) -> List[str]:
    """Split the header row and verify the required columns are present.

    Raises:
        FormatError: Listing every required column that is absent.
    """

    headers = [header.strip() for header in line.split(",")]
    missing = [name for name in REQUIRED_IMPORT_HEADERS if name not in headers]
    if missing:
        raise FormatError(missing)
    return headers


def decode_products(text: str, *, rng: Optional[random.Random] = None) -> DecodeResult:
    """Decode CSV text into validated products.

    The first line is the header (see :func:`parse_header`). Every following
    non-blank line is parsed with :func:`parse_csv_line`, mapped onto the
    header names and coerced into a :class:`Product`. Rows with the wrong
    number of fields or a blank ``name`` are reported as :class:`RowError`
    entries carrying their 1-based line number and are skipped.

    Args:
        text (str): Raw file contents. ``\\n`` and ``\\r\\n`` line endings are
            both accepted.
        rng (random.Random | None): Source of randomness for generated
            barcodes, injectable for tests.

    Returns:
        DecodeResult: The accepted products and collected row errors. Its
            ``success`` flag is false when no row could be imported.

    Raises:
        FormatError: If the header lacks a required column (including when
            ``text`` is empty).
    """

    lines = text.splitlines()
    headers = parse_header(lines[0] if lines else "")

    products: List[Product] = []
    errors: List[RowError] = []
    for index, line in enumerate(lines[1:], start=2):
        if not line.strip():
            continue

        values = parse_csv_line(line)
        if len(values) != len(headers):
            errors.append(
                RowError(index, f"expected {len(headers)} columns, found {len(values)}")
            )
            continue

        row = dict(zip(headers, values))
        product = _coerce_row(row, rng=rng)
        if product is None:
            errors.append(RowError(index, "product name is required"))
            continue
        products.append(product)

    log.info("Decoded %d products from CSV (%d rows rejected)", len(products), len(errors))
    return DecodeResult(products=tuple(products), errors=tuple(errors))


def _coerce_row(row: Dict[str, str], *, rng: Optional[random.Random]) -> Optional[Product]:
    name = row.get("name", "")
    if not name.strip():
        return None

    return Product(
        id=row.get("id", "").strip() or generate_id(),
        name=name,
        buy_price=parse_amount(row.get("buyPrice", "")),
        sell_price=parse_amount(row.get("sellPrice", "")),
        stock=parse_stock(row.get("stock", "")),
        barcode=row.get("barcode", "").strip() or generate_barcode(rng),
        category=row.get("category", "").strip(),
    )


def parse_amount(raw: str) -> Decimal:
    """Parse a money column, returning zero for anything unreadable."""

    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        return Decimal("0")
    if not value.is_finite() or not math.isfinite(float(value)):
        return Decimal("0")
    return value


def parse_stock(raw: str) -> int:
    """Parse the leading integer of a stock column; zero when absent or negative."""

    match = _LEADING_INTEGER.match(raw)
    if match is None:
        return 0
    return max(int(match.group(1)), 0)
