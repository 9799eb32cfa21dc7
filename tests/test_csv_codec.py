"""Unit tests for the product CSV import and export."""

from __future__ import annotations

import random
from datetime import date
from decimal import Decimal

import pytest

from amelia_pos import constants, core_logic, csv_codec


HEADER = "name,buyPrice,sellPrice,stock,barcode,category"


def test_encode_products_quotes_names_only(product_factory):
    product = product_factory(
        id="p1",
        name='Libro "raro", tomo 1',
        buy_price=Decimal("12.50"),
        sell_price=Decimal("20"),
        stock=3,
        barcode="123",
        category="c1",
    )
    text = csv_codec.encode_products([product])

    assert text.split("\n") == [
        ",".join(constants.PRODUCT_CSV_HEADERS),
        'p1,"Libro ""raro"", tomo 1",12.50,20,3,123,c1',
    ]


def test_encode_then_decode_preserves_products(products):
    result = csv_codec.decode_products(csv_codec.encode_products(products))

    assert result.success
    assert result.errors == ()
    assert list(result.products) == products


def test_parse_csv_line_handles_quotes_and_commas():
    assert csv_codec.parse_csv_line('a,"b, c","d ""e""",') == ["a", "b, c", 'd "e"', ""]


def test_decode_reports_missing_columns():
    with pytest.raises(csv_codec.FormatError) as excinfo:
        csv_codec.decode_products("name,buyPrice,sellPrice,barcode\nLápiz,1,2,123")

    assert excinfo.value.missing == ("stock",)
    assert "stock" in str(excinfo.value)


def test_decode_empty_text_reports_every_required_column():
    with pytest.raises(csv_codec.FormatError) as excinfo:
        csv_codec.decode_products("")
    assert excinfo.value.missing == constants.REQUIRED_IMPORT_HEADERS


def test_decode_skips_bad_rows_with_line_numbers():
    """Rows with the wrong width or no name are reported and the rest imported."""

    text = "\n".join(
        [
            HEADER,
            "Lápiz,5,10,3,1234567890123,",
            "Roto,1,2",
            "   ,1,2,3,4,",
            "",
            "Goma,1,2,abc,,c1",
        ]
    )
    result = csv_codec.decode_products(text, rng=random.Random(7))

    assert [product.name for product in result.products] == ["Lápiz", "Goma"]
    assert result.error_messages == [
        "Line 3: expected 6 columns, found 3",
        "Line 4: product name is required",
    ]
    goma = result.products[1]
    assert goma.stock == 0
    assert goma.category == "c1"
    assert len(goma.barcode) == constants.BARCODE_LENGTH and goma.barcode.isdigit()
    assert goma.id


def test_decode_without_valid_rows_is_not_successful():
    result = csv_codec.decode_products(HEADER + "\nRoto,1\n")
    assert not result.success
    assert len(result.errors) == 1


def test_decode_accepts_crlf_and_padded_header():
    text = " name , buyPrice ,sellPrice,stock,barcode\r\nRegla,2,4,7,999\r\n"
    result = csv_codec.decode_products(text)

    assert len(result.products) == 1
    assert result.products[0].stock == 7
    assert result.products[0].category == ""


def test_template_decodes_to_example_product():
    template = csv_codec.build_template()
    assert template.split("\n")[0] == HEADER

    result = csv_codec.decode_products(template)
    assert [product.name for product in result.products] == ["Producto Ejemplo"]
    assert result.products[0].sell_price == Decimal("150")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("12.5", Decimal("12.5")),
        ("abc", Decimal("0")),
        ("", Decimal("0")),
        ("NaN", Decimal("0")),
        ("1e1000000", Decimal("0")),
    ],
)
def test_parse_amount(raw, expected):
    assert csv_codec.parse_amount(raw) == expected


@pytest.mark.parametrize(("raw", "expected"), [("12", 12), ("12abc", 12), ("-4", 0), ("", 0), ("x1", 0)])
def test_parse_stock(raw, expected):
    assert csv_codec.parse_stock(raw) == expected


def test_generate_barcode_is_thirteen_digits():
    barcode = csv_codec.generate_barcode(random.Random(1))
    assert len(barcode) == 13
    assert barcode.isdigit()


def test_export_filename_carries_date():
    assert csv_codec.export_filename(date(2024, 3, 5)) == "inventario-libreria-amelia-2024-03-05.csv"


def test_decoded_prices_beyond_float_range_can_be_totalled():
    text = f"{HEADER}\nEnciclopedia,1e1000000,-1e1000000,3,123,\n"
    result = csv_codec.decode_products(text)

    product = result.products[0]
    assert (product.buy_price, product.sell_price) == (Decimal("0"), Decimal("0"))
    assert core_logic.compute_totals(result.products).total_sell_value == Decimal("0")
