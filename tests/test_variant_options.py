"""
tests/test_variant_options.py — Size / colour derivation for Stock variants
"""

import pytest

from app.models.stock import StockProduct, StockVariant
from app.utils.variant_options import parse_variant_name, resolve_variant_options


@pytest.mark.parametrize(
    "name, expected",
    [
        ("แดง / M", ("M", "แดง")),
        ("M-Red", ("M", "Red")),
        ("Navy, xl", ("XL", "Navy")),
        ("XL", ("XL", "-")),
        ("Navy", ("FREE", "Navy")),
        ("Cotton / Navy", ("Navy", "Cotton")),
        ("", ("FREE", "-")),
        (None, ("FREE", "-")),
    ],
)
def test_parse_variant_name(name, expected):
    assert parse_variant_name(name) == expected


def test_structured_options_win_over_name():
    options = [{"type": "ไซส์", "value": "l"}, {"type": "สี", "value": "ขาว"}]
    assert resolve_variant_options(options, "Red / M") == ("L", "ขาว")


def test_options_without_size_or_color_fall_back_to_name():
    assert resolve_variant_options([{"type": "material", "value": "cotton"}], "Red / S") == ("S", "Red")


def test_variant_explicit_fields_kept():
    variant = StockVariant.model_validate({"sku": "V1", "size": "2XL", "name": "Blue / M"})
    assert variant.size == "2XL"
    assert variant.color == "Blue"


def test_variant_stock_alias_and_defaults():
    variant = StockVariant.model_validate({"sku": 1001, "totalStock": 4.6, "priceAdj": None})
    assert variant.sku == "1001"
    assert variant.stock == 4
    assert variant.price_adj == 0.0
    assert (variant.size, variant.color) == ("FREE", "-")


def test_blank_sku_rejected():
    with pytest.raises(ValueError):
        StockVariant.model_validate({"sku": "  "})


def test_product_without_variants_flag_drops_variants():
    product = StockProduct.model_validate(
        {"sku": "P", "hasVariants": False, "variants": [{"sku": "P-1"}], "standardCost": 80}
    )
    assert product.variants == []
    assert product.cost_price == 80
    assert product.base_price == 80
    assert product.product_type == "OTHER"
