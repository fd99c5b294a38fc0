from decimal import Decimal

import pytest

from conftest import delivery, pickup
from marketplace.errors import InsufficientStockError, NotFoundError, UnavailableError, ValidationError
from marketplace.models import ProductKind
from marketplace.schemas.orders import CartEntry
from marketplace.services.pricing import (
    compact_entries,
    compute_shipping_total,
    price_cart,
    product_urls,
    strip_html,
    to_minor_units,
)

SITE = "https://shop.example.com"


def _entries(*raw: dict) -> list[CartEntry]:
    return [CartEntry.model_validate(item) for item in raw]


def test_to_minor_units_rounds_half_up():
    assert to_minor_units(Decimal("120.00")) == 12000
    assert to_minor_units(Decimal("15.50")) == 1550
    assert to_minor_units(Decimal("0.005")) == 1
    assert to_minor_units(None) == 0


def test_strip_html_removes_tags_and_collapses_whitespace():
    assert strip_html("<p>Oil on canvas &amp;\n\n <b>wood</b> frame</p>") == "Oil on canvas & wood frame"
    assert strip_html(None) == ""
    assert len(strip_html("x" * 2000)) == 1000


def test_compact_entries_merges_repeats_and_keeps_first_shipping():
    entries = _entries(
        {"type": "other", "id": 1, "variantId": 10},
        {"type": "other", "id": 1, "variantId": 10, "shipping": delivery("4.00")},
        {"type": "other", "id": 1, "variantId": 11, "shipping": delivery("3.00")},
        {"type": "art", "id": 7, "shipping": delivery("6.00")},
    )

    lines = compact_entries(entries)

    assert [(line.type, line.id, line.variant_id, line.quantity) for line in lines] == [
        (ProductKind.OTHER, 1, 10, 2),
        (ProductKind.OTHER, 1, 11, 1),
        (ProductKind.ART, 7, None, 1),
    ]
    assert lines[0].shipping.cost == Decimal("4.00")


def test_shipping_is_charged_once_per_line():
    entries = _entries(
        {"type": "other", "id": 1, "variantId": 10, "shipping": delivery("4.00")},
        {"type": "other", "id": 1, "variantId": 10, "shipping": delivery("4.00")},
        {"type": "art", "id": 7, "shipping": delivery("6.00")},
    )

    assert compute_shipping_total(compact_entries(entries)) == 1000


def test_price_cart_single_art_with_shipping(db, art_product):
    priced = price_cart(
        db,
        _entries({"type": "art", "id": art_product.id, "shipping": delivery("5.00")}),
        site_base_url=SITE,
    )

    assert priced.amount_minor == 12500
    assert priced.products_total_minor == 12000
    assert priced.shipping_total_minor == 500
    assert priced.total_price == Decimal("120.00")
    assert priced.all_pickup is False

    line = priced.line_items[0]
    assert line["name"] == "Blue Horizon"
    assert line["type"] == "physical"
    assert line["quantity"] == {"value": 1}
    assert line["unit_price_amount"] == 12000
    assert line["total_amount"] == 12000
    assert line["external_id"] == "blue-horizon"
    assert line["taxes"] == []
    assert line["description"] == "Oil on canvas & wood frame"
    assert line["url"] == f"{SITE}/galeria/p/blue-horizon"
    assert line["image_urls"] == [f"{SITE}/api/art/images/blue%20horizon.jpg"]


def test_price_cart_variant_quantity_and_urls(db, other_product, variant_s):
    priced = price_cart(
        db,
        _entries(
            {"type": "other", "id": other_product.id, "variantId": variant_s.id, "shipping": pickup()},
            {"type": "other", "id": other_product.id, "variantId": variant_s.id, "shipping": pickup()},
        ),
        site_base_url=SITE,
    )

    assert priced.amount_minor == 3100
    assert priced.total_price == Decimal("31.00")
    assert priced.all_pickup is True
    assert priced.line_items[0]["quantity"] == {"value": 2}
    assert priced.line_items[0]["total_amount"] == 3100
    assert priced.line_items[0]["url"] == f"{SITE}/galeria/mas/p/tote-bag"


def test_price_cart_rejects_empty_cart(db):
    with pytest.raises(ValidationError):
        price_cart(db, [], site_base_url=SITE)


def test_price_cart_insufficient_variant_stock(db, other_product, variant_s):
    entry = {"type": "other", "id": other_product.id, "variantId": variant_s.id, "shipping": delivery()}

    with pytest.raises(InsufficientStockError) as exc_info:
        price_cart(db, _entries(entry, entry, entry), site_base_url=SITE)

    assert "2 available, 3 requested" in exc_info.value.message


def test_price_cart_rejects_repeated_unique_item(db, art_product):
    entry = {"type": "art", "id": art_product.id, "shipping": delivery()}

    with pytest.raises(InsufficientStockError, match="1 available, 2 requested"):
        price_cart(db, _entries(entry, entry), site_base_url=SITE)


def test_price_cart_rejects_sold_unique_item(db, art_product):
    art_product.is_sold = True
    db.commit()

    with pytest.raises(UnavailableError):
        price_cart(db, _entries({"type": "art", "id": art_product.id, "shipping": delivery()}), site_base_url=SITE)


def test_price_cart_rejects_unapproved_or_hidden_products(db, art_product):
    art_product.status = "pending"
    db.commit()

    with pytest.raises(UnavailableError):
        price_cart(db, _entries({"type": "art", "id": art_product.id, "shipping": delivery()}), site_base_url=SITE)


def test_price_cart_unknown_product(db, art_product):
    with pytest.raises(NotFoundError):
        price_cart(db, _entries({"type": "art", "id": 9999, "shipping": delivery()}), site_base_url=SITE)


def test_price_cart_unknown_variant(db, other_product, variant_s):
    with pytest.raises(NotFoundError, match="Variant not found"):
        price_cart(
            db,
            _entries({"type": "other", "id": other_product.id, "variantId": 4242, "shipping": delivery()}),
            site_base_url=SITE,
        )


def test_price_cart_requires_variant_id(db, other_product):
    with pytest.raises(ValidationError, match="variantId"):
        price_cart(db, _entries({"type": "other", "id": other_product.id, "shipping": delivery()}), site_base_url=SITE)


def test_price_cart_rejects_zero_amount(db, art_product):
    art_product.price = Decimal("0.00")
    db.commit()

    with pytest.raises(ValidationError, match="greater than zero"):
        price_cart(db, _entries({"type": "art", "id": art_product.id, "shipping": pickup()}), site_base_url=SITE)


def test_product_urls_strip_trailing_slash(art_product):
    page, image = product_urls(ProductKind.ART, art_product, SITE + "/")
    assert page == f"{SITE}/galeria/p/blue-horizon"
    assert image.startswith(f"{SITE}/api/art/images/")
