"""Cart pricing and gateway line-item assembly.

Prices live in the database as major-unit decimals; the gateway wants integer
minor units. Both representations are produced here from one snapshot read of
the catalogue, so the amount sent to the gateway and the totals persisted
locally come from the same rows.
"""

import html
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from urllib.parse import quote

from sqlalchemy.orm import Session

from marketplace.errors import InsufficientStockError, NotFoundError, UnavailableError, ValidationError
from marketplace.models import ArtProduct, OtherProduct, OtherVariant, ProductKind
from marketplace.schemas.orders import CartEntry, ShippingSelection

logger = logging.getLogger(__name__)

DESCRIPTION_MAX_LENGTH = 1000


def to_minor_units(amount: Decimal | int | float | None) -> int:
    if amount is None:
        return 0
    value = Decimal(str(amount)) * Decimal("100")
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def strip_html(text: str | None, max_length: int = DESCRIPTION_MAX_LENGTH) -> str:
    """Plain-text rendition of a rich-text description."""
    if not text:
        return ""
    text = re.sub(r"<[^>]+>", " ", str(text))
    text = html.unescape(text)
    text = " ".join(text.split())
    return text[:max_length].strip()


@dataclass
class CompactLine:
    type: ProductKind
    id: int
    variant_id: int | None
    quantity: int = 1
    shipping: ShippingSelection | None = None

    @property
    def key(self) -> tuple[ProductKind, int, int | None]:
        return self.type, self.id, self.variant_id


@dataclass
class PricedCart:
    entries: list[CartEntry]
    compact_lines: list[CompactLine]
    line_items: list[dict]
    art_products: dict[int, ArtProduct]
    other_products: dict[int, OtherProduct]
    variants: dict[int, OtherVariant]
    products_total_minor: int
    shipping_total_minor: int
    total_price: Decimal = field(default_factory=lambda: Decimal("0.00"))

    @property
    def amount_minor(self) -> int:
        return self.products_total_minor + self.shipping_total_minor

    @property
    def all_pickup(self) -> bool:
        return all(
            line.shipping is not None and line.shipping.method_type == "pickup" for line in self.compact_lines
        )

    def product_for(self, kind: ProductKind, product_id: int) -> ArtProduct | OtherProduct:
        if kind == ProductKind.ART:
            return self.art_products[product_id]
        return self.other_products[product_id]


def compact_entries(entries: list[CartEntry]) -> list[CompactLine]:
    """Merge repeated (type, id, variant) entries into counted lines, preserving first-seen order."""
    lines: dict[tuple, CompactLine] = {}
    for entry in entries:
        key = (entry.type, entry.id, entry.variant_id)
        line = lines.get(key)
        if line is None:
            lines[key] = CompactLine(
                type=entry.type,
                id=entry.id,
                variant_id=entry.variant_id,
                quantity=1,
                shipping=entry.shipping,
            )
            continue
        line.quantity += 1
        if line.shipping is None and entry.shipping is not None:
            line.shipping = entry.shipping
    return list(lines.values())


def _is_available(product: ArtProduct | OtherProduct) -> bool:
    return bool(product.visible) and product.status == "approved" and not product.is_sold


def _load_art(db: Session, ids: set[int]) -> dict[int, ArtProduct]:
    if not ids:
        return {}
    rows = db.query(ArtProduct).filter(ArtProduct.id.in_(ids)).all()
    products = {row.id: row for row in rows}
    if len(products) != len(ids):
        raise NotFoundError("One or more art products were not found", title="Products not found")
    for product in products.values():
        if not _is_available(product):
            raise UnavailableError(f"The art product {product.name} is no longer available")
    return products


def _load_others(db: Session, ids: set[int]) -> dict[int, OtherProduct]:
    if not ids:
        return {}
    rows = db.query(OtherProduct).filter(OtherProduct.id.in_(ids)).all()
    products = {row.id: row for row in rows}
    if len(products) != len(ids):
        raise NotFoundError("One or more products were not found", title="Products not found")
    for product in products.values():
        if not _is_available(product):
            raise UnavailableError(f"The product {product.name} is no longer available")
    return products


def _load_variants(
    db: Session,
    entries: list[CartEntry],
    products: dict[int, OtherProduct],
) -> dict[int, OtherVariant]:
    other_entries = [entry for entry in entries if entry.type == ProductKind.OTHER]
    if not other_entries:
        return {}
    if any(entry.variant_id is None for entry in other_entries):
        raise ValidationError("variantId is required for every product with variants")

    variant_ids = {entry.variant_id for entry in other_entries}
    rows = db.query(OtherVariant).filter(OtherVariant.id.in_(variant_ids)).all()
    variants = {row.id: row for row in rows}

    requested = Counter((entry.id, entry.variant_id) for entry in other_entries)
    for (product_id, variant_id), quantity in requested.items():
        variant = variants.get(variant_id)
        if variant is None or variant.other_id != product_id:
            raise NotFoundError("Variant not found", title="Variant not found")
        if variant.stock < quantity:
            raise InsufficientStockError(products[product_id].name, variant.stock, quantity)
    return variants


def _check_unique_multiplicity(entries: list[CartEntry], products: dict[int, ArtProduct]) -> None:
    counts = Counter(entry.id for entry in entries if entry.type == ProductKind.ART)
    for product_id, quantity in counts.items():
        if quantity > 1:
            raise InsufficientStockError(products[product_id].name, 1, quantity)


def product_urls(kind: ProductKind, product: ArtProduct | OtherProduct, site_base_url: str) -> tuple[str, str]:
    """Return (product page URL, image URL) for a catalogue row."""
    base = site_base_url.rstrip("/")
    basename = quote(product.basename or "", safe="")
    if kind == ProductKind.ART:
        return f"{base}/galeria/p/{product.slug}", f"{base}/api/art/images/{basename}"
    return f"{base}/galeria/mas/p/{product.slug}", f"{base}/api/others/images/{basename}"


def build_line_items(
    compact_lines: list[CompactLine],
    *,
    art_products: dict[int, ArtProduct],
    other_products: dict[int, OtherProduct],
    site_base_url: str,
) -> tuple[list[dict], int]:
    """Build gateway line items; returns (line_items, products total in minor units)."""
    line_items = []
    products_total = 0
    for line in compact_lines:
        source = art_products.get(line.id) if line.type == ProductKind.ART else other_products.get(line.id)
        if source is None:
            continue
        unit_price_minor = to_minor_units(source.price)
        quantity = max(1, int(line.quantity or 1))
        total_minor = unit_price_minor * quantity
        products_total += total_minor
        product_url, image_url = product_urls(line.type, source, site_base_url)
        line_items.append(
            {
                "name": source.name,
                "type": "physical",
                "quantity": {"value": quantity},
                "unit_price_amount": unit_price_minor,
                "total_amount": total_minor,
                "external_id": source.slug,
                "taxes": [],
                "image_urls": [image_url],
                "description": strip_html(source.description),
                "url": product_url,
            }
        )
    return line_items, products_total


def compute_shipping_total(compact_lines: list[CompactLine]) -> int:
    """Shipping is charged once per compact line, not once per unit."""
    return sum(to_minor_units(line.shipping.cost) for line in compact_lines if line.shipping is not None)


def compute_products_total(
    entries: list[CartEntry],
    art_products: dict[int, ArtProduct],
    other_products: dict[int, OtherProduct],
) -> Decimal:
    """Major-unit sum of product prices over the expanded cart; shipping excluded."""
    total = Decimal("0.00")
    for entry in entries:
        source = art_products[entry.id] if entry.type == ProductKind.ART else other_products[entry.id]
        total += Decimal(str(source.price))
    return total.quantize(Decimal("0.01"))


def price_cart(db: Session, entries: list[CartEntry], *, site_base_url: str) -> PricedCart:
    """Resolve, validate and price a cart. Raises before any write on the first problem found."""
    if not entries:
        raise ValidationError("items must be a non-empty list")

    art_ids = {entry.id for entry in entries if entry.type == ProductKind.ART}
    other_ids = {entry.id for entry in entries if entry.type == ProductKind.OTHER}

    art_products = _load_art(db, art_ids)
    _check_unique_multiplicity(entries, art_products)
    other_products = _load_others(db, other_ids)
    variants = _load_variants(db, entries, other_products)

    compact_lines = compact_entries(entries)
    line_items, products_total_minor = build_line_items(
        compact_lines,
        art_products=art_products,
        other_products=other_products,
        site_base_url=site_base_url,
    )
    shipping_total_minor = compute_shipping_total(compact_lines)

    priced = PricedCart(
        entries=list(entries),
        compact_lines=compact_lines,
        line_items=line_items,
        art_products=art_products,
        other_products=other_products,
        variants=variants,
        products_total_minor=products_total_minor,
        shipping_total_minor=shipping_total_minor,
        total_price=compute_products_total(entries, art_products, other_products),
    )
    if priced.amount_minor <= 0:
        raise ValidationError("The order amount must be greater than zero")

    logger.info(
        "Priced cart: %s entries, %s lines, amount=%s minor units",
        len(entries),
        len(compact_lines),
        priced.amount_minor,
    )
    return priced
