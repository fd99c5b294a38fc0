"""Local order persistence for both checkout flows.

Flow A (immediate): price the cart, create the gateway order with the full
payload, then persist the order and its items in one transaction.

Flow B (deferred): the gateway order already exists (created with the amount
only); persist the order and its items, PATCH the full payload onto the
gateway order, and commit only if the PATCH succeeded.
"""

import logging
import secrets
from dataclasses import dataclass
from decimal import Decimal

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.errors import (
    ConflictError,
    ForbiddenError,
    GatewayError,
    NotFoundError,
    OrderPersistenceError,
    ValidationError,
)
from marketplace.models import ArtOrderItem, Order, OrderStatus, OtherOrderItem, ProductKind
from marketplace.schemas.orders import Address, CheckoutRequest, PlaceOrderRequest
from marketplace.services.pricing import PricedCart, compact_entries, price_cart
from marketplace.services.revolut_service import RevolutClient

logger = logging.getLogger(__name__)

# Column sizes of the orders table.
ADDRESS_FIELD_LIMITS = {
    "line1": 255,
    "line2": 255,
    "postal_code": 20,
    "city": 255,
    "province": 255,
}
CONTACT_FIELD_LIMITS = {"email": 255, "phone": 50, "full_name": 255}


@dataclass
class PlacedOrder:
    order: Order
    remote: dict
    amount_minor: int
    currency: str


def _new_order_token() -> str:
    return secrets.token_urlsafe(32)


def _request_key(model, field: str) -> str:
    return model.model_fields[field].alias or field


def _address_errors(label: str, address: Address | None) -> list[str]:
    if address is None:
        return []
    errors = [
        f"{label}.{_request_key(Address, field)} must be at most {limit} characters"
        for field, limit in ADDRESS_FIELD_LIMITS.items()
        if len(getattr(address, field) or "") > limit
    ]
    country = (address.country or "").strip()
    if len(country) != 2 or not country.isalpha():
        errors.append(f"{label}.country must be a two-letter ISO country code")
    return errors


def validate_checkout(body: CheckoutRequest) -> None:
    """Collect every field-level problem of a checkout request into one ValidationError."""
    errors = []
    email = (body.email or "").strip()
    if not email:
        errors.append("email is required")
    else:
        try:
            validate_email(email, check_deliverability=False)
        except EmailNotValidError:
            errors.append("email is not a valid email address")

    for field, limit in CONTACT_FIELD_LIMITS.items():
        if len((getattr(body, field) or "").strip()) > limit:
            errors.append(f"{_request_key(CheckoutRequest, field)} must be at most {limit} characters")

    currency = (body.currency or "").strip()
    if currency and (len(currency) != 3 or not currency.isalpha()):
        errors.append("currency must be a three-letter ISO currency code")

    if not body.items:
        errors.append("items must be a non-empty list")
    elif any(entry.shipping is None for entry in body.items):
        errors.append("every item requires a shipping selection")

    if body.delivery_address is not None or body.invoicing_address is not None:
        if not (body.phone or "").strip():
            errors.append("phone is required when a shipping address is provided")
    errors.extend(_address_errors("deliveryAddress", body.delivery_address))
    errors.extend(_address_errors("invoicingAddress", body.invoicing_address))

    if errors:
        raise ValidationError(errors)


def map_address_to_revolut(address: Address | None) -> dict | None:
    if address is None:
        return None
    return {
        "street_line_1": address.line1 or "",
        "street_line_2": address.line2 or "",
        "region": address.province or "",
        "city": address.city or "",
        "country_code": (address.country or "ES").strip().upper(),
        "postcode": address.postal_code or "",
    }


def build_customer(body: CheckoutRequest) -> dict:
    customer = {"email": body.email.strip()}
    if body.phone:
        customer["phone"] = body.phone.strip()
    if body.full_name:
        customer["full_name"] = body.full_name.strip()
    return customer


def build_shipping(body: CheckoutRequest, priced: PricedCart) -> dict | None:
    """Gateway shipping block: invoicing address when everything is picked up, delivery address otherwise."""
    if priced.all_pickup:
        address = body.invoicing_address or body.delivery_address
    else:
        address = body.delivery_address
    mapped = map_address_to_revolut(address)
    if mapped is None:
        return None

    contact = {"email": body.email.strip(), "phone": (body.phone or "").strip()}
    if body.full_name:
        contact["name"] = body.full_name.strip()
    return {"address": mapped, "contact": contact}


def build_gateway_payload(
    body: CheckoutRequest,
    priced: PricedCart,
    currency: str,
    merchant_order_ref: str | None = None,
) -> dict:
    payload = {
        "amount": priced.amount_minor,
        "currency": currency,
        "description": f"Marketplace order ({len(priced.entries)} items)",
        "customer": build_customer(body),
        "line_items": priced.line_items,
    }
    shipping = build_shipping(body, priced)
    if shipping:
        payload["shipping"] = shipping
    if settings.REVOLUT_LOCATION_ID:
        payload["location_id"] = settings.REVOLUT_LOCATION_ID
    if merchant_order_ref:
        payload["merchant_order_ext_ref"] = merchant_order_ref
    return payload


def _address_columns(prefix: str, address: Address | None, with_coordinates: bool) -> dict:
    if address is None:
        return {}
    columns = {
        f"{prefix}_address_line_1": address.line1,
        f"{prefix}_address_line_2": address.line2,
        f"{prefix}_postal_code": address.postal_code,
        f"{prefix}_city": address.city,
        f"{prefix}_province": address.province,
        f"{prefix}_country": (address.country or "ES").strip().upper(),
    }
    if with_coordinates:
        columns[f"{prefix}_lat"] = address.lat
        columns[f"{prefix}_lng"] = address.lng
    return columns


def _persist_order(
    db: Session,
    body: CheckoutRequest,
    priced: PricedCart,
    status: OrderStatus,
    revolut_order_id: str | None,
    currency: str,
) -> Order:
    """Add the order and one item row per expanded cart entry, then flush.

    Shipping is charged once per compact line, so only the first row of each
    line carries the shipping cost; repeated units keep the method snapshot
    with a zero cost.
    """
    order = Order(
        buyer_email=body.email.strip(),
        buyer_phone=(body.phone or "").strip() or None,
        full_name=(body.full_name or "").strip() or None,
        total_price=priced.total_price,
        status=status.value,
        token=_new_order_token(),
        revolut_order_id=revolut_order_id,
        currency=currency,
        **_address_columns("delivery", body.delivery_address, with_coordinates=True),
        **_address_columns("invoicing", body.invoicing_address, with_coordinates=False),
    )
    db.add(order)
    db.flush()

    shipping_by_line = {line.key: line.shipping for line in compact_entries(priced.entries)}
    charged_lines = set()
    for entry in priced.entries:
        key = (entry.type, entry.id, entry.variant_id)
        shipping = entry.shipping or shipping_by_line.get(key)
        shipping_cost = Decimal("0.00")
        if key not in charged_lines:
            charged_lines.add(key)
            if shipping is not None:
                shipping_cost = Decimal(str(shipping.cost)).quantize(Decimal("0.01"))

        snapshot = {
            "price_at_purchase": Decimal(str(priced.product_for(entry.type, entry.id).price)),
            "shipping_method_id": shipping.method_id if shipping else None,
            "shipping_cost": shipping_cost,
            "shipping_method_name": shipping.method_name if shipping else None,
            "shipping_method_type": shipping.method_type if shipping else None,
        }
        if entry.type == ProductKind.ART:
            db.add(ArtOrderItem(order_id=order.id, art_id=entry.id, **snapshot))
        else:
            db.add(OtherOrderItem(order_id=order.id, other_id=entry.id, other_var_id=entry.variant_id, **snapshot))

    db.flush()
    return order


def _cancel_orphaned_gateway_order(client: RevolutClient, revolut_order_id: str) -> None:
    try:
        client.cancel_order(revolut_order_id)
        logger.info("Cancelled orphaned Revolut order %s", revolut_order_id)
    except GatewayError as exc:
        logger.error(
            "Could not cancel orphaned Revolut order %s, manual reconciliation needed: %s",
            revolut_order_id,
            exc.message,
        )


def create_order_immediate(db: Session, client: RevolutClient, body: CheckoutRequest) -> PlacedOrder:
    """Flow A. Returns the persisted order and the gateway order it references."""
    validate_checkout(body)
    priced = price_cart(db, body.items, site_base_url=settings.SITE_PUBLIC_BASE_URL)
    currency = (body.currency or settings.DEFAULT_CURRENCY).upper()

    remote = client.create_order(build_gateway_payload(body, priced, currency))
    revolut_order_id = remote.get("id")
    if not revolut_order_id:
        raise GatewayError("Revolut did not return an order id", response=remote)

    try:
        order = _persist_order(db, body, priced, OrderStatus.PENDING_PAYMENT, revolut_order_id, currency)
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.exception("Failed to persist order for Revolut order %s", revolut_order_id)
        _cancel_orphaned_gateway_order(client, revolut_order_id)
        raise OrderPersistenceError(
            "The payment order was created but the order could not be saved",
            revolut_order_id=revolut_order_id,
        ) from exc

    db.refresh(order)
    logger.info("Order %s created for Revolut order %s (flow A)", order.id, revolut_order_id)
    return PlacedOrder(order=order, remote=remote, amount_minor=priced.amount_minor, currency=currency)


def place_order_deferred(db: Session, client: RevolutClient, body: PlaceOrderRequest) -> PlacedOrder:
    """Flow B. Persists first, then PATCHes the gateway order; both succeed or nothing is committed."""
    validate_checkout(body)
    revolut_order_id = (body.revolut_order_id or "").strip()
    if not revolut_order_id:
        raise ValidationError("revolutOrderId is required")

    if db.query(Order.id).filter(Order.revolut_order_id == revolut_order_id).first():
        raise ConflictError(f"Revolut order {revolut_order_id} is already attached to an order")

    priced = price_cart(db, body.items, site_base_url=settings.SITE_PUBLIC_BASE_URL)
    currency = (body.currency or settings.DEFAULT_CURRENCY).upper()

    try:
        order = _persist_order(db, body, priced, OrderStatus.PENDING, revolut_order_id, currency)
        remote = client.update_order(
            revolut_order_id,
            build_gateway_payload(body, priced, currency, merchant_order_ref=str(order.id)),
        )
        db.commit()
    except GatewayError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(f"Revolut order {revolut_order_id} is already attached to an order") from exc
    except Exception as exc:
        db.rollback()
        logger.exception("Failed to persist order for Revolut order %s", revolut_order_id)
        raise OrderPersistenceError("The order could not be saved", revolut_order_id=revolut_order_id) from exc

    db.refresh(order)
    logger.info("Order %s placed for Revolut order %s (flow B)", order.id, revolut_order_id)
    return PlacedOrder(order=order, remote=remote, amount_minor=priced.amount_minor, currency=currency)


def _address_from_order(order: Order, prefix: str) -> dict | None:
    line1 = getattr(order, f"{prefix}_address_line_1")
    city = getattr(order, f"{prefix}_city")
    if not line1 and not city:
        return None
    address = {
        "line1": line1 or "",
        "line2": getattr(order, f"{prefix}_address_line_2"),
        "postalCode": getattr(order, f"{prefix}_postal_code") or "",
        "city": city or "",
        "province": getattr(order, f"{prefix}_province"),
        "country": getattr(order, f"{prefix}_country") or "ES",
    }
    if prefix == "delivery":
        address["lat"] = order.delivery_lat
        address["lng"] = order.delivery_lng
    return address


def _item_snapshot(item: ArtOrderItem | OtherOrderItem) -> dict:
    return {
        "id": item.id,
        "price_at_purchase": item.price_at_purchase,
        "shipping_method_id": item.shipping_method_id,
        "shipping_cost": item.shipping_cost,
        "shipping_method_name": item.shipping_method_name,
        "shipping_method_type": item.shipping_method_type,
    }


def order_items(order: Order) -> list[dict]:
    """Union of art and other item rows, each tagged with product_type."""
    items = []
    for item in order.art_items:
        items.append(
            {
                **_item_snapshot(item),
                "product_type": ProductKind.ART.value,
                "product_id": item.art_id,
                "variant_id": None,
                "variant_key": None,
                "name": item.product.name if item.product else None,
                "basename": item.product.basename if item.product else None,
                "seller_id": item.product.seller_id if item.product else None,
            }
        )
    for item in order.other_items:
        items.append(
            {
                **_item_snapshot(item),
                "product_type": ProductKind.OTHER.value,
                "product_id": item.other_id,
                "variant_id": item.other_var_id,
                "variant_key": item.variant.key if item.variant else None,
                "name": item.product.name if item.product else None,
                "basename": item.product.basename if item.product else None,
                "seller_id": item.product.seller_id if item.product else None,
            }
        )
    return items


def serialize_order(order: Order) -> dict:
    return {
        "id": order.id,
        "buyer_email": order.buyer_email,
        "buyer_phone": order.buyer_phone,
        "full_name": order.full_name,
        "total_price": order.total_price,
        "currency": order.currency,
        "status": order.status,
        "token": order.token,
        "delivery_address": _address_from_order(order, "delivery"),
        "invoicing_address": _address_from_order(order, "invoicing"),
        "revolut_order_id": order.revolut_order_id,
        "revolut_payment_id": order.revolut_payment_id,
        "created_at": order.created_at.isoformat() if order.created_at else "",
        "items": order_items(order),
    }


def get_order_by_token(db: Session, token: str) -> Order:
    order = db.query(Order).filter(Order.token == token).first() if token else None
    if not order:
        raise NotFoundError("Order not found", title="Order not found")
    return order


def get_order_for_buyer(db: Session, order_id: int, email: str) -> Order:
    """Order by id, visible only to the buyer whose email placed it."""
    order = db.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found", title="Order not found")
    if (order.buyer_email or "").strip().lower() != (email or "").strip().lower():
        raise ForbiddenError("You do not have access to this order")
    return order
