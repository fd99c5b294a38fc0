import logging
import smtplib
from decimal import Decimal
from email.message import EmailMessage
from html import escape

from marketplace.config import settings

logger = logging.getLogger(__name__)


def _send_email(to_email: str, subject: str, text_body: str, html_body: str | None = None) -> None:
    if not settings.SMTP_HOST or not settings.SMTP_FROM_EMAIL:
        raise RuntimeError("SMTP is not configured (SMTP_HOST and SMTP_FROM_EMAIL are required).")

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
    message["To"] = to_email
    message.set_content(text_body)
    if html_body:
        message.add_alternative(html_body, subtype="html")

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as smtp:
        smtp.ehlo()
        if settings.SMTP_USE_TLS:
            smtp.starttls()
            smtp.ehlo()
        if settings.SMTP_USER:
            smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        smtp.send_message(message)


def _money(value) -> str:
    return format(Decimal(str(value or 0)).quantize(Decimal("0.01")), "f")


def _item_label(item: dict) -> str:
    name = item.get("name") or f"#{item.get('product_id')}"
    if item.get("variant_key"):
        name = f"{name} ({item['variant_key']})"
    return name


def _items_text(items: list[dict], currency: str) -> str:
    return "\n".join(
        f"- {_item_label(item)}: {_money(item.get('price_at_purchase'))} {currency}"
        f" + shipping {_money(item.get('shipping_cost'))} {currency}"
        for item in items
    )


def _items_html(items: list[dict], currency: str) -> str:
    rows = "".join(
        f"<li>{escape(_item_label(item))}: {_money(item.get('price_at_purchase'))} {currency}</li>"
        for item in items
    )
    return f"<ul>{rows}</ul>"


def send_purchase_confirmation(order_details: dict) -> list[dict]:
    """Mail the buyer and every seller involved in a paid order.

    ``order_details`` holds ``order_id``, ``items``, ``total_price``,
    ``currency``, ``buyer_email`` and ``sellers`` (dicts with ``id`` and
    ``email``). Each recipient is attempted independently; the per-recipient
    outcome is returned.
    """
    order_id = order_details["order_id"]
    items = order_details.get("items", [])
    buyer_email = order_details.get("buyer_email")
    currency = order_details.get("currency") or settings.DEFAULT_CURRENCY
    results = []

    if buyer_email:
        text = (
            f"Thank you for your purchase.\n\n"
            f"Order #{order_id}\n"
            f"{_items_text(items, currency)}\n\n"
            f"Total: {_money(order_details.get('total_price'))} {currency}"
        )
        html = (
            f"<p>Thank you for your purchase.</p>"
            f"<p>Order #{order_id}</p>"
            f"{_items_html(items, currency)}"
            f"<p>Total: {_money(order_details.get('total_price'))} {currency}</p>"
        )
        try:
            _send_email(buyer_email, f"Order confirmation #{order_id}", text, html)
            results.append({"recipient": "buyer", "success": True})
        except Exception as exc:
            logger.error("Failed to send order %s confirmation to buyer %s: %s", order_id, buyer_email, exc)
            results.append({"recipient": "buyer", "success": False, "error": str(exc)})

    for seller in order_details.get("sellers", []):
        seller_items = [item for item in items if item.get("seller_id") == seller.get("id")]
        if not seller_items or not seller.get("email"):
            continue
        text = f"You have a new sale in order #{order_id}:\n{_items_text(seller_items, currency)}"
        try:
            _send_email(seller["email"], f"New sale - order #{order_id}", text, _items_html(seller_items, currency))
            results.append({"recipient": "seller", "seller_id": seller["id"], "success": True})
        except Exception as exc:
            logger.error("Failed to send order %s notice to seller %s: %s", order_id, seller["id"], exc)
            results.append({"recipient": "seller", "seller_id": seller["id"], "success": False, "error": str(exc)})

    return results
