"""Revolut Merchant API client.

Every call carries the bearer secret and the ``Revolut-Api-Version`` header.
Failures are normalized to ``GatewayError`` with the remote status code and
the best message the remote body offers.
"""

import logging
from datetime import datetime
from urllib.parse import quote

import httpx

from marketplace.config import settings
from marketplace.errors import GatewayError, GatewayNotConfiguredError, InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)

FALLBACK_STATUSES = {400, 404}


def _error_message(response: httpx.Response | None, default: str) -> tuple[str, dict]:
    if response is None:
        return default, {}
    try:
        data = response.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    message = data.get("message") or data.get("error_description") or data.get("error") or default
    return str(message), data


class RevolutClient:
    def __init__(
        self,
        base_url: str | None,
        secret_key: str,
        api_version: str,
        timeout: float = 15,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.secret_key = secret_key
        self.api_version = api_version
        self.timeout = timeout
        self._transport = transport

    def _headers(self, with_body: bool = False) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Accept": "application/json",
            "Revolut-Api-Version": str(self.api_version),
        }
        if with_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _request(self, method: str, path: str, default_error: str, payload: dict | None = None):
        if not self.secret_key:
            raise GatewayNotConfiguredError("REVOLUT_SECRET_KEY is not configured")
        if not self.base_url:
            raise GatewayNotConfiguredError("Revolut API URL is not configured")

        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.request(
                    method,
                    url,
                    json=payload,
                    headers=self._headers(with_body=payload is not None),
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            message, data = _error_message(exc.response, default_error)
            logger.warning(
                "Revolut %s %s failed with status %s: %s",
                method,
                path,
                exc.response.status_code,
                message,
            )
            raise GatewayError(message, remote_status=exc.response.status_code, response=data) from exc
        except httpx.HTTPError as exc:
            logger.warning("Revolut %s %s transport error: %s", method, path, exc)
            raise GatewayError(str(exc) or default_error, remote_status=None) from exc

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            logger.warning(
                "Revolut %s %s returned a non-JSON body with status %s",
                method,
                path,
                response.status_code,
            )
            raise GatewayError("Invalid response from Revolut", remote_status=response.status_code) from exc

    def create_order(self, payload: dict) -> dict:
        """Create a gateway order; returns the remote order ({id, token, amount, currency, state, ...})."""
        return self._request("POST", "/orders", "Failed to create Revolut order", payload)

    def get_order(self, order_id: str) -> dict:
        return self._request("GET", f"/orders/{quote(str(order_id), safe='')}", "Failed to fetch Revolut order")

    def update_order(self, order_id: str, payload: dict) -> dict:
        """Partial update of an existing gateway order."""
        return self._request(
            "PATCH",
            f"/orders/{quote(str(order_id), safe='')}",
            "Failed to update Revolut order",
            payload,
        )

    def cancel_order(self, order_id: str) -> dict:
        return self._request(
            "POST",
            f"/orders/{quote(str(order_id), safe='')}/cancel",
            "Failed to cancel Revolut order",
        )

    def list_order_payments(self, order_id: str) -> list[dict]:
        data = self._request(
            "GET",
            f"/orders/{quote(str(order_id), safe='')}/payments",
            "Failed to fetch Revolut order payments",
        )
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get("payments"), list):
            return data["payments"]
        return []

    def get_payment(self, payment_id: str) -> dict:
        return self._request(
            "GET",
            f"/payments/{quote(str(payment_id), safe='')}",
            "Failed to fetch Revolut payment",
        )


def get_revolut_client() -> RevolutClient:
    base_url = (
        settings.REVOLUT_API_URL_PRODUCTION
        if settings.REVOLUT_MODE == "production"
        else settings.REVOLUT_API_URL_SANDBOX
    )
    return RevolutClient(
        base_url=base_url,
        secret_key=settings.REVOLUT_SECRET_KEY,
        api_version=settings.REVOLUT_API_VERSION,
        timeout=settings.REVOLUT_TIMEOUT_SECONDS,
    )


def _payment_timestamp(payment: dict) -> float:
    raw = payment.get("updated_at") or payment.get("created_at")
    if not raw:
        return 0.0
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def _int_or_none(value) -> int | None:
    return value if isinstance(value, int) and not isinstance(value, bool) else None


def resolve_latest_payment(client: RevolutClient, order_id: str) -> dict:
    """Find the most recent payment of a gateway order.

    Falls back to the order object when the payments listing is unavailable
    (400/404). Raises NotFoundError while no payment exists yet so callers can
    poll again.
    """
    if not order_id:
        raise InvalidRequestError("Revolut order id is required")

    try:
        payments = client.list_order_payments(order_id)
    except GatewayError as exc:
        if exc.remote_status not in FALLBACK_STATUSES:
            raise
        logger.info("Payments listing unavailable for Revolut order %s, reading order instead", order_id)
        order = client.get_order(order_id)
        if isinstance(order.get("payments"), list):
            payments = order["payments"]
        elif order.get("payment"):
            payments = [order["payment"]]
        else:
            payments = []

    if not payments:
        raise NotFoundError("Payment not found yet for this order")

    latest = sorted(payments, key=_payment_timestamp, reverse=True)[0]
    payment_id = latest.get("id") or latest.get("token") or latest.get("payment_id")
    if not payment_id:
        raise NotFoundError("Payment ID not available yet")

    state = str(latest.get("state") or latest.get("status") or "")
    amount = _int_or_none(latest.get("amount"))
    if amount is None:
        amount = _int_or_none(latest.get("outstanding_amount"))

    verified = {}
    try:
        verified = client.get_payment(payment_id)
    except GatewayError as exc:
        logger.info("Could not verify Revolut payment %s: %s", payment_id, exc.message)

    return {
        "payment_id": payment_id,
        "state": verified.get("state") or state or None,
        "amount": _int_or_none(verified.get("amount")) or amount,
    }
