import json
from unittest.mock import MagicMock

import httpx
import pytest

from marketplace.errors import GatewayError, GatewayNotConfiguredError, NotFoundError
from marketplace.services.revolut_service import RevolutClient, get_revolut_client, resolve_latest_payment

BASE_URL = "https://sandbox-merchant.revolut.com/api"


def _client(handler, secret_key: str = "sk_test") -> RevolutClient:
    return RevolutClient(
        base_url=BASE_URL,
        secret_key=secret_key,
        api_version="2024-09-01",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


def test_create_order_sends_auth_and_version_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "ord_1", "token": "tok_1", "amount": 12500})

    result = _client(handler).create_order({"amount": 12500, "currency": "EUR"})

    assert result["id"] == "ord_1"
    assert seen["method"] == "POST"
    assert seen["url"] == f"{BASE_URL}/orders"
    assert seen["headers"]["Authorization"] == "Bearer sk_test"
    assert seen["headers"]["Revolut-Api-Version"] == "2024-09-01"
    assert seen["headers"]["Content-Type"] == "application/json"
    assert seen["body"] == {"amount": 12500, "currency": "EUR"}


def test_update_and_cancel_use_expected_paths():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, request.url.path))
        return httpx.Response(200, json={"id": "ord_1"})

    client = _client(handler)
    client.update_order("ord_1", {"merchant_order_ext_ref": "7"})
    client.cancel_order("ord_1")

    assert calls == [("PATCH", "/api/orders/ord_1"), ("POST", "/api/orders/ord_1/cancel")]


def test_remote_error_message_is_normalized():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"error_description": "Amount must be positive"})

    with pytest.raises(GatewayError) as exc_info:
        _client(handler).create_order({"amount": 0})

    assert exc_info.value.message == "Amount must be positive"
    assert exc_info.value.remote_status == 422
    assert exc_info.value.response == {"error_description": "Amount must be positive"}


def test_remote_error_without_body_uses_default_message():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    with pytest.raises(GatewayError, match="Failed to create Revolut order"):
        _client(handler).create_order({"amount": 100})


def test_transport_error_becomes_gateway_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(GatewayError) as exc_info:
        _client(handler).get_order("ord_1")

    assert exc_info.value.remote_status is None


def test_missing_secret_key_is_reported():
    with pytest.raises(GatewayNotConfiguredError):
        _client(lambda request: httpx.Response(200), secret_key="").get_order("ord_1")


def test_list_order_payments_accepts_wrapped_list():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"payments": [{"id": "pay_1"}]})

    assert _client(handler).list_order_payments("ord_1") == [{"id": "pay_1"}]


def test_get_revolut_client_uses_sandbox_by_default(monkeypatch):
    monkeypatch.setenv("REVOLUT_MODE", "sandbox")
    client = get_revolut_client()
    assert client.base_url == BASE_URL
    assert client.secret_key == "sk_test_mock"

    monkeypatch.setenv("REVOLUT_MODE", "production")
    assert get_revolut_client().base_url == "https://merchant.revolut.com/api"


def test_resolve_latest_payment_picks_most_recent():
    client = MagicMock(spec=RevolutClient)
    client.list_order_payments.return_value = [
        {"id": "pay_old", "state": "declined", "created_at": "2026-01-01T10:00:00Z", "amount": 12500},
        {"id": "pay_new", "state": "captured", "created_at": "2026-01-01T10:05:00Z", "amount": 12500},
    ]
    client.get_payment.return_value = {"id": "pay_new", "state": "completed", "amount": 12500}

    result = resolve_latest_payment(client, "ord_1")

    assert result == {"payment_id": "pay_new", "state": "completed", "amount": 12500}


def test_resolve_latest_payment_falls_back_to_order():
    client = MagicMock(spec=RevolutClient)
    client.list_order_payments.side_effect = GatewayError("Not found", remote_status=404)
    client.get_order.return_value = {"id": "ord_1", "payments": [{"id": "pay_1", "state": "authorised"}]}
    client.get_payment.side_effect = GatewayError("Forbidden", remote_status=403)

    result = resolve_latest_payment(client, "ord_1")

    assert result["payment_id"] == "pay_1"
    assert result["state"] == "authorised"
    client.get_order.assert_called_once_with("ord_1")


def test_resolve_latest_payment_without_payments():
    client = MagicMock(spec=RevolutClient)
    client.list_order_payments.return_value = []

    with pytest.raises(NotFoundError, match="Payment not found yet"):
        resolve_latest_payment(client, "ord_1")


def test_resolve_latest_payment_propagates_other_errors():
    client = MagicMock(spec=RevolutClient)
    client.list_order_payments.side_effect = GatewayError("Unauthorized", remote_status=401)

    with pytest.raises(GatewayError):
        resolve_latest_payment(client, "ord_1")
    client.get_order.assert_not_called()


def test_non_json_success_body_becomes_gateway_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(GatewayError, match="Invalid response from Revolut") as exc_info:
        _client(handler).create_order({"amount": 100, "currency": "EUR"})

    assert exc_info.value.remote_status == 200
