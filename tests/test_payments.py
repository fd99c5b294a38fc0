from fastapi import status

from conftest import delivery
from marketplace.errors import GatewayError


def test_init_order_sends_minimal_payload(client, gateway, art_product):
    gateway.create_order.side_effect = lambda payload: {
        "id": "rev_init_1",
        "token": "tok_init",
        "amount": payload["amount"],
        "currency": payload["currency"],
        "state": "pending",
    }

    response = client.post(
        "/api/payments/revolut/init-order",
        json={"items": [{"type": "art", "id": art_product.id, "shipping": delivery()}]},
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "success": True,
        "token": "tok_init",
        "revolut_order_id": "rev_init_1",
        "amount": 12500,
        "currency": "EUR",
        "state": "pending",
    }
    assert gateway.create_order.call_args.args[0] == {"amount": 12500, "currency": "EUR"}


def test_init_order_rejects_sold_item(client, db, gateway, art_product):
    art_product.is_sold = True
    db.commit()

    response = client.post(
        "/api/payments/revolut/init-order",
        json={"items": [{"type": "art", "id": art_product.id, "shipping": delivery()}]},
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    gateway.create_order.assert_not_called()


def test_init_order_without_remote_id_is_gateway_error(client, gateway, art_product):
    gateway.create_order.side_effect = lambda payload: {}

    response = client.post(
        "/api/payments/revolut/init-order",
        json={"items": [{"type": "art", "id": art_product.id, "shipping": delivery()}]},
    )

    assert response.status_code == status.HTTP_502_BAD_GATEWAY


def test_latest_payment_endpoint(client, gateway):
    gateway.list_order_payments.return_value = [{"id": "pay_1", "state": "completed", "amount": 12500}]
    gateway.get_payment.return_value = {"id": "pay_1", "state": "completed", "amount": 12500}

    response = client.get("/api/payments/revolut/order/rev_1/payments/latest")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"success": True, "payment_id": "pay_1", "state": "completed", "amount": 12500}


def test_latest_payment_not_found_yet(client, gateway):
    gateway.list_order_payments.return_value = []

    response = client.get("/api/payments/revolut/order/rev_1/payments/latest")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["message"] == "Payment not found yet for this order"


def test_cancel_order_endpoint(client, gateway):
    response = client.post("/api/payments/revolut/order/rev_1/cancel")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["order_id"] == "rev_1"
    gateway.cancel_order.assert_called_once_with("rev_1")


def test_cancel_order_gateway_error(client, gateway):
    gateway.cancel_order.side_effect = GatewayError("Order cannot be cancelled", remote_status=422)

    response = client.post("/api/payments/revolut/order/rev_1/cancel")

    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert response.json()["message"] == "Order cannot be cancelled"
