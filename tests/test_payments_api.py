"""Tests for the server-side payment endpoints."""

import hashlib
import hmac
import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests
from fastapi.testclient import TestClient

from storefront.api import create_app
from storefront.api.routers.payments import get_gateway, get_order_client
from storefront.domain.schemas import CustomerInfo, Order, PaymentStatus
from storefront.services.razorpay_client import RazorpayClient, to_minor_units

SECRET = "test-secret"
WEBHOOK_SECRET = "hook-secret"


def _sign(message, secret=SECRET):
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def _payment_signature(gateway_order_id, payment_id, secret=SECRET):
    return _sign(f"{gateway_order_id}|{payment_id}", secret)


def _order(status=PaymentStatus.PENDING, total="1000", gateway_order_id="order_gw1"):
    return Order(
        order_id="o-1",
        order_number="ORD-1",
        customer=CustomerInfo(name="Asha Verma", email="asha@example.com", phone="9876543210"),
        items=[],
        subtotal=Decimal(total),
        total=Decimal(total),
        payment_status=status,
        gateway_order_id=gateway_order_id,
    )


@pytest.fixture
def orders():
    client = MagicMock()
    client.get.return_value = _order()
    client.update.side_effect = lambda order_id, updates: {"_id": order_id, **updates}
    return client


@pytest.fixture
def gateway():
    real = RazorpayClient("rzp_test_key", SECRET, webhook_secret=WEBHOOK_SECRET)
    gw = MagicMock()
    gw.configured = True
    gw.key_id = "rzp_test_key"
    gw.webhook_secret = WEBHOOK_SECRET
    gw.verify_signature.side_effect = real.verify_signature
    gw.verify_webhook.side_effect = real.verify_webhook
    gw.create_order.return_value = {"id": "order_gw1", "amount": 100000, "currency": "INR"}
    gw.fetch_payment.return_value = {"id": "pay_1", "status": "captured"}
    return gw


@pytest.fixture
def client(orders, gateway):
    app = create_app()
    app.dependency_overrides[get_order_client] = lambda: orders
    app.dependency_overrides[get_gateway] = lambda: gateway
    return TestClient(app)


def _verify_body(signature=None):
    return {
        "orderId": "o-1",
        "razorpay_order_id": "order_gw1",
        "razorpay_payment_id": "pay_1",
        "razorpay_signature": signature or _payment_signature("order_gw1", "pay_1"),
    }


CREATE_BODY = {
    "orderId": "o-1",
    "amount": 1000,
    "currency": "INR",
    "customer": {"name": "Asha Verma", "email": "asha@example.com", "phone": "9876543210"},
}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


class TestCreateOrder:
    def test_creates_gateway_order(self, client, orders, gateway):
        resp = client.post("/payment/create-order", json=CREATE_BODY)

        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "order": {"id": "order_gw1", "amount": 100000, "currency": "INR", "key": "rzp_test_key"},
        }
        assert gateway.create_order.call_args.kwargs["amount"] == Decimal("1000")
        assert gateway.create_order.call_args.kwargs["receipt"] == "ORD-1"
        orders.update.assert_called_once_with("o-1", {"razorpayOrderId": "order_gw1"})

    def test_not_configured(self, client, gateway):
        gateway.configured = False
        resp = client.post("/payment/create-order", json=CREATE_BODY)
        assert resp.status_code == 500
        gateway.create_order.assert_not_called()

    def test_amount_must_match_stored_total(self, client, gateway):
        resp = client.post("/payment/create-order", json={**CREATE_BODY, "amount": 1})
        assert resp.status_code == 400
        gateway.create_order.assert_not_called()

    def test_completed_order_not_charged_again(self, client, orders, gateway):
        orders.get.return_value = _order(status=PaymentStatus.COMPLETED)
        resp = client.post("/payment/create-order", json=CREATE_BODY)
        assert resp.status_code == 409
        gateway.create_order.assert_not_called()

    def test_unknown_order(self, client, orders, make_response):
        orders.get.side_effect = requests.HTTPError("404", response=make_response(404, {"error": "Order not found"}))
        resp = client.post("/payment/create-order", json=CREATE_BODY)
        assert resp.status_code == 404

    def test_zero_amount_rejected(self, client):
        resp = client.post("/payment/create-order", json={**CREATE_BODY, "amount": 0})
        assert resp.status_code == 422


class TestVerify:
    def test_valid_captured_payment(self, client, orders):
        resp = client.post("/payment/verify", json=_verify_body())

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["paymentStatus"] == "captured"
        assert body["order"]["paymentStatus"] == "completed"
        updates = orders.update.call_args.args[1]
        assert updates["paymentStatus"] == "completed"
        assert updates["razorpayPaymentId"] == "pay_1"

    def test_bad_signature(self, client, orders):
        resp = client.post("/payment/verify", json=_verify_body(signature="forged"))

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid payment signature"
        orders.update.assert_not_called()

    def test_signature_checked_against_stored_gateway_order(self, client, orders):
        orders.get.return_value = _order(gateway_order_id="order_other")
        resp = client.post("/payment/verify", json=_verify_body())
        assert resp.status_code == 400

    def test_payment_not_captured(self, client, orders, gateway):
        gateway.fetch_payment.return_value = {"id": "pay_1", "status": "failed"}

        resp = client.post("/payment/verify", json=_verify_body())

        assert resp.status_code == 200
        assert resp.json()["success"] is False
        assert orders.update.call_args.args[1]["paymentStatus"] == "failed"

    def test_gateway_unreachable_relies_on_signature(self, client, gateway):
        gateway.fetch_payment.side_effect = requests.ConnectionError("down")
        resp = client.post("/payment/verify", json=_verify_body())
        assert resp.json()["success"] is True

    def test_refunded_order_is_not_verified_again(self, client, orders):
        orders.get.return_value = _order(status=PaymentStatus.REFUNDED)
        resp = client.post("/payment/verify", json=_verify_body())
        assert resp.status_code == 409
        orders.update.assert_not_called()

    def test_unreadable_stored_order(self, client, orders):
        orders.get.side_effect = lambda order_id: Order.model_validate({"_id": order_id, "paymentStatus": "chargeback"})
        resp = client.post("/payment/verify", json=_verify_body())
        assert resp.status_code == 502
        assert "unreadable" in resp.json()["detail"]


def _event(name, order_id="o-1", payment_id="pay_1"):
    notes = {"orderId": order_id} if order_id else {}
    return {"event": name, "payload": {"payment": {"entity": {"id": payment_id, "notes": notes}}}}


def _post_webhook(client, event, signature=None):
    body = json.dumps(event)
    return client.post(
        "/payment/webhook",
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-Razorpay-Signature": signature or _sign(body, WEBHOOK_SECRET),
        },
    )


class TestWebhook:
    def test_captured_completes_pending_order(self, client, orders):
        resp = _post_webhook(client, _event("payment.captured"))

        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        order_id, updates = orders.update.call_args.args
        assert order_id == "o-1"
        assert updates["paymentStatus"] == "completed"
        assert updates["razorpayPaymentId"] == "pay_1"

    def test_captured_after_reported_failure(self, client, orders):
        orders.get.return_value = _order(status=PaymentStatus.FAILED)
        _post_webhook(client, _event("payment.captured"))
        assert orders.update.call_args.args[1]["paymentStatus"] == "completed"

    def test_failed_marks_pending_order(self, client, orders):
        _post_webhook(client, _event("payment.failed"))
        orders.update.assert_called_once_with("o-1", {"paymentStatus": "failed"})

    def test_failed_never_undoes_completion(self, client, orders):
        orders.get.return_value = _order(status=PaymentStatus.COMPLETED)
        resp = _post_webhook(client, _event("payment.failed"))
        assert resp.status_code == 200
        orders.update.assert_not_called()

    def test_invalid_signature(self, client, orders):
        resp = _post_webhook(client, _event("payment.captured"), signature=_sign("something else", WEBHOOK_SECRET))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid webhook signature"
        orders.get.assert_not_called()

    def test_signed_with_key_secret_is_rejected(self, client, orders):
        body = json.dumps(_event("payment.captured"))
        resp = client.post("/payment/webhook", content=body, headers={"X-Razorpay-Signature": _sign(body, SECRET)})
        assert resp.status_code == 400
        orders.update.assert_not_called()

    def test_missing_signature(self, client):
        resp = client.post("/payment/webhook", content=json.dumps(_event("payment.captured")))
        assert resp.status_code == 400

    def test_not_configured(self, client, gateway):
        gateway.webhook_secret = ""
        resp = _post_webhook(client, _event("payment.captured"))
        assert resp.status_code == 500

    @pytest.mark.parametrize("event", [_event("order.paid"), _event("payment.captured", order_id=None)])
    def test_acknowledged_without_changes(self, client, orders, event):
        resp = _post_webhook(client, event)
        assert resp.status_code == 200
        orders.update.assert_not_called()


class TestRazorpayClient:
    @pytest.fixture
    def rzp(self):
        return RazorpayClient("rzp_test_key", SECRET, webhook_secret=WEBHOOK_SECRET, timeout=2)

    def test_order_amount_in_paise(self, rzp):
        with patch.object(rzp.client.order, "create", return_value={"id": "order_gw1"}) as create:
            rzp.create_order(Decimal("499.99"), "INR", "ORD-1", {"orderId": "o-1"})

        data = create.call_args.kwargs["data"]
        assert data == {"amount": 49999, "currency": "INR", "receipt": "ORD-1", "notes": {"orderId": "o-1"}}

    def test_payment_signature_bound_to_order(self, rzp):
        sig = _payment_signature("order_gw1", "pay_1")
        assert rzp.verify_signature("order_gw1", "pay_1", sig)
        assert not rzp.verify_signature("order_gw2", "pay_1", sig)
        assert not rzp.verify_signature("order_gw1", "pay_1", "")

    def test_other_key_secret_fails(self):
        sig = _payment_signature("order_gw1", "pay_1")
        assert not RazorpayClient("rzp_test_key", "other-secret").verify_signature("order_gw1", "pay_1", sig)

    def test_webhook_needs_its_own_secret(self):
        body = '{"event": "payment.captured"}'
        assert not RazorpayClient("k", SECRET, webhook_secret="").verify_webhook(body, _sign(body, SECRET))

    @pytest.mark.parametrize("amount, paise", [(Decimal("1000"), 100000), (Decimal("499.99"), 49999), (1, 100)])
    def test_minor_units(self, amount, paise):
        assert to_minor_units(amount) == paise
