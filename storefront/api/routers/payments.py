# storefront/api/routers/payments.py
import json
from typing import Any, Dict

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError as SchemaError
from requests import HTTPError, RequestException

from storefront.domain.schemas import CreatePaymentIn, Order, PaymentStatus, VerifyPaymentIn
from storefront.services.order_client import OrderClient
from storefront.services.razorpay_client import GATEWAY_ERRORS, PAID_STATUSES, RazorpayClient, to_minor_units
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/payment", tags=["payment"])


def get_order_client() -> OrderClient:
    return OrderClient()


def get_gateway() -> RazorpayClient:
    return RazorpayClient()


def _load_order(orders: OrderClient, order_id: str) -> Order:
    try:
        return orders.get(order_id)
    except HTTPError as e:
        if e.response is not None and e.response.status_code == 404:
            raise HTTPException(status_code=404, detail="Order not found")
        raise HTTPException(status_code=502, detail="Order service error")
    except RequestException:
        raise HTTPException(status_code=502, detail="Order service unavailable")
    except SchemaError as e:
        logger.error(f"Order {order_id} from the order service is unreadable: {e.error_count()} error(s)")
        raise HTTPException(status_code=502, detail="Order service returned an unreadable order")


@router.post("/create-order")
def create_payment_order(
    payload: CreatePaymentIn,
    orders: OrderClient = Depends(get_order_client),
    gateway: RazorpayClient = Depends(get_gateway),
):
    """
    Opens a gateway order for a pending store order.
    The amount charged is the stored order total, not what the browser sent.
    """
    if not gateway.configured:
        logger.error("Razorpay credentials not configured")
        raise HTTPException(status_code=500, detail="Payment gateway not configured")

    order = _load_order(orders, payload.order_id)

    if order.is_terminal:
        raise HTTPException(status_code=409, detail=f"Order is already {order.payment_status.value}")
    if to_minor_units(payload.amount) != to_minor_units(order.total):
        raise HTTPException(status_code=400, detail="Amount does not match the order total")

    try:
        gw_order = gateway.create_order(
            amount=order.total,
            currency=payload.currency,
            receipt=order.order_number or order.order_id,
            notes={
                "orderId": order.order_id,
                "customerEmail": payload.customer.email,
                "customerName": payload.customer.name,
            },
        )
        orders.update(order.order_id, {"razorpayOrderId": gw_order["id"]})
    except GATEWAY_ERRORS as e:
        logger.error(f"Gateway order creation failed for {order.order_id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to create payment order")

    return {
        "success": True,
        "order": {
            "id": gw_order["id"],
            "amount": gw_order["amount"],
            "currency": gw_order["currency"],
            "key": gateway.key_id,
        },
    }


@router.post("/verify")
def verify_payment(
    payload: VerifyPaymentIn,
    orders: OrderClient = Depends(get_order_client),
    gateway: RazorpayClient = Depends(get_gateway),
):
    """
    Re-derives the checkout signature and asks the gateway for the payment
    state. Only this endpoint may mark an order completed.
    """
    order = _load_order(orders, payload.order_id)
    if order.payment_status == PaymentStatus.REFUNDED:
        raise HTTPException(status_code=409, detail="Order is already refunded")

    #the gateway order id stored at create-order wins over the one from the browser
    server_gateway_id = order.gateway_order_id or payload.gateway_order_id
    if not gateway.verify_signature(server_gateway_id, payload.payment_id, payload.signature):
        logger.warning(f"Invalid signature for order {order.order_id} payment {payload.payment_id}")
        raise HTTPException(status_code=400, detail="Invalid payment signature")

    try:
        status = gateway.fetch_payment(payload.payment_id).get("status", "")
    except GATEWAY_ERRORS as e:
        #signature already proves the gateway issued this payment for this order
        logger.warning(f"Could not fetch payment {payload.payment_id}, relying on signature: {e}")
        status = "captured"

    paid = status in PAID_STATUSES
    try:
        updated = orders.update(
            order.order_id,
            {
                "paymentStatus": "completed" if paid else "failed",
                "status": "confirmed" if paid else "pending",
                "razorpayPaymentId": payload.payment_id,
                "razorpaySignature": payload.signature,
                "paymentId": payload.payment_id,
            },
        )
    except RequestException as e:
        logger.error(f"Could not record payment {payload.payment_id} on {order.order_id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to record payment")

    logger.info(f"Payment {payload.payment_id} for order {order.order_id}: {status}")
    return {
        "success": paid,
        "order": {
            "id": order.order_id,
            "orderNumber": order.order_number,
            "paymentStatus": updated.get("paymentStatus", "completed" if paid else "failed"),
        },
        "paymentStatus": status,
    }


def _apply_webhook_event(orders: OrderClient, name: str, payment: Dict[str, Any]) -> Dict[str, Any]:
    order_id = (payment.get("notes") or {}).get("orderId")
    if not order_id:
        logger.warning(f"Webhook {name} for payment {payment.get('id')} carries no orderId, ignoring")
        return {"success": True}

    order = _load_order(orders, order_id)

    if name == "payment.captured":
        #a capture also wins over a failure reported earlier in the same window
        if order.payment_status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
            return {"success": True}
        updates = {
            "paymentStatus": PaymentStatus.COMPLETED.value,
            "status": "confirmed",
            "razorpayPaymentId": payment.get("id"),
            "paymentId": payment.get("id"),
        }
    else:
        if order.payment_status != PaymentStatus.PENDING:
            return {"success": True}
        updates = {"paymentStatus": PaymentStatus.FAILED.value}

    try:
        orders.update(order.order_id, updates)
    except RequestException as e:
        logger.error(f"Could not apply {name} to order {order.order_id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to record payment")

    logger.info(f"Webhook {name}: order {order.order_id} -> {updates['paymentStatus']}")
    return {"success": True}


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    x_razorpay_signature: str | None = Header(None),
    orders: OrderClient = Depends(get_order_client),
    gateway: RazorpayClient = Depends(get_gateway),
):
    """
    Gateway-to-server notification, the backstop when the browser never
    reports back. Signed over the raw body with the webhook secret.
    """
    if not gateway.webhook_secret:
        logger.error("Razorpay webhook secret not configured")
        raise HTTPException(status_code=500, detail="Webhook not configured")
    if not x_razorpay_signature:
        raise HTTPException(status_code=400, detail="Missing signature")

    body = (await request.body()).decode("utf-8")
    if not gateway.verify_webhook(body, x_razorpay_signature):
        logger.warning("Rejected webhook with an invalid signature")
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    try:
        event = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Malformed webhook body")

    name = event.get("event") if isinstance(event, dict) else None
    if name not in ("payment.captured", "payment.failed"):
        logger.info(f"Webhook {name} acknowledged, nothing to do")
        return {"success": True}

    payment = ((event.get("payload") or {}).get("payment") or {}).get("entity") or {}
    #order store calls are blocking
    return await run_in_threadpool(_apply_webhook_event, orders, name, payment)
