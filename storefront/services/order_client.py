# storefront/services/order_client.py
from decimal import Decimal
from typing import Any, Dict, List

import requests
from pydantic import ValidationError as SchemaError
from requests import RequestException

from storefront.domain.errors import OrderCreationError, OrderLookupError
from storefront.domain.schemas import (
    CartItem,
    CustomItem,
    CustomerInfo,
    Order,
    OrderRef,
    PaymentMethod,
)
from storefront.domain.validation import normalize_phone
from storefront.utils.logging import get_logger
from storefront.utils.retry import http_retry
from storefront.utils.settings import STORE_API_URL, HTTP_TIMEOUT_SECONDS

logger = get_logger(__name__)


def _number(value: Decimal | int | float | str) -> int | float:
    """Plain JSON number; integral amounts stay ints."""
    d = Decimal(str(value))
    return int(d) if d == d.to_integral_value() else float(d)


def _error_message(resp: requests.Response, default: str) -> str:
    try:
        body = resp.json()
    except ValueError:
        return default
    if not isinstance(body, dict):
        return default
    return (
        body.get("error") or body.get("details") or body.get("message") or body.get("detail") or default
    )


def build_item_payload(item: CartItem) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "templateId": item.id,
        "title": item.title,
        "price": _number(item.unit_price),
        "quantity": int(item.quantity),
        "isCustom": bool(item.is_custom),
    }
    if item.file_name:
        payload["fileName"] = item.file_name
    if isinstance(item, CustomItem):
        payload["customOptionName"] = item.custom_option_name
        if item.fulfillment.schedule_link:
            payload["calendlyLink"] = item.fulfillment.schedule_link
        if item.fulfillment.contact_email:
            payload["contactEmail"] = item.fulfillment.contact_email
    return payload


def build_order_payload(cart: List[CartItem], customer: CustomerInfo) -> Dict[str, Any]:
    subtotal = sum((i.line_total for i in cart), Decimal("0.00"))
    #no tax or shipping, total is the subtotal
    total = subtotal
    method = PaymentMethod.FREE if total == 0 else PaymentMethod.GATEWAY

    return {
        "customer": {
            "name": customer.name.strip(),
            "email": customer.email.strip().lower(),
            "phone": normalize_phone(customer.phone),
        },
        "items": [build_item_payload(i) for i in cart],
        "subtotal": _number(subtotal),
        "total": _number(total),
        "paymentMethod": method.value,
    }


class OrderClient:
    def __init__(self, base_url: str | None = None, timeout: float = HTTP_TIMEOUT_SECONDS):
        self.base_url = (base_url or STORE_API_URL).rstrip("/")
        self.timeout = timeout

    #POST is never retried, a retry could create the order twice
    def submit(self, cart: List[CartItem], customer: CustomerInfo) -> OrderRef:
        url = f"{self.base_url}/orders"
        payload = build_order_payload(cart, customer)
        logger.info(
            f"OrderClient POST {url} items={len(payload['items'])} total={payload['total']}"
        )

        try:
            resp = requests.post(url, json=payload, timeout=self.timeout)
        except RequestException as e:
            logger.error(f"Order submission failed: {e}")
            raise OrderCreationError("Could not reach the order service. Please try again.") from e

        if not resp.ok:
            message = _error_message(resp, "Failed to create order")
            logger.error(f"Order rejected ({resp.status_code}): {message}")
            raise OrderCreationError(message)

        try:
            body = resp.json()
        except ValueError:
            body = None
        if not isinstance(body, dict) or body.get("success") is not True:
            logger.error(f"Unexpected order response ({resp.status_code}): {body!r}")
            message = body.get("error") if isinstance(body, dict) else None
            raise OrderCreationError(message or "Failed to create order")

        try:
            ref = OrderRef.model_validate(body.get("order"))
        except SchemaError as e:
            logger.error(f"Order response without a usable order: {e.error_count()} error(s)")
            raise OrderCreationError("Failed to create order") from e
        logger.info(f"Order {ref.order_id} ({ref.order_number}) created as {ref.payment_status.value}")
        return ref

    def update(self, order_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/orders"
        logger.info(f"OrderClient PUT {url} order={order_id} fields={sorted(updates)}")

        resp = requests.put(
            url,
            json={"orderId": order_id, "updates": updates},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json().get("order", {})

    @http_retry()
    def get(self, order_id: str) -> Order:
        url = f"{self.base_url}/orders"
        logger.info(f"OrderClient GET {url}?orderId={order_id}")

        resp = requests.get(url, params={"orderId": order_id}, timeout=self.timeout)
        resp.raise_for_status()
        body = resp.json()
        return Order.model_validate(body.get("order") if isinstance(body, dict) else None)

    @http_retry()
    def _fetch_by_email(self, email: str) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/orders"
        logger.info(f"OrderClient GET {url}?email=...")

        resp = requests.get(url, params={"email": email}, timeout=self.timeout)
        resp.raise_for_status()
        body = resp.json()
        if not isinstance(body, dict) or body.get("success") is not True:
            error = body.get("error") if isinstance(body, dict) else None
            raise OrderLookupError(error or "Failed to fetch orders")
        return body.get("orders", [])

    def list_by_email(self, email: str) -> List[Dict[str, Any]]:
        """Raw order documents; status filtering is left to the caller."""
        try:
            return self._fetch_by_email(email.strip().lower())
        except RequestException as e:
            logger.error(f"Order lookup failed: {e}")
            raise OrderLookupError(
                "An error occurred while fetching your orders. Please try again."
            ) from e
