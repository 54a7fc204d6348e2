# storefront/services/payment_client.py
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Protocol

import requests
from pydantic import ValidationError as SchemaError
from requests import RequestException

from storefront.domain.errors import PaymentSessionError
from storefront.domain.schemas import CustomerInfo, GatewaySession, PaymentAssertion
from storefront.utils.logging import get_logger
from storefront.utils.settings import STORE_API_URL, HTTP_TIMEOUT_SECONDS, CURRENCY

logger = get_logger(__name__)


@dataclass
class GatewayHandlers:
    """Callbacks the hosted checkout fires; exactly one of them per opening."""

    on_success: Callable[[PaymentAssertion], None]
    on_failure: Callable[[str], None]
    on_dismiss: Callable[[], None]


class HostedCheckout(Protocol):
    """The gateway's checkout widget, loaded from the gateway's own script."""

    def is_ready(self) -> bool: ...

    def open(
        self,
        session: GatewaySession,
        prefill: Dict[str, str],
        handlers: GatewayHandlers,
    ) -> None: ...


class PaymentClient:
    def __init__(self, base_url: str | None = None, timeout: float = HTTP_TIMEOUT_SECONDS):
        self.base_url = (base_url or STORE_API_URL).rstrip("/")
        self.timeout = timeout

    #no retry, a second gateway order for the same attempt risks a double charge
    def create_session(
        self,
        order_id: str,
        amount: Decimal,
        customer: CustomerInfo,
        currency: str = CURRENCY,
    ) -> GatewaySession:
        url = f"{self.base_url}/payment/create-order"
        payload: Dict[str, Any] = {
            "orderId": order_id,
            "amount": float(amount),
            "currency": currency,
            "customer": {
                "name": customer.name.strip(),
                "email": customer.email.strip().lower(),
                "phone": customer.phone,
            },
        }
        logger.info(f"PaymentClient POST {url} order={order_id} amount={amount} {currency}")

        try:
            resp = requests.post(url, json=payload, timeout=self.timeout)
        except RequestException as e:
            logger.error(f"Payment session request failed: {e}")
            raise PaymentSessionError(
                "Could not start the payment. Please try again later."
            ) from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not resp.ok or body.get("success") is not True:
            message = (
                body.get("message") or body.get("error") or body.get("detail") or "Failed to create payment order"
            )
            logger.error(f"Payment session rejected ({resp.status_code}): {message}")
            raise PaymentSessionError(message)

        try:
            session = GatewaySession.model_validate(body.get("order"))
        except SchemaError as e:
            logger.error(f"Payment session response without a usable gateway order: {e.error_count()} error(s)")
            raise PaymentSessionError("Failed to create payment order") from e
        logger.info(f"Gateway order {session.gateway_order_id} created for order {order_id}")
        return session
