# storefront/services/razorpay_client.py
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict

import razorpay
from razorpay.errors import BadRequestError, GatewayError, ServerError, SignatureVerificationError
from requests import RequestException

from storefront.utils.logging import get_logger
from storefront.utils.retry import http_retry
from storefront.utils.settings import (
    RAZORPAY_KEY_ID,
    RAZORPAY_KEY_SECRET,
    RAZORPAY_WEBHOOK_SECRET,
    HTTP_TIMEOUT_SECONDS,
)

logger = get_logger(__name__)

#payment states that mean the money was taken
PAID_STATUSES = frozenset({"captured", "authorized"})

#what a gateway call can raise, transport or API level
GATEWAY_ERRORS = (RequestException, BadRequestError, GatewayError, ServerError)


def to_minor_units(amount: Decimal | float | int) -> int:
    """Rupees -> paise."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class RazorpayClient:
    """Server-side gateway calls through the razorpay SDK, authenticated with the key pair."""

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        webhook_secret: str | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.key_id = key_id if key_id is not None else RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else RAZORPAY_KEY_SECRET
        self.webhook_secret = webhook_secret if webhook_secret is not None else RAZORPAY_WEBHOOK_SECRET
        self.timeout = timeout
        self.client = razorpay.Client(auth=(self.key_id, self.key_secret))

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: Dict[str, str],
    ) -> Dict[str, Any]:
        data = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        }
        logger.info(f"Razorpay order.create amount={data['amount']} receipt={receipt}")
        return self.client.order.create(data=data, timeout=self.timeout)

    @http_retry()
    def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        logger.info(f"Razorpay payment.fetch {payment_id}")
        return self.client.payment.fetch(payment_id, timeout=self.timeout)

    def verify_signature(self, gateway_order_id: str, payment_id: str, signature: str) -> bool:
        try:
            self.client.utility.verify_payment_signature({
                "razorpay_order_id": gateway_order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature or "",
            })
        except SignatureVerificationError:
            return False
        return True

    def verify_webhook(self, body: str, signature: str) -> bool:
        """HMAC of the raw request body with the webhook secret, not the key secret."""
        if not self.webhook_secret or not signature:
            return False
        try:
            self.client.utility.verify_webhook_signature(body, signature, self.webhook_secret)
        except SignatureVerificationError:
            return False
        return True
