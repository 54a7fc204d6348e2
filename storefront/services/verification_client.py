# storefront/services/verification_client.py
from dataclasses import dataclass

import requests
from requests import RequestException, Timeout

from storefront.domain.schemas import PaymentAssertion
from storefront.utils.logging import get_logger
from storefront.utils.settings import STORE_API_URL, VERIFY_TIMEOUT_SECONDS, SUPPORT_EMAIL

logger = get_logger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    verified: bool
    message: str = ""


def rejection_message(payment_id: str) -> str:
    return (
        "Payment verification failed. If money was deducted, please contact "
        f"{SUPPORT_EMAIL} with your payment ID {payment_id}."
    )


class VerificationClient:
    """
    Asks the server to re-derive the gateway signature.
    The browser callback alone is never proof of payment: only a body with
    success == true counts, everything else is a rejection.
    """

    def __init__(self, base_url: str | None = None, timeout: float = VERIFY_TIMEOUT_SECONDS):
        self.base_url = (base_url or STORE_API_URL).rstrip("/")
        self.timeout = timeout

    def verify(self, order_id: str, assertion: PaymentAssertion) -> VerificationResult:
        url = f"{self.base_url}/payment/verify"
        payload = assertion.model_dump(by_alias=True)
        payload["orderId"] = order_id
        logger.info(f"VerificationClient POST {url} order={order_id} payment={assertion.payment_id}")

        rejected = VerificationResult(False, rejection_message(assertion.payment_id))

        try:
            resp = requests.post(url, json=payload, timeout=self.timeout)
        except Timeout:
            logger.error(f"Verification of payment {assertion.payment_id} timed out after {self.timeout}s")
            return rejected
        except RequestException as e:
            logger.error(f"Verification of payment {assertion.payment_id} failed: {e}")
            return rejected

        try:
            body = resp.json()
        except ValueError:
            logger.error(f"Verification answered {resp.status_code} with a non-JSON body")
            return rejected

        if resp.ok and isinstance(body, dict) and body.get("success") is True:
            logger.info(f"Payment {assertion.payment_id} verified for order {order_id}")
            return VerificationResult(True)

        logger.error(
            f"Payment {assertion.payment_id} not verified ({resp.status_code}): {body!r}"
        )
        return rejected
