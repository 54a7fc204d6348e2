# storefront/services/lookup_service.py
from dataclasses import dataclass, field
from typing import List

from pydantic import ValidationError as SchemaError

from storefront.domain.schemas import Order, PaymentStatus
from storefront.services.order_client import OrderClient
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

NO_ORDERS_MESSAGE = "No completed orders found for this email address."


@dataclass
class LookupResult:
    orders: List[Order] = field(default_factory=list)
    message: str = ""

    @property
    def empty(self) -> bool:
        return not self.orders


class OrderLookupService:
    """My purchases: only paid orders are shown, pending and failed ones never are."""

    def __init__(self, order_client: OrderClient | None = None):
        self.order_client = order_client or OrderClient()

    def lookup(self, email: str) -> LookupResult:
        documents = self.order_client.list_by_email(email)

        orders: List[Order] = []
        for doc in documents:
            if doc.get("paymentStatus") != PaymentStatus.COMPLETED.value:
                continue
            try:
                orders.append(Order.model_validate(doc))
            except SchemaError as e:
                logger.warning(f"Skipping unreadable order {doc.get('_id') or doc.get('id')}: {e.error_count()} error(s)")

        logger.info(f"Lookup found {len(orders)} completed of {len(documents)} order(s)")
        if not orders:
            return LookupResult(message=NO_ORDERS_MESSAGE)
        return LookupResult(orders=orders, message=f"Found {len(orders)} completed order{'s' if len(orders) != 1 else ''}")
