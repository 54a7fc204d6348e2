# storefront/domain/errors.py
from typing import Dict


class StorefrontError(Exception):
    """Base error; `message` is always safe to show to the customer."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StorefrontError):
    def __init__(self, errors: Dict[str, str]):
        super().__init__("Please correct the highlighted fields")
        self.errors = errors


class EmptyCartError(StorefrontError):
    def __init__(self):
        super().__init__("Your cart is empty")


class CheckoutInProgressError(StorefrontError):
    def __init__(self):
        super().__init__("Your order is already being processed")


class InvalidTransitionError(StorefrontError):
    pass


class OrderCreationError(StorefrontError):
    pass


class PaymentSessionError(StorefrontError):
    pass


class GatewayNotReadyError(PaymentSessionError):
    def __init__(self):
        super().__init__("Payment gateway is still loading. Please try again in a moment.")


class DownloadError(StorefrontError):
    pass


class ContactRequiredError(DownloadError):
    """Download endpoint answered with JSON: the item is fulfilled by contact, not by file."""


class OrderLookupError(StorefrontError):
    pass


class NotificationError(StorefrontError):
    pass
