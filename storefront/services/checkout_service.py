# storefront/services/checkout_service.py
import threading
from decimal import Decimal
from typing import Dict, List, Tuple

from requests import RequestException

from storefront.domain.errors import (
    CheckoutInProgressError,
    EmptyCartError,
    GatewayNotReadyError,
    InvalidTransitionError,
    StorefrontError,
    ValidationError,
)
from storefront.domain.schemas import (
    CartItem,
    CustomerInfo,
    GatewaySession,
    Order,
    PaymentAssertion,
    PaymentMethod,
    PaymentStatus,
)
from storefront.domain.states import CheckoutState, PROCESSING_STATES, check_transition
from storefront.domain.validation import normalize_phone, validate_customer
from storefront.services.cart_service import CartService
from storefront.services.fulfillment_service import (
    FulfillmentAction,
    FulfillmentOutcome,
    FulfillmentService,
)
from storefront.services.order_client import OrderClient
from storefront.services.payment_client import GatewayHandlers, HostedCheckout, PaymentClient
from storefront.services.verification_client import VerificationClient
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CheckoutService:
    """
    One checkout flow: cart -> pending order -> gateway session -> hosted
    checkout -> server-side verification -> fulfillment.

    Steps are sequenced by plain calls; the state machine in
    storefront.domain.states decides what may happen next. The order only
    becomes completed after the verification endpoint answers success.
    """

    def __init__(
        self,
        cart: CartService,
        order_client: OrderClient | None = None,
        payment_client: PaymentClient | None = None,
        verification_client: VerificationClient | None = None,
        fulfillment: FulfillmentService | None = None,
    ):
        self.cart = cart
        self.order_client = order_client or OrderClient()
        self.payment_client = payment_client or PaymentClient()
        self.verification_client = verification_client or VerificationClient()
        self.fulfillment = fulfillment or FulfillmentService()

        self.state = CheckoutState.IDLE
        self.message = ""
        self.field_errors: Dict[str, str] = {}
        self.customer: CustomerInfo | None = None
        self.order: Order | None = None
        self.session: GatewaySession | None = None
        self.actions: List[Tuple[CartItem, FulfillmentAction]] = []
        self._failure_reason: str | None = None
        self._in_flight = threading.Lock()

    @property
    def is_processing(self) -> bool:
        """True while "Place Order" must stay disabled."""
        return self.state in PROCESSING_STATES

    def _move(self, target: CheckoutState, message: str = "") -> None:
        check_transition(self.state, target)
        logger.info(
            f"Checkout {self.order.order_id if self.order else '-'}: "
            f"{self.state.value} -> {target.value}"
        )
        self.state = target
        self.message = message

    def _start_attempt(self) -> None:
        self.order = None
        self.session = None
        self.actions = []
        self.field_errors = {}
        self._failure_reason = None
        self._move(CheckoutState.SUBMITTING)

    #commands
    def place_order(self, customer: CustomerInfo, checkout: HostedCheckout) -> CheckoutState:
        # gateway script was not loaded last time, reopen with the same session
        if self.state == CheckoutState.SESSION_CREATED:
            return self.open_gateway(checkout)

        if not self._in_flight.acquire(blocking=False):
            raise CheckoutInProgressError()
        try:
            if self.is_processing:
                raise CheckoutInProgressError()
            if self.state == CheckoutState.COMPLETED:
                raise InvalidTransitionError("This checkout is already completed")

            result = validate_customer(customer)
            if not result.valid:
                self.field_errors = result.errors
                raise ValidationError(result.errors)

            items = self.cart.get()
            if not items:
                raise EmptyCartError()

            self.customer = customer.model_copy(
                update={
                    "name": customer.name.strip(),
                    "email": customer.email.strip().lower(),
                    "phone": normalize_phone(customer.phone),
                }
            )
            self._start_attempt()
            try:
                self._submit(items)

                if self.order.payment_method == PaymentMethod.FREE:
                    self._complete_free_order()
                    return self.state

                self._create_session()
            except Exception as e:
                #never leave "Place Order" disabled behind a failed call
                if self.state == CheckoutState.SUBMITTING:
                    logger.error(f"Checkout attempt failed: {e!r}")
                    message = e.message if isinstance(e, StorefrontError) else (
                        "Something went wrong while placing your order. Please try again."
                    )
                    self._move(CheckoutState.FAILED, message)
                raise
        finally:
            self._in_flight.release()

        return self.open_gateway(checkout)

    def _submit(self, items: List[CartItem]) -> None:
        ref = self.order_client.submit(items, self.customer)

        subtotal = sum((i.line_total for i in items), Decimal("0.00"))
        self.order = Order(
            order_id=ref.order_id,
            order_number=ref.order_number,
            customer=self.customer,
            items=[i.model_copy() for i in items],
            subtotal=subtotal,
            total=subtotal,
            payment_method=PaymentMethod.FREE if subtotal == 0 else PaymentMethod.GATEWAY,
            payment_status=PaymentStatus.PENDING,
        )

    def _create_session(self) -> None:
        self.session = self.payment_client.create_session(
            self.order.order_id,
            self.order.total,
            self.customer,
        )
        self._move(CheckoutState.SESSION_CREATED)

    def _complete_free_order(self) -> None:
        # the order store completes free orders itself, trust its record only
        try:
            stored = self.order_client.get(self.order.order_id)
        except RequestException as e:
            logger.error(f"Cannot confirm free order {self.order.order_id}: {e}")
            self._move(CheckoutState.FAILED, "Could not confirm your order. Please contact support.")
            return

        if stored.payment_status != PaymentStatus.COMPLETED:
            self._move(CheckoutState.FAILED, "Could not confirm your order. Please contact support.")
            return

        self._finish()

    def open_gateway(self, checkout: HostedCheckout) -> CheckoutState:
        if self.state != CheckoutState.SESSION_CREATED:
            raise InvalidTransitionError(f"No payment session to open in state {self.state.value}")

        if not checkout.is_ready():
            err = GatewayNotReadyError()
            self.message = err.message
            logger.warning(f"Gateway not loaded for order {self.order.order_id}, staying in session_created")
            raise err

        self._move(CheckoutState.GATEWAY_OPEN)
        prefill = {
            "name": self.customer.name,
            "email": self.customer.email,
            "contact": self.customer.phone,
        }
        handlers = GatewayHandlers(
            on_success=self.handle_success,
            on_failure=self.handle_failure,
            on_dismiss=self.handle_dismiss,
        )
        try:
            checkout.open(self.session, prefill, handlers)
        except Exception as e:
            logger.error(f"Hosted checkout failed to open: {e}")
            if self.state == CheckoutState.GATEWAY_OPEN:
                self._move(CheckoutState.FAILED, "Failed to open the payment window. Please try again.")
            raise
        return self.state

    #gateway callbacks
    def handle_success(self, assertion: PaymentAssertion) -> None:
        # a retry inside the same window can succeed after a reported failure
        self._failure_reason = None
        self._move(CheckoutState.VERIFYING)

        if assertion.gateway_order_id != self.session.gateway_order_id:
            # the server checks against its own stored id, just note the mismatch
            logger.warning(
                f"Callback gateway order {assertion.gateway_order_id} "
                f"!= session {self.session.gateway_order_id}"
            )

        result = self.verification_client.verify(self.order.order_id, assertion)
        if not result.verified:
            self._move(CheckoutState.REJECTED, result.message)
            return

        self.order.transition(PaymentStatus.COMPLETED)
        self._finish()

    def handle_dismiss(self) -> None:
        if self._failure_reason is not None:
            self._settle_failed()
            return
        #not an error: order stays pending, cart stays, user may try again
        self._move(CheckoutState.CANCELLED, "Payment cancelled. You can place the order again.")

    def handle_failure(self, reason: str) -> None:
        #the window stays open for another attempt, settled on dismiss
        if self.state != CheckoutState.GATEWAY_OPEN:
            logger.warning(f"Ignoring gateway failure in state {self.state.value}: {reason}")
            return
        self._failure_reason = reason or "unknown reason"
        self.message = f"Payment failed: {self._failure_reason}"
        logger.warning(f"Gateway reported failure for order {self.order.order_id}: {self._failure_reason}")

    def _settle_failed(self) -> None:
        self._move(CheckoutState.FAILED, f"Payment failed: {self._failure_reason}")
        self._failure_reason = None
        self.order.transition(PaymentStatus.FAILED)
        try:
            self.order_client.update(self.order.order_id, {"paymentStatus": PaymentStatus.FAILED.value})
        except RequestException as e:
            logger.warning(f"Could not mark order {self.order.order_id} as failed: {e}")

    def _finish(self) -> None:
        if self.order.payment_status != PaymentStatus.COMPLETED:
            self.order.transition(PaymentStatus.COMPLETED)
        self.cart.clear()
        self.actions = list(
            zip(self.order.items, self.fulfillment.actions_for(self.order.items, self.customer))
        )
        self._move(CheckoutState.COMPLETED, f"Order {self.order.order_number or self.order.order_id} confirmed")

    #after completion
    def fulfill(self) -> List[FulfillmentOutcome]:
        if self.state != CheckoutState.COMPLETED:
            raise InvalidTransitionError("Nothing to fulfill before payment is verified")
        return self.fulfillment.fulfill(self.order.items, self.customer)
