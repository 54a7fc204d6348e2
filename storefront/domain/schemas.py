# storefront/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, List, Literal, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    field_serializer,
    model_validator,
)

from storefront.domain.errors import InvalidTransitionError


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


TERMINAL_STATUSES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.REFUNDED})


class PaymentMethod(str, Enum):
    GATEWAY = "gateway"
    FREE = "free"


class Fulfillment(BaseModel):
    """Post-purchase channel of a custom item. Neither link set means the generic contact form."""

    model_config = ConfigDict(populate_by_name=True)

    schedule_link: str | None = Field(
        None,
        validation_alias=AliasChoices("scheduleLink", "schedule_link", "calendlyLink"),
        serialization_alias="scheduleLink",
    )
    contact_email: str | None = Field(
        None,
        validation_alias=AliasChoices("contactEmail", "contact_email"),
        serialization_alias="contactEmail",
    )


class _CartLine(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, validation_alias=AliasChoices("id", "_id", "templateId"))
    title: str
    category: str = ""
    unit_price: Decimal = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("unitPrice", "unit_price", "price"),
        serialization_alias="unitPrice",
    )
    quantity: int = Field(1, ge=1)
    file_name: str | None = Field(
        None,
        validation_alias=AliasChoices("fileName", "file_name"),
        serialization_alias="fileName",
    )

    @field_serializer("unit_price", when_used="json")
    def _price_as_number(self, value: Decimal) -> float:
        return float(value)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class StandardItem(_CartLine):
    """Downloadable template."""

    is_custom: Literal[False] = Field(
        False,
        validation_alias=AliasChoices("isCustom", "is_custom"),
        serialization_alias="isCustom",
    )

    @property
    def line_key(self) -> Tuple[str, bool, str | None]:
        return (self.id, False, None)


class CustomItem(_CartLine):
    """Bespoke service bought through a template's custom option."""

    is_custom: Literal[True] = Field(
        True,
        validation_alias=AliasChoices("isCustom", "is_custom"),
        serialization_alias="isCustom",
    )
    custom_option_name: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("customOptionName", "custom_option_name"),
        serialization_alias="customOptionName",
    )
    fulfillment: Fulfillment = Field(default_factory=Fulfillment)

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_fulfillment(cls, data: Any) -> Any:
        # stored records and order items carry the links flat on the item
        if isinstance(data, dict) and "fulfillment" not in data:
            flat = {
                k: data[k]
                for k in ("scheduleLink", "calendlyLink", "contactEmail")
                if data.get(k)
            }
            if flat:
                data = {**data, "fulfillment": flat}
        return data

    @property
    def line_key(self) -> Tuple[str, bool, str | None]:
        return (self.id, True, self.custom_option_name)


def _item_kind(value: Any) -> str:
    if isinstance(value, dict):
        flag = value.get("isCustom", value.get("is_custom", False))
    else:
        flag = getattr(value, "is_custom", False)
    return "custom" if flag is True else "standard"


CartItem = Annotated[
    Union[
        Annotated[StandardItem, Tag("standard")],
        Annotated[CustomItem, Tag("custom")],
    ],
    Discriminator(_item_kind),
]

cart_items_adapter = TypeAdapter(List[CartItem])
cart_item_adapter = TypeAdapter(CartItem)


class CustomerInfo(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""


class OrderRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(..., validation_alias=AliasChoices("id", "_id", "orderId"))
    order_number: str | None = Field(None, validation_alias=AliasChoices("orderNumber", "order_number"))
    payment_status: PaymentStatus = Field(
        PaymentStatus.PENDING,
        validation_alias=AliasChoices("paymentStatus", "payment_status"),
    )
    total: Decimal = Decimal("0")


class Order(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(..., validation_alias=AliasChoices("id", "_id", "orderId", "order_id"))
    order_number: str | None = Field(None, validation_alias=AliasChoices("orderNumber", "order_number"))
    customer: CustomerInfo
    items: List[CartItem]
    subtotal: Decimal = Field(..., ge=0)
    total: Decimal = Field(..., ge=0)
    payment_method: PaymentMethod = Field(
        PaymentMethod.GATEWAY,
        validation_alias=AliasChoices("paymentMethod", "payment_method"),
    )
    payment_status: PaymentStatus = Field(
        PaymentStatus.PENDING,
        validation_alias=AliasChoices("paymentStatus", "payment_status"),
    )
    gateway_order_id: str | None = Field(
        None, validation_alias=AliasChoices("razorpayOrderId", "gateway_order_id")
    )
    created_at: datetime | None = Field(None, validation_alias=AliasChoices("createdAt", "created_at"))

    @model_validator(mode="before")
    @classmethod
    def _gateway_method(cls, data: Any) -> Any:
        # the order store records the gateway by name ("razorpay")
        if isinstance(data, dict):
            key = "paymentMethod" if "paymentMethod" in data else "payment_method"
            method = data.get(key)
            if method not in (None, "free", "gateway", PaymentMethod.FREE, PaymentMethod.GATEWAY):
                data = {**data, key: PaymentMethod.GATEWAY}
        return data

    @property
    def is_terminal(self) -> bool:
        return self.payment_status in TERMINAL_STATUSES

    def transition(self, status: PaymentStatus) -> None:
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Order {self.order_id} is already {self.payment_status.value}"
            )
        if status == PaymentStatus.PENDING:
            raise InvalidTransitionError(f"Order {self.order_id} cannot return to pending")
        self.payment_status = status


class GatewaySession(BaseModel):
    """Gateway-side order that scopes one payment attempt (amount in paise)."""

    model_config = ConfigDict(populate_by_name=True)

    gateway_order_id: str = Field(..., validation_alias=AliasChoices("id", "gateway_order_id"))
    amount: int
    currency: str
    key: str


class PaymentAssertion(BaseModel):
    """Signed success payload handed over by the hosted checkout."""

    model_config = ConfigDict(populate_by_name=True)

    gateway_order_id: str = Field(..., alias="razorpay_order_id")
    payment_id: str = Field(..., alias="razorpay_payment_id")
    signature: str = Field(..., alias="razorpay_signature")


class CreatePaymentIn(BaseModel):
    """Body of POST /payment/create-order."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(..., min_length=1, alias="orderId")
    amount: Decimal = Field(..., gt=0)
    currency: str = "INR"
    customer: CustomerInfo


class VerifyPaymentIn(PaymentAssertion):
    """Body of POST /payment/verify."""

    order_id: str = Field(..., min_length=1, alias="orderId")
