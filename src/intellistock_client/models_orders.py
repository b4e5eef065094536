from __future__ import annotations

from enum import Enum

from pydantic import Field, field_validator

from .models import CamelModel


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAID = "PAID"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    PICKED_UP = "PICKED_UP"
    CANCELLED = "CANCELLED"
    PAYMENT_FAILED = "PAYMENT_FAILED"


class StoreReviewStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class PaymentCollectionStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    AUTHORIZING = "AUTHORIZING"
    AUTHORIZED = "AUTHORIZED"
    CAPTURE_REQUESTED = "CAPTURE_REQUESTED"
    CAPTURED = "CAPTURED"
    AUTH_CANCELLED = "AUTH_CANCELLED"
    FAILED = "FAILED"


class SubstitutionStatus(str, Enum):
    PENDING_CUSTOMER = "PENDING_CUSTOMER"
    ACCEPTED_BY_CUSTOMER = "ACCEPTED_BY_CUSTOMER"
    DECLINED_BY_CUSTOMER = "DECLINED_BY_CUSTOMER"
    APPLIED = "APPLIED"
    CANCELLED = "CANCELLED"


class OrderItem(CamelModel):
    id: int | None = None
    product_id: int = 0
    name: str = "Item"
    unit_price: float = 0.0
    quantity: int = 0
    line_total: float = 0.0


class OrderSubstitution(CamelModel):
    id: int = 0
    order_item_id: int | None = None
    requested_product_id: int | None = None
    replacement_product_id: int | None = None
    replacement_name: str | None = None
    replacement_qty: int | None = None
    replacement_unit_price: float | None = None
    reason: str | None = None
    status: SubstitutionStatus = SubstitutionStatus.PENDING_CUSTOMER


class OrderSummary(CamelModel):
    order_id: str = ""
    user_id: str = ""
    store_id: str = ""
    status: OrderStatus = OrderStatus.PENDING_PAYMENT
    store_review_status: StoreReviewStatus | None = None
    payment_collection_status: PaymentCollectionStatus | None = None
    fulfillment_type: str | None = None
    delivery_status: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    pending_substitution_count: int = 0
    total: float = 0.0
    pickup_window_start: str | None = None
    pickup_window_end: str | None = None
    created_at: str | None = None


class OrderDetail(OrderSummary):
    has_pending_substitutions: bool | None = None
    subtotal: float = 0.0
    tax: float = 0.0
    currency: str | None = None
    updated_at: str | None = None
    items: list[OrderItem] = Field(default_factory=list)
    substitutions: list[OrderSubstitution] = Field(default_factory=list)


class OrderStatusResponse(CamelModel):
    order_id: str = ""
    status: OrderStatus = OrderStatus.PENDING_PAYMENT
    store_review_status: StoreReviewStatus | None = None
    payment_collection_status: PaymentCollectionStatus | None = None
    updated_at: str | None = None


class SubstitutionProposal(CamelModel):
    order_item_id: int | None = None
    requested_product_id: int | None = None
    replacement_product_id: int | None = None
    replacement_name: str | None = None
    replacement_qty: int | None = Field(default=None, ge=1)
    replacement_unit_price: float | None = Field(default=None, ge=0)
    reason: str | None = None


class AcceptOrderRequest(CamelModel):
    reviewed_by: str | None = None


class RejectOrderRequest(CamelModel):
    reviewed_by: str | None = None
    reason: str

    @field_validator("reason")
    @classmethod
    def _reason_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("a rejection reason is required")
        return value


class ProposeSubstitutionsRequest(CamelModel):
    proposed_by: str | None = None
    substitutions: list[SubstitutionProposal] = Field(min_length=1)
