from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from rental_checkout.domain.models import OrderStatus, PaymentType, VoucherType


class AddToCartRequest(BaseModel):
    product_id: str
    product_variant_id: Optional[str] = None
    quantity: int = Field(ge=1)
    rental_start_date: date
    rental_end_date: date


class UpdateCartRequest(BaseModel):
    quantity: Optional[int] = Field(default=None, ge=1)
    rental_start_date: Optional[date] = None
    rental_end_date: Optional[date] = None


class CheckoutRequest(BaseModel):
    cart_ids: List[str] = Field(min_length=1)
    payment_method_id: str
    delivery_method: str = Field(min_length=1)
    voucher_id: Optional[str] = None
    notes: Optional[str] = None
    idempotency_key: Optional[str] = None


class SummaryRequest(BaseModel):
    cart_ids: List[str] = Field(min_length=1)
    voucher_id: Optional[str] = None


class UpdateStatusRequest(BaseModel):
    status: str


class CheckVoucherRequest(BaseModel):
    code: str = Field(min_length=1)


class PaymentNotificationRequest(BaseModel):
    """Уведомление от платёжного шлюза (лишние поля игнорируются)"""
    order_id: str
    status_code: str
    gross_amount: str
    transaction_status: str
    signature_key: str
    transaction_id: Optional[str] = None


class CartItemResponse(BaseModel):
    id: str
    product_id: str
    product_name: str
    vendor_id: str
    product_variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    price: Decimal
    quantity: int
    rental_start_date: date
    rental_end_date: date
    rental_duration: int
    subtotal_per_day: Decimal
    item_total: Decimal

    @classmethod
    def from_domain(cls, line):
        entry = line.entry
        return cls(
            id=entry.id,
            product_id=entry.product.id,
            product_name=entry.product.name,
            vendor_id=entry.vendor_id,
            product_variant_id=entry.variant.id if entry.variant else None,
            variant_name=entry.variant.name if entry.variant else None,
            price=entry.unit_price,
            quantity=entry.quantity,
            rental_start_date=entry.rental_start_date,
            rental_end_date=entry.rental_end_date,
            rental_duration=line.rental_duration,
            subtotal_per_day=line.subtotal_per_day,
            item_total=line.item_total,
        )


class AppliedVoucherResponse(BaseModel):
    id: str
    code: str
    name: str
    discount_amount: Decimal
    discount_formatted: str


class SummaryResponse(BaseModel):
    subtotal: Decimal
    subtotal_formatted: str
    discount_amount: Decimal
    discount_formatted: str
    service_fee: Decimal
    service_fee_formatted: str
    total_payment: Decimal
    total_payment_formatted: str
    total_items_selected: int
    applied_voucher: Optional[AppliedVoucherResponse] = None
    voucher_error: Optional[str] = None

    @classmethod
    def from_domain(cls, summary):
        applied = None
        if summary.applied_voucher:
            voucher = summary.applied_voucher
            applied = AppliedVoucherResponse(
                id=voucher.id,
                code=voucher.code,
                name=voucher.name,
                discount_amount=voucher.discount_amount,
                discount_formatted=voucher.discount_formatted,
            )
        return cls(
            subtotal=summary.subtotal,
            discount_amount=summary.discount_amount,
            service_fee=summary.service_fee,
            total_payment=summary.total_payment,
            total_items_selected=summary.total_items_selected,
            applied_voucher=applied,
            voucher_error=summary.voucher_error,
            **summary.formatted(),
        )


class VoucherResponse(BaseModel):
    id: str
    code: str
    name: str
    description: Optional[str] = None
    type: VoucherType
    value: Decimal
    min_purchase_amount: Decimal
    max_discount_amount: Optional[Decimal] = None
    end_date: Optional[date] = None
    category: str
    vendor_id: Optional[str] = None

    @classmethod
    def from_domain(cls, voucher):
        return cls(
            id=voucher.id,
            code=voucher.code,
            name=voucher.name,
            description=voucher.description,
            type=voucher.type,
            value=voucher.value,
            min_purchase_amount=voucher.min_purchase_amount,
            max_discount_amount=voucher.max_discount_amount,
            end_date=voucher.end_date.date() if voucher.end_date else None,
            category="platform" if voucher.is_platform_wide else "vendor",
            vendor_id=voucher.vendor_id,
        )


class PaymentMethodResponse(BaseModel):
    id: str
    name: str
    code: str
    type: PaymentType


class OrderItemResponse(BaseModel):
    id: str
    product_id: str
    product_variant_id: Optional[str] = None
    vendor_id: str
    product_name: str
    variant_name: Optional[str] = None
    price: Decimal
    quantity: int
    rental_start_date: date
    rental_end_date: date
    subtotal: Decimal

    model_config = ConfigDict(from_attributes=True)


class StatusLogResponse(BaseModel):
    status: OrderStatus
    description: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    id: str
    order_number: str
    user_id: str
    status: OrderStatus
    total_amount: Decimal
    service_fee: Decimal
    discount_amount: Decimal
    grand_total: Decimal
    delivery_method: str
    notes: Optional[str] = None
    transaction_id: Optional[str] = None
    payment_status: Optional[str] = None
    payment_info: Optional[dict] = None
    paid_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []
    status_logs: List[StatusLogResponse] = []
    payment_method: Optional[PaymentMethodResponse] = None
    voucher: Optional[VoucherResponse] = None

    @classmethod
    def from_domain(cls, order):
        return cls(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            status=order.status,
            total_amount=order.total_amount,
            service_fee=order.service_fee,
            discount_amount=order.discount_amount,
            grand_total=order.grand_total,
            delivery_method=order.delivery_method,
            notes=order.notes,
            transaction_id=order.transaction_id,
            payment_status=order.payment_status,
            payment_info=order.payment_info,
            paid_at=order.paid_at,
            completed_at=order.completed_at,
            expired_at=order.expired_at,
            created_at=order.created_at,
            items=[OrderItemResponse.model_validate(item) for item in order.items],
            status_logs=[StatusLogResponse.model_validate(log) for log in order.status_logs],
            payment_method=(
                PaymentMethodResponse(
                    id=order.payment_method.id,
                    name=order.payment_method.name,
                    code=order.payment_method.code,
                    type=order.payment_method.type,
                )
                if order.payment_method else None
            ),
            voucher=VoucherResponse.from_domain(order.voucher) if order.voucher else None,
        )


class VendorOrderListResponse(BaseModel):
    orders: List[OrderResponse]
    total: int
    page: int
    per_page: int


class ErrorResponse(BaseModel):
    detail: str
