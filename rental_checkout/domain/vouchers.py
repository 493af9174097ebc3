from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel

from rental_checkout.domain.models import Voucher, VoucherType
from rental_checkout.domain.money import Money, format_price, to_money
from rental_checkout.domain.pricing import PriceBreakdown

INVALID_VOUCHER_MESSAGE = "Ваучер недействителен или срок его действия истёк."


class RejectionReason(str, Enum):
    INVALID = "invalid"
    MIN_PURCHASE = "min_purchase"


class AppliedVoucher(BaseModel):
    """Скидка рассчитана, прикрепляется к заказу"""
    id: str
    code: str
    name: str
    eligible_amount: Money
    discount_amount: Money

    @property
    def discount_formatted(self) -> str:
        return format_price(self.discount_amount)


class VoucherRejection(BaseModel):
    """Ваучер не применим. Это не ошибка: заказ можно оформить без скидки."""
    voucher_id: str
    reason: RejectionReason
    message: str


VoucherEvaluation = Union[AppliedVoucher, VoucherRejection]


def eligible_amount(voucher: Voucher, breakdown: PriceBreakdown) -> Decimal:
    """Вендорский ваучер считается от суммы вендора, платформенный от всего заказа"""
    if voucher.is_platform_wide:
        return breakdown.subtotal
    return breakdown.vendor_subtotal(voucher.vendor_id)


def evaluate_voucher(
    voucher: Voucher,
    breakdown: PriceBreakdown,
    now: Optional[datetime] = None,
) -> VoucherEvaluation:
    if not voucher.is_valid(now):
        return VoucherRejection(
            voucher_id=voucher.id,
            reason=RejectionReason.INVALID,
            message=INVALID_VOUCHER_MESSAGE,
        )

    base = eligible_amount(voucher, breakdown)
    if base < voucher.min_purchase_amount:
        return VoucherRejection(
            voucher_id=voucher.id,
            reason=RejectionReason.MIN_PURCHASE,
            message=f"Минимальная сумма покупки для этого ваучера: {format_price(voucher.min_purchase_amount)}",
        )

    if voucher.type == VoucherType.FIXED:
        discount = voucher.value
    else:
        discount = base * voucher.value / 100

    if voucher.max_discount_amount and discount > voucher.max_discount_amount:
        discount = voucher.max_discount_amount

    return AppliedVoucher(
        id=voucher.id,
        code=voucher.code,
        name=voucher.name,
        eligible_amount=base,
        discount_amount=to_money(discount),
    )
