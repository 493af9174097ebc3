from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from rental_checkout.application.cart import load_selected_entries
from rental_checkout.domain.exceptions import VoucherNotFoundError
from rental_checkout.domain.models import CustomerContext
from rental_checkout.domain.money import Money, format_price
from rental_checkout.domain.pricing import grand_total, price_cart
from rental_checkout.domain.vouchers import AppliedVoucher, evaluate_voucher


class OrderSummaryDTO(BaseModel):
    cart_ids: List[str] = Field(min_length=1)
    voucher_id: Optional[str] = None


class OrderSummary(BaseModel):
    """Предпросмотр заказа, ничего не сохраняется"""
    subtotal: Money
    discount_amount: Money
    service_fee: Money
    total_payment: Money
    total_items_selected: int
    vendor_subtotals: dict[str, Money]
    applied_voucher: Optional[AppliedVoucher] = None
    voucher_error: Optional[str] = None

    def formatted(self) -> dict:
        return {
            "subtotal_formatted": format_price(self.subtotal),
            "discount_formatted": format_price(self.discount_amount),
            "service_fee_formatted": format_price(self.service_fee),
            "total_payment_formatted": format_price(self.total_payment),
        }


class OrderSummaryUseCase:
    def __init__(self, unit_of_work, service_fee: Decimal):
        self._uow = unit_of_work
        self._service_fee = service_fee

    async def __call__(self, customer: CustomerContext, dto: OrderSummaryDTO) -> OrderSummary:
        async with self._uow() as uow:
            entries = await load_selected_entries(uow, customer.user_id, dto.cart_ids)
            breakdown = price_cart(entries)

            applied_voucher = None
            voucher_error = None
            if dto.voucher_id:
                voucher = await uow.vouchers.get_by_id(dto.voucher_id)
                if not voucher:
                    raise VoucherNotFoundError(f"Ваучер {dto.voucher_id} не найден")
                evaluation = evaluate_voucher(voucher, breakdown)
                if isinstance(evaluation, AppliedVoucher):
                    applied_voucher = evaluation
                else:
                    voucher_error = evaluation.message

        discount = applied_voucher.discount_amount if applied_voucher else Decimal("0")
        return OrderSummary(
            subtotal=breakdown.subtotal,
            discount_amount=discount,
            service_fee=self._service_fee,
            total_payment=grand_total(breakdown.subtotal, discount, self._service_fee),
            total_items_selected=len(entries),
            vendor_subtotals=breakdown.vendor_subtotals,
            applied_voucher=applied_voucher,
            voucher_error=voucher_error,
        )
