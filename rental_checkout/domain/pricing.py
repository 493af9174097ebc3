from collections import defaultdict
from datetime import date
from decimal import Decimal

from pydantic import BaseModel

from rental_checkout.domain.models import CartEntry, DateRange
from rental_checkout.domain.money import Money, to_money


class LinePrice(BaseModel):
    cart_entry_id: str
    vendor_id: str
    unit_price: Money
    quantity: int
    days: int
    subtotal: Money


class PriceBreakdown(BaseModel):
    """Результат расчёта: построчно, итого и итого по вендорам"""
    lines: list[LinePrice]
    subtotal: Money
    vendor_subtotals: dict[str, Money]

    def vendor_subtotal(self, vendor_id: str) -> Decimal:
        return self.vendor_subtotals.get(vendor_id, Decimal("0.00"))


def rental_days(start: date, end: date) -> int:
    """Количество дней аренды; аренда в пределах одного дня считается за 1 день"""
    return DateRange(start=start, end=end).days


def line_subtotal(unit_price, quantity: int, start: date, end: date) -> Decimal:
    return to_money(to_money(unit_price) * quantity * rental_days(start, end))


def price_cart(entries: list[CartEntry]) -> PriceBreakdown:
    lines = []
    subtotal = Decimal("0")
    by_vendor: dict[str, Decimal] = defaultdict(Decimal)

    for entry in entries:
        days = rental_days(entry.rental_start_date, entry.rental_end_date)
        amount = line_subtotal(entry.unit_price, entry.quantity, entry.rental_start_date, entry.rental_end_date)
        lines.append(LinePrice(
            cart_entry_id=entry.id,
            vendor_id=entry.vendor_id,
            unit_price=entry.unit_price,
            quantity=entry.quantity,
            days=days,
            subtotal=amount,
        ))
        subtotal += amount
        by_vendor[entry.vendor_id] += amount

    return PriceBreakdown(
        lines=lines,
        subtotal=subtotal,
        vendor_subtotals=dict(by_vendor),
    )


def grand_total(subtotal, discount_amount, service_fee) -> Decimal:
    """max(0, subtotal - discount) + service_fee"""
    return to_money(max(Decimal("0"), to_money(subtotal) - to_money(discount_amount)) + to_money(service_fee))
