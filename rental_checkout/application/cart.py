import logging
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field

from rental_checkout.domain.exceptions import (
    CartEntryNotFoundError, NotFoundError, ValidationError
)
from rental_checkout.domain.models import CartEntry, CustomerContext, DateRange
from rental_checkout.domain.money import Money
from rental_checkout.domain.pricing import line_subtotal

logger = logging.getLogger(__name__)


class AddToCartDTO(BaseModel):
    product_id: str
    product_variant_id: Optional[str] = None
    quantity: int = Field(ge=1)
    rental_start_date: date
    rental_end_date: date


class UpdateCartEntryDTO(BaseModel):
    quantity: Optional[int] = Field(default=None, ge=1)
    rental_start_date: Optional[date] = None
    rental_end_date: Optional[date] = None


class CartLine(BaseModel):
    """Позиция корзины с расчётом стоимости"""
    entry: CartEntry
    rental_duration: int
    subtotal_per_day: Money
    item_total: Money


async def load_selected_entries(uow, user_id: str, cart_ids: List[str], for_update: bool = False) -> List[CartEntry]:
    """Все выбранные позиции должны существовать и принадлежать пользователю"""
    unique_ids = list(dict.fromkeys(cart_ids))
    if not unique_ids:
        raise ValidationError("Не выбрано ни одной позиции корзины")

    entries = await uow.carts.get_many(user_id, unique_ids, for_update=for_update)
    found = {entry.id for entry in entries}
    missing = [cart_id for cart_id in unique_ids if cart_id not in found]
    if missing:
        raise CartEntryNotFoundError(f"Позиции корзины не найдены: {', '.join(missing)}")
    return entries


def _validate_period(start: date, end: date, today: date) -> None:
    DateRange(start=start, end=end)
    if start < today:
        raise ValidationError("Дата начала аренды не может быть в прошлом")


def describe(entry: CartEntry) -> CartLine:
    per_day = line_subtotal(entry.unit_price, entry.quantity, entry.rental_start_date, entry.rental_start_date)
    return CartLine(
        entry=entry,
        rental_duration=entry.rental_period.days,
        subtotal_per_day=per_day,
        item_total=line_subtotal(
            entry.unit_price, entry.quantity, entry.rental_start_date, entry.rental_end_date
        ),
    )


class ListCartUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, customer: CustomerContext) -> List[CartLine]:
        async with self._uow() as uow:
            entries = await uow.carts.list_for_user(customer.user_id)
            return [describe(entry) for entry in entries]


class AddToCartUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, customer: CustomerContext, dto: AddToCartDTO) -> CartLine:
        _validate_period(dto.rental_start_date, dto.rental_end_date, date.today())

        async with self._uow() as uow:
            product = await uow.products.get_product(dto.product_id)
            if not product:
                raise NotFoundError(f"Товар {dto.product_id} не найден")
            if dto.product_variant_id:
                variant = await uow.products.get_variant(dto.product_variant_id)
                if not variant or variant.product_id != product.id:
                    raise ValidationError(f"Вариант {dto.product_variant_id} не относится к товару {product.id}")

            existing = await uow.carts.find_same(
                customer.user_id, dto.product_id, dto.product_variant_id,
                dto.rental_start_date, dto.rental_end_date
            )
            if existing:
                # Та же позиция и тот же период: увеличиваем количество
                cart_id = existing.id
                await uow.carts.update(cart_id, quantity=existing.quantity + dto.quantity)
            else:
                cart_id = await uow.carts.create(
                    customer.user_id, dto.product_id, dto.product_variant_id, dto.quantity,
                    dto.rental_start_date, dto.rental_end_date
                )
            await uow.commit()

            entries = await uow.carts.get_many(customer.user_id, [cart_id])
            logger.info(f"Товар {dto.product_id} добавлен в корзину пользователя {customer.user_id}")
            return describe(entries[0])


class UpdateCartEntryUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, customer: CustomerContext, cart_id: str, dto: UpdateCartEntryDTO) -> CartLine:
        async with self._uow() as uow:
            entries = await load_selected_entries(uow, customer.user_id, [cart_id], for_update=True)
            entry = entries[0]

            values = dto.model_dump(exclude_none=True)
            start = values.get("rental_start_date", entry.rental_start_date)
            end = values.get("rental_end_date", entry.rental_end_date)
            if "rental_start_date" in values or "rental_end_date" in values:
                DateRange(start=start, end=end)
            if "rental_start_date" in values and start < date.today():
                raise ValidationError("Дата начала аренды не может быть в прошлом")

            if values:
                await uow.carts.update(cart_id, **values)
                await uow.commit()

            entries = await uow.carts.get_many(customer.user_id, [cart_id])
            return describe(entries[0])


class RemoveCartEntryUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, customer: CustomerContext, cart_id: str) -> None:
        async with self._uow() as uow:
            deleted = await uow.carts.delete_many(customer.user_id, [cart_id])
            if not deleted:
                raise CartEntryNotFoundError(f"Позиция корзины {cart_id} не найдена")
            await uow.commit()


class ClearCartUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, customer: CustomerContext) -> int:
        async with self._uow() as uow:
            deleted = await uow.carts.clear(customer.user_id)
            await uow.commit()
            logger.info(f"Корзина пользователя {customer.user_id} очищена ({deleted} позиций)")
            return deleted
