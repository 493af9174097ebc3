import logging
import secrets
import string
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from rental_checkout.domain.exceptions import CartEntryNotFoundError, DomainException
from rental_checkout.domain.models import (
    CartEntry, Order, OrderItem, OrderStatus, OrderStatusLog, PaymentMethod
)
from rental_checkout.domain.pricing import grand_total, price_cart
from rental_checkout.domain.vouchers import AppliedVoucher

logger = logging.getLogger(__name__)

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
ORDER_NUMBER_LENGTH = 10
MAX_NUMBER_ATTEMPTS = 5


class OrderAssembler:
    """Собирает заказ из позиций корзины внутри транзакции вызывающего кода."""

    def __init__(self, service_fee: Decimal, order_number_prefix: str = "ORD-"):
        self._service_fee = service_fee
        self._prefix = order_number_prefix

    def _random_number(self) -> str:
        suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(ORDER_NUMBER_LENGTH))
        return f"{self._prefix}{suffix}"

    async def generate_order_number(self, uow) -> str:
        for _ in range(MAX_NUMBER_ATTEMPTS):
            number = self._random_number()
            if not await uow.orders.number_exists(number):
                return number
            logger.warning(f"Коллизия номера заказа {number}, генерируем заново")
        raise DomainException("Не удалось сгенерировать уникальный номер заказа")

    async def assemble(
        self,
        uow,
        user_id: str,
        entries: List[CartEntry],
        applied_voucher: Optional[AppliedVoucher],
        payment_method: PaymentMethod,
        delivery_method: str,
        notes: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Order:
        # Суммы всегда пересчитываются на сервере
        breakdown = price_cart(entries)
        discount = applied_voucher.discount_amount if applied_voucher else Decimal("0")
        now = datetime.now(timezone.utc)

        order = Order(
            id=str(uuid.uuid4()),
            user_id=user_id,
            payment_method_id=payment_method.id,
            order_number=await self.generate_order_number(uow),
            total_amount=breakdown.subtotal,
            service_fee=self._service_fee,
            voucher_id=applied_voucher.id if applied_voucher else None,
            discount_amount=discount,
            grand_total=grand_total(breakdown.subtotal, discount, self._service_fee),
            status=OrderStatus.PENDING,
            notes=notes,
            delivery_method=delivery_method,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
        )
        await uow.orders.create(order)

        lines = {line.cart_entry_id: line for line in breakdown.lines}
        items = [
            OrderItem(
                id=str(uuid.uuid4()),
                order_id=order.id,
                product_id=entry.product.id,
                product_variant_id=entry.variant.id if entry.variant else None,
                vendor_id=entry.vendor_id,
                product_name=entry.product.name,
                variant_name=entry.variant.name if entry.variant else None,
                price=entry.unit_price,
                quantity=entry.quantity,
                rental_start_date=entry.rental_start_date,
                rental_end_date=entry.rental_end_date,
                subtotal=lines[entry.id].subtotal,
            )
            for entry in entries
        ]
        await uow.orders.add_items(items)

        await uow.orders.add_status_log(OrderStatusLog(
            id=str(uuid.uuid4()),
            order_id=order.id,
            status=OrderStatus.PENDING,
            description=f"Заказ успешно создан, ожидается оплата через {payment_method.name}",
            created_at=now,
        ))

        # Удаляем только оформленные позиции корзины
        cart_ids = [entry.id for entry in entries]
        deleted = await uow.carts.delete_many(user_id, cart_ids)
        if deleted != len(cart_ids):
            raise CartEntryNotFoundError("Позиции корзины изменились во время оформления заказа")

        logger.info(f"Заказ {order.order_number} собран: {len(items)} позиций, итого {order.grand_total}")
        return order.model_copy(update={"items": items})
