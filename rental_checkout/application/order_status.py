import logging
import uuid
from datetime import datetime, timezone

from rental_checkout.domain.exceptions import OrderNotFoundError
from rental_checkout.domain.models import Order, OrderStatus, OrderStatusLog, VendorContext
from rental_checkout.domain.status_machine import (
    MANUAL_DESCRIPTIONS, check_transition, leaves_pending_as_paid, parse_status
)

logger = logging.getLogger(__name__)


class OrderStatusService:
    """Применяет переход статуса к заказу, заблокированному вызывающим кодом."""

    async def transition(self, uow, order: Order, target: OrderStatus, description: str) -> bool:
        """Возвращает False, если статус уже установлен (ничего не пишем)."""
        if not check_transition(order.status, target):
            return False

        now = datetime.now(timezone.utc)
        values = {"status": target}
        if target == OrderStatus.PAID:
            values["paid_at"] = now
        if target == OrderStatus.COMPLETED:
            values["completed_at"] = now

        # Ваучер списывается один раз, при первом уходе заказа из pending в оплату
        if leaves_pending_as_paid(order.status, target) and order.voucher_id and not order.voucher_redeemed:
            await uow.vouchers.increment_usage(order.voucher_id)
            values["voucher_redeemed"] = True
            logger.info(f"Ваучер {order.voucher_id} использован заказом {order.order_number}")

        await uow.orders.update(order.id, **values)
        await uow.orders.add_status_log(OrderStatusLog(
            id=str(uuid.uuid4()),
            order_id=order.id,
            status=target,
            description=description,
            created_at=now,
        ))
        logger.info(f"Заказ {order.order_number}: {order.status.value} -> {target.value}")
        return True


class UpdateOrderStatusUseCase:
    def __init__(self, unit_of_work, status_service: OrderStatusService):
        self._uow = unit_of_work
        self._status = status_service

    async def __call__(self, vendor: VendorContext, order_id: str, status: str) -> Order:
        # Проверка по списку статусов до обращения к БД
        target = parse_status(status)

        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id, for_update=True)
            if not order or not await uow.orders.has_vendor_items(order_id, vendor.vendor_id):
                raise OrderNotFoundError(f"Заказ {order_id} не найден")

            changed = await self._status.transition(uow, order, target, MANUAL_DESCRIPTIONS[target])
            if changed:
                await uow.commit()

            updated = await uow.orders.get_by_id(order_id)
            return await uow.orders.load_details(updated, vendor_id=vendor.vendor_id)
