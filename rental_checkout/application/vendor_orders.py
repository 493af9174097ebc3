import logging
from typing import List, Optional

from pydantic import BaseModel

from rental_checkout.domain.exceptions import OrderNotFoundError
from rental_checkout.domain.models import Order, VendorContext

logger = logging.getLogger(__name__)


class VendorOrderPage(BaseModel):
    orders: List[Order]
    total: int
    page: int
    per_page: int


class ListVendorOrdersUseCase:
    """Заказы, в которых есть хотя бы одна позиция вендора (новые сверху)"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(
        self, vendor: VendorContext, search: Optional[str] = None, page: int = 1, per_page: int = 10
    ) -> VendorOrderPage:
        page = max(page, 1)
        async with self._uow() as uow:
            orders, total = await uow.orders.list_for_vendor(
                vendor.vendor_id, search, limit=per_page, offset=(page - 1) * per_page
            )
            # Вендор видит только свои позиции
            detailed = [await uow.orders.load_details(order, vendor_id=vendor.vendor_id) for order in orders]
        return VendorOrderPage(orders=detailed, total=total, page=page, per_page=per_page)


class GetVendorOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, vendor: VendorContext, order_id: str) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order or not await uow.orders.has_vendor_items(order_id, vendor.vendor_id):
                raise OrderNotFoundError(f"Заказ {order_id} не найден")
            return await uow.orders.load_details(order, vendor_id=vendor.vendor_id)


class DeleteVendorOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, vendor: VendorContext, order_id: str) -> None:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id, for_update=True)
            if not order or not await uow.orders.has_vendor_items(order_id, vendor.vendor_id):
                raise OrderNotFoundError(f"Заказ {order_id} не найден")
            await uow.orders.delete(order_id)
            await uow.commit()
            logger.info(f"Заказ {order.order_number} удалён вендором {vendor.vendor_id}")
