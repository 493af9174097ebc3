from rental_checkout.domain.models import CustomerContext, Order
from rental_checkout.domain.exceptions import OrderNotFoundError


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, customer: CustomerContext, order_id: str) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order or order.user_id != customer.user_id:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")
            return await uow.orders.load_details(order)


class GetOrderByNumberUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, customer: CustomerContext, order_number: str) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_number(order_number)
            if not order or order.user_id != customer.user_id:
                raise OrderNotFoundError(f"Заказ {order_number} не найден")
            return await uow.orders.load_details(order)
