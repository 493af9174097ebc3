import hashlib
import hmac
import logging
from typing import Optional

from pydantic import BaseModel

from rental_checkout.application.order_status import OrderStatusService
from rental_checkout.domain.exceptions import OrderNotFoundError, SignatureMismatchError
from rental_checkout.domain.models import Order
from rental_checkout.domain.status_machine import (
    gateway_description, gateway_target, is_transition_allowed
)

logger = logging.getLogger(__name__)


class PaymentNotificationDTO(BaseModel):
    order_id: str  # номер заказа (order_number), как его называет шлюз
    status_code: str
    gross_amount: str
    transaction_status: str
    signature_key: str
    transaction_id: Optional[str] = None


def compute_signature(order_number: str, status_code: str, gross_amount: str, server_key: str) -> str:
    raw = f"{order_number}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(raw.encode()).hexdigest()


def verify_signature(dto: PaymentNotificationDTO, server_key: str) -> None:
    expected = compute_signature(dto.order_id, dto.status_code, dto.gross_amount, server_key)
    if not hmac.compare_digest(expected, dto.signature_key):
        raise SignatureMismatchError("Неверная подпись уведомления")


class ProcessPaymentNotificationUseCase:
    def __init__(self, unit_of_work, server_key: str, status_service: OrderStatusService):
        self._uow = unit_of_work
        self._server_key = server_key
        self._status = status_service

    async def __call__(self, dto: PaymentNotificationDTO) -> Order:
        logger.info(f"Уведомление шлюза: заказ {dto.order_id}, статус {dto.transaction_status}")

        try:
            verify_signature(dto, self._server_key)
        except SignatureMismatchError:
            logger.warning(f"Отклонено уведомление с неверной подписью для заказа {dto.order_id}")
            raise

        async with self._uow() as uow:
            order = await uow.orders.get_by_number(dto.order_id, for_update=True)
            if not order:
                raise OrderNotFoundError(f"Заказ {dto.order_id} не найден")

            target = gateway_target(dto.transaction_status)
            if target is None:
                logger.warning(
                    f"Неизвестный transaction_status '{dto.transaction_status}' для заказа {order.order_number}"
                )
            elif order.status == target:
                # Идемпотентность: повтор того же уведомления
                logger.info(f"Заказ {order.order_number} уже в статусе {target.value}")
            elif not is_transition_allowed(order.status, target):
                logger.warning(
                    f"Уведомление {dto.transaction_status} проигнорировано: "
                    f"заказ {order.order_number} в статусе {order.status.value}"
                )
            else:
                await self._status.transition(
                    uow, order, target, gateway_description(dto.transaction_status, target)
                )

            # Сырой статус шлюза храним отдельно от внутреннего
            values = {"payment_status": dto.transaction_status}
            if dto.transaction_id and not order.transaction_id:
                values["transaction_id"] = dto.transaction_id
            await uow.orders.update(order.id, **values)
            await uow.commit()

            return await uow.orders.get_by_id(order.id)
