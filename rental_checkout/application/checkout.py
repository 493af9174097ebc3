import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from rental_checkout.application.cart import load_selected_entries
from rental_checkout.application.order_assembler import OrderAssembler
from rental_checkout.application.payment import PaymentGatewayAdapter, ensure_supported
from rental_checkout.domain.exceptions import (
    CheckoutFailed, PaymentMethodNotFoundError, UserNotFoundError, ValidationError,
    VoucherNotFoundError
)
from rental_checkout.domain.models import CustomerContext, Order
from rental_checkout.domain.pricing import price_cart
from rental_checkout.domain.vouchers import AppliedVoucher, evaluate_voucher

logger = logging.getLogger(__name__)


class CheckoutDTO(BaseModel):
    cart_ids: List[str] = Field(min_length=1)
    payment_method_id: str
    delivery_method: str = Field(min_length=1)
    voucher_id: Optional[str] = None
    notes: Optional[str] = None
    idempotency_key: Optional[str] = None


class CheckoutUseCase:
    def __init__(
        self,
        unit_of_work,
        payment_adapter: PaymentGatewayAdapter,
        assembler: OrderAssembler
    ):
        self._uow = unit_of_work
        self._payments = payment_adapter
        self._assembler = assembler

    async def __call__(self, customer: CustomerContext, dto: CheckoutDTO) -> Order:
        logger.info(f"Оформление заказа для пользователя {customer.user_id}, позиций: {len(dto.cart_ids)}")

        async with self._uow() as uow:
            # 1. Повторная отправка с тем же ключом: возвращаем уже созданный заказ
            if dto.idempotency_key:
                existing = await uow.orders.get_by_idempotency_key(customer.user_id, dto.idempotency_key)
                if existing:
                    logger.info(f"Заказ уже существует: {existing.order_number}")
                    return await uow.orders.load_details(existing)

            # 2. Проверка входных данных до каких-либо изменений
            user = await uow.users.get_by_id(customer.user_id)
            if not user:
                raise UserNotFoundError(f"Пользователь {customer.user_id} не найден")

            payment_method = await uow.payment_methods.get_by_id(dto.payment_method_id)
            if not payment_method:
                raise PaymentMethodNotFoundError(f"Способ оплаты {dto.payment_method_id} не найден")
            if not payment_method.is_active:
                raise ValidationError(f"Способ оплаты {payment_method.name} недоступен")
            ensure_supported(payment_method)

            entries = await load_selected_entries(uow, customer.user_id, dto.cart_ids, for_update=True)
            breakdown = price_cart(entries)

            # 3. Ваучер (необязательно). Неподходящий ваучер не прерывает оформление.
            applied_voucher: Optional[AppliedVoucher] = None
            if dto.voucher_id:
                voucher = await uow.vouchers.get_by_id(dto.voucher_id)
                if not voucher:
                    raise VoucherNotFoundError(f"Ваучер {dto.voucher_id} не найден")
                evaluation = evaluate_voucher(voucher, breakdown)
                if isinstance(evaluation, AppliedVoucher):
                    applied_voucher = evaluation
                else:
                    logger.info(f"Ваучер {voucher.code} не применён: {evaluation.message}")

            # 4. Заказ + позиции + лог + очистка корзины + charge в одной транзакции
            try:
                order = await self._assembler.assemble(
                    uow,
                    user_id=customer.user_id,
                    entries=entries,
                    applied_voucher=applied_voucher,
                    payment_method=payment_method,
                    delivery_method=dto.delivery_method,
                    notes=dto.notes,
                    idempotency_key=dto.idempotency_key,
                )

                payment = await self._payments.initiate(order, payment_method, user)
                await uow.orders.update(
                    order.id,
                    transaction_id=payment.transaction_id,
                    payment_status=payment.payment_status,
                    payment_info=payment.payment_info,
                    expired_at=payment.expired_at,
                )
                await uow.commit()

            except Exception as e:
                logger.error(f"Ошибка оформления заказа для пользователя {customer.user_id}: {e}")
                raise CheckoutFailed(e) from e

            logger.info(f"Заказ создан: {order.order_number}")
            created = await uow.orders.get_by_id(order.id)
            return await uow.orders.load_details(created)
