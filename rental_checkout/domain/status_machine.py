"""Допустимые переходы статусов заказа.

Основной путь: pending -> paid -> processing -> shipped -> completed.
cancelled и expired: боковые выходы из любого незавершённого статуса.
Конечные: completed, cancelled, expired.
"""
from typing import Optional

from rental_checkout.domain.exceptions import InvalidStatusTransition, ValidationError
from rental_checkout.domain.models import OrderStatus

HAPPY_PATH = (
    OrderStatus.PENDING,
    OrderStatus.PAID,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.COMPLETED,
)
SIDE_EXITS = (OrderStatus.CANCELLED, OrderStatus.EXPIRED)
TERMINAL = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.EXPIRED})

# transaction_status шлюза -> внутренний статус
GATEWAY_STATUS_MAP = {
    "settlement": OrderStatus.PAID,
    "capture": OrderStatus.PAID,
    "pending": OrderStatus.PENDING,
    "deny": OrderStatus.CANCELLED,
    "cancel": OrderStatus.CANCELLED,
    "expire": OrderStatus.EXPIRED,
}

MANUAL_DESCRIPTIONS = {
    OrderStatus.PENDING: "Заказ ожидает оплаты.",
    OrderStatus.PAID: "Оплата подтверждена продавцом.",
    OrderStatus.PROCESSING: "Заказ обрабатывается продавцом.",
    OrderStatus.SHIPPED: "Заказ передан в доставку.",
    OrderStatus.COMPLETED: "Заказ завершён.",
    OrderStatus.CANCELLED: "Заказ отменён продавцом.",
    OrderStatus.EXPIRED: "Срок оплаты заказа истёк.",
}


def parse_status(value: str) -> OrderStatus:
    """Проверка по списку из 7 допустимых статусов"""
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(f"Недопустимый статус '{value}'. Допустимые: {allowed}")


def is_transition_allowed(current: OrderStatus, target: OrderStatus) -> bool:
    if current in TERMINAL:
        return False
    if target in SIDE_EXITS:
        return True
    return HAPPY_PATH.index(target) > HAPPY_PATH.index(current)


def check_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """True, если переход нужен; False, если статус уже установлен (no-op).

    Бросает InvalidStatusTransition для запрещённых переходов.
    """
    if current == target:
        return False
    if not is_transition_allowed(current, target):
        raise InvalidStatusTransition(current, target)
    return True


def leaves_pending_as_paid(current: OrderStatus, target: OrderStatus) -> bool:
    """Заказ впервые считается оплаченным: уход из pending по основному пути"""
    return current == OrderStatus.PENDING and target in HAPPY_PATH[1:]


def gateway_target(transaction_status: str) -> Optional[OrderStatus]:
    return GATEWAY_STATUS_MAP.get(transaction_status)


def gateway_description(transaction_status: str, target: OrderStatus) -> str:
    if target == OrderStatus.PAID:
        return "Оплата получена. Статус заказа изменён на PAID."
    if target == OrderStatus.PENDING:
        return "Ожидается оплата от покупателя."
    return f"Транзакция отклонена, отменена или просрочена. Статус: {transaction_status.upper()}"
