import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel

from rental_checkout.application.interfaces import PaymentGateway
from rental_checkout.domain.exceptions import ValidationError
from rental_checkout.domain.models import Order, PaymentMethod, PaymentType, User

logger = logging.getLogger(__name__)

CSTORE_CODES = ("indomaret", "alfamart")
# expiry_time шлюз отдаёт без зоны, по времени Джакарты
GATEWAY_TZ = timezone(timedelta(hours=7))
CASH_INSTRUCTIONS = {
    "method": "COD",
    "instructions": "Оплата наличными при получении товара.",
}


class PaymentResult(BaseModel):
    """Нормализованные платёжные данные для сохранения в заказе"""
    transaction_id: Optional[str] = None
    payment_status: str
    payment_info: dict
    expired_at: Optional[datetime] = None


def ensure_supported(payment_method: PaymentMethod) -> None:
    """Проверка канала до создания заказа"""
    if payment_method.type == PaymentType.OTHER and payment_method.code not in CSTORE_CODES:
        raise ValidationError(
            f"Способ оплаты {payment_method.type.value}/{payment_method.code} не поддерживается шлюзом"
        )


def build_charge_request(order: Order, payment_method: PaymentMethod, customer: User) -> dict:
    params = {
        "transaction_details": {
            "order_id": order.order_number,
            "gross_amount": int(order.grand_total),
        },
        "customer_details": {
            "first_name": customer.name,
            "email": customer.email,
        },
    }

    if payment_method.type == PaymentType.BANK_TRANSFER:
        params["payment_type"] = "bank_transfer"
        params["bank_transfer"] = {"bank": payment_method.code}
    elif payment_method.type == PaymentType.ECHANNEL:
        params["payment_type"] = "echannel"
        params["echannel"] = {
            "bill_info1": "Payment for order",
            "bill_info2": order.order_number,
        }
    elif payment_method.type == PaymentType.QRIS:
        params["payment_type"] = "qris"
    else:
        ensure_supported(payment_method)
        params["payment_type"] = "cstore"
        params["cstore"] = {
            "store": payment_method.code,
            "message": f"Payment for {order.order_number}",
        }

    return params


def extract_payment_info(response: dict) -> dict:
    """Инструкция для оплаты. Приоритет: VA -> bill key -> QR -> код магазина."""
    if response.get("va_numbers"):
        va = response["va_numbers"][0]
        return {"va_number": va.get("va_number"), "bank": va.get("bank")}
    if response.get("bill_key"):
        return {"bill_key": response["bill_key"], "biller_code": response.get("biller_code")}
    if response.get("actions"):
        info = {}
        for action in response["actions"]:
            if action.get("name") == "generate-qr-code":
                info["qr_url"] = action.get("url")
        return info
    if response.get("payment_code"):
        return {"payment_code": response["payment_code"]}
    return {}


def parse_expiry(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        logger.warning(f"Не удалось разобрать expiry_time: {value}")
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=GATEWAY_TZ)


class PaymentGatewayAdapter:
    def __init__(self, gateway: PaymentGateway):
        self._gateway = gateway

    async def initiate(self, order: Order, payment_method: PaymentMethod, customer: User) -> PaymentResult:
        if payment_method.type == PaymentType.CASH:
            # Наличные: шлюз не вызываем
            logger.info(f"Заказ {order.order_number}: оплата наличными, шлюз не вызывается")
            return PaymentResult(payment_status="pending", payment_info=dict(CASH_INSTRUCTIONS))

        params = build_charge_request(order, payment_method, customer)
        logger.info(f"Отправка charge для заказа {order.order_number} ({params['payment_type']})")
        response = await self._gateway.charge(params)

        return PaymentResult(
            transaction_id=response.get("transaction_id"),
            payment_status=response.get("transaction_status", "pending"),
            payment_info=extract_payment_info(response),
            expired_at=parse_expiry(response.get("expiry_time")),
        )
