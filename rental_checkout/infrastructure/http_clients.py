import httpx
import logging
from typing import Optional

from rental_checkout.application.interfaces import PaymentGateway
from rental_checkout.domain.exceptions import GatewayError

logger = logging.getLogger(__name__)

# status_code в теле ответа Core API при успешном charge
SUCCESS_STATUS_CODES = ("200", "201")


class MidtransCoreApiClient(PaymentGateway):
    """Клиент Core API платёжного шлюза (POST /v2/charge)"""

    def __init__(
        self,
        base_url: str,
        server_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._base_url = base_url.rstrip("/")
        self._server_key = server_key
        self._timeout = timeout
        self._transport = transport

    async def charge(self, payload: dict) -> dict:
        order_number = payload.get("transaction_details", {}).get("order_id")
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/v2/charge",
                    json=payload,
                    auth=(self._server_key, ""),
                    headers={"Accept": "application/json"},
                    timeout=self._timeout
                )
        except httpx.RequestError as e:
            logger.error(f"Платёжный шлюз недоступен (заказ {order_number}): {e}")
            raise GatewayError(f"Платёжный шлюз недоступен: {str(e)}")

        if response.status_code >= 400:
            raise GatewayError(f"Платёжный шлюз ошибка: {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            raise GatewayError("Платёжный шлюз вернул некорректный ответ")

        gateway_code = str(data.get("status_code", ""))
        if gateway_code not in SUCCESS_STATUS_CODES:
            message = data.get("status_message", "неизвестная ошибка")
            logger.error(f"Charge для заказа {order_number} отклонён: {gateway_code} {message}")
            raise GatewayError(f"Платёжный шлюз отклонил платёж: {gateway_code} - {message}")

        logger.info(f"Charge для заказа {order_number} принят, transaction_id={data.get('transaction_id')}")
        return data
