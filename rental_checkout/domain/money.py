from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated

from pydantic import BeforeValidator

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Приводит значение к Decimal с точностью до копейки (2 знака)"""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _coerce_money(value):
    if value is None or isinstance(value, bool):
        return value
    try:
        return to_money(value)
    except ArithmeticError as e:
        raise ValueError(f"Некорректная денежная сумма: {value!r}") from e


Money = Annotated[Decimal, BeforeValidator(_coerce_money)]


def format_price(value) -> str:
    """Rp100.000: без дробной части, разделитель тысяч точка"""
    amount = to_money(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return "Rp" + f"{amount:,}".replace(",", ".")
