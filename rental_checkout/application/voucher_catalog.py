from datetime import datetime, timezone
from typing import List

from rental_checkout.domain.exceptions import VoucherNotFoundError
from rental_checkout.domain.models import Voucher
from rental_checkout.domain.vouchers import INVALID_VOUCHER_MESSAGE


class ListVouchersUseCase:
    """Действующие на текущий момент ваучеры"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self) -> List[Voucher]:
        now = datetime.now(timezone.utc)
        async with self._uow() as uow:
            vouchers = await uow.vouchers.list_active()
        return [voucher for voucher in vouchers if voucher.is_valid(now)]


class CheckVoucherUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, code: str) -> Voucher:
        async with self._uow() as uow:
            voucher = await uow.vouchers.get_by_code(code)
        if not voucher or not voucher.is_valid():
            raise VoucherNotFoundError(INVALID_VOUCHER_MESSAGE)
        return voucher
