from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rental_checkout.infrastructure.repositories import (
    SQLAlchemyUserRepository,
    SQLAlchemyProductRepository,
    SQLAlchemyCartRepository,
    SQLAlchemyVoucherRepository,
    SQLAlchemyPaymentMethodRepository,
    SQLAlchemyOrderRepository
)


class UnitOfWork:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self):
        async with self._session_factory() as session:
            try:
                # Одна транзакция на весь блок
                uow_impl = _UnitOfWorkImpl(session)
                yield uow_impl
                # Если commit не вызван — rollback
                await session.rollback()
            except Exception:
                await session.rollback()
                raise


class _UnitOfWorkImpl:
    def __init__(self, session: AsyncSession):
        self._session = session
        self.users = SQLAlchemyUserRepository(session)
        self.products = SQLAlchemyProductRepository(session)
        self.carts = SQLAlchemyCartRepository(session)
        self.vouchers = SQLAlchemyVoucherRepository(session)
        self.payment_methods = SQLAlchemyPaymentMethodRepository(session)
        self.orders = SQLAlchemyOrderRepository(session)

    async def commit(self):
        await self._session.commit()

    async def rollback(self):
        await self._session.rollback()
