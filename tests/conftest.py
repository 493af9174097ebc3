"""
Общие фикстуры: async SQLite во временном файле, UnitOfWork поверх него,
фейковый платёжный шлюз и хелперы для наполнения таблиц.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from rental_checkout.application.checkout import CheckoutUseCase
from rental_checkout.application.order_assembler import OrderAssembler
from rental_checkout.application.order_status import OrderStatusService
from rental_checkout.application.payment import PaymentGatewayAdapter
from rental_checkout.application.process_notification import ProcessPaymentNotificationUseCase
from rental_checkout.domain.models import PaymentType, VoucherType
from rental_checkout.infrastructure.db_schema import (
    metadata, users_tbl, products_tbl, product_variants_tbl, payment_methods_tbl,
    vouchers_tbl, carts_tbl
)
from rental_checkout.infrastructure.unit_of_work import UnitOfWork
from factories import SERVER_KEY, SERVICE_FEE, FakeGateway


class Seeder:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def _insert(self, table, **values):
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(insert(table).values(**values))
        return values.get("id")

    async def user(self, id="user-1", name="Budi", email=None):
        return await self._insert(users_tbl, id=id, name=name, email=email or f"{id}@example.com")

    async def product(self, id="product-1", vendor_id="vendor-1", name="Camera", price="100000"):
        return await self._insert(products_tbl, id=id, vendor_id=vendor_id, name=name, price=Decimal(price))

    async def variant(self, id="variant-1", product_id="product-1", name="Kit lens", price="150000"):
        return await self._insert(product_variants_tbl, id=id, product_id=product_id, name=name, price=Decimal(price))

    async def payment_method(self, id="pm-bca", name="BCA Virtual Account", code="bca",
                             type=PaymentType.BANK_TRANSFER, is_active=True):
        return await self._insert(payment_methods_tbl, id=id, name=name, code=code, type=type, is_active=is_active)

    async def voucher(self, id="voucher-1", code="HEMAT10", type=VoucherType.PERCENTAGE, value="10",
                      min_purchase_amount="100000", max_discount_amount="50000", **extra):
        values = dict(
            id=id,
            code=code,
            name=extra.pop("name", "Hemat 10%"),
            type=type,
            value=Decimal(value),
            min_purchase_amount=Decimal(min_purchase_amount),
            max_discount_amount=Decimal(max_discount_amount) if max_discount_amount is not None else None,
            used_count=extra.pop("used_count", 0),
            is_active=extra.pop("is_active", True),
        )
        values.update(extra)
        return await self._insert(vouchers_tbl, **values)

    async def cart(self, user_id="user-1", product_id="product-1", quantity=1,
                   start=date(2026, 1, 1), end=date(2026, 1, 3), variant_id=None, id=None):
        return await self._insert(
            carts_tbl,
            id=id or str(uuid.uuid4()),
            user_id=user_id,
            product_id=product_id,
            product_variant_id=variant_id,
            quantity=quantity,
            rental_start_date=start,
            rental_end_date=end,
        )

    async def count(self, table, *where) -> int:
        async with self._session_factory() as session:
            stmt = select(func.count()).select_from(table)
            if where:
                stmt = stmt.where(*where)
            return (await session.execute(stmt)).scalar_one()

    async def fetch(self, table, *where):
        async with self._session_factory() as session:
            return (await session.execute(select(table).where(*where))).fetchone()


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def uow(session_factory):
    return UnitOfWork(session_factory)


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def checkout(uow, gateway):
    return CheckoutUseCase(uow, PaymentGatewayAdapter(gateway), OrderAssembler(SERVICE_FEE))


@pytest.fixture
def process_notification(uow):
    return ProcessPaymentNotificationUseCase(uow, SERVER_KEY, OrderStatusService())


@pytest_asyncio.fixture
async def catalog(seed):
    """Пользователь, два вендора с товарами и способы оплаты"""
    await seed.user()
    await seed.product()
    await seed.product(id="product-2", vendor_id="vendor-2", name="Tripod", price="40000")
    await seed.payment_method()
    await seed.payment_method(id="pm-cash", name="Cash on Delivery", code="cod", type=PaymentType.CASH)
    return seed
