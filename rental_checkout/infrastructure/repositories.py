import uuid
from datetime import date, datetime, timezone
from typing import Optional, List, Tuple

from sqlalchemy import select, insert, update, delete, func, exists
from sqlalchemy.ext.asyncio import AsyncSession

from rental_checkout.domain.models import (
    CartEntry, Order, OrderItem, OrderStatus, OrderStatusLog, PaymentMethod,
    PaymentType, Product, ProductVariant, User, Voucher, VoucherType
)
from rental_checkout.infrastructure.db_schema import (
    users_tbl, products_tbl, product_variants_tbl, payment_methods_tbl, vouchers_tbl,
    carts_tbl, orders_tbl, order_items_tbl, order_status_logs_tbl
)
from rental_checkout.application.interfaces import (
    UserRepository, ProductRepository, CartRepository, VoucherRepository,
    PaymentMethodRepository, OrderRepository
)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite отдаёт naive datetime, считаем его UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SQLAlchemyUserRepository(UserRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, user_id: str) -> Optional[User]:
        result = await self._session.execute(
            select(users_tbl).where(users_tbl.c.id == user_id)
        )
        row = result.fetchone()
        return User(id=row.id, name=row.name, email=row.email) if row else None


class SQLAlchemyProductRepository(ProductRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_product(self, product_id: str) -> Optional[Product]:
        result = await self._session.execute(
            select(products_tbl).where(products_tbl.c.id == product_id)
        )
        row = result.fetchone()
        if not row:
            return None
        return Product(id=row.id, vendor_id=row.vendor_id, name=row.name, price=row.price)

    async def get_variant(self, variant_id: str) -> Optional[ProductVariant]:
        result = await self._session.execute(
            select(product_variants_tbl).where(product_variants_tbl.c.id == variant_id)
        )
        row = result.fetchone()
        if not row:
            return None
        return ProductVariant(id=row.id, product_id=row.product_id, name=row.name, price=row.price)


class SQLAlchemyCartRepository(CartRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    def _select(self):
        return (
            select(
                carts_tbl,
                products_tbl.c.vendor_id.label("p_vendor_id"),
                products_tbl.c.name.label("p_name"),
                products_tbl.c.price.label("p_price"),
                product_variants_tbl.c.name.label("v_name"),
                product_variants_tbl.c.price.label("v_price"),
            )
            .join(products_tbl, products_tbl.c.id == carts_tbl.c.product_id)
            .outerjoin(product_variants_tbl, product_variants_tbl.c.id == carts_tbl.c.product_variant_id)
        )

    async def list_for_user(self, user_id: str) -> List[CartEntry]:
        result = await self._session.execute(
            self._select()
            .where(carts_tbl.c.user_id == user_id)
            .order_by(carts_tbl.c.created_at.asc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    async def get_many(self, user_id: str, cart_ids: List[str], for_update: bool = False) -> List[CartEntry]:
        stmt = self._select().where(
            carts_tbl.c.user_id == user_id,
            carts_tbl.c.id.in_(cart_ids)
        )
        if for_update:
            stmt = stmt.with_for_update(of=carts_tbl)
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.fetchall()]

    async def find_same(
        self, user_id: str, product_id: str, variant_id: Optional[str], start: date, end: date
    ) -> Optional[CartEntry]:
        variant_clause = (
            carts_tbl.c.product_variant_id.is_(None)
            if variant_id is None
            else carts_tbl.c.product_variant_id == variant_id
        )
        result = await self._session.execute(
            self._select().where(
                carts_tbl.c.user_id == user_id,
                carts_tbl.c.product_id == product_id,
                variant_clause,
                carts_tbl.c.rental_start_date == start,
                carts_tbl.c.rental_end_date == end,
            )
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def create(
        self, user_id: str, product_id: str, variant_id: Optional[str], quantity: int, start: date, end: date
    ) -> str:
        cart_id = str(uuid.uuid4())
        await self._session.execute(
            insert(carts_tbl).values(
                id=cart_id,
                user_id=user_id,
                product_id=product_id,
                product_variant_id=variant_id,
                quantity=quantity,
                rental_start_date=start,
                rental_end_date=end,
            )
        )
        return cart_id

    async def update(self, cart_id: str, **values) -> None:
        await self._session.execute(
            update(carts_tbl)
            .where(carts_tbl.c.id == cart_id)
            .values(**values, updated_at=datetime.now(timezone.utc))
        )

    async def delete_many(self, user_id: str, cart_ids: List[str]) -> int:
        result = await self._session.execute(
            delete(carts_tbl).where(
                carts_tbl.c.user_id == user_id,
                carts_tbl.c.id.in_(cart_ids)
            )
        )
        return result.rowcount

    async def clear(self, user_id: str) -> int:
        result = await self._session.execute(
            delete(carts_tbl).where(carts_tbl.c.user_id == user_id)
        )
        return result.rowcount

    def _to_domain(self, row) -> CartEntry:
        """Трансформация DB → Domain"""
        variant = None
        if row.product_variant_id is not None and row.v_price is not None:
            variant = ProductVariant(
                id=row.product_variant_id,
                product_id=row.product_id,
                name=row.v_name,
                price=row.v_price,
            )
        return CartEntry(
            id=row.id,
            user_id=row.user_id,
            product=Product(id=row.product_id, vendor_id=row.p_vendor_id, name=row.p_name, price=row.p_price),
            variant=variant,
            quantity=row.quantity,
            rental_start_date=row.rental_start_date,
            rental_end_date=row.rental_end_date,
        )


class SQLAlchemyVoucherRepository(VoucherRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, voucher_id: str) -> Optional[Voucher]:
        result = await self._session.execute(
            select(vouchers_tbl).where(vouchers_tbl.c.id == voucher_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_by_code(self, code: str) -> Optional[Voucher]:
        result = await self._session.execute(
            select(vouchers_tbl).where(vouchers_tbl.c.code == code)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def list_active(self) -> List[Voucher]:
        result = await self._session.execute(
            select(vouchers_tbl)
            .where(vouchers_tbl.c.is_active.is_(True))
            .order_by(vouchers_tbl.c.created_at.desc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    async def increment_usage(self, voucher_id: str) -> None:
        # Атомарный инкремент на стороне БД
        await self._session.execute(
            update(vouchers_tbl)
            .where(vouchers_tbl.c.id == voucher_id)
            .values(used_count=vouchers_tbl.c.used_count + 1)
        )

    def _to_domain(self, row) -> Voucher:
        return Voucher(
            id=row.id,
            vendor_id=row.vendor_id,
            code=row.code,
            name=row.name,
            description=row.description,
            type=VoucherType(row.type),
            value=row.value,
            max_discount_amount=row.max_discount_amount,
            min_purchase_amount=row.min_purchase_amount,
            quota=row.quota,
            used_count=row.used_count,
            start_date=_aware(row.start_date),
            end_date=_aware(row.end_date),
            is_active=row.is_active,
        )


class SQLAlchemyPaymentMethodRepository(PaymentMethodRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, payment_method_id: str) -> Optional[PaymentMethod]:
        result = await self._session.execute(
            select(payment_methods_tbl).where(payment_methods_tbl.c.id == payment_method_id)
        )
        row = result.fetchone()
        if not row:
            return None
        return PaymentMethod(
            id=row.id,
            name=row.name,
            code=row.code,
            type=PaymentType(row.type),
            is_active=row.is_active,
        )


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session
        self._vouchers = SQLAlchemyVoucherRepository(session)
        self._payment_methods = SQLAlchemyPaymentMethodRepository(session)

    async def _fetch_one(self, clause, for_update: bool) -> Optional[Order]:
        stmt = select(orders_tbl).where(clause)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_by_id(self, order_id: str, for_update: bool = False) -> Optional[Order]:
        return await self._fetch_one(orders_tbl.c.id == order_id, for_update)

    async def get_by_number(self, order_number: str, for_update: bool = False) -> Optional[Order]:
        return await self._fetch_one(orders_tbl.c.order_number == order_number, for_update)

    async def get_by_idempotency_key(self, user_id: str, key: str) -> Optional[Order]:
        return await self._fetch_one(
            (orders_tbl.c.idempotency_key == key) & (orders_tbl.c.user_id == user_id),
            for_update=False
        )

    async def number_exists(self, order_number: str) -> bool:
        result = await self._session.execute(
            select(exists().where(orders_tbl.c.order_number == order_number))
        )
        return bool(result.scalar())

    async def create(self, order: Order) -> None:
        stmt = insert(orders_tbl).values(
            id=order.id,
            user_id=order.user_id,
            payment_method_id=order.payment_method_id,
            order_number=order.order_number,
            total_amount=order.total_amount,
            service_fee=order.service_fee,
            voucher_id=order.voucher_id,
            discount_amount=order.discount_amount,
            grand_total=order.grand_total,
            status=order.status,
            notes=order.notes,
            delivery_method=order.delivery_method,
            idempotency_key=order.idempotency_key,
            voucher_redeemed=order.voucher_redeemed,
            created_at=order.created_at,
            updated_at=order.updated_at
        )
        await self._session.execute(stmt)

    async def add_items(self, items: List[OrderItem]) -> None:
        if not items:
            return
        await self._session.execute(
            insert(order_items_tbl),
            [item.model_dump() for item in items]
        )

    async def add_status_log(self, log: OrderStatusLog) -> None:
        await self._session.execute(
            insert(order_status_logs_tbl).values(
                id=log.id,
                order_id=log.order_id,
                status=log.status,
                description=log.description,
                created_at=log.created_at or datetime.now(timezone.utc),
            )
        )

    async def update(self, order_id: str, **values) -> None:
        stmt = (
            update(orders_tbl)
            .where(orders_tbl.c.id == order_id)
            .values(**values, updated_at=datetime.now(timezone.utc))
        )
        await self._session.execute(stmt)

    async def load_details(self, order: Order, vendor_id: Optional[str] = None) -> Order:
        """Подгружает позиции, историю статусов, способ оплаты и ваучер.

        Если передан vendor_id, только позиции этого вендора.
        """
        items_stmt = select(order_items_tbl).where(order_items_tbl.c.order_id == order.id)
        if vendor_id is not None:
            items_stmt = items_stmt.where(order_items_tbl.c.vendor_id == vendor_id)
        items = (await self._session.execute(items_stmt.order_by(order_items_tbl.c.product_name))).fetchall()

        logs = (await self._session.execute(
            select(order_status_logs_tbl)
            .where(order_status_logs_tbl.c.order_id == order.id)
            .order_by(order_status_logs_tbl.c.created_at.asc())
        )).fetchall()

        payment_method = None
        if order.payment_method_id:
            payment_method = await self._payment_methods.get_by_id(order.payment_method_id)
        voucher = None
        if order.voucher_id:
            voucher = await self._vouchers.get_by_id(order.voucher_id)

        return order.model_copy(update={
            "items": [self._item_to_domain(row) for row in items],
            "status_logs": [self._log_to_domain(row) for row in logs],
            "payment_method": payment_method,
            "voucher": voucher,
        })

    async def has_vendor_items(self, order_id: str, vendor_id: str) -> bool:
        result = await self._session.execute(
            select(exists().where(
                order_items_tbl.c.order_id == order_id,
                order_items_tbl.c.vendor_id == vendor_id
            ))
        )
        return bool(result.scalar())

    async def list_for_vendor(
        self, vendor_id: str, search: Optional[str], limit: int, offset: int
    ) -> Tuple[List[Order], int]:
        vendor_orders = (
            select(order_items_tbl.c.order_id)
            .where(order_items_tbl.c.vendor_id == vendor_id)
        )
        clause = orders_tbl.c.id.in_(vendor_orders)
        if search:
            clause = clause & orders_tbl.c.order_number.ilike(f"%{search}%")

        total = (await self._session.execute(
            select(func.count()).select_from(orders_tbl).where(clause)
        )).scalar_one()

        result = await self._session.execute(
            select(orders_tbl)
            .where(clause)
            .order_by(orders_tbl.c.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        orders = [self._to_domain(row) for row in result.fetchall()]
        return orders, total

    async def delete(self, order_id: str) -> None:
        await self._session.execute(
            delete(order_items_tbl).where(order_items_tbl.c.order_id == order_id)
        )
        await self._session.execute(
            delete(order_status_logs_tbl).where(order_status_logs_tbl.c.order_id == order_id)
        )
        await self._session.execute(
            delete(orders_tbl).where(orders_tbl.c.id == order_id)
        )

    def _to_domain(self, row) -> Order:
        """Трансформация DB → Domain"""
        return Order(
            id=row.id,
            user_id=row.user_id,
            payment_method_id=row.payment_method_id,
            order_number=row.order_number,
            total_amount=row.total_amount,
            service_fee=row.service_fee,
            voucher_id=row.voucher_id,
            discount_amount=row.discount_amount,
            grand_total=row.grand_total,
            status=OrderStatus(row.status),
            notes=row.notes,
            delivery_method=row.delivery_method,
            idempotency_key=row.idempotency_key,
            transaction_id=row.transaction_id,
            payment_status=row.payment_status,
            payment_info=row.payment_info,
            voucher_redeemed=row.voucher_redeemed,
            paid_at=_aware(row.paid_at),
            completed_at=_aware(row.completed_at),
            expired_at=_aware(row.expired_at),
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at)
        )

    def _item_to_domain(self, row) -> OrderItem:
        return OrderItem(
            id=row.id,
            order_id=row.order_id,
            product_id=row.product_id,
            product_variant_id=row.product_variant_id,
            vendor_id=row.vendor_id,
            product_name=row.product_name,
            variant_name=row.variant_name,
            price=row.price,
            quantity=row.quantity,
            rental_start_date=row.rental_start_date,
            rental_end_date=row.rental_end_date,
            subtotal=row.subtotal,
        )

    def _log_to_domain(self, row) -> OrderStatusLog:
        return OrderStatusLog(
            id=row.id,
            order_id=row.order_id,
            status=OrderStatus(row.status),
            description=row.description,
            created_at=_aware(row.created_at),
        )
