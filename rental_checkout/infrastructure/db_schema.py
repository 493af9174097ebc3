from sqlalchemy import (
    Table, Column, String, Integer, Enum, Date, DateTime, JSON, MetaData, Numeric,
    Boolean, Text, ForeignKey, UniqueConstraint
)
from sqlalchemy.sql import func

from rental_checkout.domain.models import OrderStatus, PaymentType, VoucherType

metadata = MetaData()


def _values(enum_cls):
    return [member.value for member in enum_cls]


# Таблицы внешних сервисов (пользователи, каталог), только чтение
users_tbl = Table(
    "users",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("email", String, nullable=False, unique=True),
)

products_tbl = Table(
    "products",
    metadata,
    Column("id", String, primary_key=True),
    Column("vendor_id", String, nullable=False, index=True),
    Column("name", String, nullable=False),
    Column("price", Numeric(15, 2), nullable=False),
)

product_variants_tbl = Table(
    "product_variants",
    metadata,
    Column("id", String, primary_key=True),
    Column("product_id", String, ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
    Column("name", String, nullable=False),
    Column("price", Numeric(15, 2), nullable=False),
)

payment_methods_tbl = Table(
    "payment_methods",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("code", String, nullable=False),
    Column("type", Enum(PaymentType, values_callable=_values, native_enum=False), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
)

vouchers_tbl = Table(
    "vouchers",
    metadata,
    Column("id", String, primary_key=True),
    Column("vendor_id", String, nullable=True, index=True),  # NULL: платформенный ваучер
    Column("code", String, nullable=False, unique=True),
    Column("name", String, nullable=False),
    Column("description", Text, nullable=True),
    Column("type", Enum(VoucherType, values_callable=_values, native_enum=False), nullable=False),
    Column("value", Numeric(15, 2), nullable=False),
    Column("max_discount_amount", Numeric(15, 2), nullable=True),
    Column("min_purchase_amount", Numeric(15, 2), nullable=False, default=0),
    Column("quota", Integer, nullable=True),
    Column("used_count", Integer, nullable=False, default=0),
    Column("start_date", DateTime(timezone=True), nullable=True),
    Column("end_date", DateTime(timezone=True), nullable=True),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)

carts_tbl = Table(
    "carts",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, nullable=False, index=True),
    Column("product_id", String, ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
    Column("product_variant_id", String, ForeignKey("product_variants.id"), nullable=True),
    Column("quantity", Integer, nullable=False),
    Column("rental_start_date", Date, nullable=False),
    Column("rental_end_date", Date, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
)

orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, nullable=False, index=True),
    Column("payment_method_id", String, ForeignKey("payment_methods.id", ondelete="SET NULL"), nullable=True),
    Column("order_number", String, nullable=False, unique=True, index=True),
    Column("total_amount", Numeric(15, 2), nullable=False),
    Column("service_fee", Numeric(15, 2), nullable=False, default=0),
    Column("voucher_id", String, ForeignKey("vouchers.id", ondelete="SET NULL"), nullable=True),
    Column("discount_amount", Numeric(15, 2), nullable=False, default=0),
    Column("grand_total", Numeric(15, 2), nullable=False),
    Column(
        "status",
        Enum(OrderStatus, values_callable=_values, native_enum=False),
        nullable=False,
        default=OrderStatus.PENDING,
    ),
    Column("notes", Text, nullable=True),
    Column("delivery_method", String, nullable=False),
    Column("idempotency_key", String, nullable=True),
    # Поля платёжного шлюза
    Column("transaction_id", String, nullable=True),
    Column("payment_status", String(50), nullable=True),
    Column("payment_info", JSON, nullable=True),
    Column("voucher_redeemed", Boolean, nullable=False, default=False),
    Column("paid_at", DateTime(timezone=True), nullable=True),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    Column("expired_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    UniqueConstraint("user_id", "idempotency_key", name="uq_orders_user_idempotency_key"),
)

order_items_tbl = Table(
    "order_items",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("product_id", String, nullable=False),
    Column("product_variant_id", String, nullable=True),
    Column("vendor_id", String, nullable=False, index=True),
    Column("product_name", String, nullable=False),
    Column("variant_name", String, nullable=True),
    Column("price", Numeric(15, 2), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("rental_start_date", Date, nullable=False),
    Column("rental_end_date", Date, nullable=False),
    Column("subtotal", Numeric(15, 2), nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)

order_status_logs_tbl = Table(
    "order_status_logs",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("status", Enum(OrderStatus, values_callable=_values, native_enum=False), nullable=False),
    Column("description", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)
