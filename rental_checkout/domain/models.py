from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from rental_checkout.domain.exceptions import InvalidDateRange
from rental_checkout.domain.money import Money


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PaymentType(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    ECHANNEL = "echannel"
    QRIS = "qris"
    OTHER = "other"


class VoucherType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class DateRange(BaseModel):
    """Value Object: период аренды, обе границы включительно"""
    start: date
    end: date

    @model_validator(mode="after")
    def _check_order(self):
        if self.end < self.start:
            raise InvalidDateRange(self.start, self.end)
        return self

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


class CustomerContext(BaseModel):
    """Кто оформляет заказ. Заполняется слоем аутентификации."""
    user_id: str


class VendorContext(BaseModel):
    vendor_id: str


class User(BaseModel):
    id: str
    name: str
    email: str


class Product(BaseModel):
    """Value Object — товар из каталога"""
    id: str
    vendor_id: str
    name: str
    price: Money


class ProductVariant(BaseModel):
    id: str
    product_id: str
    name: str
    price: Money


class CartEntry(BaseModel):
    """Domain Entity: позиция корзины"""
    id: str
    user_id: str
    product: Product
    variant: Optional[ProductVariant] = None
    quantity: int = Field(ge=1)
    rental_start_date: date
    rental_end_date: date

    @property
    def unit_price(self) -> Decimal:
        """Цена варианта, если он выбран, иначе цена товара"""
        return self.variant.price if self.variant else self.product.price

    @property
    def vendor_id(self) -> str:
        return self.product.vendor_id

    @property
    def rental_period(self) -> DateRange:
        return DateRange(start=self.rental_start_date, end=self.rental_end_date)


class PaymentMethod(BaseModel):
    id: str
    name: str
    code: str
    type: PaymentType
    is_active: bool = True


class Voucher(BaseModel):
    """Domain Entity: ваучер (платформенный, если vendor_id пустой)"""
    id: str
    vendor_id: Optional[str] = None
    code: str
    name: str
    description: Optional[str] = None
    type: VoucherType
    value: Money
    max_discount_amount: Optional[Money] = None
    min_purchase_amount: Money = Decimal("0")
    quota: Optional[int] = None
    used_count: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool = True

    @property
    def is_platform_wide(self) -> bool:
        return self.vendor_id is None

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """Бизнес-правило: активен, в окне действия и квота не исчерпана"""
        now = now or datetime.now(timezone.utc)
        if not self.is_active:
            return False
        if self.start_date is not None and now < self.start_date:
            return False
        if self.end_date is not None and now > self.end_date:
            return False
        if self.quota is not None and self.used_count >= self.quota:
            return False
        return True


class OrderItem(BaseModel):
    """Снимок позиции на момент оформления"""
    id: str
    order_id: str
    product_id: str
    product_variant_id: Optional[str] = None
    vendor_id: str
    product_name: str
    variant_name: Optional[str] = None
    price: Money
    quantity: int
    rental_start_date: date
    rental_end_date: date
    subtotal: Money


class OrderStatusLog(BaseModel):
    id: str
    order_id: str
    status: OrderStatus
    description: str
    created_at: Optional[datetime] = None


class Order(BaseModel):
    """Domain Entity — заказ"""
    id: str
    user_id: str
    payment_method_id: Optional[str] = None
    order_number: str
    total_amount: Money
    service_fee: Money
    voucher_id: Optional[str] = None
    discount_amount: Money = Decimal("0")
    grand_total: Money
    status: OrderStatus = OrderStatus.PENDING
    notes: Optional[str] = None
    delivery_method: str
    idempotency_key: Optional[str] = None
    transaction_id: Optional[str] = None
    payment_status: Optional[str] = None
    payment_info: Optional[dict] = None
    voucher_redeemed: bool = False
    paid_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    items: list[OrderItem] = []
    status_logs: list[OrderStatusLog] = []
    payment_method: Optional[PaymentMethod] = None
    voucher: Optional[Voucher] = None
