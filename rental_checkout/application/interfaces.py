from abc import ABC, abstractmethod
from datetime import date
from typing import Optional, List, Tuple

from rental_checkout.domain.models import (
    CartEntry, Order, OrderItem, OrderStatusLog, PaymentMethod,
    Product, ProductVariant, User, Voucher
)


class UserRepository(ABC):
    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[User]:
        pass


class ProductRepository(ABC):
    @abstractmethod
    async def get_product(self, product_id: str) -> Optional[Product]:
        pass

    @abstractmethod
    async def get_variant(self, variant_id: str) -> Optional[ProductVariant]:
        pass


class CartRepository(ABC):
    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[CartEntry]:
        pass

    @abstractmethod
    async def get_many(self, user_id: str, cart_ids: List[str], for_update: bool = False) -> List[CartEntry]:
        pass

    @abstractmethod
    async def find_same(
        self, user_id: str, product_id: str, variant_id: Optional[str], start: date, end: date
    ) -> Optional[CartEntry]:
        pass

    @abstractmethod
    async def create(
        self, user_id: str, product_id: str, variant_id: Optional[str], quantity: int, start: date, end: date
    ) -> str:
        pass

    @abstractmethod
    async def update(self, cart_id: str, **values) -> None:
        pass

    @abstractmethod
    async def delete_many(self, user_id: str, cart_ids: List[str]) -> int:
        pass

    @abstractmethod
    async def clear(self, user_id: str) -> int:
        pass


class VoucherRepository(ABC):
    @abstractmethod
    async def get_by_id(self, voucher_id: str) -> Optional[Voucher]:
        pass

    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[Voucher]:
        pass

    @abstractmethod
    async def list_active(self) -> List[Voucher]:
        pass

    @abstractmethod
    async def increment_usage(self, voucher_id: str) -> None:
        pass


class PaymentMethodRepository(ABC):
    @abstractmethod
    async def get_by_id(self, payment_method_id: str) -> Optional[PaymentMethod]:
        pass


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str, for_update: bool = False) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_number(self, order_number: str, for_update: bool = False) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_idempotency_key(self, user_id: str, key: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def number_exists(self, order_number: str) -> bool:
        pass

    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
    async def add_items(self, items: List[OrderItem]) -> None:
        pass

    @abstractmethod
    async def add_status_log(self, log: OrderStatusLog) -> None:
        pass

    @abstractmethod
    async def update(self, order_id: str, **values) -> None:
        pass

    @abstractmethod
    async def load_details(self, order: Order, vendor_id: Optional[str] = None) -> Order:
        pass

    @abstractmethod
    async def has_vendor_items(self, order_id: str, vendor_id: str) -> bool:
        pass

    @abstractmethod
    async def list_for_vendor(
        self, vendor_id: str, search: Optional[str], limit: int, offset: int
    ) -> Tuple[List[Order], int]:
        pass

    @abstractmethod
    async def delete(self, order_id: str) -> None:
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def users(self) -> UserRepository:
        pass

    @property
    @abstractmethod
    def products(self) -> ProductRepository:
        pass

    @property
    @abstractmethod
    def carts(self) -> CartRepository:
        pass

    @property
    @abstractmethod
    def vouchers(self) -> VoucherRepository:
        pass

    @property
    @abstractmethod
    def payment_methods(self) -> PaymentMethodRepository:
        pass

    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @abstractmethod
    async def __call__(self):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


class PaymentGateway(ABC):
    @abstractmethod
    async def charge(self, payload: dict) -> dict:
        pass
