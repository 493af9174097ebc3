import pytest
import pytest_asyncio

from rental_checkout.application.checkout import CheckoutDTO
from rental_checkout.application.order_status import OrderStatusService, UpdateOrderStatusUseCase
from rental_checkout.application.vendor_orders import (
    DeleteVendorOrderUseCase, GetVendorOrderUseCase, ListVendorOrdersUseCase
)
from rental_checkout.domain.exceptions import (
    InvalidStatusTransition, OrderNotFoundError, ValidationError
)
from rental_checkout.domain.models import CustomerContext, OrderStatus, VendorContext
from rental_checkout.infrastructure.db_schema import (
    order_items_tbl, order_status_logs_tbl, orders_tbl, vouchers_tbl
)

VENDOR = VendorContext(vendor_id="vendor-1")


@pytest.fixture
def update_status(uow):
    return UpdateOrderStatusUseCase(uow, OrderStatusService())


@pytest_asyncio.fixture
async def order(catalog, checkout):
    await catalog.voucher()
    first = await catalog.cart(quantity=2)
    second = await catalog.cart(product_id="product-2")
    return await checkout(
        CustomerContext(user_id="user-1"),
        CheckoutDTO(
            cart_ids=[first, second], payment_method_id="pm-bca", delivery_method="pickup", voucher_id="voucher-1"
        ),
    )


async def logs_count(seed, order_id):
    return await seed.count(order_status_logs_tbl, order_status_logs_tbl.c.order_id == order_id)


class TestUpdateStatus:
    async def test_invalid_value(self, order, update_status):
        with pytest.raises(ValidationError):
            await update_status(VENDOR, order.id, "lost")

    async def test_foreign_vendor(self, order, update_status):
        with pytest.raises(OrderNotFoundError):
            await update_status(VendorContext(vendor_id="vendor-9"), order.id, "paid")

    async def test_unknown_order(self, catalog, update_status):
        with pytest.raises(OrderNotFoundError):
            await update_status(VENDOR, "missing", "paid")

    async def test_paid_stamps_time(self, order, seed, update_status):
        updated = await update_status(VENDOR, order.id, "paid")

        assert updated.status == OrderStatus.PAID
        assert updated.paid_at is not None
        assert updated.status_logs[-1].status == OrderStatus.PAID
        assert await logs_count(seed, order.id) == 2

    async def test_skipping_paid_still_redeems_voucher_once(self, order, seed, update_status):
        await update_status(VENDOR, order.id, "processing")
        await update_status(VENDOR, order.id, "shipped")

        voucher = await seed.fetch(vouchers_tbl, vouchers_tbl.c.id == "voucher-1")
        assert voucher.used_count == 1

    async def test_full_happy_path(self, order, update_status):
        for status in ("paid", "processing", "shipped", "completed"):
            updated = await update_status(VENDOR, order.id, status)

        assert updated.status == OrderStatus.COMPLETED
        assert updated.completed_at is not None
        assert [log.status for log in updated.status_logs] == [
            OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.PROCESSING,
            OrderStatus.SHIPPED, OrderStatus.COMPLETED,
        ]

    async def test_backward_move_rejected(self, order, seed, update_status):
        await update_status(VENDOR, order.id, "shipped")

        with pytest.raises(InvalidStatusTransition):
            await update_status(VENDOR, order.id, "processing")

        row = await seed.fetch(orders_tbl, orders_tbl.c.id == order.id)
        assert row.status == OrderStatus.SHIPPED.value

    async def test_terminal_is_final(self, order, update_status):
        await update_status(VENDOR, order.id, "cancelled")

        with pytest.raises(InvalidStatusTransition):
            await update_status(VENDOR, order.id, "paid")

    async def test_same_status_writes_nothing(self, order, seed, update_status):
        await update_status(VENDOR, order.id, "paid")
        again = await update_status(VENDOR, order.id, "paid")

        assert again.status == OrderStatus.PAID
        assert await logs_count(seed, order.id) == 2

    async def test_vendor_sees_only_own_items(self, order, update_status):
        updated = await update_status(VENDOR, order.id, "paid")
        assert {item.vendor_id for item in updated.items} == {"vendor-1"}


class TestVendorOrders:
    async def test_list(self, order, uow):
        page = await ListVendorOrdersUseCase(uow)(VENDOR)

        assert page.total == 1
        assert page.orders[0].id == order.id
        assert [item.vendor_id for item in page.orders[0].items] == ["vendor-1"]

    async def test_list_search_by_number(self, order, uow):
        hit = await ListVendorOrdersUseCase(uow)(VENDOR, search=order.order_number[-4:])
        miss = await ListVendorOrdersUseCase(uow)(VENDOR, search="NOPE-NOPE")

        assert hit.total == 1
        assert miss.total == 0
        assert miss.orders == []

    async def test_list_for_vendor_without_orders(self, order, uow):
        page = await ListVendorOrdersUseCase(uow)(VendorContext(vendor_id="vendor-9"))
        assert page.total == 0

    async def test_get(self, order, uow):
        found = await GetVendorOrderUseCase(uow)(VendorContext(vendor_id="vendor-2"), order.id)

        assert found.order_number == order.order_number
        assert [item.product_name for item in found.items] == ["Tripod"]

    async def test_get_foreign(self, order, uow):
        with pytest.raises(OrderNotFoundError):
            await GetVendorOrderUseCase(uow)(VendorContext(vendor_id="vendor-9"), order.id)

    async def test_delete(self, order, seed, uow):
        await DeleteVendorOrderUseCase(uow)(VENDOR, order.id)

        assert await seed.count(orders_tbl) == 0
        assert await seed.count(order_items_tbl) == 0
        assert await logs_count(seed, order.id) == 0
