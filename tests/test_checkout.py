import re
from datetime import date
from decimal import Decimal

import pytest

from rental_checkout.application.checkout import CheckoutDTO, CheckoutUseCase
from rental_checkout.application.order_assembler import OrderAssembler
from rental_checkout.application.payment import CASH_INSTRUCTIONS, PaymentGatewayAdapter
from rental_checkout.domain.exceptions import (
    CartEntryNotFoundError, CheckoutFailed, GatewayError, InvalidDateRange, UserNotFoundError,
    ValidationError, VoucherNotFoundError
)
from rental_checkout.domain.models import CustomerContext, OrderStatus, PaymentType
from rental_checkout.infrastructure.db_schema import (
    carts_tbl, order_items_tbl, order_status_logs_tbl, orders_tbl, vouchers_tbl
)
from factories import SERVICE_FEE, FakeGateway

CUSTOMER = CustomerContext(user_id="user-1")


def dto(cart_ids, **overrides) -> CheckoutDTO:
    values = dict(cart_ids=cart_ids, payment_method_id="pm-bca", delivery_method="pickup")
    values.update(overrides)
    return CheckoutDTO(**values)


async def test_checkout_with_voucher(catalog, checkout, gateway):
    await catalog.voucher()
    selected = await catalog.cart(quantity=2)
    untouched = await catalog.cart(product_id="product-2")

    order = await checkout(CUSTOMER, dto([selected], voucher_id="voucher-1"))

    assert re.fullmatch(r"ORD-[A-Z0-9]{10}", order.order_number)
    assert order.status == OrderStatus.PENDING
    assert order.total_amount == Decimal("600000")
    assert order.discount_amount == Decimal("50000")
    assert order.service_fee == SERVICE_FEE
    assert order.grand_total == Decimal("552000")
    assert order.voucher_id == "voucher-1"

    # Снимок позиций
    assert len(order.items) == 1
    item = order.items[0]
    assert (item.price, item.quantity, item.subtotal) == (Decimal("100000"), 2, Decimal("600000"))
    assert item.vendor_id == "vendor-1"

    assert [log.status for log in order.status_logs] == [OrderStatus.PENDING]
    assert "BCA Virtual Account" in order.status_logs[0].description

    # Платёжные данные шлюза
    assert gateway.requests[0]["transaction_details"]["gross_amount"] == 552000
    assert order.transaction_id == "trx-1"
    assert order.payment_status == "pending"
    assert order.payment_info == {"va_number": "1234567890", "bank": "bca"}

    # Из корзины удалена только оформленная позиция
    assert await catalog.count(carts_tbl) == 1
    assert await catalog.fetch(carts_tbl, carts_tbl.c.id == untouched) is not None

    # Ваучер списывается только при оплате
    voucher = await catalog.fetch(vouchers_tbl, vouchers_tbl.c.id == "voucher-1")
    assert voucher.used_count == 0


async def test_items_sum_to_total_across_vendors(catalog, checkout):
    first = await catalog.cart(quantity=2)
    second = await catalog.cart(product_id="product-2", quantity=3)

    order = await checkout(CUSTOMER, dto([first, second]))

    assert len(order.items) == 2
    assert sum(item.subtotal for item in order.items) == order.total_amount
    assert order.total_amount == Decimal("960000")
    assert order.grand_total == Decimal("962000")
    assert {item.vendor_id for item in order.items} == {"vendor-1", "vendor-2"}


async def test_variant_price_snapshot(catalog, checkout):
    await catalog.variant()
    cart_id = await catalog.cart(variant_id="variant-1")

    order = await checkout(CUSTOMER, dto([cart_id]))

    item = order.items[0]
    assert item.price == Decimal("150000")
    assert item.variant_name == "Kit lens"
    assert order.total_amount == Decimal("450000")


async def test_cash_skips_gateway(catalog, checkout, gateway):
    cart_id = await catalog.cart()

    order = await checkout(CUSTOMER, dto([cart_id], payment_method_id="pm-cash"))

    assert gateway.requests == []
    assert order.payment_info == CASH_INSTRUCTIONS
    assert order.payment_status == "pending"
    assert order.transaction_id is None
    assert "Cash on Delivery" in order.status_logs[0].description


async def test_gateway_failure_rolls_everything_back(catalog, uow):
    await catalog.voucher()
    cart_id = await catalog.cart(quantity=2)
    failing = CheckoutUseCase(
        uow, PaymentGatewayAdapter(FakeGateway(error=GatewayError("timeout"))), OrderAssembler(SERVICE_FEE)
    )

    with pytest.raises(CheckoutFailed) as exc_info:
        await failing(CUSTOMER, dto([cart_id], voucher_id="voucher-1"))

    assert isinstance(exc_info.value.cause, GatewayError)
    assert await catalog.count(orders_tbl) == 0
    assert await catalog.count(order_items_tbl) == 0
    assert await catalog.count(order_status_logs_tbl) == 0
    assert await catalog.count(carts_tbl) == 1


async def test_foreign_cart_entry_rejected(catalog, checkout, gateway):
    own = await catalog.cart()
    foreign = await catalog.cart(user_id="user-2")

    with pytest.raises(CartEntryNotFoundError):
        await checkout(CUSTOMER, dto([own, foreign]))

    assert gateway.requests == []
    assert await catalog.count(orders_tbl) == 0
    assert await catalog.count(carts_tbl) == 2


async def test_duplicate_ids_collapsed(catalog, checkout):
    cart_id = await catalog.cart()

    order = await checkout(CUSTOMER, dto([cart_id, cart_id]))

    assert len(order.items) == 1


async def test_ineligible_voucher_dropped(catalog, checkout):
    await catalog.voucher()
    cart_id = await catalog.cart(product_id="product-2", end=date(2026, 1, 1))

    order = await checkout(CUSTOMER, dto([cart_id], voucher_id="voucher-1"))

    assert order.voucher_id is None
    assert order.discount_amount == Decimal("0")
    assert order.grand_total == Decimal("42000")


async def test_unknown_voucher(catalog, checkout):
    cart_id = await catalog.cart()

    with pytest.raises(VoucherNotFoundError):
        await checkout(CUSTOMER, dto([cart_id], voucher_id="missing"))


async def test_inactive_payment_method(catalog, checkout):
    await catalog.payment_method(id="pm-off", name="Old VA", is_active=False)
    cart_id = await catalog.cart()

    with pytest.raises(ValidationError):
        await checkout(CUSTOMER, dto([cart_id], payment_method_id="pm-off"))

    assert await catalog.count(carts_tbl) == 1


async def test_unsupported_channel_rejected_before_order(catalog, checkout, gateway):
    await catalog.payment_method(id="pm-gopay", name="GoPay", code="gopay", type=PaymentType.OTHER)
    cart_id = await catalog.cart()

    with pytest.raises(ValidationError) as exc_info:
        await checkout(CUSTOMER, dto([cart_id], payment_method_id="pm-gopay"))

    assert not isinstance(exc_info.value, CheckoutFailed)
    assert gateway.requests == []
    assert await catalog.count(orders_tbl) == 0
    assert await catalog.count(carts_tbl) == 1


@pytest.mark.parametrize("voucher_id", [None, "voucher-1"])
async def test_reversed_rental_dates_rejected(catalog, checkout, gateway, voucher_id):
    await catalog.voucher()
    cart_id = await catalog.cart(start=date(2026, 1, 5), end=date(2026, 1, 1))

    with pytest.raises(InvalidDateRange):
        await checkout(CUSTOMER, dto([cart_id], voucher_id=voucher_id))

    assert gateway.requests == []
    assert await catalog.count(orders_tbl) == 0
    assert await catalog.count(carts_tbl) == 1


async def test_unknown_user(catalog, checkout):
    cart_id = await catalog.cart(user_id="ghost")

    with pytest.raises(UserNotFoundError):
        await checkout(CustomerContext(user_id="ghost"), dto([cart_id]))


async def test_idempotency_key_returns_same_order(catalog, checkout, gateway):
    cart_id = await catalog.cart()

    first = await checkout(CUSTOMER, dto([cart_id], idempotency_key="key-1"))
    second = await checkout(CUSTOMER, dto([cart_id], idempotency_key="key-1"))

    assert second.id == first.id
    assert len(gateway.requests) == 1
    assert await catalog.count(orders_tbl) == 1



async def test_idempotency_key_scoped_per_user(catalog, checkout):
    await catalog.user(id="user-2")
    first_cart = await catalog.cart()
    second_cart = await catalog.cart(user_id="user-2")

    first = await checkout(CUSTOMER, dto([first_cart], idempotency_key="key-1"))
    second = await checkout(CustomerContext(user_id="user-2"), dto([second_cart], idempotency_key="key-1"))

    assert second.id != first.id
    assert await catalog.count(orders_tbl) == 2
