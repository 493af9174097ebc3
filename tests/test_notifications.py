import pytest
import pytest_asyncio

from rental_checkout.application.checkout import CheckoutDTO
from rental_checkout.application.process_notification import (
    PaymentNotificationDTO, compute_signature
)
from rental_checkout.domain.exceptions import OrderNotFoundError, SignatureMismatchError
from rental_checkout.domain.models import CustomerContext, OrderStatus
from rental_checkout.infrastructure.db_schema import order_status_logs_tbl, orders_tbl, vouchers_tbl
from factories import SERVER_KEY


def notification(order_number, transaction_status, status_code="200", gross_amount="552000.00",
                 signature=None, transaction_id="trx-1") -> PaymentNotificationDTO:
    return PaymentNotificationDTO(
        order_id=order_number,
        status_code=status_code,
        gross_amount=gross_amount,
        transaction_status=transaction_status,
        signature_key=signature or compute_signature(order_number, status_code, gross_amount, SERVER_KEY),
        transaction_id=transaction_id,
    )


@pytest_asyncio.fixture
async def order(catalog, checkout):
    await catalog.voucher()
    cart_id = await catalog.cart(quantity=2)
    return await checkout(
        CustomerContext(user_id="user-1"),
        CheckoutDTO(cart_ids=[cart_id], payment_method_id="pm-bca", delivery_method="pickup", voucher_id="voucher-1"),
    )


async def logs_count(seed, order_id):
    return await seed.count(order_status_logs_tbl, order_status_logs_tbl.c.order_id == order_id)


async def used_count(seed):
    return (await seed.fetch(vouchers_tbl, vouchers_tbl.c.id == "voucher-1")).used_count


def test_signature_is_sha512_hex():
    signature = compute_signature("ORD-1", "200", "10000.00", "key")
    assert len(signature) == 128
    assert signature == compute_signature("ORD-1", "200", "10000.00", "key")
    assert signature != compute_signature("ORD-1", "200", "10000.00", "other-key")


async def test_bad_signature_rejected(order, seed, process_notification):
    with pytest.raises(SignatureMismatchError):
        await process_notification(notification(order.order_number, "settlement", signature="0" * 128))

    row = await seed.fetch(orders_tbl, orders_tbl.c.id == order.id)
    assert row.status == OrderStatus.PENDING.value
    assert row.payment_status == "pending"
    assert await logs_count(seed, order.id) == 1


async def test_tampered_amount_rejected(order, process_notification):
    dto = notification(order.order_number, "settlement")
    tampered = dto.model_copy(update={"gross_amount": "1.00"})

    with pytest.raises(SignatureMismatchError):
        await process_notification(tampered)


async def test_settlement_marks_paid_and_redeems_voucher(order, seed, process_notification):
    updated = await process_notification(notification(order.order_number, "settlement"))

    assert updated.status == OrderStatus.PAID
    assert updated.paid_at is not None
    assert updated.payment_status == "settlement"
    assert updated.voucher_redeemed
    assert await used_count(seed) == 1
    assert await logs_count(seed, order.id) == 2


async def test_replayed_settlement_is_noop(order, seed, process_notification):
    await process_notification(notification(order.order_number, "settlement"))
    again = await process_notification(notification(order.order_number, "settlement"))

    assert again.status == OrderStatus.PAID
    assert await used_count(seed) == 1
    assert await logs_count(seed, order.id) == 2


async def test_capture_also_pays(order, process_notification):
    updated = await process_notification(notification(order.order_number, "capture"))
    assert updated.status == OrderStatus.PAID


async def test_expire_does_not_redeem(order, seed, process_notification):
    updated = await process_notification(notification(order.order_number, "expire", status_code="407"))

    assert updated.status == OrderStatus.EXPIRED
    assert not updated.voucher_redeemed
    assert await used_count(seed) == 0
    assert await logs_count(seed, order.id) == 2


async def test_deny_cancels(order, process_notification):
    updated = await process_notification(notification(order.order_number, "deny", status_code="202"))
    assert updated.status == OrderStatus.CANCELLED


async def test_settlement_after_expiry_ignored(order, seed, process_notification):
    await process_notification(notification(order.order_number, "expire", status_code="407"))
    late = await process_notification(notification(order.order_number, "settlement"))

    assert late.status == OrderStatus.EXPIRED
    assert late.payment_status == "settlement"
    assert await used_count(seed) == 0
    assert await logs_count(seed, order.id) == 2


async def test_unknown_status_only_recorded(order, seed, process_notification):
    updated = await process_notification(notification(order.order_number, "refund"))

    assert updated.status == OrderStatus.PENDING
    assert updated.payment_status == "refund"
    assert await logs_count(seed, order.id) == 1


async def test_unknown_order(catalog, process_notification):
    with pytest.raises(OrderNotFoundError):
        await process_notification(notification("ORD-NOTEXIST00", "settlement"))
