from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from rental_checkout.application.cart import (
    AddToCartDTO, AddToCartUseCase, ClearCartUseCase, ListCartUseCase,
    RemoveCartEntryUseCase, UpdateCartEntryDTO, UpdateCartEntryUseCase
)
from rental_checkout.application.checkout import CheckoutDTO, CheckoutUseCase
from rental_checkout.application.get_order import GetOrderByNumberUseCase, GetOrderUseCase
from rental_checkout.application.order_assembler import OrderAssembler
from rental_checkout.application.order_status import OrderStatusService, UpdateOrderStatusUseCase
from rental_checkout.application.payment import PaymentGatewayAdapter
from rental_checkout.application.process_notification import (
    PaymentNotificationDTO, ProcessPaymentNotificationUseCase
)
from rental_checkout.application.summary import OrderSummaryDTO, OrderSummaryUseCase
from rental_checkout.application.vendor_orders import (
    DeleteVendorOrderUseCase, GetVendorOrderUseCase, ListVendorOrdersUseCase
)
from rental_checkout.application.voucher_catalog import CheckVoucherUseCase, ListVouchersUseCase
from rental_checkout.config import settings
from rental_checkout.database import get_session_factory
from rental_checkout.domain.exceptions import (
    CheckoutFailed, DomainException, GatewayError, InvalidStatusTransition, NotFoundError,
    SignatureMismatchError, ValidationError
)
from rental_checkout.domain.models import CustomerContext, VendorContext
from rental_checkout.infrastructure.http_clients import MidtransCoreApiClient
from rental_checkout.infrastructure.unit_of_work import UnitOfWork
from rental_checkout.presentation.schemas import (
    AddToCartRequest, CartItemResponse, CheckoutRequest, CheckVoucherRequest, ErrorResponse,
    OrderResponse, PaymentNotificationRequest, SummaryRequest, SummaryResponse,
    UpdateCartRequest, UpdateStatusRequest, VendorOrderListResponse, VoucherResponse
)

router = APIRouter()


def _http_error(e: DomainException) -> HTTPException:
    """Доменная ошибка -> HTTP ответ"""
    if isinstance(e, SignatureMismatchError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, InvalidStatusTransition):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, CheckoutFailed) and isinstance(e.cause, GatewayError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


# Контекст вызывающего: заголовки выставляет слой аутентификации
def get_customer(x_user_id: Optional[str] = Header(default=None)) -> CustomerContext:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Пользователь не аутентифицирован")
    return CustomerContext(user_id=x_user_id)


def get_vendor(x_vendor_id: Optional[str] = Header(default=None)) -> VendorContext:
    if not x_vendor_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Требуется профиль вендора")
    return VendorContext(vendor_id=x_vendor_id)


# Фабрики для создания use cases
def get_unit_of_work() -> UnitOfWork:
    return UnitOfWork(get_session_factory())


def get_payment_gateway() -> MidtransCoreApiClient:
    return MidtransCoreApiClient(
        settings.MIDTRANS_BASE_URL, settings.MIDTRANS_SERVER_KEY, timeout=settings.GATEWAY_TIMEOUT
    )


def get_checkout_use_case(
    uow: UnitOfWork = Depends(get_unit_of_work),
    gateway: MidtransCoreApiClient = Depends(get_payment_gateway)
):
    assembler = OrderAssembler(settings.SERVICE_FEE, settings.ORDER_NUMBER_PREFIX)
    return CheckoutUseCase(uow, PaymentGatewayAdapter(gateway), assembler)


def get_summary_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return OrderSummaryUseCase(uow, settings.SERVICE_FEE)


def get_notification_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return ProcessPaymentNotificationUseCase(uow, settings.MIDTRANS_SERVER_KEY, OrderStatusService())


def get_update_status_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return UpdateOrderStatusUseCase(uow, OrderStatusService())


# ---------------------------------------------------------------- корзина

@router.get("/cart", response_model=list[CartItemResponse])
async def list_cart(
    customer: CustomerContext = Depends(get_customer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    """Корзина пользователя"""
    lines = await ListCartUseCase(uow)(customer)
    return [CartItemResponse.from_domain(line) for line in lines]


@router.post(
    "/cart",
    response_model=CartItemResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def add_to_cart(
    request: AddToCartRequest,
    customer: CustomerContext = Depends(get_customer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    """Добавить товар в корзину"""
    try:
        line = await AddToCartUseCase(uow)(customer, AddToCartDTO(**request.model_dump()))
        return CartItemResponse.from_domain(line)
    except DomainException as e:
        raise _http_error(e)


@router.patch("/cart/{cart_id}", response_model=CartItemResponse, responses={404: {"model": ErrorResponse}})
async def update_cart_entry(
    cart_id: str,
    request: UpdateCartRequest,
    customer: CustomerContext = Depends(get_customer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    try:
        line = await UpdateCartEntryUseCase(uow)(customer, cart_id, UpdateCartEntryDTO(**request.model_dump()))
        return CartItemResponse.from_domain(line)
    except DomainException as e:
        raise _http_error(e)


@router.delete("/cart/{cart_id}", responses={404: {"model": ErrorResponse}})
async def remove_cart_entry(
    cart_id: str,
    customer: CustomerContext = Depends(get_customer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    try:
        await RemoveCartEntryUseCase(uow)(customer, cart_id)
        return {"status": "ok", "message": "Позиция удалена из корзины"}
    except DomainException as e:
        raise _http_error(e)


@router.delete("/cart")
async def clear_cart(
    customer: CustomerContext = Depends(get_customer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    deleted = await ClearCartUseCase(uow)(customer)
    return {"status": "ok", "deleted": deleted}


# ---------------------------------------------------------------- checkout

@router.post(
    "/checkout/summary",
    response_model=SummaryResponse,
    responses={404: {"model": ErrorResponse}}
)
async def checkout_summary(
    request: SummaryRequest,
    customer: CustomerContext = Depends(get_customer),
    use_case: OrderSummaryUseCase = Depends(get_summary_use_case)
):
    """Предварительный расчёт заказа без сохранения"""
    try:
        summary = await use_case(customer, OrderSummaryDTO(**request.model_dump()))
        return SummaryResponse.from_domain(summary)
    except DomainException as e:
        raise _http_error(e)


@router.post(
    "/checkout",
    response_model=OrderResponse,
    responses={
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse}
    },
    status_code=status.HTTP_201_CREATED
)
async def checkout(
    request: CheckoutRequest,
    customer: CustomerContext = Depends(get_customer),
    use_case: CheckoutUseCase = Depends(get_checkout_use_case)
):
    """Оформить заказ из выбранных позиций корзины"""
    try:
        order = await use_case(customer, CheckoutDTO(**request.model_dump()))
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


# ---------------------------------------------------------------- заказы покупателя

@router.get("/orders/{order_id}", response_model=OrderResponse, responses={404: {"model": ErrorResponse}})
async def get_order(
    order_id: str,
    customer: CustomerContext = Depends(get_customer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    """Получить заказ по ID"""
    try:
        order = await GetOrderUseCase(uow)(customer, order_id)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.get(
    "/orders/number/{order_number}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}}
)
async def get_order_status(
    order_number: str,
    customer: CustomerContext = Depends(get_customer),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    """Статус заказа по номеру"""
    try:
        order = await GetOrderByNumberUseCase(uow)(customer, order_number)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


# ---------------------------------------------------------------- ваучеры

@router.get("/vouchers", response_model=list[VoucherResponse])
async def list_vouchers(uow: UnitOfWork = Depends(get_unit_of_work)):
    vouchers = await ListVouchersUseCase(uow)()
    return [VoucherResponse.from_domain(voucher) for voucher in vouchers]


@router.post("/vouchers/check", response_model=VoucherResponse, responses={404: {"model": ErrorResponse}})
async def check_voucher(request: CheckVoucherRequest, uow: UnitOfWork = Depends(get_unit_of_work)):
    try:
        voucher = await CheckVoucherUseCase(uow)(request.code)
        return VoucherResponse.from_domain(voucher)
    except DomainException as e:
        raise _http_error(e)


# ---------------------------------------------------------------- платёжный шлюз

@router.post(
    "/payments/notification",
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def payment_notification(
    notification: PaymentNotificationRequest,
    use_case: ProcessPaymentNotificationUseCase = Depends(get_notification_use_case)
):
    """Обработка уведомления от платёжного шлюза. Аутентификация только по подписи."""
    try:
        await use_case(PaymentNotificationDTO(**notification.model_dump()))
        return {"status": "success", "message": "Уведомление обработано"}
    except DomainException as e:
        raise _http_error(e)


# ---------------------------------------------------------------- вендор

@router.get("/vendor/orders", response_model=VendorOrderListResponse)
async def list_vendor_orders(
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=10, ge=1, le=100),
    vendor: VendorContext = Depends(get_vendor),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    result = await ListVendorOrdersUseCase(uow)(vendor, search=search, page=page, per_page=per_page)
    return VendorOrderListResponse(
        orders=[OrderResponse.from_domain(order) for order in result.orders],
        total=result.total,
        page=result.page,
        per_page=result.per_page,
    )


@router.get("/vendor/orders/{order_id}", response_model=OrderResponse, responses={404: {"model": ErrorResponse}})
async def get_vendor_order(
    order_id: str,
    vendor: VendorContext = Depends(get_vendor),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    try:
        order = await GetVendorOrderUseCase(uow)(vendor, order_id)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.patch(
    "/vendor/orders/{order_id}/status",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}}
)
async def update_order_status(
    order_id: str,
    request: UpdateStatusRequest,
    vendor: VendorContext = Depends(get_vendor),
    use_case: UpdateOrderStatusUseCase = Depends(get_update_status_use_case)
):
    """Ручное обновление статуса заказа вендором"""
    try:
        order = await use_case(vendor, order_id, request.status)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.delete("/vendor/orders/{order_id}", responses={404: {"model": ErrorResponse}})
async def delete_vendor_order(
    order_id: str,
    vendor: VendorContext = Depends(get_vendor),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    try:
        await DeleteVendorOrderUseCase(uow)(vendor, order_id)
        return {"status": "ok", "message": "Заказ удалён"}
    except DomainException as e:
        raise _http_error(e)
