class DomainException(Exception):
    pass


class ValidationError(DomainException):
    pass


class InvalidDateRange(ValidationError):
    def __init__(self, start, end):
        self.start = start
        self.end = end
        super().__init__(f"Дата окончания аренды {end} раньше даты начала {start}")


class InvalidStatusTransition(ValidationError):
    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Недопустимый переход статуса: {current.value} -> {target.value}")


class NotFoundError(DomainException):
    pass


class CartEntryNotFoundError(NotFoundError):
    pass


class OrderNotFoundError(NotFoundError):
    pass


class VoucherNotFoundError(NotFoundError):
    pass


class PaymentMethodNotFoundError(NotFoundError):
    pass


class UserNotFoundError(NotFoundError):
    pass


class GatewayError(DomainException):
    pass


class SignatureMismatchError(DomainException):
    pass


class CheckoutFailed(DomainException):
    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Оформление заказа не удалось: {cause}")
