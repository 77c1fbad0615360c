from __future__ import annotations

from decimal import Decimal


class CreditShopError(Exception):
    """Base for domain failures. `status_code` is what the REST layer answers with."""

    status_code: int = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class NotFound(CreditShopError):
    status_code = 404


class AccountNotFound(NotFound):
    pass


class ProductNotFound(NotFound):
    pass


class SlipNotFound(NotFound):
    pass


class TokenNotFound(NotFound):
    pass


class StockUnitNotFound(NotFound):
    pass


class InsufficientCredit(CreditShopError):
    status_code = 409

    def __init__(
        self,
        message: str = "Insufficient credit",
        *,
        required: Decimal | None = None,
        balance: Decimal | None = None,
        credit_limit: Decimal | None = None,
    ):
        super().__init__(message)
        self.required = required
        self.balance = balance
        self.credit_limit = credit_limit


class OutOfStock(CreditShopError):
    status_code = 409


class StockExhausted(OutOfStock):
    pass


class AlreadyProcessed(CreditShopError):
    status_code = 409


class Expired(CreditShopError):
    status_code = 410


class TokenExpired(Expired):
    pass


class VerificationFailed(CreditShopError):
    """The slip verification oracle could not give an answer (timeout, transport, bad response)."""

    status_code = 502


class ValidationError(CreditShopError):
    status_code = 400


class StorageError(CreditShopError):
    status_code = 503
