from __future__ import annotations


class ExchangeError(Exception):
    """Base class for domain errors raised by the exchange services.

    `code` is a stable machine-readable reason that routes pass through to clients.
    """

    code = "EXCHANGE_ERROR"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class InvalidQuoteError(ExchangeError):
    code = "INVALID_QUOTE"


class OrderNotFoundError(ExchangeError):
    code = "ORDER_NOT_FOUND"


class ActiveOrderExistsError(ExchangeError):
    code = "ACTIVE_ORDER_EXISTS"


class InvalidTransitionError(ExchangeError):
    code = "INVALID_TRANSITION"


class PaymentWindowExpiredError(ExchangeError):
    code = "PAYMENT_WINDOW_EXPIRED"


class GuardUnavailableError(ExchangeError):
    code = "GUARD_UNAVAILABLE"


class ProofStorageError(ExchangeError):
    code = "PROOF_STORAGE_ERROR"


class OrderDetailsError(ExchangeError):
    code = "INVALID_ORDER_DETAILS"


class ProofStorageUnavailableError(ProofStorageError):
    """The proof store itself failed (disk, permissions); the upload was valid."""

    code = "PROOF_STORAGE_UNAVAILABLE"
