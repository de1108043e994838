"""Domain exceptions raised by the banking and loan services.

Routers let these propagate; the handler registered in ``main.py`` turns
them into JSON error responses using ``status_code``.
"""


class CoopBankError(Exception):
    """Base exception for all back-office errors."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class EntityNotFoundError(CoopBankError):
    """Raised when a referenced row does not exist."""

    status_code = 404


class InvalidStateError(CoopBankError):
    """Raised when an entity is in the wrong state for the operation."""


class InsufficientFundsError(CoopBankError):
    """Raised when an account cannot cover a debit."""

    def __init__(self, available):
        super().__init__(f"Insufficient funds. Available: {available}")
        self.available = available


class UnbalancedEntryError(CoopBankError):
    """Raised when ledger legs do not balance or carry a non-positive amount."""


class ValidationError(CoopBankError):
    """Raised when business input fails a rule pydantic cannot express."""


class DuplicateError(CoopBankError):
    """Raised when a unique business key is already taken."""

    status_code = 409
