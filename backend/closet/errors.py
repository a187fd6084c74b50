# Overview: Domain error taxonomy shared by services and routes.

"""
Ledger errors

Every error raised by the stock, installment and sales services derives from
LedgerError. Routes translate them into JSON with the HTTP status carried by
the class, so the store operator sees a specific message per failure kind
("estoque insuficiente" and "parcela já paga" call for different actions).

- 400: input rejected before any write (ValidationError and subclasses)
- 404: referenced row does not exist
- 409: domain rule refused the operation
- 500: the store transaction could not commit; nothing was applied
"""


class LedgerError(Exception):
    """Base class for ledger errors."""

    status_code = 400
    code = "LEDGER_ERROR"
    message = "operação não realizada"

    def __init__(self, reason: str, details: dict | None = None):
        super().__init__(reason)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(LedgerError):
    """400-level input problem."""

    code = "VALIDATION_ERROR"
    message = "dados inválidos"


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"
    message = "valor inválido"


class InvalidQuantity(ValidationError):
    code = "INVALID_QUANTITY"
    message = "quantidade inválida"


class InvalidSchedule(ValidationError):
    code = "INVALID_SCHEDULE"
    message = "parcelamento inválido"


class NotFound(LedgerError):
    status_code = 404
    code = "NOT_FOUND"
    message = "registro não encontrado"


class InsufficientStock(LedgerError):
    status_code = 409
    code = "INSUFFICIENT_STOCK"
    message = "estoque insuficiente"


class AlreadySettled(LedgerError):
    status_code = 409
    code = "ALREADY_SETTLED"
    message = "parcela já paga"


class InvalidStateTransition(LedgerError):
    status_code = 409
    code = "INVALID_STATE"
    message = "operação não permitida no status atual"


class ConflictError(LedgerError):
    """409-level uniqueness conflict (e.g., duplicate CPF)."""

    status_code = 409
    code = "CONFLICT"
    message = "registro duplicado"


class TransactionFailed(LedgerError):
    """The store rejected or could not commit the transaction."""

    status_code = 500
    code = "TRANSACTION_FAILED"
    message = "falha ao gravar no banco de dados"
