"""
Ledger error taxonomy and its mapping onto HTTP responses.

Services raise LedgerError subclasses; they never build HTTP responses.
The API layer turns them into JSON errors through the handlers registered
in register_exception_handlers().

SECURITY PRINCIPLE: Don't expose internal details to users.
Storage faults get a generic message externally, full details in the log.
"""
import logging
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base class for every business-rule or storage failure raised by a service."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "ledger_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message}


class ValidationError(LedgerError):
    """Malformed or out-of-range input, rejected before anything is persisted."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        return {**super().to_dict(), "field": self.field}


class EmptyLineItems(ValidationError):
    code = "empty_line_items"

    def __init__(self):
        super().__init__("line_items", "A sale needs at least one line item")


class PrescriptionRequired(ValidationError):
    code = "prescription_required"

    def __init__(self, medicine_id: UUID, medicine_name: str):
        super().__init__(
            "prescription_id",
            f"'{medicine_name}' is prescription-only; link a prescription to the sale",
        )
        self.medicine_id = medicine_id


class DuplicateIdentifier(LedgerError):
    """Unique constraint conflict. Retryable with a fresh identifier."""

    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_identifier"

    def __init__(self, entity: str, value: str):
        super().__init__(f"{entity} '{value}' already exists")
        self.entity = entity
        self.value = value


class PrescriptionAlreadyUsed(LedgerError):
    """A prescription is dispensed by at most one sale."""

    status_code = status.HTTP_409_CONFLICT
    code = "prescription_already_used"

    def __init__(self, prescription_id: UUID, sale_number: str | None = None):
        super().__init__(
            f"Prescription {prescription_id} is already linked to sale {sale_number}"
            if sale_number else f"Prescription {prescription_id} is already linked to a sale"
        )
        self.prescription_id = prescription_id

    def to_dict(self) -> dict:
        return {**super().to_dict(), "prescription_id": str(self.prescription_id)}


class InsufficientStock(LedgerError):
    """Business-rule rejection: the requested quantity exceeds what is on hand."""

    status_code = status.HTTP_409_CONFLICT
    code = "insufficient_stock"

    def __init__(self, medicine_id: UUID, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for medicine {medicine_id}: "
            f"requested {requested}, available {available}"
        )
        self.medicine_id = medicine_id
        self.requested = requested
        self.available = available

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "medicine_id": str(self.medicine_id),
            "requested": self.requested,
            "available": self.available,
        }


class ReferentialViolation(LedgerError):
    """Reference to a row that does not exist, or removal of a row still referenced."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "referential_violation"

    def __init__(self, entity: str, entity_id, message: str | None = None, in_use: bool = False):
        super().__init__(message or f"{entity} {entity_id} does not exist")
        self.entity = entity
        self.entity_id = entity_id
        if in_use:
            self.status_code = status.HTTP_409_CONFLICT

    @classmethod
    def still_referenced(cls, entity: str, entity_id, by: str) -> "ReferentialViolation":
        return cls(entity, entity_id, f"{entity} {entity_id} is still referenced by {by}", in_use=True)


class TransactionFailure(LedgerError):
    """Storage-layer fault. Safe to retry with the same inputs: nothing was committed."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "transaction_failure"

    def __init__(self, operation: str, original_error: Exception | None = None):
        super().__init__(f"{operation} could not be completed. Please try again.")
        self.operation = operation
        self.original_error = original_error


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if isinstance(exc, TransactionFailure):
        logger.error(
            f"Transaction failure on {request.method} {request.url.path}: {exc.original_error!r}"
        )
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LedgerError, ledger_error_handler)


class BusinessError:
    """HTTP errors with safe (non-leaky) messages for auth and permission failures."""

    @staticmethod
    def not_found(resource: str = "Resource", reason: str = "") -> HTTPException:
        """
        Generic 404 that doesn't confirm resource existence.

        Example:
            if not sale:
                raise BusinessError.not_found("Sale")
        """
        if reason:
            logger.warning(f"Not found: {resource} - {reason}")
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )

    @staticmethod
    def unauthorized(reason: str = "") -> HTTPException:
        """
        Generic 401 for all authentication failures.

        SECURITY: Same response for wrong password, non-existent user, etc.
        """
        logger.warning(f"Unauthorized access attempt: {reason}")
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed",
            headers={"WWW-Authenticate": "Bearer"},
        )

    @staticmethod
    def forbidden(reason: str = "") -> HTTPException:
        logger.warning(f"Forbidden access: {reason}")
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied",
        )

    @staticmethod
    def conflict(detail: str) -> HTTPException:
        """
        409 for resource conflicts.
        Example: "Email already registered"
        """
        logger.info(f"Conflict: {detail}")
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )
