# Overview: Domain error taxonomy shared by services and routes.

"""
Error kinds raised by the settlement core.

Services raise these inside a unit of work; the unit of work rolls back and
the route layer turns the error into a JSON body plus the mapped status code.
"""


class WorkshopError(Exception):
    """Base class for business-rule and input errors."""
    kind = "ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "kind": self.kind}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(WorkshopError):
    """Missing or malformed required fields."""
    kind = "VALIDATION_ERROR"
    status_code = 400


class InvalidDiscount(WorkshopError):
    """A discount would drive a price below zero."""
    kind = "INVALID_DISCOUNT"
    status_code = 400


class NotFound(WorkshopError):
    kind = "NOT_FOUND"
    status_code = 404


class InsufficientStock(WorkshopError):
    kind = "INSUFFICIENT_STOCK"
    status_code = 409


class InvalidState(WorkshopError):
    """Operation not allowed for the record's current status."""
    kind = "INVALID_STATE"
    status_code = 409


class InternalError(WorkshopError):
    """Unexpected failure; the body never carries the underlying exception."""
    kind = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str = "Internal server error", details: dict | None = None):
        super().__init__(message, details)
