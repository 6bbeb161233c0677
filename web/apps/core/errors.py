"""Domain error taxonomy shared by the catalog, orders, coupons and
replacements apps.

Every error carries a short machine-readable ``code`` and the HTTP
``status_code`` views should answer with. The human-readable message is
the exception's ``str()``. Errors subclass ``ValueError`` so callers that
only care about "the domain refused this" can keep catching ``ValueError``.
"""


class DomainError(ValueError):
    """Base class for business-rule failures raised by domain services."""

    code = "DOMAIN_ERROR"
    status_code = 400

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class NotFound(DomainError):
    """A referenced product, order, coupon or replacement does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class InsufficientStock(DomainError):
    code = "INSUFFICIENT_STOCK"
    status_code = 400


class Unauthorized(DomainError):
    """The actor is neither the owner of the resource nor an administrator."""

    code = "UNAUTHORIZED"
    status_code = 403


class InvalidState(DomainError):
    """The operation is not allowed in the resource's current state."""

    code = "INVALID_STATE"
    status_code = 400


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"
    status_code = 400


class Conflict(DomainError):
    """Another request changed the resource between this request's read and write."""

    code = "CONCURRENT_UPDATE"
    status_code = 409
