# Overview: Error taxonomy shared by services and routes.

"""
Every error a caller can see maps to one of these classes.

Routes serialise `to_dict()` with `status_code`; anything that is not a
StorefrontError is logged and reported as a generic 500.
"""

from __future__ import annotations


class StorefrontError(Exception):
    """Base class for user-visible failures."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(StorefrontError, ValueError):
    """400-level input problem."""
    status_code = 400


class AuthenticationError(StorefrontError):
    status_code = 401


class ForbiddenError(StorefrontError):
    status_code = 403


class NotFoundError(StorefrontError):
    status_code = 404


class ConflictError(StorefrontError, ValueError):
    """409-level unique key conflict (e.g., duplicate email)."""
    status_code = 409


class InsufficientStockError(StorefrontError):
    """
    Business-rule rejection at checkout.

    Kept distinct from ValidationError so clients can show "only N left".
    """
    status_code = 400

    def __init__(self, *, product_id: int, product_name: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for {product_name}. Available: {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested": requested,
                "available": available,
            },
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class InvoiceImmutableError(StorefrontError):
    status_code = 409
