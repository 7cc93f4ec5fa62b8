"""Error taxonomy for the shop API.

Every error a state machine or store can raise on purpose derives from
ShopError and knows the HTTP status it maps to. main.py turns them into
``{"message": ...}`` responses.
"""
from typing import Optional


class ShopError(Exception):
    """Base exception for all shop errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class Unauthenticated(ShopError):
    """Raised when a request carries no credential at all."""

    status_code = 401

    def __init__(self, message: str = "Access Denied"):
        super().__init__(message)


class InvalidToken(Unauthenticated):
    """Raised when a credential is present but fails verification."""


class NotFound(ShopError):
    status_code = 404


class Conflict(ShopError):
    status_code = 409


class BadRequest(ShopError):
    status_code = 400


class Forbidden(ShopError):
    status_code = 403


class LimitExceeded(ShopError):
    """Raised when a cart quantity would leave its allowed range."""

    status_code = 422


class Internal(ShopError):
    status_code = 500


class CartSyncError(ShopError):
    """Raised when an order was stored but its cart line could not be removed.

    The order stays; the client may retry the cart removal.
    """

    status_code = 503

    def __init__(self, order_id: str, reason: Optional[str] = None):
        self.order_id = order_id
        msg = f"Order {order_id} placed but the cart could not be updated"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
