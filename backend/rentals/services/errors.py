"""Domain errors raised by the pricing, order and payment services.

The HTTP layer turns these into ``error_response`` payloads; services never
import FastAPI themselves.
"""

from __future__ import annotations

from typing import Dict, Optional


class RentalsError(Exception):
    """Base error carrying a human message plus per-field details."""

    def __init__(self, message: str, field_errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.field_errors = dict(field_errors or {})


class PricingRulesError(RentalsError):
    """Pricing rules are missing or malformed.

    Raised instead of silently pricing fees at zero, since a zero fee is lost
    revenue rather than a visible failure.
    """


class InvalidStatusTransition(RentalsError):
    pass


class OrderPersistenceError(RentalsError):
    """Saving an order failed; the caller may retry but must not take payment."""


class PaymentProviderError(RentalsError):
    pass


class CartStorageError(RentalsError):
    """The cart store could not be reached; the cart was neither read nor saved."""
