"""pydantic models for request/response schemas"""

from .payment import ErrorResponse, Payment, PaymentCreate

__all__ = ["ErrorResponse", "Payment", "PaymentCreate"]
