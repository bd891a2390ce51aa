from pydantic import BaseModel, ConfigDict, Field


class PaymentCreate(BaseModel):
    """request body for creating a payment"""

    model_config = ConfigDict(strict=True)

    amount: float = Field(default=0.0, description="payment amount supplied by the client")
    currency: str | None = Field(default=None, description="iso currency code, defaults to USD")


class Payment(BaseModel):
    """stored payment record"""

    id: str = Field(description="server generated payment identifier")
    amount: float = Field(description="payment amount")
    currency: str = Field(description="iso currency code")
    status: str = Field(description="payment status, always pending on creation")
    date: str = Field(description="rfc3339 creation timestamp")


class ErrorResponse(BaseModel):
    """error body returned for rejected requests"""

    error: str
