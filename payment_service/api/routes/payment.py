from fastapi import APIRouter, Request, status
from pydantic import TypeAdapter, ValidationError

from ...dependencies import LoggerDep, PaymentMetricsDep, PaymentStoreDep, TracerDep
from ...exceptions import InvalidPaymentError
from ...models import ErrorResponse, Payment, PaymentCreate

PAYMENT_PATH = "/api/payment"
INVALID_JSON = "Invalid JSON"

# a json null body decodes to an empty payment
_PAYMENT_BODY = TypeAdapter(PaymentCreate | None)

router = APIRouter(prefix="/api", tags=["payments"])


@router.get("/payment", response_model=list[Payment])
async def list_payments(store: PaymentStoreDep, tracer: TracerDep) -> list[Payment]:
    """list every stored payment in insertion order"""
    with tracer.start_as_current_span("api.list_payments") as span:
        payments = store.list_payments()
        span.set_attribute("payments.count", len(payments))
    return payments


@router.post(
    "/payment",
    response_model=Payment,
    status_code=status.HTTP_201_CREATED,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}},
)
async def create_payment(
    request: Request,
    store: PaymentStoreDep,
    payment_metrics: PaymentMetricsDep,
    tracer: TracerDep,
    logger: LoggerDep,
) -> Payment:
    """
    create a pending payment

    - accepts: {"amount": number, "currency": string (optional)}
    - returns: the stored record with server generated id, status and date
    """
    with tracer.start_as_current_span("api.create_payment") as span:
        # any undecodable or mistyped body is a 400
        body = await request.body()
        try:
            payload = _PAYMENT_BODY.validate_json(body) or PaymentCreate()
        except ValidationError:
            span.set_attribute("payment.rejected", True)
            raise InvalidPaymentError(INVALID_JSON) from None

        payment = store.create(payload.amount, payload.currency)
        payment_metrics.record_payment(payment)

        span.set_attribute("payment.id", payment.id)
        span.set_attribute("payment.currency", payment.currency)
        span.set_attribute("payment.amount", payment.amount)

    logger.info(
        "payment created",
        payment_id=payment.id,
        amount=payment.amount,
        currency=payment.currency,
    )
    return payment
