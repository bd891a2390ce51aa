from dataclasses import dataclass

from fastapi import Response
from opentelemetry import metrics
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..models import Payment


@dataclass
class PaymentMetrics:
    """instruments recorded by the payment endpoint"""

    request_counter: metrics.Counter
    response_duration: metrics.Histogram
    error_counter: metrics.Counter
    payment_amount: metrics.Histogram
    payments_by_status: metrics.Counter
    payments_by_currency: metrics.Counter

    @classmethod
    def from_meter(cls, meter: metrics.Meter) -> "PaymentMetrics":
        return cls(
            # counters
            request_counter=meter.create_counter(
                "http_requests_total", unit="1", description="Total number of HTTP requests"
            ),
            error_counter=meter.create_counter(
                "http_errors_total", unit="1", description="Total number of HTTP errors"
            ),
            payments_by_status=meter.create_counter(
                "payments_by_status_total",
                unit="1",
                description="Total number of payments by status",
            ),
            payments_by_currency=meter.create_counter(
                "payments_by_currency_total",
                unit="1",
                description="Total number of payments by currency",
            ),
            # histograms
            response_duration=meter.create_histogram(
                "http_request_duration_seconds",
                unit="s",
                description="HTTP request duration in seconds",
            ),
            payment_amount=meter.create_histogram(
                "payment_amount", unit="currency_unit", description="Payment amounts processed"
            ),
        )

    def record_request(self, method: str, endpoint: str) -> None:
        """record an incoming request"""
        self.request_counter.add(1, {"method": method, "endpoint": endpoint})

    def record_response(self, method: str, endpoint: str, status_code: int, duration: float) -> None:
        """record request duration and, for failures, an error"""
        attributes = {"method": method, "endpoint": endpoint, "status_code": str(status_code)}
        self.response_duration.record(duration, attributes)
        if status_code >= 400:
            self.error_counter.add(1, attributes)

    def record_payment(self, payment: Payment) -> None:
        """record a created payment"""
        self.payment_amount.record(payment.amount, {"currency": payment.currency})
        self.payments_by_status.add(1, {"status": payment.status})
        self.payments_by_currency.add(1, {"currency": payment.currency})


def metrics_endpoint() -> Response:
    """prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
