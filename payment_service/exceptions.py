"""exceptions raised by the payment service"""


class PaymentServiceError(Exception):
    """base error carrying a message and optional details"""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class TelemetryConfigError(PaymentServiceError):
    """telemetry configuration could not be read, parsed or applied"""


class TelemetryShutdownError(PaymentServiceError):
    """one or more telemetry providers failed to shut down"""


class InvalidPaymentError(PaymentServiceError):
    """payment request body could not be decoded"""
