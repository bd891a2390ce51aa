import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.routes import health, payment
from .config import settings
from .exceptions import InvalidPaymentError, TelemetryShutdownError
from .observability.metrics import PaymentMetrics
from .observability.telemetry import Providers, get_meter, get_telemetry_logger, instrument_app
from .services.payments import PaymentStore

METHOD_NOT_ALLOWED = "Method not allowed"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """application lifecycle manager"""
    providers: Providers = app.state.providers
    logger = providers.logger
    logger.info("service ready")

    yield

    # shutdown
    logger.info("shutting down service")
    try:
        providers.shutdown()
    except TelemetryShutdownError as e:
        logger.error("failed to shutdown telemetry", error=e.message, details=e.details)
    logger.info("service stopped")


async def invalid_payment_handler(_request: Request, exc: InvalidPaymentError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": exc.message})


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 405:
        return JSONResponse(
            status_code=405, content={"error": METHOD_NOT_ALLOWED}, headers=exc.headers
        )
    return await http_exception_handler(request, exc)


async def record_http_metrics(request: Request, call_next):
    """request count, duration and error metrics for the payment endpoint"""
    path = request.url.path
    if path != payment.PAYMENT_PATH:
        return await call_next(request)

    payment_metrics: PaymentMetrics = request.app.state.metrics
    payment_metrics.record_request(request.method, path)

    start_time = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        payment_metrics.record_response(
            request.method, path, status_code, time.perf_counter() - start_time
        )


def create_app(providers: Providers | None = None, store: PaymentStore | None = None) -> FastAPI:
    """
    build the payment api

    telemetry handles and storage are injected through app.state; without a
    provider bundle the api default tracer and meter and a development logger
    are used.
    """
    if providers is None:
        providers = Providers(logger=get_telemetry_logger())

    app = FastAPI(
        title="Payment Service",
        description="in-memory payment api instrumented with opentelemetry",
        version=settings.service_version,
        lifespan=lifespan,
    )

    app.state.providers = providers
    app.state.store = store if store is not None else PaymentStore(settings.default_currency)
    app.state.metrics = PaymentMetrics.from_meter(get_meter(providers))

    app.add_exception_handler(InvalidPaymentError, invalid_payment_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.middleware("http")(record_http_metrics)

    instrument_app(app, providers)

    app.include_router(health.router)
    app.include_router(payment.router)

    return app
