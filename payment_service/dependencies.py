from typing import Annotated, Any

from fastapi import Depends, Request
from opentelemetry import trace

from .observability.metrics import PaymentMetrics
from .observability.telemetry import Providers, get_tracer
from .services.payments import PaymentStore


def get_providers(request: Request) -> Providers:
    """telemetry bundle attached to the application"""
    return request.app.state.providers


ProvidersDep = Annotated[Providers, Depends(get_providers)]


def get_payment_store(request: Request) -> PaymentStore:
    return request.app.state.store


def get_payment_metrics(request: Request) -> PaymentMetrics:
    return request.app.state.metrics


def get_request_tracer(providers: ProvidersDep) -> trace.Tracer:
    return get_tracer(providers)


def get_request_logger(providers: ProvidersDep) -> Any:
    return providers.logger


PaymentStoreDep = Annotated[PaymentStore, Depends(get_payment_store)]
PaymentMetricsDep = Annotated[PaymentMetrics, Depends(get_payment_metrics)]
TracerDep = Annotated[trace.Tracer, Depends(get_request_tracer)]
LoggerDep = Annotated[Any, Depends(get_request_logger)]
