"""
Pytest configuration and fixtures for payment service tests
"""

import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from payment_service.logger import build_logger
from payment_service.main import create_app
from payment_service.observability.telemetry import Providers
from payment_service.services.payments import PaymentStore


@pytest.fixture
def store():
    """
    Empty payment store
    """
    return PaymentStore()


@pytest.fixture
def client(store):
    """
    Test client for an app running on the api default telemetry
    """
    app = create_app(store=store)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def span_exporter():
    return InMemorySpanExporter()


@pytest.fixture
def metric_reader():
    return InMemoryMetricReader()


@pytest.fixture
def sdk_providers(span_exporter, metric_reader):
    """
    Provider bundle backed by in-memory span and metric exporters
    """
    tracer_provider = TracerProvider()
    tracer_provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    meter_provider = MeterProvider(metric_readers=[metric_reader])

    def shutdown():
        tracer_provider.shutdown()
        meter_provider.shutdown()

    return Providers(
        logger=build_logger("INFO", "json"),
        tracer_provider=tracer_provider,
        meter_provider=meter_provider,
        shutdown=shutdown,
    )


@pytest.fixture
def sdk_client(sdk_providers, store):
    """
    Test client for an app wired to the in-memory sdk providers
    """
    app = create_app(providers=sdk_providers, store=store)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def collect_metrics(metric_reader):
    """
    Returns a function mapping metric names to their data points
    """

    def _collect():
        points = {}
        data = metric_reader.get_metrics_data()
        if data is None:
            return points
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    points.setdefault(metric.name, []).extend(metric.data.data_points)
        return points

    return _collect
