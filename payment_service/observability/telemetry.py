import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from opentelemetry import metrics, propagate, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter as GrpcLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
    OTLPMetricExporter as GrpcMetricExporter,
)
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter as GrpcSpanExporter
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter as HttpLogExporter
from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
    OTLPMetricExporter as HttpMetricExporter,
)
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as HttpSpanExporter
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import (
    BatchLogRecordProcessor,
    ConsoleLogRecordExporter,
    SimpleLogRecordProcessor,
)
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.sampling import ALWAYS_OFF, ALWAYS_ON, ParentBased, Sampler, TraceIdRatioBased
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from prometheus_client import start_http_server
from structlog.types import Processor

from ..exceptions import TelemetryConfigError, TelemetryShutdownError
from ..logger import OTelLogForwarder, build_logger, development_logger, production_logger
from .config import (
    LogRecordExporterConfig,
    LoggerProviderConfig,
    MeterProviderConfig,
    OpenTelemetryConfiguration,
    OtlpExporterConfig,
    PrometheusExporterConfig,
    PropagatorConfig,
    PushMetricExporterConfig,
    SamplerConfig,
    SpanExporterConfig,
    TracerProviderConfig,
    read_config,
)

SCOPE = "payment-service"

_OTLP_HTTP_PATHS = {"traces": "/v1/traces", "metrics": "/v1/metrics", "logs": "/v1/logs"}


def _noop_shutdown() -> None:
    return None


@dataclass
class Providers:
    """tracer, meter and logger handles plus the hook that tears them down"""

    logger: Any
    tracer_provider: TracerProvider | None = None
    meter_provider: MeterProvider | None = None
    logger_provider: LoggerProvider | None = None
    propagator: CompositePropagator | None = None
    log_processors: Sequence[Processor] = ()
    shutdown: Callable[[], None] = field(default=_noop_shutdown)

    def tracer(self) -> trace.Tracer:
        if self.tracer_provider is None:
            return trace.get_tracer(SCOPE)
        return self.tracer_provider.get_tracer(SCOPE)

    def meter(self) -> metrics.Meter:
        if self.meter_provider is None:
            return metrics.get_meter(SCOPE)
        return self.meter_provider.get_meter(SCOPE)


@dataclass
class MetricsServer:
    """prometheus scrape endpoint started for a pull reader"""

    server: Any
    thread: threading.Thread

    def shutdown(self) -> None:
        self.server.shutdown()
        self.server.server_close()
        self.thread.join()


def setup(version: str, cfg_file: str) -> Providers:
    """
    bootstrap telemetry from a configuration file and install it globally

    the sdk providers become the opentelemetry globals so that library
    instrumentation picks them up. callers own the returned bundle and must
    call its shutdown hook on exit.
    """
    providers = providers_from_config(SCOPE, version, cfg_file)

    if providers.tracer_provider is not None:
        trace.set_tracer_provider(providers.tracer_provider)
    if providers.meter_provider is not None:
        metrics.set_meter_provider(providers.meter_provider)
    if providers.logger_provider is not None:
        set_logger_provider(providers.logger_provider)
    propagate.set_global_textmap(providers.propagator or build_propagator(None))

    return providers


def providers_from_config(scope: str, version: str, cfg_file: str) -> Providers:
    """build providers from a file, falling back to a bare logger when it is missing"""
    config = read_config(cfg_file)
    if config is None:
        return Providers(logger=production_logger())
    return new_sdk(config, scope, version)


def new_sdk(config: OpenTelemetryConfiguration, scope: str, version: str) -> Providers:
    if config.disabled:
        return Providers(logger=production_logger())

    built: list[tuple[str, Any]] = []
    servers: list[MetricsServer] = []

    try:
        resource = build_resource(config, scope, version)
        tracer_provider = build_tracer_provider(config.tracer_provider, resource)
        built.append(("tracer_provider", tracer_provider))
        meter_provider = build_meter_provider(config.meter_provider, resource, servers)
        built.append(("meter_provider", meter_provider))
        logger_provider = build_logger_provider(config.logger_provider, resource)
        built.append(("logger_provider", logger_provider))
    except Exception as e:
        details: dict[str, Any] = {"error": str(e)}
        errors = shutdown_components([*built, *(("prometheus_server", s) for s in servers)])
        if errors:
            details["shutdown_errors"] = errors
        raise TelemetryConfigError("cannot build telemetry sdk", details) from e

    components = [*built, *(("prometheus_server", s) for s in servers)]
    forwarder = OTelLogForwarder(logger_provider, scope)

    def shutdown() -> None:
        errors = shutdown_components(components)
        if errors:
            raise TelemetryShutdownError("telemetry shutdown failed", {"errors": errors})

    return Providers(
        logger=build_logger("INFO", "json", extra_processors=[forwarder]),
        tracer_provider=tracer_provider,
        meter_provider=meter_provider,
        logger_provider=logger_provider,
        propagator=build_propagator(config.propagator),
        log_processors=(forwarder,),
        shutdown=shutdown,
    )


def shutdown_components(components: Sequence[tuple[str, Any]]) -> list[str]:
    """shut every component down in order, collecting failures"""
    errors = []
    for name, component in components:
        try:
            component.shutdown()
        except Exception as e:
            errors.append(f"{name}: {e}")
    return errors


def build_resource(config: OpenTelemetryConfiguration, scope: str, version: str) -> Resource:
    attributes: dict[str, Any] = {SERVICE_NAME: scope, SERVICE_VERSION: version}
    schema_url = None
    if config.resource is not None:
        attributes.update(config.resource.as_attributes())
        schema_url = config.resource.schema_url
    return Resource.create(attributes, schema_url=schema_url)


def build_propagator(config: PropagatorConfig | None) -> CompositePropagator:
    names = config.composite if config is not None else ["tracecontext", "baggage"]
    known = {
        "tracecontext": TraceContextTextMapPropagator,
        "baggage": W3CBaggagePropagator,
    }
    return CompositePropagator([known[name]() for name in names])


def build_sampler(config: SamplerConfig | None) -> Sampler:
    if config is None:
        return ParentBased(ALWAYS_ON)

    kind = config.kind
    if kind == "always_on":
        return ALWAYS_ON
    if kind == "always_off":
        return ALWAYS_OFF
    if kind == "trace_id_ratio_based":
        return TraceIdRatioBased(config.trace_id_ratio_based.ratio)

    root = config.parent_based.root if config.parent_based else None
    return ParentBased(build_sampler(root) if root is not None else ALWAYS_ON)


def _otlp_endpoint(config: OtlpExporterConfig, signal: str) -> str | None:
    endpoint = config.endpoint
    if not endpoint or config.protocol == "grpc":
        return endpoint
    # http exporters expect the full per signal url
    if urlparse(endpoint).path in ("", "/"):
        return endpoint.rstrip("/") + _OTLP_HTTP_PATHS[signal]
    return endpoint


def _otlp_kwargs(config: OtlpExporterConfig, signal: str) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"timeout": config.timeout / 1000}
    endpoint = _otlp_endpoint(config, signal)
    if endpoint:
        kwargs["endpoint"] = endpoint
    headers = config.header_map()
    if headers:
        kwargs["headers"] = headers
    if config.protocol == "grpc" and config.insecure is not None:
        kwargs["insecure"] = config.insecure
    return kwargs


def build_span_exporter(config: SpanExporterConfig):
    if config.kind == "console":
        return ConsoleSpanExporter()
    if config.otlp.protocol == "grpc":
        return GrpcSpanExporter(**_otlp_kwargs(config.otlp, "traces"))
    return HttpSpanExporter(**_otlp_kwargs(config.otlp, "traces"))


def build_tracer_provider(config: TracerProviderConfig | None, resource: Resource) -> TracerProvider:
    config = config or TracerProviderConfig()
    provider = TracerProvider(resource=resource, sampler=build_sampler(config.sampler))

    for processor in config.processors:
        if processor.kind == "batch":
            batch = processor.batch
            provider.add_span_processor(
                BatchSpanProcessor(
                    build_span_exporter(batch.exporter),
                    max_queue_size=batch.max_queue_size,
                    schedule_delay_millis=batch.schedule_delay,
                    max_export_batch_size=batch.max_export_batch_size,
                    export_timeout_millis=batch.export_timeout,
                )
            )
        else:
            provider.add_span_processor(
                SimpleSpanProcessor(build_span_exporter(processor.simple.exporter))
            )

    return provider


def build_metric_exporter(config: PushMetricExporterConfig):
    if config.kind == "console":
        return ConsoleMetricExporter()
    if config.otlp.protocol == "grpc":
        return GrpcMetricExporter(**_otlp_kwargs(config.otlp, "metrics"))
    return HttpMetricExporter(**_otlp_kwargs(config.otlp, "metrics"))


def build_meter_provider(
    config: MeterProviderConfig | None,
    resource: Resource,
    servers: list[MetricsServer] | None = None,
) -> MeterProvider:
    config = config or MeterProviderConfig()
    servers = [] if servers is None else servers
    readers: list[MetricReader] = []

    try:
        for reader in config.readers:
            if reader.kind == "periodic":
                periodic = reader.periodic
                readers.append(
                    PeriodicExportingMetricReader(
                        build_metric_exporter(periodic.exporter),
                        export_interval_millis=periodic.interval,
                        export_timeout_millis=periodic.timeout,
                    )
                )
            else:
                readers.append(build_prometheus_reader(reader.pull.exporter.prometheus, servers))
    except Exception:
        # periodic readers start their export thread on construction
        shutdown_components([("metric_reader", r) for r in readers])
        raise

    return MeterProvider(resource=resource, metric_readers=readers)


def build_prometheus_reader(
    config: PrometheusExporterConfig, servers: list[MetricsServer]
) -> MetricReader:
    """pull reader, plus a scrape server when a port is configured"""
    if config.port is not None:
        server, thread = start_http_server(config.port, addr=config.host)
        servers.append(MetricsServer(server, thread))
    return PrometheusMetricReader()


def build_log_exporter(config: LogRecordExporterConfig):
    if config.kind == "console":
        return ConsoleLogRecordExporter()
    if config.otlp.protocol == "grpc":
        return GrpcLogExporter(**_otlp_kwargs(config.otlp, "logs"))
    return HttpLogExporter(**_otlp_kwargs(config.otlp, "logs"))


def build_logger_provider(config: LoggerProviderConfig | None, resource: Resource) -> LoggerProvider:
    config = config or LoggerProviderConfig()
    provider = LoggerProvider(resource=resource)

    for processor in config.processors:
        if processor.kind == "batch":
            batch = processor.batch
            provider.add_log_record_processor(
                BatchLogRecordProcessor(
                    build_log_exporter(batch.exporter),
                    schedule_delay_millis=batch.schedule_delay,
                    max_export_batch_size=batch.max_export_batch_size,
                    export_timeout_millis=batch.export_timeout,
                    max_queue_size=batch.max_queue_size,
                )
            )
        else:
            provider.add_log_record_processor(
                SimpleLogRecordProcessor(build_log_exporter(processor.simple.exporter))
            )

    return provider


def get_tracer(providers: Providers | None = None) -> trace.Tracer:
    """tracer from the bundle, or the api default when telemetry never ran"""
    if providers is None:
        return trace.get_tracer(SCOPE)
    return providers.tracer()


def get_meter(providers: Providers | None = None) -> metrics.Meter:
    """meter from the bundle, or the api default when telemetry never ran"""
    if providers is None:
        return metrics.get_meter(SCOPE)
    return providers.meter()


def get_telemetry_logger(providers: Providers | None = None):
    """structured logger from the bundle, or a development logger"""
    if providers is None:
        logger = development_logger()
        logger.info("no telemetry providers found, using development logger")
        return logger
    return providers.logger


def instrument_app(app, providers: Providers) -> None:
    """instrument fastapi app with opentelemetry"""
    if providers.tracer_provider is None:
        return

    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=providers.tracer_provider,
        meter_provider=providers.meter_provider,
    )
    providers.logger.info("fastapi instrumented with opentelemetry")
