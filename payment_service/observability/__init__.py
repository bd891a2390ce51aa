"""observability layer: metrics, tracing, logging"""

from .config import OpenTelemetryConfiguration, expand_env, parse_yaml, read_config
from .metrics import PaymentMetrics, metrics_endpoint
from .telemetry import (
    SCOPE,
    Providers,
    get_meter,
    get_telemetry_logger,
    get_tracer,
    instrument_app,
    providers_from_config,
    setup,
)

__all__ = [
    "OpenTelemetryConfiguration",
    "expand_env",
    "parse_yaml",
    "read_config",
    "PaymentMetrics",
    "metrics_endpoint",
    "SCOPE",
    "Providers",
    "get_meter",
    "get_telemetry_logger",
    "get_tracer",
    "instrument_app",
    "providers_from_config",
    "setup",
]
