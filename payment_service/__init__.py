"""in-memory payment service instrumented with opentelemetry"""

__version__ = "1.0.0"
