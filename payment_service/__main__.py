import argparse

import uvicorn

from .config import settings
from .exceptions import TelemetryConfigError
from .logger import configure_logging, get_logger
from .main import create_app
from .observability.telemetry import setup

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="payment-service", description="in-memory payment api with opentelemetry"
    )
    parser.add_argument(
        "--otel-config",
        default=settings.otel_config_file,
        help="opentelemetry yaml configuration (default: %(default)s)",
    )
    parser.add_argument("--host", default=settings.host, help="host to bind")
    parser.add_argument("--port", type=int, default=settings.port, help="port to bind")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    configure_logging()

    try:
        providers = setup(settings.service_version, args.otel_config)
    except TelemetryConfigError as e:
        logger.error("failed to set up telemetry", error=e.message, details=e.details)
        raise SystemExit(1) from e

    # module loggers forward to the otel logger provider from here on
    configure_logging(extra_processors=providers.log_processors)

    with providers.tracer().start_as_current_span("run"):
        providers.logger.info("starting payment service", config=args.otel_config)
        app = create_app(providers)
        providers.logger.info("server starting", host=args.host, port=args.port)

    uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
