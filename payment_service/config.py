from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """application settings with environment variables support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # server
    host: str = Field(default="0.0.0.0", description="host to bind")
    port: int = Field(default=8080, ge=1, le=65535, description="port to bind")

    # payments
    default_currency: str = Field(
        default="USD", description="currency used when a payment omits one"
    )

    # logging
    log_level: str = Field(default="INFO", description="logging level")
    log_format: str = Field(default="json", description="log format: json or console")

    # telemetry
    service_name: str = Field(
        default="payment-service", description="instrumentation scope and service name"
    )
    service_version: str = Field(default="1.0.0", description="service version for resources")
    otel_config_file: str = Field(
        default="local/otel.yaml", description="path to the opentelemetry yaml configuration"
    )

    # traffic generator
    traffic_base_url: str = Field(
        default="http://localhost:8080", description="payment service base url"
    )
    traffic_interval: float = Field(default=0.5, gt=0, description="seconds between requests")
    traffic_post_ratio: float = Field(
        default=0.8, ge=0.0, le=1.0, description="share of requests that create payments"
    )
    traffic_timeout: float = Field(default=10.0, gt=0, description="http client timeout")
    traffic_workers: int = Field(default=16, ge=1, description="concurrent in-flight requests")


settings = Settings()
