"""
opentelemetry file configuration

loads the subset of the opentelemetry configuration file schema the service
supports. environment variables are expanded textually before yaml parsing.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..exceptions import TelemetryConfigError

SUPPORTED_FILE_FORMATS = ("0.1", "0.2", "0.3")

# $$ | ${NAME} | ${NAME:-default} | $NAME
_ENV_PATTERN = re.compile(
    r"\$(?:(?P<escaped>\$)"
    r"|\{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}"
    r"|(?P<bare>[A-Za-z_][A-Za-z0-9_]*))"
)


def expand_env(text: str, environ: Mapping[str, str] | None = None) -> str:
    """
    expand environment variable references in text

    unset variables expand to their default, or to an empty string when no
    default is given. ``$$`` produces a literal ``$``.
    """
    env = os.environ if environ is None else environ

    def _replace(match: re.Match) -> str:
        if match.group("escaped"):
            return "$"
        name = match.group("braced") or match.group("bare")
        value = env.get(name)
        default = match.group("default")
        if default is not None and not value:
            return default
        return value or ""

    return _ENV_PATTERN.sub(_replace, text)


def parse_key_value_list(raw: str | None) -> dict[str, str]:
    """parse a ``k=v,k2=v2`` list, skipping malformed entries"""
    pairs: dict[str, str] = {}
    if not raw:
        return pairs
    for item in raw.split(","):
        key, sep, value = item.partition("=")
        if sep and key.strip():
            pairs[key.strip()] = value.strip()
    return pairs


class _OneOf(BaseModel):
    """union block where exactly one key must be present"""

    @model_validator(mode="after")
    def _exactly_one(self):
        if len(self.model_fields_set) != 1:
            names = ", ".join(type(self).model_fields)
            raise ValueError(f"exactly one of {names} must be set")
        return self

    @property
    def kind(self) -> str:
        return next(iter(self.model_fields_set))


_BOOL_STRINGS = {"true": True, "false": False}


def _coerce_attribute(value: Any, kind: str) -> Any:
    if kind == "string":
        return str(value)
    if kind == "bool":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _BOOL_STRINGS:
            return _BOOL_STRINGS[value.strip().lower()]
        raise ValueError(f"cannot use {value!r} as bool")
    if isinstance(value, bool):
        raise ValueError(f"cannot use {value!r} as {kind}")
    try:
        if kind == "int":
            if isinstance(value, float) and not value.is_integer():
                raise ValueError
            return int(value)
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"cannot use {value!r} as {kind}") from None


class AttributeConfig(BaseModel):
    name: str
    value: Any = None
    type: Literal["string", "bool", "int", "double"] | None = None

    @model_validator(mode="after")
    def _typed(self):
        # values arrive as raw yaml scalars
        if self.type is not None and self.value is not None:
            self.value = _coerce_attribute(self.value, self.type)
        return self

    def typed_value(self) -> Any:
        return self.value


class HeaderConfig(BaseModel):
    name: str
    value: str | None = None


class ResourceConfig(BaseModel):
    attributes: list[AttributeConfig] = Field(default_factory=list)
    attributes_list: str | None = None
    schema_url: str | None = None

    def as_attributes(self) -> dict[str, Any]:
        """merged attributes, explicit entries win over the list form"""
        merged: dict[str, Any] = dict(parse_key_value_list(self.attributes_list))
        for attribute in self.attributes:
            if attribute.value is not None:
                merged[attribute.name] = attribute.typed_value()
        return merged


class OtlpExporterConfig(BaseModel):
    protocol: Literal["grpc", "http/protobuf"] = "grpc"
    endpoint: str | None = None
    insecure: bool | None = None
    headers: list[HeaderConfig] = Field(default_factory=list)
    headers_list: str | None = None
    timeout: int = Field(default=10000, ge=0, description="export timeout in milliseconds")

    def header_map(self) -> dict[str, str]:
        merged = parse_key_value_list(self.headers_list)
        for header in self.headers:
            if header.value is not None:
                merged[header.name] = header.value
        return merged


class PrometheusExporterConfig(BaseModel):
    host: str = "localhost"
    port: int | None = Field(default=None, ge=1, le=65535)


class SpanExporterConfig(_OneOf):
    otlp: OtlpExporterConfig | None = None
    console: dict | None = None


class BatchSpanProcessorConfig(BaseModel):
    schedule_delay: int = Field(default=5000, ge=0)
    export_timeout: int = Field(default=30000, ge=0)
    max_queue_size: int = Field(default=2048, gt=0)
    max_export_batch_size: int = Field(default=512, gt=0)
    exporter: SpanExporterConfig


class SimpleSpanProcessorConfig(BaseModel):
    exporter: SpanExporterConfig


class SpanProcessorConfig(_OneOf):
    batch: BatchSpanProcessorConfig | None = None
    simple: SimpleSpanProcessorConfig | None = None


class TraceIdRatioBasedConfig(BaseModel):
    ratio: float = Field(default=1.0, ge=0.0, le=1.0)


class ParentBasedConfig(BaseModel):
    root: "SamplerConfig | None" = None


class SamplerConfig(_OneOf):
    always_on: dict | None = None
    always_off: dict | None = None
    trace_id_ratio_based: TraceIdRatioBasedConfig | None = None
    parent_based: ParentBasedConfig | None = None


ParentBasedConfig.model_rebuild()


class TracerProviderConfig(BaseModel):
    processors: list[SpanProcessorConfig] = Field(default_factory=list)
    sampler: SamplerConfig | None = None


class PushMetricExporterConfig(_OneOf):
    otlp: OtlpExporterConfig | None = None
    console: dict | None = None


class PeriodicMetricReaderConfig(BaseModel):
    interval: int = Field(default=60000, gt=0)
    timeout: int = Field(default=30000, gt=0)
    exporter: PushMetricExporterConfig


class PullMetricExporterConfig(_OneOf):
    prometheus: PrometheusExporterConfig | None = None


class PullMetricReaderConfig(BaseModel):
    exporter: PullMetricExporterConfig


class MetricReaderConfig(_OneOf):
    periodic: PeriodicMetricReaderConfig | None = None
    pull: PullMetricReaderConfig | None = None


class MeterProviderConfig(BaseModel):
    readers: list[MetricReaderConfig] = Field(default_factory=list)


class LogRecordExporterConfig(_OneOf):
    otlp: OtlpExporterConfig | None = None
    console: dict | None = None


class BatchLogRecordProcessorConfig(BaseModel):
    schedule_delay: int = Field(default=1000, ge=0)
    export_timeout: int = Field(default=30000, ge=0)
    max_queue_size: int = Field(default=2048, gt=0)
    max_export_batch_size: int = Field(default=512, gt=0)
    exporter: LogRecordExporterConfig


class SimpleLogRecordProcessorConfig(BaseModel):
    exporter: LogRecordExporterConfig


class LogRecordProcessorConfig(_OneOf):
    batch: BatchLogRecordProcessorConfig | None = None
    simple: SimpleLogRecordProcessorConfig | None = None


class LoggerProviderConfig(BaseModel):
    processors: list[LogRecordProcessorConfig] = Field(default_factory=list)


class PropagatorConfig(BaseModel):
    composite: list[Literal["tracecontext", "baggage"]] = Field(
        default_factory=lambda: ["tracecontext", "baggage"]
    )


class OpenTelemetryConfiguration(BaseModel):
    """root of the opentelemetry configuration file"""

    file_format: str
    disabled: bool = False
    resource: ResourceConfig | None = None
    propagator: PropagatorConfig | None = None
    tracer_provider: TracerProviderConfig | None = None
    meter_provider: MeterProviderConfig | None = None
    logger_provider: LoggerProviderConfig | None = None

    @field_validator("file_format", mode="before")
    @classmethod
    def _file_format_as_str(cls, value: Any) -> Any:
        # unquoted yaml versions arrive as floats
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("file_format")
    @classmethod
    def _supported_file_format(cls, value: str) -> str:
        if value not in SUPPORTED_FILE_FORMATS:
            raise ValueError(
                f"unsupported file_format {value!r}, expected one of {SUPPORTED_FILE_FORMATS}"
            )
        return value


def parse_yaml(data: str | bytes) -> OpenTelemetryConfiguration:
    """parse an already expanded yaml document into a configuration"""
    try:
        document = yaml.safe_load(data)
    except yaml.YAMLError as e:
        raise TelemetryConfigError("invalid telemetry yaml", {"error": str(e)}) from e

    if not isinstance(document, dict):
        raise TelemetryConfigError(
            "telemetry configuration must be a mapping",
            {"type": type(document).__name__},
        )

    try:
        return OpenTelemetryConfiguration.model_validate(document)
    except ValidationError as e:
        raise TelemetryConfigError(
            "invalid telemetry configuration",
            {"errors": e.errors(include_url=False, include_context=False)},
        ) from e


def read_config(cfg_file: str | os.PathLike) -> OpenTelemetryConfiguration | None:
    """read, expand and parse a configuration file; None when the file is missing"""
    try:
        raw = Path(cfg_file).read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise TelemetryConfigError(
            "cannot read telemetry configuration", {"path": str(cfg_file), "error": str(e)}
        ) from e

    return parse_yaml(expand_env(raw))
