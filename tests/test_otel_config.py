"""
Tests for the OpenTelemetry file configuration

Tests cover:
- expand_env (plain, braced, defaults, escapes, unset variables)
- parse_yaml (valid documents, schema and yaml errors)
- one-of exporter / processor blocks
- resource attributes (typed coercion) and otlp headers
- read_config (missing files, env expansion)
"""

import pytest

from payment_service.exceptions import TelemetryConfigError
from payment_service.observability.config import (
    expand_env,
    parse_key_value_list,
    parse_yaml,
    read_config,
)

FULL_CONFIG = """
file_format: "0.3"
resource:
  attributes:
    - name: service.name
      value: payments
    - name: replicas
      value: "3"
      type: int
  attributes_list: team=checkout,service.name=ignored
tracer_provider:
  sampler:
    parent_based:
      root:
        trace_id_ratio_based:
          ratio: 0.5
  processors:
    - batch:
        schedule_delay: 200
        exporter:
          otlp:
            protocol: http/protobuf
            endpoint: http://collector:4318
            headers:
              - name: api-key
                value: secret
            headers_list: tenant=acme
    - simple:
        exporter:
          console:
meter_provider:
  readers:
    - periodic:
        interval: 1000
        exporter:
          console: {}
    - pull:
        exporter:
          prometheus:
            port: 9464
logger_provider:
  processors:
    - simple:
        exporter:
          console:
"""


class TestExpandEnv:
    """Test expand_env function"""

    def test_braced_and_bare(self):
        env = {"HOST": "collector", "PORT": "4317"}

        assert expand_env("http://${HOST}:$PORT", env) == "http://collector:4317"

    def test_unset_expands_to_empty(self):
        assert expand_env("endpoint: ${MISSING}/$ALSO_MISSING", {}) == "endpoint: /"

    def test_default_used_when_unset_or_empty(self):
        assert expand_env("${MISSING:-fallback}", {}) == "fallback"
        assert expand_env("${EMPTY:-fallback}", {"EMPTY": ""}) == "fallback"
        assert expand_env("${SET:-fallback}", {"SET": "value"}) == "value"

    def test_escaped_dollar(self):
        assert expand_env("price: $$5", {}) == "price: $5"

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("OTEL_TEST_ENDPOINT", "http://otel:4317")

        assert expand_env("${OTEL_TEST_ENDPOINT}") == "http://otel:4317"

    def test_non_variable_dollar_left_alone(self):
        assert expand_env("cost $1 and ${not valid}", {}) == "cost $1 and ${not valid}"


class TestParseKeyValueList:
    def test_parses_pairs(self):
        assert parse_key_value_list("a=1, b = 2,broken,=x") == {"a": "1", "b": "2"}

    def test_empty(self):
        assert parse_key_value_list(None) == {}


class TestParseYaml:
    """Test parse_yaml function"""

    def test_full_config(self):
        config = parse_yaml(FULL_CONFIG)

        assert config.file_format == "0.3"
        assert config.disabled is False

        processors = config.tracer_provider.processors
        assert [p.kind for p in processors] == ["batch", "simple"]
        assert processors[0].batch.schedule_delay == 200
        assert processors[0].batch.exporter.kind == "otlp"
        assert processors[1].simple.exporter.kind == "console"

        sampler = config.tracer_provider.sampler
        assert sampler.kind == "parent_based"
        assert sampler.parent_based.root.trace_id_ratio_based.ratio == 0.5

        readers = config.meter_provider.readers
        assert [r.kind for r in readers] == ["periodic", "pull"]
        assert readers[1].pull.exporter.prometheus.port == 9464

        assert config.logger_provider.processors[0].simple.exporter.kind == "console"

    def test_resource_attributes_merge(self):
        config = parse_yaml(FULL_CONFIG)

        attributes = config.resource.as_attributes()

        assert attributes["service.name"] == "payments"
        assert attributes["team"] == "checkout"
        assert attributes["replicas"] == 3

    def test_otlp_headers_merge(self):
        config = parse_yaml(FULL_CONFIG)
        otlp = config.tracer_provider.processors[0].batch.exporter.otlp

        assert otlp.protocol == "http/protobuf"
        assert otlp.header_map() == {"api-key": "secret", "tenant": "acme"}

    def test_unquoted_file_format(self):
        config = parse_yaml("file_format: 0.3\n")

        assert config.file_format == "0.3"

    def test_minimal_config(self):
        config = parse_yaml('file_format: "0.3"\ndisabled: true\n')

        assert config.disabled is True
        assert config.tracer_provider is None

    def test_unsupported_file_format(self):
        with pytest.raises(TelemetryConfigError):
            parse_yaml('file_format: "1.0"\n')

    def test_missing_file_format(self):
        with pytest.raises(TelemetryConfigError) as exc_info:
            parse_yaml("disabled: false\n")

        assert exc_info.value.details["errors"]

    def test_malformed_yaml(self):
        with pytest.raises(TelemetryConfigError) as exc_info:
            parse_yaml("file_format: [unclosed\n")

        assert exc_info.value.message == "invalid telemetry yaml"

    @pytest.mark.parametrize("document", ["- a\n- b\n", "just a string\n", ""])
    def test_non_mapping_document(self, document):
        with pytest.raises(TelemetryConfigError):
            parse_yaml(document)

    def test_exporter_with_two_kinds(self):
        document = """
file_format: "0.3"
tracer_provider:
  processors:
    - simple:
        exporter:
          console:
          otlp:
            endpoint: http://localhost:4317
"""
        with pytest.raises(TelemetryConfigError):
            parse_yaml(document)

    def test_unsupported_exporter(self):
        document = """
file_format: "0.3"
tracer_provider:
  processors:
    - batch:
        exporter:
          zipkin:
            endpoint: http://localhost:9411
"""
        with pytest.raises(TelemetryConfigError):
            parse_yaml(document)

    def test_invalid_ratio(self):
        document = """
file_format: "0.3"
tracer_provider:
  sampler:
    trace_id_ratio_based:
      ratio: 2
"""
        with pytest.raises(TelemetryConfigError):
            parse_yaml(document)


def resource_document(value, kind):
    return f"""
file_format: "0.3"
resource:
  attributes:
    - name: attr
      value: {value}
      type: {kind}
"""


class TestTypedAttributes:
    """Test typed resource attribute coercion at parse time"""

    @pytest.mark.parametrize(
        "value, kind, expected",
        [
            ('"false"', "bool", False),
            ('"TRUE"', "bool", True),
            ("false", "bool", False),
            ('"7"', "int", 7),
            ("7.0", "int", 7),
            ('"2.5"', "double", 2.5),
            ("42", "string", "42"),
        ],
    )
    def test_coerced(self, value, kind, expected):
        config = parse_yaml(resource_document(value, kind))

        coerced = config.resource.as_attributes()["attr"]
        assert coerced == expected
        assert type(coerced) is type(expected)

    @pytest.mark.parametrize(
        "value, kind",
        [
            ("abc", "int"),
            ("7.5", "int"),
            ("true", "int"),
            ("abc", "double"),
            ('"yes"', "bool"),
            ("1", "bool"),
        ],
    )
    def test_invalid_value_is_config_error(self, value, kind):
        with pytest.raises(TelemetryConfigError) as exc_info:
            parse_yaml(resource_document(value, kind))

        assert exc_info.value.message == "invalid telemetry configuration"


class TestReadConfig:
    """Test read_config function"""

    def test_missing_file_returns_none(self, tmp_path):
        assert read_config(tmp_path / "missing.yaml") is None

    def test_expands_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OTEL_TEST_COLLECTOR", "http://collector:4317")
        path = tmp_path / "otel.yaml"
        path.write_text(
            'file_format: "0.3"\n'
            "tracer_provider:\n"
            "  processors:\n"
            "    - batch:\n"
            "        exporter:\n"
            "          otlp:\n"
            "            endpoint: ${OTEL_TEST_COLLECTOR}\n",
            encoding="utf-8",
        )

        config = read_config(path)

        otlp = config.tracer_provider.processors[0].batch.exporter.otlp
        assert otlp.endpoint == "http://collector:4317"

    def test_directory_is_a_config_error(self, tmp_path):
        with pytest.raises(TelemetryConfigError):
            read_config(tmp_path)
