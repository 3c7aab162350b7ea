import pytest

from postqueue.core.config import Settings
from postqueue.core.telemetry import parse_exporter_headers, resolve_exporter_endpoint


def test_parse_exporter_headers_skips_malformed_items() -> None:
    assert parse_exporter_headers("Authorization=Basic abc, x-team = news ,broken,=empty") == {
        "Authorization": "Basic abc",
        "x-team": "news",
    }
    assert parse_exporter_headers(None) == {}


def test_exporter_endpoint_prefers_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://collector:4318")

    assert resolve_exporter_endpoint(Settings(otel_exporter_otlp_endpoint="http://local:4318")) == "http://local:4318"
    assert resolve_exporter_endpoint(Settings()) == "http://collector:4318"
