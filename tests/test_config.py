import logging

import pytest

from openapi_mcp_adapter.config import DEFAULT_HEADERS, ConfigError, Settings
from openapi_mcp_adapter.logging import redact_payload


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("BASE_URL", "HEADERS", "OPENAPI_SPEC", "ADAPTER_TRANSPORT"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings()
        assert settings.adapter_transport == "stdio"
        assert settings.adapter_request_timeout_seconds == 30
        assert settings.adapter_strict_enums is False

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("BASE_URL", "https://api.example.com")
        monkeypatch.setenv("OPENAPI_SPEC", "./openapi.yaml")
        monkeypatch.setenv("ADAPTER_STRICT_ENUMS", "true")
        settings = Settings()
        assert settings.openapi_spec == "./openapi.yaml"
        assert settings.adapter_strict_enums is True
        assert settings.server_config().base_url == "https://api.example.com"

    def test_base_url_required(self):
        with pytest.raises(ConfigError, match="BASE_URL"):
            Settings(base_url="").server_config()


class TestHeaders:
    def test_defaults_without_custom_headers(self):
        assert Settings(base_url="x", headers=None).parsed_headers() == DEFAULT_HEADERS

    def test_custom_headers_merge_over_defaults(self):
        settings = Settings(
            base_url="x", headers='{"Authorization": "Bearer t", "Content-Type": "text/plain"}'
        )
        headers = settings.server_config().headers
        assert headers["Authorization"] == "Bearer t"
        assert headers["Content-Type"] == "text/plain"
        assert headers["User-Agent"] == "openapi-mcp-adapter"

    @pytest.mark.parametrize("raw", ["not json", '["a"]'])
    def test_invalid_headers_keep_defaults(self, raw, caplog):
        with caplog.at_level(logging.ERROR):
            headers = Settings(base_url="x", headers=raw).parsed_headers()
        assert headers == DEFAULT_HEADERS
        assert "Invalid HEADERS format" in caplog.text


def test_redact_payload():
    payload = {
        "pathParameters": {"id": "1"},
        "headerParameters": {"X-Api-Key": "k", "Authorization": "Bearer t"},
        "items": [{"password": "p", "name": "n"}],
    }
    assert redact_payload(payload) == {
        "pathParameters": {"id": "1"},
        "headerParameters": {"X-Api-Key": "***REDACTED***", "Authorization": "***REDACTED***"},
        "items": [{"password": "***REDACTED***", "name": "n"}],
    }
