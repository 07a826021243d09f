"""
Tests for runtime settings.

Tests for:
- RuntimeSettings defaults and validation
- settings_from_env mapping of execution-environment and FAASBRIDGE_* variables
"""

import pytest
from pydantic import ValidationError

from faasbridge.config import RuntimeSettings, settings_from_env

# =============================================================================
# RuntimeSettings Tests
# =============================================================================


class TestRuntimeSettings:
    """Tests for RuntimeSettings."""

    def test_defaults(self):
        settings = RuntimeSettings()
        assert settings.handler is None
        assert settings.serving is False
        assert settings.handler_attribute == "handler"
        assert settings.header_prefix == "vercel"
        assert settings.chunk_length_format == "decimal"
        assert settings.max_retries == 3
        assert settings.export_trace_env is False
        assert settings.log_level == "INFO"
        assert settings.log_format == "text"

    def test_serving_when_handler_set(self):
        assert RuntimeSettings(handler="api/index.py").serving is True

    def test_header_prefix_is_normalized(self):
        assert RuntimeSettings(header_prefix=" Edge ").header_prefix == "edge"

    @pytest.mark.parametrize("prefix", ["", "has space", "x_y", "a:b"])
    def test_rejects_bad_header_prefix(self, prefix):
        with pytest.raises(ValidationError):
            RuntimeSettings(header_prefix=prefix)

    def test_log_level_is_uppercased(self):
        assert RuntimeSettings(log_level="debug").log_level == "DEBUG"

    def test_rejects_unknown_log_level(self):
        with pytest.raises(ValidationError):
            RuntimeSettings(log_level="verbose")

    def test_rejects_unknown_chunk_format(self):
        with pytest.raises(ValidationError):
            RuntimeSettings(chunk_length_format="octal")

    def test_rejects_negative_retries(self):
        with pytest.raises(ValidationError):
            RuntimeSettings(max_retries=-1)

    def test_function_metadata(self):
        settings = RuntimeSettings(function_name="fn", memory_limit_in_mb="1024")
        metadata = settings.function_metadata()
        assert metadata["function_name"] == "fn"
        assert metadata["memory_limit_in_mb"] == "1024"
        assert metadata["function_version"] is None


# =============================================================================
# Environment Tests
# =============================================================================


class TestSettingsFromEnv:
    """Tests for environment mapping."""

    def test_empty_environment(self):
        settings = settings_from_env({})
        assert settings.runtime_api is None
        assert settings.handler is None
        assert settings.entrypoint is None

    def test_execution_environment_variables(self):
        settings = settings_from_env(
            {
                "AWS_LAMBDA_RUNTIME_API": "127.0.0.1:9001",
                "_HANDLER": "api/index.py",
                "ENTRYPOINT": "api/index.py",
                "LAMBDA_TASK_ROOT": "/var/task",
                "AWS_LAMBDA_FUNCTION_NAME": "fn",
                "AWS_LAMBDA_FUNCTION_VERSION": "$LATEST",
                "AWS_LAMBDA_FUNCTION_MEMORY_SIZE": "512",
                "AWS_LAMBDA_LOG_GROUP_NAME": "/aws/lambda/fn",
                "AWS_LAMBDA_LOG_STREAM_NAME": "2026/01/01/[$LATEST]abc",
            }
        )
        assert settings.runtime_api == "127.0.0.1:9001"
        assert settings.handler == "api/index.py"
        assert settings.task_root == "/var/task"
        assert settings.function_version == "$LATEST"
        assert settings.memory_limit_in_mb == "512"
        assert settings.log_stream_name == "2026/01/01/[$LATEST]abc"

    def test_empty_handler_means_priming(self):
        assert settings_from_env({"_HANDLER": ""}).serving is False

    def test_own_variables(self):
        settings = settings_from_env(
            {
                "FAASBRIDGE_HANDLER_ATTRIBUTE": "app",
                "FAASBRIDGE_HEADER_PREFIX": "edge",
                "FAASBRIDGE_CHUNK_LENGTH_FORMAT": "HEX",
                "FAASBRIDGE_RELAY_CONNECT_TIMEOUT": "2.5",
                "FAASBRIDGE_MAX_RETRIES": "0",
                "FAASBRIDGE_RETRY_DELAY": "1",
                "FAASBRIDGE_REQUEST_TIMEOUT": "5",
                "FAASBRIDGE_EXPORT_TRACE_ENV": "True",
                "FAASBRIDGE_LOG_LEVEL": "warning",
                "FAASBRIDGE_LOG_FORMAT": "JSON",
            }
        )
        assert settings.handler_attribute == "app"
        assert settings.header_prefix == "edge"
        assert settings.chunk_length_format == "hex"
        assert settings.relay_connect_timeout == 2.5
        assert settings.max_retries == 0
        assert settings.retry_delay == 1.0
        assert settings.request_timeout == 5.0
        assert settings.export_trace_env is True
        assert settings.log_level == "WARNING"
        assert settings.log_format == "json"

    def test_invalid_number(self):
        with pytest.raises(ValidationError):
            settings_from_env({"FAASBRIDGE_MAX_RETRIES": "many"})
