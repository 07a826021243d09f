"""
Environment loading for faasbridge settings.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from functools import lru_cache

from .schemas import RuntimeSettings

ENV_PREFIX = "FAASBRIDGE_"


def settings_from_env(env: Mapping[str, str]) -> RuntimeSettings:
    """
    Build settings from an environment mapping.

    Raises:
        pydantic.ValidationError: If a FAASBRIDGE_* value is invalid
    """

    def own(name: str, default: str) -> str:
        return env.get(f"{ENV_PREFIX}{name}", default)

    return RuntimeSettings(
        # Execution environment
        runtime_api=env.get("AWS_LAMBDA_RUNTIME_API") or None,
        handler=env.get("_HANDLER") or None,
        entrypoint=env.get("ENTRYPOINT") or None,
        task_root=env.get("LAMBDA_TASK_ROOT") or None,
        function_name=env.get("AWS_LAMBDA_FUNCTION_NAME"),
        function_version=env.get("AWS_LAMBDA_FUNCTION_VERSION"),
        memory_limit_in_mb=env.get("AWS_LAMBDA_FUNCTION_MEMORY_SIZE"),
        log_group_name=env.get("AWS_LAMBDA_LOG_GROUP_NAME"),
        log_stream_name=env.get("AWS_LAMBDA_LOG_STREAM_NAME"),
        # Handler loading
        handler_attribute=own("HANDLER_ATTRIBUTE", "handler"),
        # Streaming relay
        header_prefix=own("HEADER_PREFIX", "vercel"),
        chunk_length_format=own("CHUNK_LENGTH_FORMAT", "decimal").lower(),
        relay_connect_timeout=own("RELAY_CONNECT_TIMEOUT", "10"),
        # Control plane
        max_retries=own("MAX_RETRIES", "3"),
        retry_delay=own("RETRY_DELAY", "0.5"),
        request_timeout=own("REQUEST_TIMEOUT", "30"),
        export_trace_env=own("EXPORT_TRACE_ENV", "false").lower() == "true",
        # Logging
        log_level=own("LOG_LEVEL", "INFO"),
        log_format=own("LOG_FORMAT", "text").lower(),
    )


@lru_cache()
def get_settings() -> RuntimeSettings:
    """
    Get runtime settings from the process environment.

    Read once; uses lru_cache for the singleton pattern.
    """
    return settings_from_env(os.environ)
