"""
Configuration Schemas for faasbridge.

Pydantic model for the settings the runtime reads from its environment
once, at process start.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class RuntimeSettings(BaseModel):
    """
    Runtime settings model.

    The first group mirrors variables set by the execution environment; the
    second group is faasbridge's own tuning, read from FAASBRIDGE_* variables.
    """

    # Execution environment
    runtime_api: str | None = Field(None, description="host:port of the invocation runtime API")
    handler: str | None = Field(None, description="Handler locator; unset means priming mode")
    entrypoint: str | None = Field(None, description="Module imported in priming mode")
    task_root: str | None = Field(None, description="Base directory for relative handler paths")

    function_name: str | None = None
    function_version: str | None = None
    memory_limit_in_mb: str | None = None
    log_group_name: str | None = None
    log_stream_name: str | None = None

    # Handler loading
    handler_attribute: str = Field("handler", description="Default handler attribute name")

    # Streaming relay
    header_prefix: str = Field("vercel", description="Prefix of x-{prefix}-* relay headers")
    chunk_length_format: Literal["decimal", "hex"] = "decimal"
    relay_connect_timeout: float = Field(10.0, gt=0)

    # Control plane
    max_retries: int = Field(3, ge=0)
    retry_delay: float = Field(0.5, ge=0)
    request_timeout: float = Field(30.0, gt=0)
    export_trace_env: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"

    @field_validator("header_prefix")
    @classmethod
    def _validate_prefix(cls, value: str) -> str:
        value = value.strip().lower()
        if not value or not all(c.isalnum() or c == "-" for c in value):
            raise ValueError(f"Invalid header prefix: {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {value!r}")
        return value

    @property
    def serving(self) -> bool:
        """True when a handler is configured, i.e. the loop should run."""
        return bool(self.handler)

    def function_metadata(self) -> dict[str, Any]:
        """Fields copied into every InvocationContext."""
        return {
            "function_name": self.function_name,
            "function_version": self.function_version,
            "memory_limit_in_mb": self.memory_limit_in_mb,
            "log_group_name": self.log_group_name,
            "log_stream_name": self.log_stream_name,
        }
