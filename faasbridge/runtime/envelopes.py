"""
Wire schemas for the invocation runtime API.

These pydantic models describe the JSON documents exchanged with the
control plane:

- InvocationEnvelope: one inbound HTTP request, serialized by the control plane
- StreamingDirective: optional side-channel instructions carried in the payload
- ResponseEnvelope: the handler's response, returned inline
- ErrorEnvelope: an exception raised while serving an invocation

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

import traceback
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

HeaderValue = str | list[str]


# =============================================================================
# Inbound
# =============================================================================


class StreamingDirective(BaseModel):
    """Instructions for relaying a response body over a raw side channel."""

    model_config = ConfigDict(frozen=True)

    callout_url: str = Field(..., description="Address the relay connects to")
    stream_id: str = Field(..., description="Logical stream carried by the connection")
    cipher_algorithm: str = Field(..., description="Cipher name, e.g. aes-256-cbc")
    cipher_key: str = Field(..., description="Base64 cipher key")
    cipher_iv: str = Field(..., description="Base64 initialization vector")


class InvocationEnvelope(BaseModel):
    """
    One inbound HTTP request as delivered by the control plane.

    The same JSON object may also carry the `responseCallback*` keys; when
    all of them are present the response is streamed through the relay
    instead of being returned inline.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    method: str = "GET"
    path: str = "/"
    headers: dict[str, HeaderValue] = Field(default_factory=dict)
    body: str | None = None

    response_callback_url: str | None = Field(None, alias="responseCallbackUrl")
    response_callback_stream: str | None = Field(None, alias="responseCallbackStream")
    response_callback_cipher: str | None = Field(None, alias="responseCallbackCipher")
    response_callback_cipher_key: str | None = Field(None, alias="responseCallbackCipherKey")
    response_callback_cipher_iv: str | None = Field(None, alias="responseCallbackCipherIV")

    @field_validator("headers", mode="before")
    @classmethod
    def _drop_unsupported_header_values(cls, value: Any) -> Any:
        # Only strings and lists of strings map onto HTTP header values
        if not isinstance(value, dict):
            return value
        cleaned: dict[str, HeaderValue] = {}
        for name, item in value.items():
            if isinstance(item, str):
                cleaned[name] = item
            elif isinstance(item, list) and all(isinstance(v, str) for v in item):
                cleaned[name] = item
        return cleaned

    @property
    def streaming(self) -> StreamingDirective | None:
        """The streaming directive, or None when the response goes inline."""
        fields = (
            self.response_callback_url,
            self.response_callback_stream,
            self.response_callback_cipher,
            self.response_callback_cipher_key,
            self.response_callback_cipher_iv,
        )
        if any(f is None for f in fields):
            return None
        return StreamingDirective(
            callout_url=self.response_callback_url,
            stream_id=self.response_callback_stream,
            cipher_algorithm=self.response_callback_cipher,
            cipher_key=self.response_callback_cipher_key,
            cipher_iv=self.response_callback_cipher_iv,
        )

    def header(self, name: str) -> str | None:
        """Case-insensitive lookup of the first value of a header."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                if isinstance(value, list):
                    return value[0] if value else None
                return value
        return None


# =============================================================================
# Outbound
# =============================================================================


class ResponseEnvelope(BaseModel):
    """A handler response in the shape the control plane expects."""

    model_config = ConfigDict(populate_by_name=True)

    status_code: int = Field(..., alias="statusCode")
    headers: dict[str, HeaderValue] = Field(default_factory=dict)
    encoding: Literal["base64"] = "base64"
    body: str = ""

    @classmethod
    def placeholder(cls) -> ResponseEnvelope:
        """Envelope posted after the real response left through the relay."""
        return cls(status_code=200)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ErrorEnvelope(BaseModel):
    """An exception raised while serving an invocation."""

    model_config = ConfigDict(populate_by_name=True)

    error_type: str = Field(..., alias="errorType")
    error_message: str = Field("", alias="errorMessage")
    stack_trace: list[str] = Field(default_factory=list, alias="stackTrace")

    @classmethod
    def from_exception(cls, exc: BaseException) -> ErrorEnvelope:
        """
        Build an envelope from an exception.

        The stack trace holds the traceback frame lines only; the trailing
        "Type: message" line is carried by error_type/error_message instead.
        """
        stack: list[str] = []
        for entry in traceback.format_tb(exc.__traceback__):
            stack.extend(entry.rstrip("\n").split("\n"))
        return cls(
            error_type=type(exc).__name__,
            error_message=str(exc),
            stack_trace=stack,
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
