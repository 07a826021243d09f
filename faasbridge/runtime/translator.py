"""
Request Translator.

Pure conversions between control-plane envelopes and httpx objects:

    event JSON         --parse_event()----> InvocationEnvelope
    InvocationEnvelope --from_envelope()--> HandlerRequest
    httpx.Response     --to_envelope()----> ResponseEnvelope

Bodies always travel base64-encoded, whatever their content type.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import AsyncIterator

import httpx
from pydantic import ValidationError

from .context import InvocationContext
from .envelopes import HeaderValue, InvocationEnvelope, ResponseEnvelope
from .errors import RequestTranslationError
from .request import HandlerRequest

DEFAULT_FORWARDED_PROTO = "https"


# =============================================================================
# Envelope -> Request
# =============================================================================


def parse_event(raw: str) -> InvocationEnvelope:
    """
    Decode the control plane's event document.

    The event is `{"body": "<InvocationEnvelope as a JSON string>"}`.

    Raises:
        RequestTranslationError: If either JSON layer is malformed
    """
    try:
        event = json.loads(raw)
    except json.JSONDecodeError as e:
        raise RequestTranslationError(f"Invocation event is not JSON: {e}") from e

    if not isinstance(event, dict) or not isinstance(event.get("body"), str):
        raise RequestTranslationError("Invocation event has no string 'body' field")

    try:
        payload = json.loads(event["body"])
    except json.JSONDecodeError as e:
        raise RequestTranslationError(f"Invocation payload is not JSON: {e}") from e

    try:
        return InvocationEnvelope.model_validate(payload)
    except ValidationError as e:
        raise RequestTranslationError(f"Invalid invocation payload: {e}") from e


def from_envelope(
    envelope: InvocationEnvelope,
    context: InvocationContext | None = None,
) -> HandlerRequest:
    """
    Build the handler request for an invocation.

    The absolute URL is rebuilt from the x-forwarded-proto and
    x-forwarded-host headers plus the envelope path.

    Raises:
        RequestTranslationError: If the host header is missing or the
            URL/body cannot be decoded
    """
    host = _first_token(envelope.header("x-forwarded-host"))
    if not host:
        raise RequestTranslationError(
            "Missing x-forwarded-host header; cannot build an absolute request URL"
        )
    proto = _first_token(envelope.header("x-forwarded-proto")) or DEFAULT_FORWARDED_PROTO

    path = envelope.path or "/"
    if not path.startswith("/"):
        path = f"/{path}"

    try:
        url = httpx.URL(f"{proto}://{host}{path}")
    except httpx.InvalidURL as e:
        raise RequestTranslationError(f"Invalid request URL: {e}") from e

    extensions = {"invocation_context": context} if context is not None else {}

    return HandlerRequest(
        envelope.method,
        url,
        headers=_header_items(envelope.headers),
        content=decode_body(envelope.body),
        extensions=extensions,
    )


def decode_body(body: str | None) -> bytes | None:
    """Decode a base64 envelope body; empty or missing means no body."""
    if not body:
        return None
    try:
        return base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise RequestTranslationError(f"Request body is not valid base64: {e}") from e


def _header_items(headers: dict[str, HeaderValue]) -> list[tuple[str, str]]:
    items: list[tuple[str, str]] = []
    for name, value in headers.items():
        if isinstance(value, list):
            items.extend((name, v) for v in value)
        else:
            items.append((name, value))
    return items


def _first_token(value: str | None) -> str | None:
    # Proxies may append values: "https, http"
    if not value:
        return None
    return value.split(",", 1)[0].strip() or None


# =============================================================================
# Response -> Envelope
# =============================================================================


async def to_envelope(response: httpx.Response) -> ResponseEnvelope:
    """
    Convert a handler response into a ResponseEnvelope.

    Repeated headers become lists in emission order. The body is read in
    full and base64-encoded; an empty body encodes to "".
    """
    body = await read_response_body(response)
    return ResponseEnvelope(
        status_code=response.status_code,
        headers=fold_headers(response.headers),
        body=base64.b64encode(body).decode("ascii"),
    )


def fold_headers(headers: httpx.Headers) -> dict[str, HeaderValue]:
    """Fold headers into a name -> value (or list of values) map."""
    folded: dict[str, HeaderValue] = {}
    for name, value in headers.multi_items():
        existing = folded.get(name)
        if existing is None:
            folded[name] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            folded[name] = [existing, value]
    return folded


async def iter_response_body(response: httpx.Response) -> AsyncIterator[bytes]:
    """
    Iterate the raw body of a handler response.

    Works for responses built from bytes (already read), sync iterators and
    async iterators.
    """
    if response.is_stream_consumed:
        if response.content:
            yield response.content
        return

    if isinstance(response.stream, httpx.AsyncByteStream):
        async for chunk in response.aiter_raw():
            if chunk:
                yield chunk
    else:
        for chunk in response.iter_raw():
            if chunk:
                yield chunk


async def read_response_body(response: httpx.Response) -> bytes:
    """Read the full raw body of a handler response."""
    return b"".join([chunk async for chunk in iter_response_body(response)])
