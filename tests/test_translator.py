"""
Tests for the request translator.

Tests for:
- parse_event: the two-layer event document
- from_envelope: URL reconstruction, headers, body decoding
- to_envelope: status, folded headers, base64 body
- iter_response_body over bytes, sync and async streams
"""

import base64

import httpx
import pytest

from faasbridge.runtime import (
    HandlerRequest,
    InvocationContext,
    InvocationEnvelope,
    RequestTranslationError,
    fold_headers,
    from_envelope,
    parse_event,
    to_envelope,
)
from faasbridge.runtime.translator import decode_body, iter_response_body, read_response_body

# =============================================================================
# parse_event Tests
# =============================================================================


class TestParseEvent:
    """Tests for decoding the control plane's event document."""

    def test_parses_nested_payload(self, make_payload, make_event):
        event = make_event(make_payload("POST", "/api/items", body=b"hello"))

        envelope = parse_event(event)

        assert envelope.method == "POST"
        assert envelope.path == "/api/items"
        assert envelope.body == base64.b64encode(b"hello").decode()

    def test_rejects_non_json(self):
        with pytest.raises(RequestTranslationError):
            parse_event("not json")

    def test_rejects_missing_body_field(self):
        with pytest.raises(RequestTranslationError):
            parse_event('{"payload": "{}"}')

    def test_rejects_non_json_payload(self):
        with pytest.raises(RequestTranslationError):
            parse_event('{"body": "not json"}')

    def test_rejects_invalid_payload(self):
        with pytest.raises(RequestTranslationError):
            parse_event('{"body": "[1, 2]"}')

    def test_translation_errors_are_recoverable(self):
        with pytest.raises(RequestTranslationError) as exc_info:
            parse_event("not json")
        assert exc_info.value.fatal is False


# =============================================================================
# from_envelope Tests
# =============================================================================


class TestFromEnvelope:
    """Tests for building the handler request."""

    def test_builds_absolute_url(self, make_payload):
        envelope = InvocationEnvelope.model_validate(
            make_payload("GET", "/api/users?id=1", host="app.example.com", proto="https")
        )

        request = from_envelope(envelope)

        assert isinstance(request, HandlerRequest)
        assert isinstance(request, httpx.Request)
        assert str(request.url) == "https://app.example.com/api/users?id=1"
        assert request.url.params["id"] == "1"
        assert request.method == "GET"

    def test_uses_first_forwarded_token(self, make_payload):
        envelope = InvocationEnvelope.model_validate(
            make_payload("GET", "/", host="a.example.com, b.example.com", proto="http, https")
        )

        request = from_envelope(envelope)

        assert request.url.scheme == "http"
        assert request.url.host == "a.example.com"

    def test_defaults_proto_to_https(self, make_payload):
        envelope = InvocationEnvelope.model_validate(make_payload("GET", "/", proto=None))
        assert from_envelope(envelope).url.scheme == "https"

    def test_adds_leading_slash(self, make_payload):
        envelope = InvocationEnvelope.model_validate(make_payload("GET", "health"))
        assert from_envelope(envelope).url.path == "/health"

    def test_missing_host_is_an_error(self, make_payload):
        envelope = InvocationEnvelope.model_validate(make_payload("GET", "/", host=None))
        with pytest.raises(RequestTranslationError, match="x-forwarded-host"):
            from_envelope(envelope)

    def test_repeated_headers_are_preserved(self, make_payload):
        envelope = InvocationEnvelope.model_validate(
            make_payload("GET", "/", headers={"x-tag": ["a", "b"], "accept": "text/plain"})
        )

        request = from_envelope(envelope)

        assert request.headers.get_list("x-tag") == ["a", "b"]
        assert request.headers["accept"] == "text/plain"

    def test_decodes_body(self, make_payload):
        envelope = InvocationEnvelope.model_validate(
            make_payload("POST", "/", body=b"\x00\x01binary")
        )
        assert from_envelope(envelope).content == b"\x00\x01binary"

    def test_empty_body(self, make_payload):
        envelope = InvocationEnvelope.model_validate(make_payload("GET", "/"))
        assert from_envelope(envelope).content == b""

    def test_attaches_context(self, make_payload):
        envelope = InvocationEnvelope.model_validate(make_payload())
        context = InvocationContext(request_id="req-1")

        request = from_envelope(envelope, context)

        assert request.context is context
        assert request.extensions["invocation_context"] is context

    def test_each_request_gets_a_fresh_sink(self, make_payload):
        envelope = InvocationEnvelope.model_validate(make_payload())
        assert from_envelope(envelope).sink is not from_envelope(envelope).sink


class TestDecodeBody:
    """Tests for base64 body decoding."""

    def test_missing_body(self):
        assert decode_body(None) is None
        assert decode_body("") is None

    def test_invalid_base64(self):
        with pytest.raises(RequestTranslationError):
            decode_body("not base64!!")


# =============================================================================
# to_envelope Tests
# =============================================================================


class TestToEnvelope:
    """Tests for converting handler responses."""

    @pytest.mark.asyncio
    async def test_status_headers_and_body(self):
        response = httpx.Response(
            201,
            headers=[("content-type", "text/plain"), ("x-tag", "a"), ("x-tag", "b")],
            content=b"created",
        )

        envelope = await to_envelope(response)

        assert envelope.status_code == 201
        assert envelope.headers["content-type"] == "text/plain"
        assert envelope.headers["x-tag"] == ["a", "b"]
        assert envelope.encoding == "base64"
        assert base64.b64decode(envelope.body) == b"created"

    @pytest.mark.asyncio
    async def test_empty_body_encodes_to_empty_string(self):
        envelope = await to_envelope(httpx.Response(204))

        assert envelope.body == ""
        assert envelope.to_wire()["encoding"] == "base64"

    @pytest.mark.asyncio
    async def test_round_trips_request_body(self, make_payload):
        payload = make_payload("POST", "/", body=b"echo me")
        request = from_envelope(InvocationEnvelope.model_validate(payload))

        envelope = await to_envelope(httpx.Response(200, content=request.content))

        assert envelope.body == payload["body"]

    @pytest.mark.asyncio
    async def test_reads_async_stream(self):
        async def body():
            yield b"hello "
            yield b""
            yield b"world"

        envelope = await to_envelope(httpx.Response(200, content=body()))

        assert base64.b64decode(envelope.body) == b"hello world"


class TestFoldHeaders:
    """Tests for header folding."""

    def test_single_values_stay_strings(self):
        assert fold_headers(httpx.Headers({"a": "1", "b": "2"})) == {"a": "1", "b": "2"}

    def test_repeats_become_lists_in_order(self):
        headers = httpx.Headers([("set-cookie", "a=1"), ("x", "y"), ("set-cookie", "b=2")])
        assert fold_headers(headers) == {"set-cookie": ["a=1", "b=2"], "x": "y"}

    def test_names_are_lowercased(self):
        assert fold_headers(httpx.Headers({"X-Custom": "v"})) == {"x-custom": "v"}


class TestIterResponseBody:
    """Tests for body iteration across stream kinds."""

    @pytest.mark.asyncio
    async def test_bytes_content(self):
        chunks = [c async for c in iter_response_body(httpx.Response(200, content=b"abc"))]
        assert chunks == [b"abc"]

    @pytest.mark.asyncio
    async def test_sync_iterator(self):
        response = httpx.Response(200, content=iter([b"a", b"b", b"c"]))
        chunks = [c async for c in iter_response_body(response)]
        assert chunks == [b"a", b"b", b"c"]

    @pytest.mark.asyncio
    async def test_async_iterator(self):
        async def body():
            yield b"x"
            yield b"y"

        assert await read_response_body(httpx.Response(200, content=body())) == b"xy"

    @pytest.mark.asyncio
    async def test_no_content(self):
        assert await read_response_body(httpx.Response(204)) == b""
