"""
Handler request objects.

`HandlerRequest` is the request every user handler receives. It is an
`httpx.Request`, so native handlers read it like any other request and
return an `httpx.Response`. It also carries a `BufferedSink` and a
`respond()` method for legacy handlers, which write their response into the
sink instead of returning it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from typing import Any

import httpx

from .errors import HandlerError

HeaderInput = Mapping[str, str] | Iterable[tuple[str, str]] | None


class BufferedSink:
    """
    In-memory response sink for legacy handlers.

    The sink collects a status, headers and body and reaches its "done"
    state exactly once, when the handler finishes responding.
    """

    def __init__(self):
        self.status_code = 200
        self.headers: list[tuple[str, str]] = []
        self._body = bytearray()
        self._done = asyncio.Event()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def write_head(self, status: int = 200, headers: HeaderInput = None) -> None:
        self._ensure_open()
        self.status_code = status
        if headers:
            items = headers.items() if isinstance(headers, Mapping) else headers
            self.headers.extend((str(k), str(v)) for k, v in items)

    def write(self, data: bytes | str) -> None:
        self._ensure_open()
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._body.extend(data)

    def finish(self) -> None:
        self._ensure_open()
        self._done.set()

    async def wait(self) -> None:
        """Block until the sink is done."""
        await self._done.wait()

    def to_response(self) -> httpx.Response:
        """Materialize the buffered response."""
        return httpx.Response(
            self.status_code,
            headers=self.headers,
            content=bytes(self._body),
        )

    def _ensure_open(self) -> None:
        if self.done:
            raise HandlerError("Response already sent for this request")


class HandlerRequest(httpx.Request):
    """
    Request passed to user handlers.

    Native handlers use it as a plain `httpx.Request`. Legacy handlers call
    `respond()` (or `write_head()`/`write()`/`finish()` on `sink`).
    """

    def __init__(
        self,
        method: str,
        url: httpx.URL | str,
        *,
        headers: Any = None,
        content: bytes | None = None,
        extensions: dict[str, Any] | None = None,
    ):
        super().__init__(
            method,
            url,
            headers=headers,
            content=content,
            extensions=extensions or {},
        )
        self.sink = BufferedSink()

    @property
    def context(self) -> Any:
        """The InvocationContext attached by the translator, if any."""
        return self.extensions.get("invocation_context")

    def respond(
        self,
        body: bytes | str | None = None,
        *,
        status: int = 200,
        headers: HeaderInput = None,
    ) -> None:
        """Write a complete response into the sink and mark it done."""
        self.sink.write_head(status, headers)
        if body:
            self.sink.write(body)
        self.sink.finish()
