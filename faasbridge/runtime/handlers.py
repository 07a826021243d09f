"""
Handler adapters.

User handlers come in two calling conventions:

- Native: `handler(request) -> httpx.Response` (or an awaitable of one)
- Legacy buffered: `handler(request) -> None` (or an awaitable of None),
  responding through `request.respond(...)`

Both are wrapped behind the same interface, `invoke(request) -> Response`.
`ProbingHandler` does not know the convention up front: on the first
invocation it races the handler's return value against the request's sink,
then pins the convention that won for every later invocation.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol, runtime_checkable

import httpx

from .errors import HandlerError
from .request import HandlerRequest

logger = logging.getLogger(__name__)

HandlerFunc = Callable[[HandlerRequest], Any]


class HandlerKind(str, Enum):
    """Calling convention of a user handler."""

    NATIVE = "native"
    LEGACY = "legacy"


@runtime_checkable
class InvocableHandler(Protocol):
    """Anything the invocation loop can dispatch a request to."""

    async def invoke(self, request: HandlerRequest) -> httpx.Response:
        ...



async def _call(func: HandlerFunc, request: HandlerRequest) -> Any:
    try:
        result = func(request)
        if inspect.isawaitable(result):
            result = await result
    except (SystemExit, KeyboardInterrupt) as e:
        raise HandlerError(f"Handler raised {type(e).__name__}: {e}") from e
    except asyncio.CancelledError as e:
        task = asyncio.current_task()
        if task is not None and task.cancelling():
            raise
        raise HandlerError("Handler raised CancelledError") from e
    return result


def _require_response(result: Any) -> httpx.Response:
    if not isinstance(result, httpx.Response):
        raise HandlerError(
            f"Handler returned {type(result).__name__}, expected httpx.Response"
        )
    return result


def _log_abandoned(name: str, task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(
            f"[handler] {name} raised after responding: {type(exc).__name__}: {exc}"
        )


async def _race(func: HandlerFunc, request: HandlerRequest, name: str) -> tuple[bool, Any]:
    """
    Run a handler against its request's sink.

    Two observers race:
    - the sink observer resolves when the handler finishes responding
    - the return observer resolves when the handler call returns

    Returns:
        (True, None) once the sink is done, even if the call also returned;
        (False, result) when the call returned with the sink still open.
        A handler still running after the sink finished is left to run;
        it is never cancelled.
    """
    returned = asyncio.ensure_future(_call(func, request))
    responded = asyncio.ensure_future(request.sink.wait())

    try:
        done, _ = await asyncio.wait(
            {returned, responded},
            return_when=asyncio.FIRST_COMPLETED,
        )

        if returned not in done:
            returned.add_done_callback(functools.partial(_log_abandoned, name))
            return True, None

        # Raises the handler's own exception, if any
        result = returned.result()
        if request.sink.done:
            return True, None
        return False, result
    finally:
        if not responded.done():
            responded.cancel()


# =============================================================================
# Adapters
# =============================================================================


class NativeHandler:
    """Adapter for handlers that return their response."""

    kind = HandlerKind.NATIVE

    def __init__(self, func: HandlerFunc):
        self.func = func

    async def invoke(self, request: HandlerRequest) -> httpx.Response:
        return _require_response(await _call(self.func, request))


class LegacyHandler:
    """Adapter for handlers that write into the request's buffered sink."""

    kind = HandlerKind.LEGACY

    def __init__(self, func: HandlerFunc, name: str = ""):
        self.func = func
        self.name = name or getattr(func, "__qualname__", repr(func))

    async def invoke(self, request: HandlerRequest) -> httpx.Response:
        finished, _ = await _race(self.func, request, self.name)
        if not finished:
            await request.sink.wait()
        return request.sink.to_response()


class ProbingHandler:
    """
    Adapter that detects the calling convention on first use.

    A finished sink always means legacy, whatever the call returned.
    Otherwise a returned Response means native, and a returned None means
    legacy with the response still to come.
    """

    def __init__(self, func: HandlerFunc, name: str = ""):
        self.func = func
        self.name = name or getattr(func, "__qualname__", repr(func))
        self.kind: HandlerKind | None = None
        self._adapters = {
            HandlerKind.NATIVE: NativeHandler(func),
            HandlerKind.LEGACY: LegacyHandler(func, self.name),
        }

    async def invoke(self, request: HandlerRequest) -> httpx.Response:
        if self.kind is not None:
            return await self._adapters[self.kind].invoke(request)
        return await self._probe(request)

    async def _probe(self, request: HandlerRequest) -> httpx.Response:
        finished, result = await _race(self.func, request, self.name)
        if finished:
            return self._pin(HandlerKind.LEGACY, request.sink.to_response())
        if result is None:
            await request.sink.wait()
            return self._pin(HandlerKind.LEGACY, request.sink.to_response())
        return self._pin(HandlerKind.NATIVE, _require_response(result))

    def _pin(self, kind: HandlerKind, response: httpx.Response) -> httpx.Response:
        if self.kind is None:
            logger.info(f"[handler] {self.name} uses the {kind.value} calling convention")
            self.kind = kind
        return response
