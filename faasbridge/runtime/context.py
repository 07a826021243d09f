"""
Invocation Context for faasbridge.

The context carries per-invocation metadata from the control plane's
response headers (request id, deadline, trace id, ...) together with the
function metadata read from the environment at startup.

It is passed explicitly to the request translator, which attaches it to the
handler request under `request.extensions["invocation_context"]`. For code
that cannot receive it explicitly (log filters, deep library code) the
current context is also published in a context variable for the duration of
one loop iteration.
"""
from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

TRACE_ENV_VAR = "_X_AMZN_TRACE_ID"

_current_context: ContextVar[InvocationContext | None] = ContextVar(
    "faasbridge_invocation_context", default=None
)


@dataclass(frozen=True)
class InvocationContext:
    """
    Metadata for one invocation.

    Attributes:
        request_id: Invocation id used to post the response or error
        deadline_ms: Wall-clock deadline in epoch milliseconds (0 if unknown)
        invoked_function_arn: ARN the invocation was addressed to
        trace_id: Trace correlation header value, if any
        client_context: Parsed client context JSON, if any
        identity: Parsed identity JSON, if any
    """

    request_id: str
    deadline_ms: int = 0
    invoked_function_arn: str | None = None
    trace_id: str | None = None
    client_context: Any = None
    identity: Any = None

    function_name: str | None = None
    function_version: str | None = None
    memory_limit_in_mb: str | None = None
    log_group_name: str | None = None
    log_stream_name: str | None = None

    extra: dict[str, Any] = field(default_factory=dict, repr=False)

    def remaining_time_ms(self) -> int:
        """Milliseconds left until the deadline (never negative)."""
        if not self.deadline_ms:
            return 0
        return max(0, self.deadline_ms - int(time.time() * 1000))

    @classmethod
    def from_headers(cls, headers: Any, **function_metadata: Any) -> InvocationContext:
        """
        Build a context from control-plane response headers.

        Args:
            headers: Mapping with case-insensitive `get` (e.g. httpx.Headers)
            **function_metadata: function_name, function_version, ...
        """
        deadline = headers.get("lambda-runtime-deadline-ms")
        try:
            deadline_ms = int(deadline) if deadline else 0
        except ValueError:
            logger.warning(f"[context] Ignoring malformed deadline header: {deadline!r}")
            deadline_ms = 0

        return cls(
            request_id=headers.get("lambda-runtime-aws-request-id", ""),
            deadline_ms=deadline_ms,
            invoked_function_arn=headers.get("lambda-runtime-invoked-function-arn"),
            trace_id=headers.get("lambda-runtime-trace-id") or None,
            client_context=_parse_json_header(headers, "lambda-runtime-client-context"),
            identity=_parse_json_header(headers, "lambda-runtime-cognito-identity"),
            **function_metadata,
        )


def _parse_json_header(headers: Any, name: str) -> Any:
    raw = headers.get(name)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"[context] Ignoring malformed {name} header")
        return None


def current_context() -> InvocationContext | None:
    """Context of the invocation currently being served, if any."""
    return _current_context.get()


@contextmanager
def invocation_scope(
    context: InvocationContext,
    *,
    export_trace_env: bool = False,
) -> Iterator[InvocationContext]:
    """
    Publish `context` for the duration of one loop iteration.

    With export_trace_env, the trace id is also written to the process
    environment. The variable is removed when the invocation has no trace id
    and always on exit, so a value never leaks into a later invocation.
    """
    token = _current_context.set(context)
    if export_trace_env:
        if context.trace_id:
            os.environ[TRACE_ENV_VAR] = context.trace_id
        else:
            os.environ.pop(TRACE_ENV_VAR, None)
    try:
        yield context
    finally:
        _current_context.reset(token)
        if export_trace_env:
            os.environ.pop(TRACE_ENV_VAR, None)
