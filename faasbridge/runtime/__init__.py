"""
faasbridge Runtime Layer.

This layer turns the invocation runtime API into calls of an ordinary HTTP
handler:

- ControlPlaneClient: polls for invocations, posts responses and errors
- translator: envelope <-> httpx request/response conversions
- HandlerLoader: imports the user handler once, on first use
- StreamingRelay: ships response bodies over an encrypted side channel
- InvocationLoop: ties the pieces together, one invocation at a time

Usage:
    client = ControlPlaneClient(ControlPlaneConfig(runtime_api="127.0.0.1:9001"))
    loader = HandlerLoader(HandlerLocation.parse("api/hello.py"))
    await InvocationLoop(client, loader).run()
"""

from .client import ControlPlaneClient, ControlPlaneConfig, NextInvocation
from .context import InvocationContext, current_context, invocation_scope
from .envelopes import (
    ErrorEnvelope,
    InvocationEnvelope,
    ResponseEnvelope,
    StreamingDirective,
)
from .errors import (
    ControlPlaneError,
    HandlerError,
    HandlerLoadError,
    RelayError,
    RequestTranslationError,
    RuntimeAdapterError,
)
from .handlers import (
    HandlerKind,
    InvocableHandler,
    LegacyHandler,
    NativeHandler,
    ProbingHandler,
)
from .loader import HandlerLoader, HandlerLocation, import_target
from .loop import InvocationLoop
from .relay import ChunkCipher, ChunkFramer, StreamingRelay
from .request import BufferedSink, HandlerRequest
from .translator import fold_headers, from_envelope, parse_event, to_envelope

__all__ = [
    # Control plane
    "ControlPlaneClient",
    "ControlPlaneConfig",
    "NextInvocation",
    # Context
    "InvocationContext",
    "current_context",
    "invocation_scope",
    # Envelopes
    "ErrorEnvelope",
    "InvocationEnvelope",
    "ResponseEnvelope",
    "StreamingDirective",
    # Errors
    "ControlPlaneError",
    "HandlerError",
    "HandlerLoadError",
    "RelayError",
    "RequestTranslationError",
    "RuntimeAdapterError",
    # Handlers
    "BufferedSink",
    "HandlerKind",
    "HandlerLoader",
    "HandlerLocation",
    "HandlerRequest",
    "InvocableHandler",
    "LegacyHandler",
    "NativeHandler",
    "ProbingHandler",
    "import_target",
    # Loop and relay
    "ChunkCipher",
    "ChunkFramer",
    "InvocationLoop",
    "StreamingRelay",
    # Translation
    "fold_headers",
    "from_envelope",
    "parse_event",
    "to_envelope",
]
