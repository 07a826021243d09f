"""
faasbridge - serve ordinary HTTP handlers behind a polling invocation runtime API.

faasbridge is the runtime adapter of a serverless function: it polls the
control plane for invocations, turns each one into an `httpx.Request`, calls
the user's handler and reports the response (or the error) back.

Features:

- **Two handler conventions**: return an `httpx.Response`, or respond
  through `request.respond(...)` like a buffered server request
- **Streaming relay**: response bodies can bypass the control plane over an
  encrypted, chunk-framed side channel
- **Failure classification**: handler failures are reported per invocation;
  control-plane failures end the process

Quick Start:
    # api/hello.py
    import httpx

    def handler(request):
        return httpx.Response(200, text="Hello!")

    $ _HANDLER=api/hello.py AWS_LAMBDA_RUNTIME_API=127.0.0.1:9001 python -m faasbridge
"""

__version__ = "0.1.0"
__license__ = "MIT"

from faasbridge.runtime import (
    HandlerRequest,
    InvocationContext,
    InvocationLoop,
    current_context,
)

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Handler-facing API
    "HandlerRequest",
    "InvocationContext",
    "current_context",
    # Runtime
    "InvocationLoop",
]
