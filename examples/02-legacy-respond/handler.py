"""
Legacy Respond Example

Handlers written against a buffered server request do not return anything.
They call `request.respond(...)` instead; the runtime waits for the response
to be written and detects the convention on the first invocation.

Run:
    _HANDLER=examples/02-legacy-respond/handler.py \
    AWS_LAMBDA_RUNTIME_API=127.0.0.1:9001 \
    python -m faasbridge
"""

from datetime import datetime, timezone

from faasbridge import HandlerRequest


async def handler(request: HandlerRequest) -> None:
    now = datetime.now(timezone.utc).isoformat()
    request.respond(
        f"It is {now}\n",
        status=200,
        headers={"content-type": "text/plain; charset=utf-8"},
    )
