"""
Dump Request Example

Echoes what the handler saw: method, URL, headers, body and the
invocation context (request id, remaining time, trace id).

The status code can be chosen with ?statusCode=..., which is handy for
checking how the runtime reports non-200 responses.

Run:
    _HANDLER=examples/03-dump-request/handler.py \
    AWS_LAMBDA_RUNTIME_API=127.0.0.1:9001 \
    python -m faasbridge
"""

import json
import os
import time

import httpx

from faasbridge import current_context

STARTED_AT = time.time()


async def handler(request: httpx.Request) -> httpx.Response:
    context = current_context()
    try:
        status = int(request.url.params.get("statusCode", "200"))
    except ValueError:
        status = 200

    body = {
        "uptime_s": round(time.time() - STARTED_AT, 3),
        "request": {
            "method": request.method,
            "url": str(request.url),
            "headers": dict(sorted(request.headers.items())),
            "body": request.content.decode("utf-8", "replace") or None,
        },
        "context": {
            "request_id": context.request_id if context else None,
            "remaining_time_ms": context.remaining_time_ms() if context else None,
            "trace_id": context.trace_id if context else None,
        },
        "pid": os.getpid(),
    }
    return httpx.Response(
        status,
        content=json.dumps(body, indent=2).encode("utf-8"),
        headers={"content-type": "application/json; charset=utf-8"},
    )
