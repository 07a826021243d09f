"""
Hello Handler Example

The smallest native handler: take an httpx.Request, return an httpx.Response.

Run:
    _HANDLER=examples/01-hello/handler.py \
    AWS_LAMBDA_RUNTIME_API=127.0.0.1:9001 \
    python -m faasbridge
"""

import platform

import httpx


def handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        text=f"Hello, from Python {platform.python_version()}!",
    )
