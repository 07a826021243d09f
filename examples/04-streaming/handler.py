"""
Streaming Body Example

Returns a response whose body is produced incrementally by an async
generator. When the invocation carries a streaming directive, each chunk is
framed, encrypted and relayed as soon as it is produced; otherwise the body
is buffered and returned inline.

Run:
    _HANDLER=examples/04-streaming/handler.py \
    AWS_LAMBDA_RUNTIME_API=127.0.0.1:9001 \
    python -m faasbridge
"""

import asyncio

import httpx


async def countdown(start: int):
    for n in range(start, 0, -1):
        yield f"{n}...\n".encode()
        await asyncio.sleep(0.1)
    yield b"liftoff\n"


async def handler(request: httpx.Request) -> httpx.Response:
    try:
        start = int(request.url.params.get("from", "5"))
    except ValueError:
        start = 5
    return httpx.Response(
        200,
        content=countdown(max(0, min(start, 60))),
        headers={"content-type": "text/plain; charset=utf-8"},
    )
