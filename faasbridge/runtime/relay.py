"""
Streaming Relay.

Ships a response body over a raw side-channel connection instead of the
control plane's response call. On the wire, a relayed response looks like:

    {stream id}\\r\\n
    POST {callout path} HTTP/1.1\\r\\n
    host: ...\\r\\n
    transfer-encoding: chunked\\r\\n
    connection: close\\r\\n
    x-{prefix}-status-code: 200\\r\\n
    x-{prefix}-header-{name}: {value}\\r\\n
    \\r\\n
    cipher(chunk-framed body)

Each body chunk is framed as `{length}\\r\\n{chunk}\\r\\n` and then fed
through the cipher; the cipher's final block is written at end of stream.
No terminating zero-length chunk is sent: closing the connection ends the
stream.

Usage:
    relay = StreamingRelay(header_prefix="vercel")
    await relay.send(envelope.streaming, response)
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from typing import Literal

import httpx
from cryptography.hazmat.decrepit.ciphers import modes as decrepit_modes
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .envelopes import StreamingDirective
from .errors import RelayError
from .translator import iter_response_body

logger = logging.getLogger(__name__)

CRLF = b"\r\n"

# Synthesized by the relay itself, never forwarded from the handler response
HOP_BY_HOP_HEADERS = frozenset({"connection", "transfer-encoding"})

ChunkLengthFormat = Literal["decimal", "hex"]


# =============================================================================
# Transforms
# =============================================================================


class ChunkFramer:
    """Frames body chunks in HTTP chunked transfer-encoding shape."""

    def __init__(self, length_format: ChunkLengthFormat = "decimal"):
        if length_format not in ("decimal", "hex"):
            raise ValueError(f"Unknown chunk length format: {length_format}")
        self.length_format = length_format

    def frame(self, chunk: bytes) -> bytes:
        # An empty chunk would read as end-of-body on the remote side
        if not chunk:
            return b""
        if self.length_format == "hex":
            size = format(len(chunk), "x")
        else:
            size = str(len(chunk))
        return size.encode("ascii") + CRLF + chunk + CRLF


_CIPHER_MODES = {
    "cbc": modes.CBC,
    "ctr": modes.CTR,
    "cfb": decrepit_modes.CFB,
    "ofb": decrepit_modes.OFB,
}


class ChunkCipher:
    """
    Streaming encryptor for relay chunks.

    Algorithm names follow the "aes-{bits}-{mode}" convention
    (e.g. aes-256-cbc). CBC applies PKCS7 padding, so its last block is
    only emitted by finalize().
    """

    def __init__(self, algorithm: str, key: bytes, iv: bytes):
        name = algorithm.lower()
        parts = name.split("-")
        if len(parts) != 3 or parts[0] != "aes" or parts[2] not in _CIPHER_MODES:
            raise RelayError(f"Unsupported cipher algorithm: {algorithm}")

        try:
            bits = int(parts[1])
        except ValueError:
            raise RelayError(f"Unsupported cipher algorithm: {algorithm}") from None
        if bits not in (128, 192, 256):
            raise RelayError(f"Unsupported AES key size: {bits}")
        if len(key) * 8 != bits:
            raise RelayError(
                f"Cipher key is {len(key) * 8} bits, {algorithm} needs {bits}"
            )
        if len(iv) != 16:
            raise RelayError(f"Cipher IV must be 16 bytes, got {len(iv)}")

        mode = _CIPHER_MODES[parts[2]](iv)
        self.algorithm = name
        self._encryptor = Cipher(algorithms.AES(key), mode).encryptor()
        self._padder = padding.PKCS7(128).padder() if parts[2] == "cbc" else None
        self._finalized = False

    @classmethod
    def from_directive(cls, directive: StreamingDirective) -> ChunkCipher:
        try:
            key = base64.b64decode(directive.cipher_key, validate=True)
            iv = base64.b64decode(directive.cipher_iv, validate=True)
        except (binascii.Error, ValueError) as e:
            raise RelayError(f"Cipher key/IV is not valid base64: {e}") from e
        return cls(directive.cipher_algorithm, key, iv)

    def update(self, data: bytes) -> bytes:
        if self._padder is not None:
            data = self._padder.update(data)
        return self._encryptor.update(data)

    def finalize(self) -> bytes:
        if self._finalized:
            raise RelayError("Cipher already finalized")
        self._finalized = True
        tail = b""
        if self._padder is not None:
            tail = self._encryptor.update(self._padder.finalize())
        return tail + self._encryptor.finalize()


# =============================================================================
# Relay
# =============================================================================


class StreamingRelay:
    """
    Relays handler responses to a caller-supplied callback address.

    One relay instance serves every invocation; per-stream state (cipher,
    connection) lives inside send().
    """

    def __init__(
        self,
        *,
        header_prefix: str = "vercel",
        chunk_length_format: ChunkLengthFormat = "decimal",
        connect_timeout: float = 10.0,
    ):
        self.header_prefix = header_prefix
        self.chunk_length_format = chunk_length_format
        self.connect_timeout = connect_timeout

    def build_head(self, callout: httpx.URL, response: httpx.Response) -> bytes:
        """Request line and header block announcing the response metadata."""
        path = callout.raw_path.decode("ascii") or "/"
        prefix = self.header_prefix
        lines = [
            f"POST {path} HTTP/1.1",
            f"host: {callout.netloc.decode('ascii')}",
            "transfer-encoding: chunked",
            "connection: close",
            f"x-{prefix}-status-code: {response.status_code}",
        ]
        for name, value in response.headers.multi_items():
            if name in HOP_BY_HOP_HEADERS:
                continue
            lines.append(f"x-{prefix}-header-{name}: {value}")
        return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")

    async def send(self, directive: StreamingDirective, response: httpx.Response) -> int:
        """
        Relay `response` according to `directive`.

        Returns:
            Number of plaintext body bytes relayed

        Raises:
            RelayError: If the cipher cannot be set up or the connection fails
        """
        cipher = ChunkCipher.from_directive(directive)
        framer = ChunkFramer(self.chunk_length_format)

        try:
            callout = httpx.URL(directive.callout_url)
        except httpx.InvalidURL as e:
            raise RelayError(f"Invalid callout URL: {e}") from e
        if not callout.host:
            raise RelayError(f"Callout URL has no host: {directive.callout_url}")

        secure = callout.scheme == "https"
        port = callout.port or (443 if secure else 80)

        logger.info(
            f"[relay] Connecting to {callout.host}:{port} for stream {directive.stream_id}"
        )
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(callout.host, port, ssl=True if secure else None),
                timeout=self.connect_timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise RelayError(f"Could not connect to {callout.host}:{port}: {e}") from e

        relayed = 0
        try:
            writer.write(directive.stream_id.encode("utf-8") + CRLF)
            writer.write(self.build_head(callout, response))
            await writer.drain()

            async for chunk in iter_response_body(response):
                relayed += len(chunk)
                encrypted = cipher.update(framer.frame(chunk))
                if encrypted:
                    writer.write(encrypted)
                    await writer.drain()

            writer.write(cipher.finalize())
            await writer.drain()
        except OSError as e:
            raise RelayError(f"Relay write failed after {relayed} bytes: {e}") from e
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as e:
                logger.debug(f"[relay] Error while closing connection: {e}")

        logger.info(f"[relay] Stream {directive.stream_id} complete ({relayed} bytes)")
        return relayed
