"""
Control-Plane Client for faasbridge.

Async client for the invocation runtime API, the local HTTP service that
hands out invocations and accepts their responses and errors.

Usage:
    async with ControlPlaneClient(ControlPlaneConfig(runtime_api="127.0.0.1:9001")) as client:
        invocation = await client.next_invocation()
        await client.post_response(invocation.invocation_id, envelope)

Failure classification:
    - Connection refused/unreachable (the request never left): retried with
      exponential backoff and jitter, up to max_retries
    - Unexpected status codes, missing headers, other transport errors:
      ControlPlaneError, which is fatal to the process

API Reference:
    GET  /2018-06-01/runtime/invocation/next          -> 200
    POST /2018-06-01/runtime/invocation/{id}/response -> 202
    POST /2018-06-01/runtime/invocation/{id}/error    -> 202
    POST /2018-06-01/runtime/init/error               -> 202
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any

import httpx

from .context import InvocationContext
from .envelopes import ErrorEnvelope, InvocationEnvelope, ResponseEnvelope
from .errors import ControlPlaneError
from .translator import parse_event

logger = logging.getLogger(__name__)

RUNTIME_PATH = "2018-06-01/runtime"

REQUEST_ID_HEADER = "lambda-runtime-aws-request-id"
ERROR_TYPE_HEADER = "Lambda-Runtime-Function-Error-Type"


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True, slots=True)
class ControlPlaneConfig:
    """Configuration for the control-plane client."""

    # host:port of the runtime API
    runtime_api: str = ""

    # Timeout for posting responses/errors; polling never times out
    timeout: float = 30.0

    # Connection retries
    max_retries: int = 3
    retry_delay: float = 0.5

    # Copied into every InvocationContext
    function_metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.runtime_api:
            raise ValueError("Runtime API address is required")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")


@dataclass(frozen=True, slots=True)
class NextInvocation:
    """One invocation handed out by the control plane."""

    invocation_id: str
    context: InvocationContext
    raw_event: str

    @property
    def envelope(self) -> InvocationEnvelope:
        """
        Decode the invocation payload.

        Raises:
            RequestTranslationError: If the payload is not a valid envelope
        """
        return parse_event(self.raw_event)


# =============================================================================
# Client
# =============================================================================


class ControlPlaneClient:
    """
    Async client for the invocation runtime API.

    The client holds a single httpx.AsyncClient for the life of the process.
    """

    def __init__(
        self,
        config: ControlPlaneConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the control-plane client.

        Args:
            config: Client configuration
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return f"http://{self.config.runtime_api}/{RUNTIME_PATH}"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # Operations
    # =========================================================================

    async def next_invocation(self) -> NextInvocation:
        """
        Block until the control plane hands out the next invocation.

        Raises:
            ControlPlaneError: On a non-200 status or a missing request id
        """
        path = "/invocation/next"
        response = await self._request(
            "GET",
            path,
            timeout=httpx.Timeout(self.config.timeout, read=None),
        )

        if response.status_code != 200:
            raise ControlPlaneError(
                "Unexpected response while polling for the next invocation",
                path=path,
                status_code=response.status_code,
                response_body=response.text,
            )

        invocation_id = response.headers.get(REQUEST_ID_HEADER)
        if not invocation_id:
            raise ControlPlaneError(
                f"Next invocation is missing the {REQUEST_ID_HEADER} header",
                path=path,
                status_code=response.status_code,
            )

        context = InvocationContext.from_headers(
            response.headers,
            **self.config.function_metadata,
        )
        logger.debug(f"[control-plane] Received invocation {invocation_id}")
        return NextInvocation(
            invocation_id=invocation_id,
            context=context,
            raw_event=response.text,
        )

    async def post_response(self, invocation_id: str, envelope: ResponseEnvelope) -> None:
        """Report the response for an invocation."""
        await self._post_accepted(
            f"/invocation/{invocation_id}/response",
            envelope.to_wire(),
        )

    async def post_error(self, invocation_id: str, envelope: ErrorEnvelope) -> None:
        """Report an unhandled error for an invocation."""
        await self._post_accepted(
            f"/invocation/{invocation_id}/error",
            envelope.to_wire(),
            headers={ERROR_TYPE_HEADER: "Unhandled"},
        )

    async def post_init_error(self, envelope: ErrorEnvelope) -> None:
        """Report an error that prevents the runtime from starting."""
        await self._post_accepted(
            "/init/error",
            envelope.to_wire(),
            headers={ERROR_TYPE_HEADER: "Unhandled"},
        )

    async def _post_accepted(
        self,
        path: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> None:
        response = await self._request("POST", path, json=payload, headers=headers)
        if response.status_code != 202:
            raise ControlPlaneError(
                "Control plane rejected the report",
                path=path,
                status_code=response.status_code,
                response_body=response.text,
            )

    # =========================================================================
    # Transport
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: httpx.Timeout | None = None,
    ) -> httpx.Response:
        """
        Make a request, retrying only when the connection could not be made.

        Raises:
            ControlPlaneError: On any other transport error or when retries
                are exhausted
        """
        client = await self._get_client()
        kwargs: dict[str, Any] = {"json": json, "headers": headers}
        if timeout is not None:
            kwargs["timeout"] = timeout

        for attempt in range(self.config.max_retries + 1):
            try:
                return await client.request(method, path, **kwargs)
            except (httpx.ConnectError, httpx.ConnectTimeout) as e:
                if attempt >= self.config.max_retries:
                    raise ControlPlaneError(
                        f"Could not connect after {attempt + 1} attempts: {e}",
                        path=path,
                    ) from e

                backoff = self._calculate_backoff(attempt)
                logger.warning(
                    f"[control-plane] Retry {attempt + 1}/{self.config.max_retries} "
                    f"for {method} {path} after {backoff:.2f}s: {e}"
                )
                await asyncio.sleep(backoff)
            except httpx.HTTPError as e:
                raise ControlPlaneError(
                    f"Transport error: {type(e).__name__}: {e}",
                    path=path,
                ) from e

        # Unreachable: the loop either returns or raises
        raise ControlPlaneError("Request was not attempted", path=path)

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with ±25% jitter, capped at 10 seconds."""
        base_delay = self.config.retry_delay * (2 ** attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return min(base_delay + jitter, 10.0)

    async def __aenter__(self) -> ControlPlaneClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
