"""
Invocation Loop.

Serves invocations one at a time, forever:

    next_invocation -> parse -> from_envelope -> load handler -> invoke
        -> relay (streaming) or to_envelope (inline)
        -> post_response / post_error

Anything that goes wrong while serving an invocation is reported with
post_error and the loop moves on, including SystemExit and other
BaseExceptions raised by user code. ControlPlaneError is never caught here:
it ends run() and, through the bootstrap, the process. Neither is a
cancellation of the task running the loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import NoReturn

from .client import ControlPlaneClient, NextInvocation
from .context import invocation_scope
from .envelopes import ErrorEnvelope, ResponseEnvelope
from .errors import ControlPlaneError
from .loader import HandlerLoader
from .relay import StreamingRelay
from .translator import from_envelope, to_envelope

logger = logging.getLogger(__name__)


def _loop_cancelled() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


class InvocationLoop:
    """
    Serial invocation loop.

    The next invocation is never fetched before the current one's response
    or error has been accepted by the control plane.
    """

    def __init__(
        self,
        client: ControlPlaneClient,
        loader: HandlerLoader,
        *,
        relay: StreamingRelay | None = None,
        export_trace_env: bool = False,
    ):
        self.client = client
        self.loader = loader
        self.relay = relay or StreamingRelay()
        self.export_trace_env = export_trace_env
        self.served = 0
        self.failed = 0

    async def run(self) -> NoReturn:
        """Serve invocations until a fatal error is raised."""
        logger.info(f"[runtime] Serving {self.loader.location} from {self.client.base_url}")
        while True:
            await self.run_once()

    async def run_once(self) -> None:
        """
        Serve exactly one invocation.

        Raises:
            ControlPlaneError: If the control plane cannot be polled or
                rejects the response/error report
        """
        invocation = await self.client.next_invocation()
        invocation_id = invocation.invocation_id
        started = time.perf_counter()

        with invocation_scope(invocation.context, export_trace_env=self.export_trace_env):
            try:
                envelope = await self._serve(invocation)
            except ControlPlaneError:
                raise
            except BaseException as e:
                if isinstance(e, asyncio.CancelledError) and _loop_cancelled():
                    raise
                self.failed += 1
                logger.exception(f"[runtime] Invoke error for {invocation_id}: {e}")
                await self.client.post_error(invocation_id, ErrorEnvelope.from_exception(e))
                return

            await self.client.post_response(invocation_id, envelope)
            self.served += 1

            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(
                f"[runtime] Invocation {invocation_id} completed: "
                f"status={envelope.status_code} duration_ms={elapsed_ms:.1f}"
            )

    async def _serve(self, invocation: NextInvocation) -> ResponseEnvelope:
        envelope = invocation.envelope
        request = from_envelope(envelope, invocation.context)

        handler = self.loader.load()
        response = await handler.invoke(request)

        directive = envelope.streaming
        if directive is not None:
            await self.relay.send(directive, response)
            return ResponseEnvelope.placeholder()

        return await to_envelope(response)
