"""
faasbridge process entry point.

Two modes, selected by the environment:

- Serving (`_HANDLER` set): run the invocation loop until the control plane
  fails, then exit with status 1 so the execution environment restarts us.
- Priming (`_HANDLER` unset): import `ENTRYPOINT` once and exit. Build
  tooling uses this to warm module caches without ever entering the loop.

Run: python -m faasbridge
"""

from __future__ import annotations

import asyncio
import logging
import sys

import httpx
from pydantic import ValidationError

from faasbridge.config import RuntimeSettings, get_settings
from faasbridge.observability import TEXT_FORMAT, configure_logging
from faasbridge.runtime import (
    ControlPlaneClient,
    ControlPlaneConfig,
    ControlPlaneError,
    ErrorEnvelope,
    HandlerLoader,
    HandlerLoadError,
    HandlerLocation,
    InvocationLoop,
    StreamingRelay,
    import_target,
)

logger = logging.getLogger(__name__)


def prime(settings: RuntimeSettings) -> int:
    """Import the entrypoint so its dependencies get resolved and cached."""
    if not settings.entrypoint:
        logger.error("[bootstrap] Neither _HANDLER nor ENTRYPOINT is set; nothing to do")
        return 1

    try:
        import_target(settings.entrypoint, settings.task_root)
    except HandlerLoadError as e:
        logger.error(f"[bootstrap] Priming failed: {e}")
        return 1

    logger.info(f"[bootstrap] Primed entrypoint {settings.entrypoint}")
    return 0


async def serve(
    settings: RuntimeSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """
    Run the invocation loop.

    Returns:
        Process exit status; only ever non-zero, since the loop only stops
        on a fatal error
    """
    try:
        config = ControlPlaneConfig(
            runtime_api=settings.runtime_api or "",
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            function_metadata=settings.function_metadata(),
        )
    except ValueError as e:
        logger.error(f"[bootstrap] Invalid control-plane configuration: {e}")
        return 1

    async with ControlPlaneClient(config, transport=transport) as client:
        try:
            location = HandlerLocation.parse(settings.handler or "", settings.handler_attribute)
        except ValueError as e:
            logger.error(f"[bootstrap] Invalid handler locator {settings.handler!r}: {e}")
            try:
                await client.post_init_error(ErrorEnvelope.from_exception(e))
            except ControlPlaneError as report_error:
                logger.error(f"[bootstrap] Could not report init error: {report_error}")
            return 1

        loop = InvocationLoop(
            client,
            HandlerLoader(location, base_dir=settings.task_root),
            relay=StreamingRelay(
                header_prefix=settings.header_prefix,
                chunk_length_format=settings.chunk_length_format,
                connect_timeout=settings.relay_connect_timeout,
            ),
            export_trace_env=settings.export_trace_env,
        )

        try:
            await loop.run()
        except ControlPlaneError as e:
            logger.error(
                f"[bootstrap] Fatal: {e} (served={loop.served}, failed={loop.failed})",
                exc_info=True,
            )
            return 1


def run(settings: RuntimeSettings) -> int:
    """Dispatch to serving or priming mode and return the exit status."""
    if not settings.serving:
        return prime(settings)
    return asyncio.run(serve(settings))


def main() -> None:
    """Console entry point."""
    try:
        settings = get_settings()
    except ValidationError as e:
        logging.basicConfig(level=logging.INFO, format=TEXT_FORMAT)
        logger.error(f"[bootstrap] Invalid runtime settings: {e}")
        sys.exit(1)

    configure_logging(settings.log_level, settings.log_format)

    try:
        status = run(settings)
    except Exception as e:
        logger.critical(f"[bootstrap] Runtime crashed: {type(e).__name__}: {e}", exc_info=True)
        status = 1
    sys.exit(status)


if __name__ == "__main__":
    main()
