"""
Lifespan management for Servess framework.
Handles application startup and shutdown events.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from servess.types import ASGIApp, LifespanHandler, Receive, Scope, Send

logger = logging.getLogger("servess.lifespan")

# Maximum seconds to wait for in-flight requests to finish
DEFAULT_SHUTDOWN_TIMEOUT: float = 30.0


class Lifespan:
    """
    Lifespan manager for handling startup and shutdown events.

    Usage:
        lifespan = Lifespan()

        @lifespan.on_startup
        async def startup():
            # Initialize resources
            pass

        @lifespan.on_shutdown
        async def shutdown():
            # Cleanup resources
            pass
    """

    def __init__(self) -> None:
        self._startup_handlers: list[LifespanHandler] = []
        self._shutdown_handlers: list[LifespanHandler] = []

    def on_startup(self, handler: LifespanHandler) -> LifespanHandler:
        """Decorator to register a startup handler."""
        self._startup_handlers.append(handler)
        return handler

    def on_shutdown(self, handler: LifespanHandler) -> LifespanHandler:
        """Decorator to register a shutdown handler."""
        self._shutdown_handlers.append(handler)
        return handler

    async def startup(self) -> None:
        """Run all startup handlers."""
        for handler in self._startup_handlers:
            await handler()

    async def shutdown(self) -> None:
        """Run all shutdown handlers in reverse order."""
        for handler in reversed(self._shutdown_handlers):
            await handler()


class LifespanProtocolHandler:
    """
    ASGI lifespan protocol handler.

    Tracks in-flight HTTP requests and drains them gracefully
    on shutdown before running cleanup handlers.
    """

    def __init__(
        self,
        app: ASGIApp,
        lifespan: Lifespan | None = None,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
        on_attach: Callable[[Scope], Awaitable[None]] | None = None,
        on_closed: Callable[[], None] | None = None,
    ) -> None:
        self._app = app
        self._lifespan = lifespan or Lifespan()
        self._shutdown_timeout = shutdown_timeout
        self._on_attach = on_attach
        self._on_closed = on_closed
        self._inflight: int = 0
        self._inflight_zero = asyncio.Event()
        self._inflight_zero.set()
        self._shutting_down: bool = False

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Handle ASGI messages."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
            return

        self._inflight += 1
        self._inflight_zero.clear()
        try:
            await self._app(scope, receive, send)
        finally:
            self._inflight -= 1
            if self._inflight == 0:
                self._inflight_zero.set()

    # ------------------------------------------------------------------
    # Lifespan protocol
    # ------------------------------------------------------------------

    async def _handle_lifespan(
        self,
        scope: Scope,
        receive: Receive,
        send: Send,
    ) -> None:
        """Handle lifespan events."""
        while True:
            message = await receive()

            if message["type"] == "lifespan.startup":
                try:
                    if self._on_attach is not None:
                        await self._on_attach(scope)
                    await self._lifespan.startup()
                except Exception as exc:
                    logger.exception("Application startup failed")
                    await send({
                        "type": "lifespan.startup.failed",
                        "message": str(exc),
                    })
                    return
                await send({"type": "lifespan.startup.complete"})

            elif message["type"] == "lifespan.shutdown":
                self._shutting_down = True
                await self._drain_requests()
                try:
                    await self._lifespan.shutdown()
                except Exception as exc:
                    logger.exception("Application shutdown failed")
                    await send({
                        "type": "lifespan.shutdown.failed",
                        "message": str(exc),
                    })
                    return
                finally:
                    if self._on_closed is not None:
                        self._on_closed()
                await send({"type": "lifespan.shutdown.complete"})
                return

    async def _drain_requests(self) -> None:
        """Wait for in-flight requests to finish, with a timeout."""
        if self._inflight == 0:
            return

        logger.info(
            "Waiting for %d in-flight request(s) to finish (timeout=%ss)...",
            self._inflight,
            self._shutdown_timeout,
        )
        try:
            await asyncio.wait_for(
                self._inflight_zero.wait(),
                timeout=self._shutdown_timeout,
            )
            logger.info("All in-flight requests completed.")
        except asyncio.TimeoutError:
            logger.warning(
                "Shutdown timeout reached with %d request(s) still in-flight. "
                "Proceeding with shutdown.",
                self._inflight,
            )

    @property
    def is_shutting_down(self) -> bool:
        """Check whether the application is in the process of shutting down."""
        return self._shutting_down

    @property
    def inflight_requests(self) -> int:
        """Number of currently in-flight HTTP requests."""
        return self._inflight
