"""
Main Servess application class.
The root router, the ASGI entry point and the extension host.
"""

import html
import json
import logging
from collections.abc import AsyncIterable, Callable
from http import HTTPStatus
from typing import Any

from servess._invoke import invoke
from servess.context import DEFAULT_MAX_BODY_SIZE, MessageContext
from servess.dispatch import DispatchResult, ResultType, is_variant
from servess.exceptions import ExtensionError, HTTPException, InternalServerError, ServiceUnavailable
from servess.extension import (
    Extension,
    FactoryParam,
    decorate_application,
    decorate_message_context,
    decorate_root_router,
    do_lifecycle,
    resolve_factory,
)
from servess.lifespan import DEFAULT_SHUTDOWN_TIMEOUT, Lifespan, LifespanProtocolHandler
from servess.listener import to_dispatch_result
from servess.router import RouterContext
from servess.types import ErrorHandler, LifespanHandler, Receive, RouteHandler, Scope, Send

logger = logging.getLogger("servess.errors")
extension_logger = logging.getLogger("servess.extensions")


def _html_page(title: str, *paragraphs: str) -> bytes:
    body = "".join(paragraphs)
    return (
        f"<!DOCTYPE html><html><head><title>{title}</title></head>"
        f"<body><h1>{title}</h1>{body}</body></html>"
    ).encode("utf-8")


class Servess(RouterContext):
    """
    The Servess application.

    The application is the root :class:`RouterContext`, so every
    registration method is available on it directly, and it is an ASGI
    callable so any ASGI server can host it.

    Usage:
        app = Servess()

        @app.get("/")
        async def hello(ctx):
            return ctx.json({"message": "Hello, World!"})

        # Run with: uvicorn main:app
    """

    def __init__(
        self,
        base_path: str = "/",
        *,
        debug: bool = False,
        max_body_size: int = DEFAULT_MAX_BODY_SIZE,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    ) -> None:
        super().__init__(base_path, [])
        self.debug = debug
        self.max_body_size = max_body_size
        self._closed = False
        self._error_handler: ErrorHandler | None = None
        self._unhandled_handler: RouteHandler | None = None
        self._lifespan = Lifespan()
        self._protocol = LifespanProtocolHandler(
            self._handle_http,
            self._lifespan,
            shutdown_timeout=shutdown_timeout,
            on_attach=self._attach,
            on_closed=self._mark_closed,
        )

    @property
    def closed(self) -> bool:
        """True once the server has shut the application down."""
        return self._closed

    # -------------------------------------------------------------------------
    # ASGI Interface
    # -------------------------------------------------------------------------

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:  # type: ignore[override]
        """ASGI application entry point."""
        scope["app"] = self

        if scope["type"] == "websocket":
            # WebSocket upgrades are not routed
            await send({"type": "websocket.close", "code": 1008})
            return
        await self._protocol(scope, receive, send)

    async def _attach(self, scope: Scope) -> None:
        await do_lifecycle(self._extensions, "on_server_attach", self, scope)

    def _mark_closed(self) -> None:
        self._closed = True

    async def _handle_http(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Run one request through the extension hooks and the router tree."""
        await do_lifecycle(self._extensions, "on_incoming_message", self)

        ctx = MessageContext(scope, receive, send, max_body_size=self.max_body_size)
        await decorate_message_context(ctx, self._extensions)
        await do_lifecycle(self._extensions, "on_message", ctx, self)

        try:
            if self._protocol.is_shutting_down:
                # Draining: finish in-flight requests, refuse new ones
                raise ServiceUnavailable(
                    "The server is shutting down", headers={"Connection": "close"}
                )
            outcome = await self.dispatch(ctx)
        except Exception as exc:
            outcome = await self._handle_error(ctx, exc)
        else:
            if is_variant(outcome, ResultType.UNHANDLED):
                outcome = await self._handle_unhandled(ctx)

        await self._finalize(ctx, outcome, send)
        await do_lifecycle(self._extensions, "on_message_handled", ctx, self)

    # -------------------------------------------------------------------------
    # Fallbacks
    # -------------------------------------------------------------------------

    def on_error(self, handler: ErrorHandler) -> ErrorHandler:
        """Register the handler used when dispatch raises. Usable as a decorator."""
        self._error_handler = handler
        return handler

    def on_unhandled(self, handler: RouteHandler) -> RouteHandler:
        """Register the handler used when no route matches. Usable as a decorator."""
        self._unhandled_handler = handler
        return handler

    async def _handle_error(self, ctx: MessageContext, exc: Exception) -> DispatchResult:
        if self._error_handler is not None:
            return to_dispatch_result(await invoke(self._error_handler, ctx, exc))

        if isinstance(exc, HTTPException):
            # Log client errors at warning, server errors at error
            if exc.status_code >= 500:
                logger.error(
                    "%s %s status=%d detail=%s",
                    ctx.method, ctx.path, exc.status_code, exc.detail,
                    exc_info=exc,
                )
            else:
                logger.warning(
                    "%s %s status=%d detail=%s",
                    ctx.method, ctx.path, exc.status_code, exc.detail,
                )
            for name, value in exc.headers.items():
                ctx.set_header(name, value)
            return self._default_page(ctx, exc.status_code, exc.detail)

        logger.exception("Unhandled exception for %s %s: %s", ctx.method, ctx.path, exc)
        server_error = InternalServerError(f"An error happened while handling the route {ctx.path}")
        return self._default_page(ctx, server_error.status_code, server_error.detail, error=exc)

    async def _handle_unhandled(self, ctx: MessageContext) -> DispatchResult:
        if self._unhandled_handler is not None:
            return to_dispatch_result(await invoke(self._unhandled_handler, ctx))
        return self._default_page(ctx, 404, f"Cannot find any resource at {ctx.path}")

    def _default_page(
        self,
        ctx: MessageContext,
        status_code: int,
        detail: str,
        error: BaseException | None = None,
    ) -> DispatchResult:
        """Negotiated HTML, JSON or plain-text error response."""
        try:
            phrase = HTTPStatus(status_code).phrase
        except ValueError:
            phrase = "Error"
        title = f"{status_code} - {phrase}"

        def as_html(ctx: MessageContext) -> DispatchResult:
            paragraphs = [f"<p>{html.escape(detail)}</p>"]
            if self.debug and error is not None:
                paragraphs.append(f"<pre>{html.escape(repr(error))}</pre>")
            return self._respond(ctx, "text/html; charset=utf-8", _html_page(title, *paragraphs))

        def as_json(ctx: MessageContext) -> DispatchResult:
            content = json.dumps({"status": status_code, "message": phrase, "detail": detail})
            return self._respond(ctx, "application/json; charset=utf-8", content.encode("utf-8"))

        def as_text(ctx: MessageContext) -> DispatchResult:
            return self._respond(ctx, "text/plain; charset=utf-8", f"{status_code} {phrase}".encode("utf-8"))

        ctx.status(status_code)
        return ctx.accepting({"html": as_html, "json": as_json, "else": as_text})

    @staticmethod
    def _respond(ctx: MessageContext, media_type: str, body: bytes) -> DispatchResult:
        ctx.response_headers.set("Content-Type", media_type)
        # A length set by the failed handler no longer describes this body
        ctx.response_headers.set("Content-Length", len(body))
        return DispatchResult.result(body)

    # -------------------------------------------------------------------------
    # Response finalization
    # -------------------------------------------------------------------------

    async def _finalize(self, ctx: MessageContext, outcome: DispatchResult, send: Send) -> None:
        headers = ctx.response_headers

        if not outcome.is_result:
            if not ctx.is_externally_handled:
                await self._send_body(send, ctx, b"")
            return

        payload = outcome.payload
        if isinstance(payload, (bytes, str)):
            if isinstance(payload, str):
                body = payload.encode("utf-8")
                default_type = "text/plain; charset=utf-8"
            else:
                body = payload
                default_type = "application/octet-stream"
            if not headers.has("Content-Type"):
                headers.set("Content-Type", default_type)
            if not headers.has("Content-Length"):
                headers.set("Content-Length", len(body))
            await self._send_body(send, ctx, body)
            return

        await send({
            "type": "http.response.start",
            "status": ctx.status_code,
            "headers": headers.raw(),
        })
        if isinstance(payload, AsyncIterable):
            async for chunk in payload:
                await self._send_chunk(send, chunk)
        else:
            for chunk in payload:
                await self._send_chunk(send, chunk)
        await send({"type": "http.response.body", "body": b"", "more_body": False})

    @staticmethod
    async def _send_body(send: Send, ctx: MessageContext, body: bytes) -> None:
        await send({
            "type": "http.response.start",
            "status": ctx.status_code,
            "headers": ctx.response_headers.raw(),
        })
        await send({"type": "http.response.body", "body": body})

    @staticmethod
    async def _send_chunk(send: Send, chunk: bytes | str) -> None:
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        await send({"type": "http.response.body", "body": chunk, "more_body": True})

    # -------------------------------------------------------------------------
    # Extensions
    # -------------------------------------------------------------------------

    async def install(
        self,
        factory: FactoryParam,
        setup: Callable[[Any], None] | None = None,
    ) -> Extension:
        """
        Install an extension into this application.

        *factory* is an extension factory, an awaitable resolving to one,
        an object (such as a module) exposing one as ``default``, or a
        ``"module:attribute"`` import string. *setup* receives the
        factory's setup context to specialize the new instance.

        Raises:
            ExtensionError: If *factory* does not resolve to a valid factory.
        """
        extension_factory = await resolve_factory(factory)
        extension = extension_factory.create_extension_instance(setup or (lambda _: None))
        if not isinstance(getattr(extension, "name", None), str):
            raise ExtensionError(
                f"Factory {extension_factory.name!r} did not create an extension instance"
            )

        self._extensions.append(extension)
        await decorate_root_router(self, [extension])
        await decorate_application(self, [extension])
        extension_logger.info("Installed extension %r", extension.name)
        return extension

    # -------------------------------------------------------------------------
    # Lifespan
    # -------------------------------------------------------------------------

    def on_startup(self, handler: LifespanHandler) -> LifespanHandler:
        """Decorator to register a startup handler."""
        return self._lifespan.on_startup(handler)

    def on_shutdown(self, handler: LifespanHandler) -> LifespanHandler:
        """Decorator to register a shutdown handler."""
        return self._lifespan.on_shutdown(handler)

    @property
    def inflight_requests(self) -> int:
        return self._protocol.inflight_requests

    def run(
        self,
        host: str = "localhost",
        port: int = 8000,
        reload: bool = False,
        workers: int = 1,
        log_level: str = "info",
    ) -> None:
        """
        Run the application using uvicorn.

        Args:
            host: Host to bind to.
            port: Port to bind to.
            reload: Enable auto-reload.
            workers: Number of worker processes.
            log_level: Logging level.
        """
        import uvicorn

        uvicorn.run(
            self,
            host=host,
            port=port,
            reload=reload,
            workers=workers,
            log_level=log_level,
        )


def create_app(base_path: str = "/", **options: Any) -> Servess:
    """
    Create an application whose routes all live under *base_path*.

    Keyword options are passed to :class:`Servess`.
    """
    return Servess(base_path, **options)
