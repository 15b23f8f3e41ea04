"""
Routing system for Servess framework.

A :class:`RouterContext` holds an ordered list of dispatch targets: route
listeners and nested routers. Dispatch is depth-first, left to right and
the first target that does not answer ``UNHANDLED`` wins. Registration
order is the only priority; a sub-router registered early is consulted
before a sibling listener registered later.

Targets live in an arena keyed by stable integer handles. Each dispatch
iterates a copy of the handle list and resolves handles at call time, so
routes attached or detached while requests are in flight never shift or
skip the entries of an iteration already in progress.
"""

import itertools
import logging
from collections.abc import Awaitable, Callable, Iterator, MutableSequence
from typing import TYPE_CHECKING, Any, TypeAlias

from servess.dispatch import UNHANDLED, DispatchResult, ResultType, is_variant
from servess.extension import Capabilities, decorate_route_listener, decorate_router_context
from servess.listener import RouteListener
from servess.patterns import compile_pattern, join_path, normalize_prefix
from servess.types import Precondition, RouteHandler

if TYPE_CHECKING:
    from servess.context import MessageContext

logger = logging.getLogger("servess.routing")

DispatchTarget: TypeAlias = Callable[["MessageContext"], Awaitable[DispatchResult]]
Registration: TypeAlias = RouteListener | Callable[[RouteHandler], RouteListener]


def method_is(method: str) -> Precondition:
    """Precondition accepting requests whose method equals *method* (case-insensitive)."""
    expected = method.upper()

    def precondition(ctx: "MessageContext") -> bool:
        return ctx.method.upper() == expected

    precondition.__name__ = f"method_is_{expected.lower()}"
    return precondition


class RouterContext:
    """
    Composable collection of route listeners and sub-routers sharing a prefix.

    Implements the Composite pattern: a router is itself a dispatch target
    and can be nested under another router to any depth.

    Usage:
        router = RouterContext("/")

        @router.get("/users/:id")
        async def show_user(ctx):
            return ctx.json({"id": ctx.params["id"]})

        api = router.create_router("/api")
        api.post("/items", create_item)
    """

    def __init__(
        self,
        prefix: str = "/",
        extensions: MutableSequence[Any] | None = None,
    ) -> None:
        self._prefix = normalize_prefix(prefix)
        self._extensions: MutableSequence[Any] = extensions if extensions is not None else []
        self._targets: dict[int, DispatchTarget] = {}
        self._order: list[int] = []
        self._handles = itertools.count()
        self._on_detach: Callable[[], None] | None = None
        self.capabilities = Capabilities()

    @property
    def prefix(self) -> str:
        """Normalized prefix every route of this router starts with."""
        return self._prefix

    @property
    def extensions(self) -> MutableSequence[Any]:
        return self._extensions

    @property
    def routes(self) -> list[RouteListener]:
        """Every listener reachable from this router, in dispatch order."""
        return list(self._iter_listeners())

    def _iter_listeners(self) -> Iterator[RouteListener]:
        for handle in tuple(self._order):
            target = self._targets.get(handle)
            if isinstance(target, RouteListener):
                yield target
            elif isinstance(target, RouterContext):
                yield from target._iter_listeners()

    # ------------------------------------------------------------------
    # Target arena
    # ------------------------------------------------------------------

    def _insert(self, handle: int, target: DispatchTarget) -> None:
        self._targets[handle] = target
        self._order.append(handle)

    def _release(self, handle: int) -> None:
        if self._targets.pop(handle, None) is not None:
            self._order.remove(handle)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def _register(
        self,
        method: str | None,
        path: str | RouteHandler | None,
        handler: RouteHandler | None,
    ) -> Registration:
        if callable(path) and handler is None:
            path, handler = "", path
        route_path = "" if path is None else path
        if not isinstance(route_path, str):
            raise TypeError(f"Route path must be a string, got {type(route_path).__name__}")

        if handler is None:
            def decorator(func: RouteHandler) -> RouteListener:
                return self._add_listener(method, route_path, func)
            return decorator

        return self._add_listener(method, route_path, handler)

    def _add_listener(self, method: str | None, path: str, handler: RouteHandler) -> RouteListener:
        pattern = compile_pattern(self._prefix, path)
        handle = next(self._handles)
        listener = RouteListener(pattern, handler, on_detach=lambda _: self._release(handle))
        if method is not None:
            listener.add_precondition(method_is(method))
        decorate_route_listener(listener, self._extensions)
        self._insert(handle, listener)
        logger.debug("Registered %s %s", method.upper() if method else "*", pattern.path)
        return listener

    def any(
        self,
        path: str | RouteHandler | None = None,
        handler: RouteHandler | None = None,
    ) -> Registration:
        """
        Register a handler for every method.

        ``any(path, handler)`` and ``any(handler)`` (router's own prefix)
        return the new :class:`RouteListener`; ``any(path)`` returns a
        decorator that does the same.
        """
        return self._register(None, path, handler)

    def add(
        self,
        method: str,
        path: str | RouteHandler | None = None,
        handler: RouteHandler | None = None,
    ) -> Registration:
        """Register a handler for one method; the method check is a precondition."""
        return self._register(method, path, handler)

    def get(self, path: str | RouteHandler | None = None, handler: RouteHandler | None = None) -> Registration:
        return self.add("GET", path, handler)

    def post(self, path: str | RouteHandler | None = None, handler: RouteHandler | None = None) -> Registration:
        return self.add("POST", path, handler)

    def put(self, path: str | RouteHandler | None = None, handler: RouteHandler | None = None) -> Registration:
        return self.add("PUT", path, handler)

    def delete(self, path: str | RouteHandler | None = None, handler: RouteHandler | None = None) -> Registration:
        return self.add("DELETE", path, handler)

    def patch(self, path: str | RouteHandler | None = None, handler: RouteHandler | None = None) -> Registration:
        return self.add("PATCH", path, handler)

    def options(self, path: str | RouteHandler | None = None, handler: RouteHandler | None = None) -> Registration:
        return self.add("OPTIONS", path, handler)

    def head(self, path: str | RouteHandler | None = None, handler: RouteHandler | None = None) -> Registration:
        return self.add("HEAD", path, handler)

    def create_router(self, path: str) -> "RouterContext":
        """
        Create a sub-router whose prefix is this router's prefix plus *path*.

        The sub-router shares this router's extension list, is decorated by
        every installed extension, and is then appended to this router's
        dispatch targets.
        """
        router = RouterContext(join_path(self._prefix, path), self._extensions)
        decorate_router_context(router, self._extensions)
        handle = next(self._handles)
        router._on_detach = lambda: self._release(handle)
        self._insert(handle, router)
        logger.debug("Created sub-router %s", router.prefix)
        return router

    def detach(self) -> None:
        """Remove this router from its parent. No-op on a root router."""
        on_detach, self._on_detach = self._on_detach, None
        if on_detach is not None:
            logger.debug("Detaching sub-router %s", self._prefix)
            on_detach()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, ctx: "MessageContext") -> DispatchResult:
        """Offer *ctx* to each target in registration order; first non-UNHANDLED wins."""
        for handle in tuple(self._order):
            target = self._targets.get(handle)
            if target is None:
                # detached after this dispatch started
                continue
            outcome = await target(ctx)
            if not is_variant(outcome, ResultType.UNHANDLED):
                return outcome
        return UNHANDLED

    async def __call__(self, ctx: "MessageContext") -> DispatchResult:
        return await self.dispatch(ctx)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._prefix!r}>"
