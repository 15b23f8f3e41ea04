"""
Route listeners.

A listener is one registered ``(pattern, preconditions, handler)`` unit.
Matching order is a stable contract:

1. the compiled path pattern must accept ``ctx.path``;
2. preconditions run in the order they were added and the first falsy
   answer stops evaluation;
3. captured parameters replace ``ctx.params`` and the handler runs.

Any step that rejects the request yields ``UNHANDLED``.
"""

import logging
from collections.abc import AsyncIterable, Callable, Iterator
from typing import TYPE_CHECKING, Any

from servess._invoke import invoke
from servess.dispatch import HANDLED, UNHANDLED, DispatchResult
from servess.extension import Capabilities
from servess.patterns import PathPattern
from servess.types import Precondition, RouteHandler

if TYPE_CHECKING:
    from servess.context import MessageContext

logger = logging.getLogger("servess.routing")


def to_dispatch_result(value: Any) -> DispatchResult:
    """
    Map a handler's return value onto a dispatch result.

    ``None`` means the handler produced the response itself. A handler may
    also return a :class:`DispatchResult` directly, e.g. ``UNHANDLED`` to
    let later listeners try.

    Raises:
        TypeError: If the handler returned something that is not text,
                   bytes or a stream.
    """
    if value is None:
        return HANDLED
    if isinstance(value, DispatchResult):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return DispatchResult.result(bytes(value))
    if isinstance(value, (bytes, str)):
        return DispatchResult.result(value)
    if isinstance(value, (AsyncIterable, Iterator)):
        return DispatchResult.result(value)
    raise TypeError(
        f"Route handler returned {type(value).__name__}; "
        f"expected str, bytes, a stream or None"
    )


class RouteListener:
    """
    A single registered route handler.

    The handler can be swapped at runtime with :meth:`replace_handler`;
    a request that is already inside the old handler is not affected.
    """

    def __init__(
        self,
        pattern: PathPattern,
        handler: RouteHandler,
        on_detach: Callable[["RouteListener"], None] | None = None,
    ) -> None:
        self.pattern = pattern
        self._handler = handler
        self._preconditions: list[Precondition] = []
        self._on_detach = on_detach
        self.capabilities = Capabilities()

    @property
    def handler(self) -> RouteHandler:
        return self._handler

    @property
    def preconditions(self) -> tuple[Precondition, ...]:
        return tuple(self._preconditions)

    @property
    def attached(self) -> bool:
        return self._on_detach is not None

    async def matches_and_run(self, ctx: "MessageContext") -> DispatchResult:
        """Run the handler if the path and every precondition accept *ctx*."""
        params = self.pattern.match(ctx.path)
        if params is None:
            return UNHANDLED

        for precondition in tuple(self._preconditions):
            if not await invoke(precondition, ctx):
                return UNHANDLED

        ctx.bind_params(params)
        return to_dispatch_result(await invoke(self._handler, ctx))

    async def __call__(self, ctx: "MessageContext") -> DispatchResult:
        return await self.matches_and_run(ctx)

    def replace_handler(self, handler: RouteHandler) -> None:
        """Swap the handler; takes effect on the next invocation."""
        self._handler = handler

    def add_precondition(self, precondition: Precondition) -> "RouteListener":
        """Append a precondition. Returns self for chaining."""
        self._preconditions.append(precondition)
        return self

    def detach(self) -> None:
        """Remove this listener from its router. Calling it again does nothing."""
        on_detach, self._on_detach = self._on_detach, None
        if on_detach is not None:
            logger.debug("Detaching listener for %s", self.pattern)
            on_detach(self)

    def __repr__(self) -> str:
        return f"<RouteListener {self.pattern.path!r}>"
