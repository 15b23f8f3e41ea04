"""
Type definitions for the Servess framework.
Following Python 3.12 typing conventions.
"""

from collections.abc import AsyncIterable, Awaitable, Callable, Iterator, MutableMapping
from typing import TYPE_CHECKING, Any, TypeAlias

if TYPE_CHECKING:
    from servess.context import MessageContext

# ASGI Types
Scope: TypeAlias = MutableMapping[str, Any]
Message: TypeAlias = MutableMapping[str, Any]
Receive: TypeAlias = Callable[[], Awaitable[Message]]
Send: TypeAlias = Callable[[Message], Awaitable[None]]
ASGIApp: TypeAlias = Callable[[Scope, Receive, Send], Awaitable[None]]

# Response payloads a route handler may produce. Streams are iterators
# (generators), not containers such as lists.
Stream: TypeAlias = AsyncIterable[bytes | str] | Iterator[bytes | str]
Payload: TypeAlias = bytes | str | Stream

# Handler Types
RouteHandler: TypeAlias = Callable[["MessageContext"], Payload | None | Awaitable[Payload | None]]
Precondition: TypeAlias = Callable[["MessageContext"], bool | Awaitable[bool]]
ErrorHandler: TypeAlias = Callable[
    ["MessageContext", BaseException],
    Payload | None | Awaitable[Payload | None],
]
LifespanHandler: TypeAlias = Callable[[], Awaitable[None]]
