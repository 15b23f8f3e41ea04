"""
Per-request message context for Servess framework.

A :class:`MessageContext` wraps one ASGI request. It exposes the request
(method, path, query, headers, cookies, route parameters, body), collects
the response status and headers handlers contribute, and implements
content negotiation over the ``Accept`` header.
"""

import asyncio
import json
import math
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType
from typing import Any, Literal

from servess.cookies import Cookie, CookieOptions, parse_cookies
from servess.exceptions import BodyAccessError, NegotiationError, PayloadTooLarge
from servess.extension import Capabilities
from servess.headers import Headers, ReadOnlyHeaders
from servess.query import QueryObject
from servess.types import Receive, Scope, Send

# Default maximum request body size: 1 MB
DEFAULT_MAX_BODY_SIZE: int = 1_048_576

MIME_TYPE_SHORTHANDS: dict[str, str] = {
    "json": "application/json",
    "html": "text/html",
    "css": "text/css",
    "js": "text/javascript",
    "javascript": "text/javascript",
    "svg": "image/svg+xml",
    "png": "image/png",
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
}

# Methods whose redirects use 303 so clients re-issue them as GET
_SEE_OTHER_METHODS: frozenset[str] = frozenset({"PUT", "POST"})


def expand_mime_type(value: str) -> str:
    """Expand a shorthand such as ``"json"`` to its full MIME type."""
    return MIME_TYPE_SHORTHANDS.get(value, value)


@dataclass(frozen=True, slots=True)
class AcceptEntry:
    """One media range from an ``Accept`` header."""

    mime_type: str
    quality: float = 1.0
    params: Mapping[str, str] = field(default_factory=dict)


def parse_accept(header: str) -> list[AcceptEntry]:
    """
    Parse an ``Accept`` header into entries sorted by descending quality.
    Entries with equal quality keep their header order.
    """
    entries: list[AcceptEntry] = []
    for item in header.split(","):
        mime_type, *raw_params = [part.strip() for part in item.split(";")]
        if not mime_type:
            continue
        quality = 1.0
        params: dict[str, str] = {}
        for raw_param in raw_params:
            name, _, value = raw_param.partition("=")
            name = name.strip()
            if not name:
                continue
            if name == "q":
                try:
                    parsed = float(value)
                except ValueError:
                    continue
                if math.isfinite(parsed):
                    quality = parsed
            else:
                params[name] = value.strip()
        entries.append(AcceptEntry(mime_type, quality, params))

    entries.sort(key=lambda entry: -entry.quality)
    return entries


class MessageContext:
    """
    HTTP request/response facade handed to route handlers.

    One instance per request; never reused. Request data is read-only,
    response status and headers accumulate across everything that touches
    the context during dispatch.
    """

    def __init__(
        self,
        scope: Scope,
        receive: Receive,
        send: Send,
        max_body_size: int = DEFAULT_MAX_BODY_SIZE,
    ) -> None:
        self._scope = scope
        self._receive = receive
        self._send = send
        self._max_body_size = max_body_size
        self._params: dict[str, str] = {}
        self._status_code = 200
        self._externally_handled = False
        self._body_task: asyncio.Task[bytes] | None = None
        self._body_mode: Literal["buffer", "stream"] | None = None
        self.response_headers = Headers()
        self.capabilities = Capabilities()

    # ------------------------------------------------------------------
    # Request data
    # ------------------------------------------------------------------

    @property
    def scope(self) -> Scope:
        return self._scope

    @property
    def method(self) -> str:
        """HTTP method (GET, POST, etc.)."""
        return self._scope.get("method", "GET")

    @property
    def path(self) -> str:
        """Request path without the query string."""
        return self._scope.get("path", "/")

    @property
    def query_string(self) -> str:
        return self._scope.get("query_string", b"").decode("latin-1")

    @property
    def url(self) -> str:
        """Path plus query string, as requested."""
        if self.query_string:
            return f"{self.path}?{self.query_string}"
        return self.path

    @cached_property
    def query(self) -> QueryObject:
        return QueryObject.from_string(self.query_string)

    @cached_property
    def headers(self) -> ReadOnlyHeaders:
        return ReadOnlyHeaders.from_scope(self._scope.get("headers", []))

    @cached_property
    def cookies(self) -> Mapping[str, str]:
        return MappingProxyType(parse_cookies(self.headers.get("cookie", "") or ""))

    @property
    def params(self) -> Mapping[str, str]:
        """Path parameters captured by the listener that matched."""
        return MappingProxyType(self._params)

    def bind_params(self, params: Mapping[str, str]) -> None:
        """Replace the path parameters. Called by route listeners on match."""
        self._params = dict(params)

    @property
    def client(self) -> tuple[str, int] | None:
        """Client address as (host, port) tuple."""
        client = self._scope.get("client")
        if client:
            return (client[0], client[1])
        return None

    @property
    def app(self) -> Any:
        """Reference to the application instance."""
        return self._scope.get("app")

    # ------------------------------------------------------------------
    # Body
    # ------------------------------------------------------------------

    def _claim_body(self, mode: Literal["buffer", "stream"]) -> None:
        if self._body_mode is None:
            self._body_mode = mode
            return
        if self._body_mode != mode:
            raise BodyAccessError(
                f"Request body is already being read as a {self._body_mode}"
            )
        if mode == "stream":
            raise BodyAccessError("Request body stream can only be consumed once")

    async def body(self) -> bytes:
        """
        Read and return the whole request body.

        The body is read once. Concurrent and later callers all await the
        same read, so they see the same bytes or the same error.

        Raises:
            BodyAccessError: If the body was already taken with :meth:`stream`.
            PayloadTooLarge: If the body exceeds ``max_body_size``.
        """
        if self._body_task is None:
            self._claim_body("buffer")
            self._body_task = asyncio.ensure_future(self._read_body())
        return await asyncio.shield(self._body_task)

    async def _read_body(self) -> bytes:
        if self.method == "GET":
            return b""

        content_length = self.headers.get("content-length")
        if (
            self._max_body_size > 0
            and content_length is not None
            and content_length.isdigit()
            and int(content_length) > self._max_body_size
        ):
            raise PayloadTooLarge(
                f"Request body too large. "
                f"Maximum allowed: {self._max_body_size} bytes"
            )

        chunks: list[bytes] = []
        total_size = 0
        async for chunk in self._iter_body():
            total_size += len(chunk)
            if self._max_body_size > 0 and total_size > self._max_body_size:
                raise PayloadTooLarge(
                    f"Request body too large. "
                    f"Maximum allowed: {self._max_body_size} bytes"
                )
            chunks.append(chunk)

        return b"".join(chunks)

    def stream(self) -> AsyncIterator[bytes]:
        """
        Iterate over the request body as it arrives.

        Raises:
            BodyAccessError: If the body was already buffered or streamed.
        """
        self._claim_body("stream")
        return self._iter_body()

    async def _iter_body(self) -> AsyncIterator[bytes]:
        while True:
            message = await self._receive()
            if message["type"] == "http.disconnect":
                return
            chunk = message.get("body", b"")
            if chunk:
                yield chunk
            if not message.get("more_body", False):
                return

    async def text(self) -> str:
        """Read body as text."""
        body = await self.body()
        return body.decode("utf-8")

    async def json_body(self) -> Any:
        """Parse body as JSON."""
        text = await self.text()
        return json.loads(text) if text else None

    # ------------------------------------------------------------------
    # External handling
    # ------------------------------------------------------------------

    @property
    def is_externally_handled(self) -> bool:
        return self._externally_handled

    def set_externally_handled(
        self,
        handler: Callable[[Scope, Receive, Send], Any] | None = None,
    ) -> Any:
        """
        Take over the response. The application will not finalize it.

        *handler*, when given, is called with the raw ASGI triple and its
        return value is passed back (await it if it is a coroutine).
        """
        self._externally_handled = True
        if handler is not None:
            return handler(self._scope, self._receive, self._send)
        return None

    # ------------------------------------------------------------------
    # Response shaping
    # ------------------------------------------------------------------

    @property
    def status_code(self) -> int:
        return self._status_code

    @status_code.setter
    def status_code(self, value: int) -> None:
        self._status_code = value

    def status(self, status_code: int) -> "MessageContext":
        """Set the response status. Returns self for chaining."""
        self._status_code = status_code
        return self

    @staticmethod
    def _header_value(name: str, values: tuple[Any, ...]) -> tuple[Any, ...]:
        if name.lower() == "content-type" and len(values) == 1 and isinstance(values[0], str):
            return (expand_mime_type(values[0]),)
        return values

    def set_header(self, name: str, *values: Any) -> "MessageContext":
        """Set a response header. Returns self for chaining."""
        self.response_headers.set(name, *self._header_value(name, values))
        return self

    def add_header(self, name: str, *values: Any) -> "MessageContext":
        """Add a value to a response header. Returns self for chaining."""
        self.response_headers.add(name, *self._header_value(name, values))
        return self

    def set_cookie(
        self,
        key: str | Cookie,
        value: str = "",
        options: CookieOptions | None = None,
    ) -> "MessageContext":
        """Set a cookie. Returns self for chaining."""
        cookie = key if isinstance(key, Cookie) else Cookie(key, value, options or CookieOptions())
        self.response_headers.add("Set-Cookie", str(cookie))
        return self

    def remove_cookie(self, key: str, options: CookieOptions | None = None) -> "MessageContext":
        """Tell the client to delete a cookie. Returns self for chaining."""
        return self.set_cookie(Cookie(key, "", options or CookieOptions()).expired())

    def json(self, value: Any, indent: int | None = None) -> str:
        """Set the JSON content type and serialize *value*."""
        self.set_header("Content-Type", "json")
        return json.dumps(
            value,
            ensure_ascii=False,
            allow_nan=False,
            indent=indent,
            separators=(",", ":") if indent is None else None,
        )

    def _redirect(self, location: str, status_code: int) -> None:
        if self.method.upper() in _SEE_OTHER_METHODS:
            status_code = 303
        self.status(status_code).set_header("Location", location)

    def redirect(self, location: str) -> None:
        """Temporary redirect (307, or 303 after PUT/POST)."""
        self._redirect(location, 307)

    def redirect_permanent(self, location: str) -> None:
        """Permanent redirect (308, or 303 after PUT/POST)."""
        self._redirect(location, 308)

    def redirect_permanent_compat(self, location: str) -> None:
        """Permanent redirect for old clients (301, or 303 after PUT/POST)."""
        self._redirect(location, 301)

    # ------------------------------------------------------------------
    # Content negotiation
    # ------------------------------------------------------------------

    @cached_property
    def accept_entries(self) -> list[AcceptEntry]:
        """The ``Accept`` header, parsed and sorted by preference."""
        return parse_accept(self.headers.get("accept", "") or "")

    def accepts(self, *types: str) -> str | Literal[False]:
        """
        Return the candidate the client prefers, or False if none is acceptable.

        Candidates may be full MIME types or shorthands (``"json"``,
        ``"html"``, ...). The candidate is returned exactly as given.
        """
        if not types:
            return False

        resolved = [(expand_mime_type(candidate).partition("/"), candidate) for candidate in types]

        for entry in self.accept_entries:
            if entry.mime_type == "*/*":
                return types[0]
            major, _, minor = entry.mime_type.partition("/")
            for (candidate_major, _, candidate_minor), candidate in resolved:
                if major != candidate_major:
                    continue
                if minor == "*" or minor == candidate_minor:
                    return candidate

        return False

    def accepting(self, handlers: Mapping[str, Callable[["MessageContext"], Any]]) -> Any:
        """
        Call the handler for the most preferred type, or ``handlers["else"]``.

        Usage:
            return ctx.accepting({
                "json": lambda ctx: ctx.json(data),
                "html": render_page,
                "else": lambda ctx: "plain text",
            })

        Raises:
            NegotiationError: If no ``"else"`` handler is given.
        """
        if "else" not in handlers:
            raise NegotiationError(
                "accepting() needs an 'else' handler for types that do not match"
            )
        candidates = [key for key in handlers if key != "else"]
        chosen = self.accepts(*candidates)
        if chosen is False:
            return handlers["else"](self)
        return handlers[chosen](self)

    def __repr__(self) -> str:
        return f"<MessageContext {self.method} {self.url}>"
