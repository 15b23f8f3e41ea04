"""
HTTP header container.

Header names are case-insensitive and every name can hold several values.
Names are written back out in canonical casing (``Content-Type``, ``ETag``).
"""

import re
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

# Names whose canonical form is not plain capitalized words
IRREGULAR_HEADER_NAMES: dict[str, str] = {
    "www-authenticate": "WWW-Authenticate",
    "te": "TE",
    "accept-ch": "Accept-CH",
    "accept-ch-lifetime": "Accept-CH-Lifetime",
    "etag": "ETag",
    "dnt": "DNT",
    "expect-ct": "Expect-CT",
    "x-xss-protection": "X-XSS-Protection",
    "nel": "NEL",
    "sec-websocket-key": "Sec-WebSocket-Key",
    "sec-websocket-extensions": "Sec-WebSocket-Extensions",
    "sec-websocket-accept": "Sec-WebSocket-Accept",
    "sec-websocket-protocol": "Sec-WebSocket-Protocol",
    "sec-websocket-version": "Sec-WebSocket-Version",
    "sourcemap": "SourceMap",
    "x-dns-prefetch-control": "X-DNS-Prefetch-Control",
    "x-ua-compatible": "X-UA-Compatible",
}

_WORD_START: re.Pattern[str] = re.compile(r"(^|-)([a-z])")


def canonical_header_name(name: str) -> str:
    """Convert a header name to its canonical casing."""
    lowered = name.lower()
    if lowered in IRREGULAR_HEADER_NAMES:
        return IRREGULAR_HEADER_NAMES[lowered]
    return _WORD_START.sub(lambda m: m.group(1) + m.group(2).upper(), lowered)


def _flatten(values: tuple[Any, ...]) -> list[str]:
    """Accept ``set(name, "a", "b")`` as well as ``set(name, ["a", "b"])``."""
    if len(values) == 1 and isinstance(values[0], (list, tuple)):
        values = tuple(values[0])
    return [str(value) for value in values if value is not None]


class Headers:
    """
    Case-insensitive, multi-valued header collection.

    Values may be anything with a useful ``str()`` (numbers, cookies);
    ``None`` values are dropped.
    """

    def __init__(self, initial: Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None) -> None:
        self._headers: dict[str, list[str]] = {}
        if initial is None:
            return
        items = initial.items() if isinstance(initial, Mapping) else initial
        for name, value in items:
            self._add(name, (value,))

    @classmethod
    def from_scope(cls, raw_headers: Iterable[tuple[bytes, bytes]]) -> "Headers":
        """Build headers from ASGI ``(name, value)`` byte pairs."""
        return cls(
            (name.decode("latin-1"), value.decode("latin-1"))
            for name, value in raw_headers
        )

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "Headers":
        headers = cls()
        for name, value in (mapping or {}).items():
            headers._set(name, (value,))
        return headers

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def get(self, name: str, default: str | None = None) -> str | None:
        """Get the first value of a header."""
        values = self._headers.get(name.lower())
        if not values:
            return default
        return values[0]

    def get_all(self, name: str) -> list[str] | None:
        """Get every value of a header, or None if the header is absent."""
        values = self._headers.get(name.lower())
        if values is None:
            return None
        return list(values)

    def has(self, name: str) -> bool:
        return name.lower() in self._headers

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def __getitem__(self, name: str) -> str:
        value = self.get(name)
        if value is None:
            raise KeyError(name)
        return value

    def __iter__(self) -> Iterator[str]:
        return (canonical_header_name(name) for name in self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def entries(self) -> list[tuple[str, str]]:
        """One ``(canonical name, value)`` pair per value."""
        return [
            (canonical_header_name(name), value)
            for name, values in self._headers.items()
            for value in values
        ]

    def raw(self) -> list[tuple[bytes, bytes]]:
        """Headers as ASGI byte pairs (lowercase names)."""
        return [
            (name.encode("latin-1"), value.encode("latin-1"))
            for name, values in self._headers.items()
            for value in values
        ]

    def to_json(self) -> dict[str, str | list[str]]:
        result: dict[str, str | list[str]] = {}
        for name, values in self._headers.items():
            if values:
                result[canonical_header_name(name)] = values[0] if len(values) == 1 else list(values)
        return result

    def __str__(self) -> str:
        return "".join(f"{name}: {value}\r\n" for name, value in self.entries())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_json()!r})"

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def set(self, name: str, *values: Any) -> None:
        """Replace every value of a header."""
        self._set(name, values)

    def add(self, name: str, *values: Any) -> None:
        """Append values to a header, creating it if required."""
        self._add(name, values)

    def remove(self, name: str) -> None:
        self._headers.pop(name.lower(), None)

    def _set(self, name: str, values: tuple[Any, ...]) -> None:
        self._headers[name.lower()] = _flatten(values)

    def _add(self, name: str, values: tuple[Any, ...]) -> None:
        self._headers.setdefault(name.lower(), []).extend(_flatten(values))


class ReadOnlyHeaders(Headers):
    """Request headers: the read API of :class:`Headers` without mutators."""

    def set(self, name: str, *values: Any) -> None:
        raise TypeError("Request headers are read-only")

    def add(self, name: str, *values: Any) -> None:
        raise TypeError("Request headers are read-only")

    def remove(self, name: str) -> None:
        raise TypeError("Request headers are read-only")
