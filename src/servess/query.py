"""
Query string container.

An order-preserving mapping from a key to one or more string values.
"""

import math
from collections.abc import Iterator, Mapping
from typing import Any
from urllib.parse import parse_qsl, quote


def _flatten(values: tuple[Any, ...]) -> list[str]:
    if len(values) == 1 and isinstance(values[0], (list, tuple)):
        values = tuple(values[0])
    return [str(value) for value in values if value is not None]


class QueryObject:
    """
    Multi-valued query parameters.

    Usage:
        query = QueryObject.from_string("page=2&tag=a&tag=b")
        query.get("page")          # "2"
        query.get_all("tag")       # ["a", "b"]
        query.get_as_number("page")  # 2
    """

    def __init__(self) -> None:
        self._query: dict[str, list[str]] = {}

    @classmethod
    def from_string(cls, query_string: str) -> "QueryObject":
        """Parse a raw (percent-encoded) query string."""
        query = cls()
        for name, value in parse_qsl(query_string, keep_blank_values=True):
            if name:
                query.add(name, value)
        return query

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "QueryObject":
        query = cls()
        for name, value in (mapping or {}).items():
            query.add(name, value)
        return query

    def get(self, name: str, default: str | None = None) -> str | None:
        """Get the first value of a key, or *default*."""
        values = self._query.get(name)
        if not values:
            return default
        return values[0]

    def get_all(self, name: str) -> list[str] | None:
        values = self._query.get(name)
        if values is None:
            return None
        return list(values)

    def has(self, name: str) -> bool:
        return name in self._query

    def __contains__(self, name: object) -> bool:
        return name in self._query

    def __iter__(self) -> Iterator[str]:
        return iter(self._query)

    def __len__(self) -> int:
        return len(self._query)

    def set(self, name: str, *values: Any) -> None:
        """Replace every value of a key."""
        self._query[name] = _flatten(values)

    def add(self, name: str, *values: Any) -> None:
        """Append values to a key, creating it if required."""
        self._query.setdefault(name, []).extend(_flatten(values))

    def get_as_number(self, name: str, default: float | None = None) -> float | None:
        """Get the first value of a key as a number, or *default* if it is not numeric."""
        value = self.get(name)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            pass
        try:
            number = float(value)
        except ValueError:
            return default
        return number if math.isfinite(number) else default

    def get_as_number_in_range(
        self,
        name: str,
        minimum: float,
        maximum: float,
        default: float | None = None,
    ) -> float:
        """Get a numeric value clamped to ``[minimum, maximum]``."""
        value = self.get_as_number(name, default)
        if value is None:
            value = minimum
        return max(min(value, maximum), minimum)

    def entries(self) -> list[tuple[str, str]]:
        """One ``(key, value)`` pair per value."""
        return [(name, value) for name, values in self._query.items() for value in values]

    def to_json(self) -> dict[str, list[str]]:
        return {name: list(values) for name, values in self._query.items()}

    def __str__(self) -> str:
        return "&".join(
            f"{quote(name, safe='')}={quote(value, safe='')}" for name, value in self.entries()
        )

    def __repr__(self) -> str:
        return f"QueryObject({self.to_json()!r})"
