"""
Route path compilation.

A route path is split on ``/``. A ``:name`` segment captures one or more
non-slash characters, a trailing ``*`` segment matches the remainder of
the path (slashes included) and every other segment is matched literally.
Paths ending in ``/`` also match without the trailing slash.
"""

import re
from dataclasses import dataclass, field
from enum import Enum

from servess.exceptions import RoutingError

PARAM_PATTERN: str = r"[^/]+"
WILDCARD_PATTERN: str = r".*"


class SegmentKind(Enum):
    """The three kinds of path segment a pattern is built from."""

    LITERAL = "literal"
    PARAM = "param"
    WILDCARD = "wildcard"


@dataclass(frozen=True, slots=True)
class Segment:
    """One ``/``-separated piece of a route path."""

    kind: SegmentKind
    value: str = ""

    def to_regex(self, group: str | None = None) -> str:
        if self.kind is SegmentKind.PARAM:
            return f"(?P<{group}>{PARAM_PATTERN})"
        if self.kind is SegmentKind.WILDCARD:
            return WILDCARD_PATTERN
        return re.escape(self.value)


@dataclass(frozen=True, slots=True)
class PathPattern:
    """
    Compiled, immutable representation of a route path.

    Parameter names are mapped onto generated regex group names so any
    non-empty name (``:user-id`` included) can be captured.
    """

    path: str
    segments: tuple[Segment, ...]
    trailing_slash_optional: bool
    _regex: re.Pattern[str] = field(repr=False, compare=False)
    _groups: tuple[tuple[str, str], ...] = field(repr=False, compare=False)

    @property
    def param_names(self) -> tuple[str, ...]:
        return tuple(name for _, name in self._groups)

    @property
    def has_wildcard(self) -> bool:
        return bool(self.segments) and self.segments[-1].kind is SegmentKind.WILDCARD

    @property
    def regex(self) -> str:
        return self._regex.pattern

    def match(self, path: str) -> dict[str, str] | None:
        """
        Match a request path (query string already stripped).
        Returns the captured parameters, or None when the path is rejected.
        """
        match = self._regex.fullmatch(path)
        if match is None:
            return None
        return {name: match.group(group) for group, name in self._groups}

    def __str__(self) -> str:
        return self.path


def normalize_prefix(prefix: str) -> str:
    """Return *prefix* with exactly one leading and one trailing slash."""
    stripped = prefix.strip("/")
    if not stripped:
        return "/"
    return f"/{stripped}/"


def join_path(prefix: str, path: str) -> str:
    """Append *path* to an already normalized *prefix*."""
    return prefix + (path[1:] if path.startswith("/") else path)


def compile_pattern(prefix: str, path: str) -> PathPattern:
    """
    Compile ``prefix + path`` into a :class:`PathPattern`.

    Raises:
        RoutingError: If a parameter segment has no name or a name is
                      used twice in the same path.
    """
    full_path = join_path(normalize_prefix(prefix), path)
    parts = full_path.split("/")[1:]
    last = len(parts) - 1

    segments: list[Segment] = []
    groups: list[tuple[str, str]] = []
    pieces: list[str] = [""]

    for index, part in enumerate(parts):
        if part.startswith(":"):
            name = part[1:]
            if not name:
                raise RoutingError(f"Empty parameter name in route path {full_path!r}")
            if name in (existing for _, existing in groups):
                raise RoutingError(
                    f"Duplicate parameter {name!r} in route path {full_path!r}"
                )
            segment = Segment(SegmentKind.PARAM, name)
            group = f"p{len(groups)}"
            groups.append((group, name))
            pieces.append(segment.to_regex(group))
        elif part == "*" and index == last:
            segment = Segment(SegmentKind.WILDCARD)
            pieces.append(segment.to_regex())
        else:
            segment = Segment(SegmentKind.LITERAL, part)
            pieces.append(segment.to_regex())
        if part:
            segments.append(segment)

    # "/api/" also matches "/api"
    trailing_slash_optional = full_path.endswith("/")
    body = "/".join(pieces)
    if trailing_slash_optional:
        body = body[:-1] + "/?"

    return PathPattern(
        path=full_path,
        segments=tuple(segments),
        trailing_slash_optional=trailing_slash_optional,
        _regex=re.compile(body, re.DOTALL),
        _groups=tuple(groups),
    )
