"""
Dispatch results.

Every matching attempt (listener, router, application) answers with a
:class:`DispatchResult`. "No match" is a value, never an exception.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from servess.types import Payload


class ResultType(Enum):
    """The three possible outcomes of a dispatch attempt."""

    RESULT = "result"
    HANDLED = "handled"
    UNHANDLED = "unhandled"


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """
    Outcome of a dispatch attempt (Immutable Value Object).

    - ``RESULT`` carries a payload (bytes, text or a stream) to emit with
      the status and headers accumulated on the message context.
    - ``HANDLED`` means the response was already produced as a side effect.
    - ``UNHANDLED`` means "not for me, try the next candidate".
    """

    type: ResultType
    payload: Payload | None = None

    def __post_init__(self) -> None:
        if self.type is ResultType.RESULT:
            if self.payload is None:
                raise ValueError("A RESULT dispatch result requires a payload")
        elif self.payload is not None:
            raise ValueError(f"A {self.type.name} dispatch result carries no payload")

    @classmethod
    def result(cls, payload: Payload) -> "DispatchResult":
        return cls(ResultType.RESULT, payload)

    @classmethod
    def handled(cls) -> "DispatchResult":
        return HANDLED

    @classmethod
    def unhandled(cls) -> "DispatchResult":
        return UNHANDLED

    @property
    def is_result(self) -> bool:
        return self.type is ResultType.RESULT

    @property
    def is_handled(self) -> bool:
        return self.type is ResultType.HANDLED

    @property
    def is_unhandled(self) -> bool:
        return self.type is ResultType.UNHANDLED


HANDLED = DispatchResult(ResultType.HANDLED)
UNHANDLED = DispatchResult(ResultType.UNHANDLED)


def create(type: ResultType, payload: Payload | None = None) -> DispatchResult:
    """Build a dispatch result of the given variant."""
    if type is ResultType.RESULT:
        return DispatchResult.result(payload)  # type: ignore[arg-type]
    if payload is not None:
        raise ValueError(f"A {type.name} dispatch result carries no payload")
    return HANDLED if type is ResultType.HANDLED else UNHANDLED


def is_variant(value: Any, type: ResultType | None = None) -> bool:
    """
    Check whether *value* is a dispatch result, optionally of one variant.

    Usage:
        if is_variant(outcome, ResultType.UNHANDLED):
            ...
    """
    if not isinstance(value, DispatchResult):
        return False
    return type is None or value.type is type
