"""Tests for servess.listener: matching order and handler results."""

import pytest

from servess.dispatch import HANDLED, UNHANDLED, DispatchResult
from servess.listener import RouteListener, to_dispatch_result
from servess.patterns import compile_pattern

from tests.conftest import make_context


def make_listener(path: str, handler) -> RouteListener:
    return RouteListener(compile_pattern("/", path), handler)


class TestToDispatchResult:
    def test_none_is_handled(self) -> None:
        assert to_dispatch_result(None) is HANDLED

    def test_text_and_bytes(self) -> None:
        assert to_dispatch_result("hi") == DispatchResult.result("hi")
        assert to_dispatch_result(b"hi") == DispatchResult.result(b"hi")
        assert to_dispatch_result(bytearray(b"hi")) == DispatchResult.result(b"hi")

    def test_generators_are_streams(self) -> None:
        def chunks():
            yield b"a"

        async def async_chunks():
            yield b"a"

        assert to_dispatch_result(chunks()).is_result
        assert to_dispatch_result(async_chunks()).is_result

    def test_dispatch_result_passes_through(self) -> None:
        assert to_dispatch_result(UNHANDLED) is UNHANDLED

    def test_unsupported_type_raises(self) -> None:
        with pytest.raises(TypeError, match="dict"):
            to_dispatch_result({"a": 1})

    def test_list_of_chunks_is_not_a_stream(self) -> None:
        with pytest.raises(TypeError, match="list"):
            to_dispatch_result([b"a", b"b"])
        assert to_dispatch_result(iter([b"a", b"b"])).is_result


class TestMatchesAndRun:
    async def test_runs_handler_with_params(self) -> None:
        async def handler(ctx):
            return f"user {ctx.params['id']}"

        listener = make_listener("/users/:id", handler)
        ctx = make_context(path="/users/42")
        outcome = await listener(ctx)
        assert outcome == DispatchResult.result("user 42")
        assert ctx.params == {"id": "42"}

    async def test_sync_handler(self) -> None:
        listener = make_listener("/", lambda ctx: "sync")
        outcome = await listener.matches_and_run(make_context(path="/"))
        assert outcome.payload == "sync"

    async def test_path_mismatch_is_unhandled(self) -> None:
        listener = make_listener("/users/:id", lambda ctx: "x")
        assert await listener(make_context(path="/users")) is UNHANDLED

    async def test_preconditions_run_in_order_and_short_circuit(self) -> None:
        calls: list[str] = []

        def first(ctx):
            calls.append("first")
            return False

        async def second(ctx):
            calls.append("second")
            return True

        listener = make_listener("/", lambda ctx: "x")
        listener.add_precondition(first).add_precondition(second)
        assert await listener(make_context(path="/")) is UNHANDLED
        assert calls == ["first"]

    async def test_preconditions_not_run_when_path_mismatches(self) -> None:
        calls: list[str] = []
        listener = make_listener("/a", lambda ctx: "x")
        listener.add_precondition(lambda ctx: calls.append("ran") or True)
        await listener(make_context(path="/b"))
        assert calls == []

    async def test_params_not_bound_when_precondition_fails(self) -> None:
        listener = make_listener("/users/:id", lambda ctx: "x")
        listener.add_precondition(lambda ctx: False)
        ctx = make_context(path="/users/7")
        await listener(ctx)
        assert ctx.params == {}

    async def test_handler_exception_propagates(self) -> None:
        def boom(ctx):
            raise RuntimeError("boom")

        listener = make_listener("/", boom)
        with pytest.raises(RuntimeError, match="boom"):
            await listener(make_context(path="/"))

    async def test_replace_handler(self) -> None:
        listener = make_listener("/", lambda ctx: "old")
        listener.replace_handler(lambda ctx: "new")
        outcome = await listener(make_context(path="/"))
        assert outcome.payload == "new"


class TestDetach:
    def test_detach_calls_callback_once(self) -> None:
        detached: list[RouteListener] = []
        listener = RouteListener(compile_pattern("/", "/"), lambda ctx: None, on_detach=detached.append)
        assert listener.attached
        listener.detach()
        listener.detach()
        assert detached == [listener]
        assert not listener.attached
