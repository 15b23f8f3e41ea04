"""Tests for servess.router: registration, nesting and dispatch order."""

import pytest

from servess.dispatch import UNHANDLED, DispatchResult
from servess.listener import RouteListener
from servess.router import RouterContext, method_is

from tests.conftest import make_context


class TestRegistration:
    def test_path_and_handler_returns_listener(self) -> None:
        router = RouterContext()
        listener = router.get("/hello", lambda ctx: "hi")
        assert isinstance(listener, RouteListener)
        assert listener.pattern.path == "/hello"
        assert router.routes == [listener]

    def test_decorator_form(self) -> None:
        router = RouterContext()

        @router.post("/items")
        async def create_item(ctx):
            return "created"

        assert isinstance(create_item, RouteListener)
        assert create_item.handler.__name__ == "create_item"

    def test_handler_only_registers_on_prefix(self) -> None:
        router = RouterContext("/api")
        listener = router.any(lambda ctx: "root")
        assert listener.pattern.path == "/api/"

    def test_method_is_a_precondition(self) -> None:
        router = RouterContext()
        listener = router.put("/x", lambda ctx: None)
        assert [p.__name__ for p in listener.preconditions] == ["method_is_put"]

    def test_any_has_no_method_precondition(self) -> None:
        router = RouterContext()
        listener = router.any("/x", lambda ctx: None)
        assert listener.preconditions == ()

    def test_non_string_path_raises(self) -> None:
        router = RouterContext()
        with pytest.raises(TypeError):
            router.get(42, lambda ctx: None)  # type: ignore[arg-type]

    def test_method_is(self) -> None:
        check = method_is("get")
        assert check(make_context(method="GET"))
        assert not check(make_context(method="POST"))


class TestDispatch:
    async def test_literal_path_reaches_first_listener(self) -> None:
        router = RouterContext()
        router.get("/same", lambda ctx: "first")
        router.get("/same", lambda ctx: "second")
        outcome = await router.dispatch(make_context(path="/same"))
        assert outcome == DispatchResult.result("first")

    async def test_method_mismatch_falls_through(self) -> None:
        router = RouterContext()
        router.get("/item", lambda ctx: "get")
        assert await router.dispatch(make_context(method="POST", path="/item")) is UNHANDLED

    async def test_same_path_different_methods(self) -> None:
        router = RouterContext()
        router.get("/item", lambda ctx: "get")
        router.post("/item", lambda ctx: "post")
        outcome = await router(make_context(method="POST", path="/item"))
        assert outcome.payload == "post"

    async def test_params(self) -> None:
        router = RouterContext()
        router.get("/users/:id", lambda ctx: ctx.params["id"])
        assert (await router.dispatch(make_context(path="/users/42"))).payload == "42"
        assert await router.dispatch(make_context(path="/users")) is UNHANDLED

    async def test_wildcard(self) -> None:
        router = RouterContext()
        router.get("/files/*", lambda ctx: "file")
        assert (await router.dispatch(make_context(path="/files/a/b/c"))).payload == "file"

    async def test_handled_stops_dispatch(self) -> None:
        calls: list[str] = []
        router = RouterContext()
        router.any("/", lambda ctx: calls.append("first"))
        router.any("/", lambda ctx: calls.append("second"))
        outcome = await router.dispatch(make_context(path="/"))
        assert outcome.is_handled
        assert calls == ["first"]

    async def test_unhandled_return_falls_through(self) -> None:
        router = RouterContext()
        router.any("/", lambda ctx: UNHANDLED)
        router.any("/", lambda ctx: "next")
        assert (await router.dispatch(make_context(path="/"))).payload == "next"

    async def test_empty_router_is_unhandled(self) -> None:
        assert await RouterContext().dispatch(make_context()) is UNHANDLED


class TestSubRouters:
    async def test_sub_router_prefix(self) -> None:
        root = RouterContext("/")
        api = root.create_router("/api")
        api.get("/users", lambda ctx: "users")

        assert api.prefix == "/api/"
        assert (await root.dispatch(make_context(path="/api/users"))).payload == "users"
        assert await root.dispatch(make_context(path="/users")) is UNHANDLED

    async def test_deep_nesting(self) -> None:
        root = RouterContext()
        v1 = root.create_router("api").create_router("v1")
        v1.get("/ping", lambda ctx: "pong")
        assert v1.prefix == "/api/v1/"
        assert (await root.dispatch(make_context(path="/api/v1/ping"))).payload == "pong"

    async def test_registration_order_across_sub_routers(self) -> None:
        root = RouterContext()
        api = root.create_router("/api")
        root.get("/api/x", lambda ctx: "root")
        api.get("/x", lambda ctx: "sub")
        assert (await root.dispatch(make_context(path="/api/x"))).payload == "sub"

    async def test_sub_router_shares_extensions(self) -> None:
        root = RouterContext()
        api = root.create_router("/api")
        assert api.extensions is root.extensions

    async def test_routes_lists_nested_listeners(self) -> None:
        root = RouterContext()
        a = root.get("/a", lambda ctx: None)
        sub = root.create_router("/sub")
        b = sub.get("/b", lambda ctx: None)
        c = root.get("/c", lambda ctx: None)
        assert root.routes == [a, b, c]

    async def test_detach_sub_router(self) -> None:
        root = RouterContext()
        api = root.create_router("/api")
        api.get("/x", lambda ctx: "x")
        api.detach()
        api.detach()
        assert await root.dispatch(make_context(path="/api/x")) is UNHANDLED

    def test_detach_root_is_noop(self) -> None:
        RouterContext().detach()


class TestDetachDuringDispatch:
    async def test_self_detaching_listener_keeps_third_turn(self) -> None:
        calls: list[str] = []
        router = RouterContext()
        router.any("/", lambda ctx: calls.append("first") or UNHANDLED)

        def second(ctx):
            calls.append("second")
            listener.detach()
            return UNHANDLED

        listener = router.any("/", second)
        router.any("/", lambda ctx: calls.append("third") or "third")

        outcome = await router.dispatch(make_context(path="/"))
        assert outcome.payload == "third"
        assert calls == ["first", "second", "third"]
        assert len(router.routes) == 2

    async def test_listener_detached_mid_dispatch_is_skipped(self) -> None:
        router = RouterContext()

        def first(ctx):
            later.detach()
            return UNHANDLED

        router.any("/", first)
        later = router.any("/", lambda ctx: "later")
        router.any("/", lambda ctx: "last")
        assert (await router.dispatch(make_context(path="/"))).payload == "last"

    async def test_listener_added_mid_dispatch_waits_for_next_request(self) -> None:
        router = RouterContext()

        def first(ctx):
            router.any("/", lambda ctx: "added")
            return UNHANDLED

        router.any("/", first)
        assert await router.dispatch(make_context(path="/")) is UNHANDLED

    def test_double_detach_removes_only_itself(self) -> None:
        router = RouterContext()
        a = router.get("/a", lambda ctx: None)
        b = router.get("/b", lambda ctx: None)
        c = router.get("/c", lambda ctx: None)
        b.detach()
        b.detach()
        assert router.routes == [a, c]
