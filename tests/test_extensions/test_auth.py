"""Tests for the authentication extension: backends, user capability, preconditions."""

import base64
import time

import jwt
import pytest

from servess.app import Servess
from servess.exceptions import ExtensionError
from servess.extensions.auth import (
    USER,
    AnonymousUser,
    AuthOptions,
    Authentication,
    BasicAuthBackend,
    JWTAuthBackend,
    User,
    current_user,
    login_required,
    require_scopes,
)

from tests.conftest import make_context, run_app

SECRET = "test-secret-key-that-is-long-enough"


def make_token(sub: str = "42", **claims) -> str:
    return jwt.encode({"sub": sub, **claims}, SECRET, algorithm="HS256")


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def make_app(backend=None, exclude_paths: list[str] | None = None) -> Servess:
    app = Servess()

    def setup(options: AuthOptions) -> None:
        options.backend = backend or JWTAuthBackend(SECRET)
        options.exclude_paths = exclude_paths or []

    await app.install(Authentication, setup)
    return app


class TestUser:
    def test_user_scopes(self) -> None:
        user = User(id="1", scopes=["read"])
        assert user.identity == "1"
        assert user.has_scope("read")
        assert not user.has_scope("write")

    def test_anonymous(self) -> None:
        anon = AnonymousUser()
        assert anon.identity is None
        assert not anon.is_authenticated
        assert not anon.has_scope("read")


class TestJWTAuthBackend:
    async def test_valid_token(self) -> None:
        backend = JWTAuthBackend(SECRET)
        ctx = make_context(headers=bearer(make_token(username="ann", scopes=["read"])))
        user = await backend.authenticate(ctx)
        assert isinstance(user, User)
        assert user.id == "42"
        assert user.username == "ann"
        assert user.scopes == ["read"]

    async def test_missing_header(self) -> None:
        user = await JWTAuthBackend(SECRET).authenticate(make_context())
        assert isinstance(user, AnonymousUser)

    async def test_wrong_scheme(self) -> None:
        ctx = make_context(headers={"Authorization": f"Token {make_token()}"})
        user = await JWTAuthBackend(SECRET).authenticate(ctx)
        assert not user.is_authenticated

    async def test_bad_signature(self) -> None:
        token = jwt.encode({"sub": "1"}, "another-secret-key-that-is-long-enough", algorithm="HS256")
        user = await JWTAuthBackend(SECRET).authenticate(make_context(headers=bearer(token)))
        assert not user.is_authenticated

    async def test_expired_token(self) -> None:
        token = make_token(exp=int(time.time()) - 60)
        user = await JWTAuthBackend(SECRET).authenticate(make_context(headers=bearer(token)))
        assert not user.is_authenticated

    async def test_malformed_token(self) -> None:
        user = await JWTAuthBackend(SECRET).authenticate(make_context(headers=bearer("not.a.jwt")))
        assert not user.is_authenticated


class TestBasicAuthBackend:
    @staticmethod
    def basic(username: str, password: str) -> dict[str, str]:
        encoded = base64.b64encode(f"{username}:{password}".encode()).decode()
        return {"Authorization": f"Basic {encoded}"}

    async def test_valid_credentials(self) -> None:
        async def verify(username, password):
            if (username, password) == ("ann", "pw"):
                return User(id="7", username=username)
            return None

        user = await BasicAuthBackend(verify).authenticate(make_context(headers=self.basic("ann", "pw")))
        assert user.id == "7"

    async def test_sync_verifier(self) -> None:
        backend = BasicAuthBackend(lambda username, password: None)
        user = await backend.authenticate(make_context(headers=self.basic("ann", "bad")))
        assert not user.is_authenticated

    async def test_garbage_credentials(self) -> None:
        ctx = make_context(headers={"Authorization": "Basic !!!notbase64"})
        user = await BasicAuthBackend(lambda u, p: User(id="x")).authenticate(ctx)
        assert not user.is_authenticated


class TestAuthenticationExtension:
    async def test_backend_required(self) -> None:
        with pytest.raises(ExtensionError, match="backend"):
            await Servess().install(Authentication)

    async def test_user_capability(self) -> None:
        app = await make_app()
        app.get("/me", lambda ctx: ctx.capabilities[USER].id)
        cap = await run_app(app, path="/me", headers=bearer(make_token("99")))
        assert cap.body == b"99"

    async def test_anonymous_without_token(self) -> None:
        app = await make_app()
        app.get("/me", lambda ctx: str(current_user(ctx).is_authenticated))
        assert (await run_app(app, path="/me")).body == b"False"

    async def test_excluded_path_skips_backend(self) -> None:
        app = await make_app(exclude_paths=["/public"])
        app.get("/public/info", lambda ctx: str(current_user(ctx).is_authenticated))
        cap = await run_app(app, path="/public/info", headers=bearer(make_token()))
        assert cap.body == b"False"


class TestPreconditions:
    async def test_login_required(self) -> None:
        app = await make_app()
        app.get("/private", lambda ctx: "secret").add_precondition(login_required)

        assert (await run_app(app, path="/private")).status == 401
        cap = await run_app(app, path="/private", headers=bearer(make_token()))
        assert cap.status == 200
        assert cap.body == b"secret"

    async def test_login_required_after_method_check(self) -> None:
        app = await make_app()
        app.get("/private", lambda ctx: "secret").add_precondition(login_required)
        assert (await run_app(app, method="POST", path="/private")).status == 404

    async def test_require_scopes(self) -> None:
        app = await make_app()
        app.delete("/items/:id", lambda ctx: None).add_precondition(require_scopes("items:delete"))

        reader = bearer(make_token(scopes=["items:read"]))
        admin = bearer(make_token(scopes=["items:read", "items:delete"]))
        assert (await run_app(app, method="DELETE", path="/items/1")).status == 401
        assert (await run_app(app, method="DELETE", path="/items/1", headers=reader)).status == 403
        assert (await run_app(app, method="DELETE", path="/items/1", headers=admin)).status == 200
