"""
Authentication extension for Servess framework.
Provides pluggable authentication backends and user management.
"""
import base64
import binascii
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import jwt

from servess._invoke import invoke
from servess.context import MessageContext
from servess.exceptions import ExtensionError, Forbidden, Unauthorized
from servess.extension import CapabilityKey, ConfigurableExtensionFactory, Extension
from servess.types import Precondition


@dataclass
class User:
    """
    User representation for authentication.

    Follows Single Responsibility Principle - represents user identity only.
    """

    id: str
    username: str | None = None
    email: str | None = None
    is_authenticated: bool = True
    is_active: bool = True
    scopes: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def identity(self) -> str:
        """Return the user's identity (ID)."""
        return self.id

    def has_scope(self, scope: str) -> bool:
        """Check if user has a specific scope/permission."""
        return scope in self.scopes


@dataclass
class AnonymousUser:
    """Anonymous user for unauthenticated requests."""

    id: str = ""
    username: str | None = None
    email: str | None = None
    is_authenticated: bool = False
    is_active: bool = False
    scopes: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def identity(self) -> None:
        """Anonymous users have no identity."""
        return None

    def has_scope(self, scope: str) -> bool:
        """Anonymous users have no scopes."""
        return False


USER: CapabilityKey[User | AnonymousUser] = CapabilityKey("user")


def _split_authorization(ctx: MessageContext) -> tuple[str, str] | None:
    auth_header = ctx.headers.get("authorization")
    if not auth_header:
        return None
    scheme, _, credentials = auth_header.partition(" ")
    if not credentials:
        return None
    return scheme, credentials.strip()


class AuthBackend(ABC):
    """
    Abstract authentication backend.

    Follows Dependency Inversion Principle - the extension depends on
    this abstraction, not concrete implementations.

    Implements the Strategy pattern for pluggable authentication.
    """

    @abstractmethod
    async def authenticate(self, ctx: MessageContext) -> User | AnonymousUser:
        """
        Authenticate a request and return a User or AnonymousUser.

        Args:
            ctx: The incoming message context.

        Returns:
            User if authenticated, AnonymousUser otherwise.
        """
        ...


class JWTAuthBackend(AuthBackend):
    """
    JWT-based authentication backend.
    Expects an Authorization header with "Bearer <token>" format.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        token_prefix: str = "Bearer",
    ) -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._token_prefix = token_prefix

    async def authenticate(self, ctx: MessageContext) -> User | AnonymousUser:
        authorization = _split_authorization(ctx)
        if authorization is None:
            return AnonymousUser()

        scheme, token = authorization
        if scheme.lower() != self._token_prefix.lower():
            return AnonymousUser()

        try:
            payload: dict[str, Any] = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            return AnonymousUser()
        except jwt.InvalidTokenError:
            return AnonymousUser()

        if "sub" not in payload:
            return AnonymousUser()
        return User(
            id=str(payload["sub"]),
            username=payload.get("username"),
            email=payload.get("email"),
            scopes=list(payload.get("scopes", [])),
        )


class BasicAuthBackend(AuthBackend):
    """
    HTTP Basic authentication backend.

    ``verify_credentials(username, password)`` returns a User or None and
    may be a plain function or a coroutine function.
    """

    def __init__(
        self,
        verify_credentials: Callable[[str, str], User | None | Awaitable[User | None]] | None = None,
    ) -> None:
        self._verify_credentials = verify_credentials

    async def authenticate(self, ctx: MessageContext) -> User | AnonymousUser:
        authorization = _split_authorization(ctx)
        if authorization is None:
            return AnonymousUser()

        scheme, credentials = authorization
        if scheme.lower() != "basic":
            return AnonymousUser()

        try:
            decoded = base64.b64decode(credentials, validate=True).decode("utf-8")
            username, password = decoded.split(":", 1)
        except (ValueError, UnicodeDecodeError, binascii.Error):
            return AnonymousUser()

        if self._verify_credentials:
            user = await invoke(self._verify_credentials, username, password)
            if user:
                return user

        return AnonymousUser()


@dataclass(slots=True)
class AuthOptions:
    """Options handed to the setup callback of :data:`Authentication`."""

    backend: AuthBackend | None = None
    exclude_paths: list[str] = field(default_factory=list)


class AuthenticationExtension(Extension):
    """Attaches a ``user`` capability to every message context."""

    name = "authentication"

    def __init__(self, options: AuthOptions) -> None:
        if options.backend is None:
            raise ExtensionError("Authentication needs a backend; set options.backend in setup")
        self.backend = options.backend
        self.exclude_paths = list(options.exclude_paths)

    async def decorate_message_context(self, ctx: MessageContext) -> dict[CapabilityKey[Any], Any]:
        # Skip authentication for excluded paths
        if any(ctx.path.startswith(path) for path in self.exclude_paths):
            return {USER: AnonymousUser()}
        return {USER: await self.backend.authenticate(ctx)}


Authentication = ConfigurableExtensionFactory("authentication", AuthOptions, AuthenticationExtension)

default = Authentication


def current_user(ctx: MessageContext) -> User | AnonymousUser:
    """The authenticated user, or an AnonymousUser when nobody logged in."""
    return ctx.capabilities.get(USER) or AnonymousUser()


def login_required(ctx: MessageContext) -> bool:
    """
    Precondition that requires authentication.
    Raises Unauthorized if the user is not authenticated.

    Usage:
        app.get("/me", show_profile).add_precondition(login_required)
    """
    if not current_user(ctx).is_authenticated:
        raise Unauthorized("Authentication required")
    return True


def require_scopes(*required_scopes: str) -> Precondition:
    """
    Build a precondition that requires specific scopes/permissions.
    Raises Unauthorized for anonymous users and Forbidden if a scope is missing.
    """
    def precondition(ctx: MessageContext) -> bool:
        user = current_user(ctx)
        if not user.is_authenticated:
            raise Unauthorized("Authentication required")
        for scope in required_scopes:
            if not user.has_scope(scope):
                raise Forbidden(f"Missing required scope: {scope}")
        return True

    precondition.__name__ = "require_scopes"
    return precondition
