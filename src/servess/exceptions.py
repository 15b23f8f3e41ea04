"""
Servess framework exceptions.

Configuration errors are raised while routes and extensions are being set
up. HTTP exceptions may be raised from handlers and are turned into
responses at the application boundary.
"""


class ServessException(Exception):
    """Base exception for all Servess framework errors."""

    def __init__(self, message: str = "An error occurred") -> None:
        self.message = message
        super().__init__(self.message)


class ConfigurationError(ServessException):
    """Invalid setup detected at registration or install time."""
    pass


class RoutingError(ConfigurationError):
    """A route path could not be compiled."""
    pass


class ExtensionError(ConfigurationError):
    """An extension factory or hook does not follow the extension protocol."""
    pass


class NegotiationError(ConfigurationError):
    """``accepting`` was called without an ``else`` handler."""
    pass


class BodyAccessError(ServessException):
    """The request body was already consumed in the other access mode."""
    pass


class CookieError(ServessException):
    """Cookie-related errors."""
    pass


class HTTPException(ServessException):
    """HTTP-related exceptions with status codes."""

    def __init__(
        self,
        status_code: int = 500,
        detail: str = "Internal Server Error",
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        self.headers = headers or {}
        super().__init__(detail)


class BadRequest(HTTPException):
    """400 Bad Request."""

    def __init__(self, detail: str = "Bad Request") -> None:
        super().__init__(400, detail)


class Unauthorized(HTTPException):
    """401 Unauthorized."""

    def __init__(
        self,
        detail: str = "Unauthorized",
        headers: dict[str, str] | None = None,
    ) -> None:
        default_headers = {"WWW-Authenticate": "Bearer"}
        if headers:
            default_headers.update(headers)
        super().__init__(401, detail, default_headers)


class Forbidden(HTTPException):
    """403 Forbidden."""

    def __init__(self, detail: str = "Forbidden") -> None:
        super().__init__(403, detail)


class NotFound(HTTPException):
    """404 Not Found."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(404, detail)


class PayloadTooLarge(HTTPException):
    """413 Payload Too Large."""

    def __init__(self, detail: str = "Payload Too Large") -> None:
        super().__init__(413, detail)


class InternalServerError(HTTPException):
    """500 Internal Server Error."""

    def __init__(self, detail: str = "Internal Server Error") -> None:
        super().__init__(500, detail)


class ServiceUnavailable(HTTPException):
    """503 Service Unavailable."""

    def __init__(
        self,
        detail: str = "Service Unavailable",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(503, detail, headers)
