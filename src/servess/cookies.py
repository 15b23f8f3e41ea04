"""
Cookie handling for Servess framework.
Parses the request ``Cookie`` header and formats ``Set-Cookie`` values.
"""

from dataclasses import dataclass, field, replace
from urllib.parse import quote, unquote

from servess.exceptions import CookieError


@dataclass(frozen=True, slots=True)
class CookieOptions:
    """Cookie configuration options (Immutable Value Object)."""

    max_age: int | None = None  # In seconds
    expires: str | None = None
    path: str = "/"
    domain: str | None = None
    secure: bool = True
    httponly: bool = True
    samesite: str | None = "lax"  # "strict", "lax", "none" or None to omit

    def to_header_string(self) -> str:
        """Convert options to cookie header format."""
        parts: list[str] = []

        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")
        if self.expires:
            parts.append(f"Expires={self.expires}")
        if self.path:
            parts.append(f"Path={self.path}")
        if self.domain:
            parts.append(f"Domain={self.domain}")
        if self.secure:
            parts.append("Secure")
        if self.httponly:
            parts.append("HttpOnly")
        if self.samesite:
            parts.append(f"SameSite={self.samesite.capitalize()}")

        return "; ".join(parts)


@dataclass(slots=True)
class Cookie:
    """A single cookie to send to the client."""

    key: str
    value: str
    options: CookieOptions = field(default_factory=CookieOptions)

    def expired(self) -> "Cookie":
        """Return a copy that instructs the client to drop the cookie."""
        return Cookie(self.key, "", replace(self.options, max_age=0))

    def __str__(self) -> str:
        return format_set_cookie(self.key, self.value, self.options)

    @classmethod
    def parse(cls, set_cookie: str) -> "Cookie":
        """
        Parse a ``Set-Cookie`` header value.

        Raises:
            CookieError: If the string has no ``name=value`` pair.
        """
        key_pair, *attributes = [item.strip() for item in set_cookie.split(";")]
        key, sep, value = key_pair.partition("=")
        if not sep or not key.strip():
            raise CookieError(f"Invalid cookie string: {set_cookie!r}")

        meta: dict[str, object] = {
            "path": None,
            "secure": False,
            "httponly": False,
            "samesite": None,
        }
        for attribute in attributes:
            name, _, attr_value = attribute.partition("=")
            match name.lower():
                case "samesite":
                    meta["samesite"] = attr_value.lower()
                case "secure":
                    meta["secure"] = True
                case "httponly":
                    meta["httponly"] = True
                case "domain":
                    meta["domain"] = attr_value
                case "path":
                    meta["path"] = attr_value
                case "max-age":
                    try:
                        meta["max_age"] = int(attr_value)
                    except ValueError:
                        raise CookieError(f"Invalid Max-Age in {set_cookie!r}") from None
                case "expires":
                    meta["expires"] = attr_value

        return cls(key.strip(), unquote(value.strip()), CookieOptions(**meta))  # type: ignore[arg-type]


def parse_cookies(cookie_header: str) -> dict[str, str]:
    """Parse a Cookie header string into a dictionary."""
    cookies: dict[str, str] = {}

    if not cookie_header:
        return cookies

    for item in cookie_header.split(";"):
        item = item.strip()
        if "=" in item:
            key, _, value = item.partition("=")
            key = unquote(key.strip())
            if key:
                cookies[key] = unquote(value.strip())

    return cookies


def format_set_cookie(
    name: str,
    value: str,
    options: CookieOptions | None = None,
) -> str:
    """Format a Set-Cookie header value."""
    options = options or CookieOptions()
    cookie = f"{name}={quote(value, safe='')}"
    options_str = options.to_header_string()

    if options_str:
        cookie = f"{cookie}; {options_str}"

    return cookie
