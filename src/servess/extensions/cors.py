"""
CORS (Cross-Origin Resource Sharing) extension.
"""

import logging
import re as _re
from dataclasses import dataclass, field
from typing import Any

from servess.context import MessageContext
from servess.exceptions import ConfigurationError
from servess.extension import ConfigurableExtensionFactory, Extension

logger = logging.getLogger("servess.extensions")


@dataclass(slots=True)
class CORSOptions:
    """Options handed to the setup callback of :data:`CORS`."""

    allow_origins: list[str] = field(default_factory=lambda: ["*"])
    allow_methods: list[str] = field(
        default_factory=lambda: ["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"]
    )
    allow_headers: list[str] = field(default_factory=lambda: ["*"])
    allow_credentials: bool = False
    expose_headers: list[str] = field(default_factory=list)
    max_age: int = 600
    allow_origin_regex: str | None = None


class CORSExtension(Extension):
    """
    Cross-Origin Resource Sharing (CORS) extension.
    Adds CORS headers to every message and answers preflight requests.

    Security features:
      - Wildcard subdomain matching (e.g. ``*.example.com``).
      - Regex-based origin matching via ``allow_origin_regex``.
      - ``Vary: Origin`` header when the allow-list is not ``*``.
      - Blocks ``allow_credentials=True`` with a bare ``*`` origin
        (violates the CORS protocol and is rejected by browsers).
    """

    name = "cors"

    def __init__(self, options: CORSOptions) -> None:
        self.allow_origins = list(options.allow_origins)
        self.allow_methods = list(options.allow_methods)
        self.allow_headers = list(options.allow_headers)
        self.allow_credentials = options.allow_credentials
        self.expose_headers = list(options.expose_headers)
        self.max_age = options.max_age

        # Compile optional regex
        self._origin_regex: _re.Pattern[str] | None = (
            _re.compile(options.allow_origin_regex) if options.allow_origin_regex else None
        )

        # Pre-compute wildcard subdomain patterns (e.g. "*.example.com")
        self._wildcard_origins: list[str] = [
            o[1:]  # strip leading "*", keep ".example.com"
            for o in self.allow_origins
            if o.startswith("*.") and len(o) > 2
        ]

        self._allow_all = "*" in self.allow_origins and not self._wildcard_origins

        if self.allow_credentials and self._allow_all and not self._origin_regex:
            raise ConfigurationError(
                "allow_credentials=True cannot be used with allow_origins=['*']. "
                "Specify explicit origins or use allow_origin_regex."
            )

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def decorate_application(self, app: Any) -> None:
        # Registered on the root router so every path gets a preflight answer
        app.options("*", self._preflight).add_precondition(self._is_preflight)
        logger.debug("CORS preflight listener registered under %s", app.prefix)

    def on_message(self, ctx: MessageContext, app: Any) -> None:
        self._apply_cors_headers(ctx)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def is_origin_allowed(self, origin: str) -> bool:
        """Check if *origin* is allowed by list, wildcard subdomain, or regex."""
        if self._allow_all:
            return True
        if origin in self.allow_origins:
            return True
        # Wildcard subdomain: *.example.com  matches  foo.example.com
        for suffix in self._wildcard_origins:
            if origin.endswith(suffix):
                return True
        if self._origin_regex and self._origin_regex.fullmatch(origin):
            return True
        return False

    def _apply_cors_headers(self, ctx: MessageContext) -> None:
        origin = ctx.headers.get("origin")

        if self._allow_all and not self.allow_credentials:
            # Bare wildcard: no Vary needed
            ctx.set_header("Access-Control-Allow-Origin", "*")
        elif origin and self.is_origin_allowed(origin):
            # Reflect the specific origin back
            ctx.set_header("Access-Control-Allow-Origin", origin)
            ctx.add_header("Vary", "Origin")

        if self.allow_credentials:
            ctx.set_header("Access-Control-Allow-Credentials", "true")

        if self.expose_headers:
            ctx.set_header("Access-Control-Expose-Headers", ", ".join(self.expose_headers))

    @staticmethod
    def _is_preflight(ctx: MessageContext) -> bool:
        return ctx.headers.has("access-control-request-method")

    def _preflight(self, ctx: MessageContext) -> None:
        ctx.status(204)
        ctx.set_header("Access-Control-Allow-Methods", ", ".join(self.allow_methods))
        ctx.set_header("Access-Control-Allow-Headers", ", ".join(self.allow_headers))
        ctx.set_header("Access-Control-Max-Age", self.max_age)


CORS = ConfigurableExtensionFactory("cors", CORSOptions, CORSExtension)

default = CORS
