"""
Servess - An extensible ASGI HTTP dispatch core

Composable routers with first-match-wins dispatch, extensions that
decorate the application, routers, listeners and messages, and content
negotiation on every message context.
"""

from servess.app import Servess, create_app
from servess.context import MessageContext
from servess.cookies import Cookie, CookieOptions
from servess.dispatch import HANDLED, UNHANDLED, DispatchResult, ResultType
from servess.exceptions import (
    ConfigurationError,
    ExtensionError,
    HTTPException,
    RoutingError,
    ServessException,
)
from servess.extension import (
    Capabilities,
    CapabilityKey,
    ConfigurableExtensionFactory,
    Extension,
    ExtensionFactory,
)
from servess.headers import Headers
from servess.listener import RouteListener
from servess.patterns import compile_pattern
from servess.query import QueryObject
from servess.router import RouterContext, method_is

__version__ = "0.1.0"
__all__ = [
    "Servess",
    "create_app",
    "MessageContext",
    "Cookie",
    "CookieOptions",
    "DispatchResult",
    "ResultType",
    "HANDLED",
    "UNHANDLED",
    "ServessException",
    "ConfigurationError",
    "RoutingError",
    "ExtensionError",
    "HTTPException",
    "Capabilities",
    "CapabilityKey",
    "Extension",
    "ExtensionFactory",
    "ConfigurableExtensionFactory",
    "Headers",
    "QueryObject",
    "RouteListener",
    "RouterContext",
    "compile_pattern",
    "method_is",
]
