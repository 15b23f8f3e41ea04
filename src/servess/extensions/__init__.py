"""
Extensions bundled with Servess.

Each module exposes a factory as ``default`` so it can be installed by
import string, e.g. ``await app.install("servess.extensions.cors")``.
"""

from servess.extensions.auth import Authentication, AuthOptions
from servess.extensions.cors import CORS, CORSOptions
from servess.extensions.logging import RequestLogging, RequestLoggingOptions

__all__ = [
    "Authentication",
    "AuthOptions",
    "CORS",
    "CORSOptions",
    "RequestLogging",
    "RequestLoggingOptions",
]
