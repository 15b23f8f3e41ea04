"""
Request logging extension.

Gives every message a request id (also sent back as ``X-Request-ID``)
and writes one access log line per request once the response is out.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any

from servess.context import MessageContext
from servess.extension import CapabilityKey, ConfigurableExtensionFactory, Extension

REQUEST_ID: CapabilityKey[str] = CapabilityKey("request_id")
REQUEST_STARTED: CapabilityKey[float] = CapabilityKey("request_started")


@dataclass(slots=True)
class RequestLoggingOptions:
    """Options handed to the setup callback of :data:`RequestLogging`."""

    logger: logging.Logger | None = None
    log_level: int = logging.INFO
    header_name: str = "X-Request-ID"
    # Reuse an incoming request id instead of generating one
    trust_incoming_id: bool = False


class RequestLoggingExtension(Extension):
    """
    Logs incoming requests and response status codes using
    Python's standard logging module.
    """

    name = "request-logging"

    def __init__(self, options: RequestLoggingOptions) -> None:
        self._logger = options.logger or logging.getLogger("servess.access")
        self._log_level = options.log_level
        self._header_name = options.header_name
        self._trust_incoming_id = options.trust_incoming_id

    def decorate_message_context(self, ctx: MessageContext) -> dict[CapabilityKey[Any], Any]:
        request_id = None
        if self._trust_incoming_id:
            request_id = ctx.headers.get(self._header_name)
        return {
            REQUEST_ID: request_id or str(uuid.uuid4()),
            REQUEST_STARTED: time.perf_counter(),
        }

    def on_message(self, ctx: MessageContext, app: Any) -> None:
        ctx.set_header(self._header_name, ctx.capabilities[REQUEST_ID])

    def on_message_handled(self, ctx: MessageContext, app: Any) -> None:
        started = ctx.capabilities.get(REQUEST_STARTED, time.perf_counter())
        duration = (time.perf_counter() - started) * 1000
        self._logger.log(
            self._log_level,
            "%s %s %d %.2fms request_id=%s client=%s",
            ctx.method,
            ctx.path,
            ctx.status_code,
            duration,
            ctx.capabilities.get(REQUEST_ID, "-"),
            ctx.client[0] if ctx.client else "-",
        )


RequestLogging = ConfigurableExtensionFactory(
    "request-logging",
    RequestLoggingOptions,
    RequestLoggingExtension,
)

default = RequestLogging
