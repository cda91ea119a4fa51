"""Structured JSON logging with request and caller context fields."""

import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter


service_name_ctx: ContextVar[str] = ContextVar("service_name", default="rentmatch-engine")
trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
caller_id_ctx: ContextVar[str] = ContextVar("caller_id", default="")


class ContextFilter(logging.Filter):
    """Inject service and correlation identifiers into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = service_name_ctx.get()
        record.trace_id = trace_id_ctx.get()
        record.request_id = request_id_ctx.get()
        record.caller_id = caller_id_ctx.get()
        return True


def configure_logging(service_name: str, level: str = "INFO") -> None:
    """Configure root logger once per process."""

    service_name_ctx.set(service_name)
    handler = logging.StreamHandler(sys.stdout)
    context_filter = ContextFilter()
    handler.addFilter(context_filter)
    formatter = JsonFormatter(
        "%(asctime)s %(levelname)s %(service_name)s %(trace_id)s %(request_id)s %(caller_id)s %(message)s"
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    root.addFilter(context_filter)


logger = logging.getLogger("rentmatch")
