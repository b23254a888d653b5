"""Logging configuration with request and connection context."""

from __future__ import annotations

import logging
from logging.handlers import SysLogHandler

from opentelemetry import trace

from workhub.config import get_settings
from workhub.observability.request_context import get_connection_id, get_request_id


class RequestIdFilter(logging.Filter):
    """Attach request_id, connection_id and trace ids to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        span = trace.get_current_span()
        span_context = span.get_span_context()
        if span_context and span_context.is_valid:
            record.trace_id = format(span_context.trace_id, "032x")
            record.span_id = format(span_context.span_id, "016x")
        else:
            record.trace_id = "-"
            record.span_id = "-"
        record.request_id = get_request_id() or "-"
        if not hasattr(record, "connection_id"):
            record.connection_id = get_connection_id() or "-"
        return True


def configure_logging() -> None:
    """Configure base logging to include request context."""
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format=(
            "%(asctime)s %(levelname)s %(name)s request_id=%(request_id)s "
            "connection_id=%(connection_id)s trace_id=%(trace_id)s %(message)s"
        ),
    )
    root_logger = logging.getLogger()
    context_filter = RequestIdFilter()
    # Filters on the root logger do not see records propagated from child loggers
    for handler in root_logger.handlers:
        handler.addFilter(context_filter)

    if settings.syslog_host:
        syslog_handler = SysLogHandler(address=(settings.syslog_host, settings.syslog_port))
        syslog_handler.setLevel(logging.INFO)
        syslog_handler.setFormatter(logging.Formatter("%(name)s %(levelname)s %(message)s"))
        root_logger.addHandler(syslog_handler)
