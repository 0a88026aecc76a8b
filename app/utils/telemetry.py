"""Structured search telemetry.

Events are ordinary log records on the ``app.telemetry`` logger with the event
name in ``extra["event"]`` and the fields in ``extra["fields"]``, so any log
shipper can forward them to the observability collector.
"""
import logging

logger = logging.getLogger("app.telemetry")

CACHE_HIT = "cache_hit"
CACHE_MISS = "cache_miss"
QUERY_COMPLETED = "query_completed"
SEARCH_ERROR = "search_error"
PARTIAL_HYDRATION = "partial_hydration"


def emit(event: str, level: int = logging.INFO, **fields):
    rendered = " ".join(f"{name}={value}" for name, value in sorted(fields.items()))
    logger.log(level, f"{event} {rendered}".strip(), extra={"event": event, "fields": fields})
