from __future__ import annotations

import logging

from flowsearch.request_context import get_context

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s %(route)s]: %(message)s"


class RequestIdFilter(logging.Filter):
    """Stamps every record with the id and path of the request being served ("-" outside one)."""
    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_context()
        record.request_id = ctx.get("request_id", "-")
        record.route = ctx.get("route", "-")
        return True


def configure_logging(level: str | int = "info") -> logging.Handler:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger("flowsearch")
    root.setLevel(level)
    for h in list(root.handlers):
        if getattr(h, "_flowsearch", False):
            root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._flowsearch = True
    root.addHandler(handler)
    return handler
