from __future__ import annotations

import json
import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from flowsearch.request_context import new_request_id, reset_context, set_context

access_logger = logging.getLogger("flowsearch.access")

REQUEST_ID_HEADER = "x-flowsearch-request-id"


class AccessLogMiddleware(BaseHTTPMiddleware):
    """
    Binds a request id for the duration of the request and writes one JSON
    line per request to the "flowsearch.access" logger.
    """
    def __init__(self, app, *, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        tokens = set_context(request_id=request_id, route=request.url.path)
        status = 500
        try:
            resp = await call_next(request)
            status = resp.status_code
            resp.headers[REQUEST_ID_HEADER] = request_id
            return resp
        finally:
            dur_ms = (time.perf_counter() - start) * 1000.0
            if self.enabled:
                record = {
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "query": str(request.url.query),
                    "client": request.client.host if request.client else None,
                    "status": int(status),
                    "duration_ms": round(dur_ms, 3),
                }
                access_logger.info(json.dumps(record))
            reset_context(tokens)
