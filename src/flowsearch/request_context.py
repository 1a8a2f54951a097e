from __future__ import annotations

import contextvars
import uuid
from typing import Dict, Optional

REQUEST_ID = contextvars.ContextVar("request_id", default=None)
ROUTE = contextvars.ContextVar("route", default=None)


def new_request_id() -> str:
    return uuid.uuid4().hex


def set_context(*, request_id: str, route: Optional[str] = None) -> Dict[str, contextvars.Token]:
    return {
        "request_id": REQUEST_ID.set(request_id),
        "route": ROUTE.set(route),
    }


def reset_context(tokens: Dict[str, contextvars.Token]) -> None:
    REQUEST_ID.reset(tokens["request_id"])
    ROUTE.reset(tokens["route"])


def get_context() -> Dict[str, str]:
    out: Dict[str, str] = {}
    request_id = REQUEST_ID.get()
    route = ROUTE.get()

    if request_id:
        out["request_id"] = request_id
    if route:
        out["route"] = route
    return out
