from __future__ import annotations

import operator
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

# ----------------------------
# Record layout
# ----------------------------
# Positional order of the 15 whitespace-separated tokens of one flow record.
RECORD_FIELDS: Tuple[str, ...] = (
    "serialno",
    "version",
    "account_id",
    "instance_id",
    "srcaddr",
    "dstaddr",
    "srcport",
    "dstport",
    "protocol",
    "packets",
    "bytes",
    "starttime",
    "endtime",
    "action",
    "log_status",
)
MIN_TOKENS = len(RECORD_FIELDS)

INT_FIELDS = frozenset({
    "serialno", "version", "srcport", "dstport", "protocol",
    "packets", "bytes", "starttime", "endtime",
})

# Keys used when an event goes out over the API.
WIRE_KEYS: Dict[str, str] = {
    "account_id": "accountId",
    "instance_id": "instanceId",
    "log_status": "logStatus",
    "source_path": "sourceFile",
}


class FlowEvent(BaseModel):
    """One parsed flow record plus the logical path of the object it came from."""
    model_config = ConfigDict(frozen=True)

    serialno: int
    version: int
    account_id: str
    instance_id: str
    srcaddr: str
    dstaddr: str
    srcport: int
    dstport: int
    protocol: int
    packets: int
    bytes: int
    starttime: int
    endtime: int
    action: str
    log_status: str
    source_path: str

    def record_values(self) -> List[Any]:
        return [getattr(self, name) for name in RECORD_FIELDS]

    def to_wire(self) -> Dict[str, Any]:
        return {WIRE_KEYS.get(k, k): v for k, v in self.model_dump().items()}


# ----------------------------
# Field lookup
# ----------------------------
def _build_accessors() -> Dict[str, Callable[[FlowEvent], Any]]:
    out: Dict[str, Callable[[FlowEvent], Any]] = {}
    for name in RECORD_FIELDS:
        getter = operator.attrgetter(name)
        out[name] = getter
        # "accountid" style names match the record header spelling
        out[name.replace("_", "")] = getter
    return out

FIELD_ACCESSORS: Dict[str, Callable[[FlowEvent], Any]] = _build_accessors()


def field_accessor(name: str) -> Optional[Callable[[FlowEvent], Any]]:
    return FIELD_ACCESSORS.get(name.strip().lower())


# ----------------------------
# Parsing
# ----------------------------
def _to_int(token: str) -> Optional[int]:
    # int() would also take "1_000"
    if "_" in token:
        return None
    try:
        return int(token, 10)
    except ValueError:
        return None


def parse_flow_line(line: str, source_path: str) -> Optional[FlowEvent]:
    """
    Parse one flow record line. Returns None when the line is invalid:
      - fewer than 15 whitespace-separated tokens
      - a numeric field that is not a base-10 integer
    Tokens past the 15th are ignored.
    """
    parts = line.split()
    if len(parts) < MIN_TOKENS:
        return None

    data: Dict[str, Any] = {"source_path": source_path}
    for name, token in zip(RECORD_FIELDS, parts):
        if name in INT_FIELDS:
            val = _to_int(token)
            if val is None:
                return None
            data[name] = val
        else:
            data[name] = token
    return FlowEvent(**data)
