"""
Time-window + substring search over an event snapshot.

Query string forms:
  ""              -> every event inside the window
  "field=value"   -> lower-cased str(field value) contains value
  anything else   -> any field's lower-cased str() contains the whole string
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, FrozenSet, Optional, Sequence, Tuple

from flowsearch.events import RECORD_FIELDS, FlowEvent, field_accessor

Predicate = Callable[[FlowEvent], bool]


class InvalidTimeRange(ValueError):
    pass


@dataclass(frozen=True)
class QueryResult:
    results: Tuple[FlowEvent, ...]
    source_paths: FrozenSet[str]
    elapsed_ms: float


def parse_time_bound(value: Any) -> int:
    """Epoch seconds from an int, an integral float or a base-10 integer string."""
    if isinstance(value, bool):
        raise InvalidTimeRange(f"not an integer time: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        s = value.strip()
        if s and "_" not in s:
            try:
                return int(s, 10)
            except ValueError:
                pass
    raise InvalidTimeRange(f"not an integer time: {value!r}")


def _searchable(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int, float)):
        return str(value).lower()
    return None


def _field_predicate(field: str, value: str) -> Predicate:
    getter = field_accessor(field)
    if getter is None:
        return lambda ev: False

    def match(ev: FlowEvent) -> bool:
        s = _searchable(getter(ev))
        return s is not None and value in s
    return match


def _text_predicate(needle: str) -> Predicate:
    # record fields only; source_path is attribution and is not searched
    def match(ev: FlowEvent) -> bool:
        for name in RECORD_FIELDS:
            s = _searchable(getattr(ev, name))
            if s is not None and needle in s:
                return True
        return False
    return match


def compile_query(query_string: Optional[str]) -> Optional[Predicate]:
    """None means "match everything"."""
    if not query_string:
        return None
    lowered = query_string.lower()
    pair = lowered.split("=")
    if len(pair) == 2:
        return _field_predicate(pair[0].strip(), pair[1].strip())
    return _text_predicate(lowered)


def in_window(ev: FlowEvent, start: int, end: int) -> bool:
    # containment, not overlap
    return ev.starttime >= start and ev.endtime <= end


def run_query(
    events: Sequence[FlowEvent],
    start_time: Any,
    end_time: Any,
    query_string: Optional[str] = None,
) -> QueryResult:
    start = parse_time_bound(start_time)
    end = parse_time_bound(end_time)

    t0 = time.perf_counter()
    pred = compile_query(query_string)
    matched = []
    paths = set()
    for ev in events:
        if not in_window(ev, start, end):
            continue
        if pred is not None and not pred(ev):
            continue
        matched.append(ev)
        paths.add(ev.source_path)
    elapsed_ms = (time.perf_counter() - t0) * 1000.0

    return QueryResult(results=tuple(matched), source_paths=frozenset(paths), elapsed_ms=elapsed_ms)
