from __future__ import annotations

import logging
import time
from typing import Iterable, List

from pydantic import BaseModel, Field

from flowsearch.blobstore import BlobReadError, BlobStore, SourceObject
from flowsearch.events import FlowEvent, parse_flow_line
from flowsearch.store import EventStore

logger = logging.getLogger(__name__)


class IngestReport(BaseModel):
    objects: int = 0
    failed_objects: List[str] = Field(default_factory=list)
    lines: int = 0
    events: int = 0
    rejected: int = 0
    elapsed_ms: float = 0.0


def split_lines(data: bytes) -> List[str]:
    text = data.decode("utf-8", errors="replace")
    return [ln for ln in text.split("\n") if ln.strip()]


def parse_object(obj: SourceObject, report: IngestReport) -> List[FlowEvent]:
    out: List[FlowEvent] = []
    for line in split_lines(obj.data):
        report.lines += 1
        ev = parse_flow_line(line, obj.path)
        if ev is None:
            # dropped: short line or non-integer numeric field
            report.rejected += 1
            logger.debug("dropped line in %s: %r", obj.path, line[:200])
            continue
        out.append(ev)
    return out


def _publish(store: EventStore, events: List[FlowEvent], report: IngestReport, start: float) -> IngestReport:
    store.replace(events)
    report.events = len(events)
    report.elapsed_ms = round((time.perf_counter() - start) * 1000.0, 3)
    logger.info(
        "ingested %d events from %d objects (%d lines rejected, %d objects failed) in %.1f ms",
        report.events, report.objects, report.rejected, len(report.failed_objects), report.elapsed_ms,
    )
    return report


def ingest(objects: Iterable[SourceObject], store: EventStore) -> IngestReport:
    """
    Parse every object and replace the store contents with the result.
    Events keep object order, then line order.
    """
    start = time.perf_counter()
    report = IngestReport()
    with store.ingesting():
        events: List[FlowEvent] = []
        for obj in objects:
            report.objects += 1
            events.extend(parse_object(obj, report))
        return _publish(store, events, report, start)


def ingest_from_store(blobs: BlobStore, store: EventStore) -> IngestReport:
    """
    Full re-ingest of everything in `blobs`. An object that cannot be read is
    recorded in `failed_objects` and skipped; listing failures propagate.
    """
    start = time.perf_counter()
    report = IngestReport()
    with store.ingesting():
        events: List[FlowEvent] = []
        for path in blobs.list_paths():
            try:
                data = blobs.read(path)
            except BlobReadError as e:
                logger.warning("skipping unreadable object %s: %s", e.path, e.reason)
                report.failed_objects.append(path)
                continue
            report.objects += 1
            events.extend(parse_object(SourceObject(path=path, data=data), report))
        return _publish(store, events, report, start)
