from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, File, Header, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from flowsearch.access_log_middleware import AccessLogMiddleware
from flowsearch.blobstore import BlobStore, BlobStoreError, DirectoryBlobStore, normalize_logical_path
from flowsearch.ingest import IngestReport, ingest_from_store
from flowsearch.log_setup import configure_logging
from flowsearch.query import InvalidTimeRange, run_query
from flowsearch.store import EventStore, IngestInProgress

logger = logging.getLogger(__name__)

# ----------------------------
# Config
# ----------------------------
TOKEN = os.getenv("FLOWSEARCH_TOKEN", "")
DATA_DIR = os.getenv("FLOWSEARCH_DATA_DIR", "./flowsearch-data")
LOG_LEVEL = os.getenv("FLOWSEARCH_LOG_LEVEL", "info")
MAX_RESULTS = int(os.getenv("FLOWSEARCH_MAX_RESULTS", "0"))  # 0 = no cap on returned events
ACCESS_LOG = os.getenv("FLOWSEARCH_ACCESS_LOG", "1") == "1"

# ----------------------------
# App
# ----------------------------
configure_logging(LOG_LEVEL)

app = FastAPI(title="Flowsearch")
app.add_middleware(AccessLogMiddleware, enabled=ACCESS_LOG)

# ----------------------------
# Request / response schemas
# ----------------------------
class SearchRequest(BaseModel):
    searchString: Optional[str] = ""
    startTime: Any = None
    endTime: Any = None


# ----------------------------
# Storage
# ----------------------------
BLOBS: BlobStore = DirectoryBlobStore(DATA_DIR)
EVENTS = EventStore()
LAST_INGEST: Optional[IngestReport] = None


# ----------------------------
# Helpers
# ----------------------------
def _check_token(authorization: Optional[str]) -> None:
    if TOKEN and authorization != f"Bearer {TOKEN}":
        raise HTTPException(401, "unauthorized")


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"message": message})


def _failed_objects_error(report: IngestReport, message: str, **extra: Any) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "message": message}
    content.update(extra)
    content["ingest"] = report.model_dump()
    return JSONResponse(status_code=500, content=content)


def reingest() -> IngestReport:
    global LAST_INGEST
    report = ingest_from_store(BLOBS, EVENTS)
    LAST_INGEST = report
    return report


@app.on_event("startup")
def _startup():
    try:
        reingest()
    except (BlobStoreError, IngestInProgress):
        logger.exception("initial load from %s failed", DATA_DIR)


# ----------------------------
# Routes
# ----------------------------
@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/api/stats")
def stats():
    return {
        "events": len(EVENTS),
        "lastIngest": LAST_INGEST.model_dump() if LAST_INGEST else None,
    }


@app.post("/upload", status_code=201)
def upload(myFiles: Optional[List[UploadFile]] = File(default=None), authorization: str | None = Header(default=None)):
    _check_token(authorization)
    if not myFiles:
        return _error(400, "No files uploaded.")

    try:
        keys = [normalize_logical_path(f.filename or "") for f in myFiles]
    except ValueError as e:
        return _error(400, f"Invalid file name: {e}")
    dupes = sorted({k for k in keys if keys.count(k) > 1})
    if dupes:
        return _error(400, f"Duplicate file names in upload: {', '.join(dupes)}")

    stored: List[str] = []
    write_failed = False
    for f, key in zip(myFiles, keys):
        try:
            stored.append(BLOBS.put(key, f.file.read()))
        except BlobStoreError:
            logger.exception("upload failed after %d files", len(stored))
            write_failed = True
            break
    if not stored:
        return _error(500, "Server error during upload.")

    # files already written are searchable even if a later write failed
    try:
        report = reingest()
    except IngestInProgress:
        return _error(409, "An ingestion is already running.")
    except BlobStoreError:
        logger.exception("re-ingest after upload failed")
        return _error(500, "Server error during upload.")

    if write_failed or report.failed_objects:
        return _failed_objects_error(
            report, "Server error during upload.", uploadedCount=len(stored), files=stored,
        )

    return {
        "success": True,
        "uploadedCount": len(stored),
        "files": stored,
        "ingest": report.model_dump(),
    }


@app.post("/api/reload")
def reload(authorization: str | None = Header(default=None)):
    _check_token(authorization)
    try:
        report = reingest()
    except IngestInProgress:
        return _error(409, "An ingestion is already running.")
    except BlobStoreError:
        logger.exception("reload failed")
        return _error(500, "Server error during reload.")
    if report.failed_objects:
        return _failed_objects_error(report, "Some objects could not be read.")
    return report.model_dump()


@app.post("/api/search")
def search(req: SearchRequest):
    snapshot = EVENTS.snapshot()
    try:
        result = run_query(snapshot, req.startTime, req.endTime, req.searchString)
    except InvalidTimeRange:
        return _error(400, "Invalid start or end time.")
    except Exception:
        logger.exception("search failed")
        return _error(500, "Server error during event search.")

    events = result.results
    truncated = bool(MAX_RESULTS) and len(events) > MAX_RESULTS
    if truncated:
        events = events[:MAX_RESULTS]

    body: Dict[str, Any] = {
        "message": "Search successful",
        "results": [ev.to_wire() for ev in events],
        "matchCount": len(result.results),
        "truncated": truncated,
        "foundInFiles": sorted(result.source_paths),
        "searchTimeTakenMs": result.elapsed_ms,
    }
    return body


# ----------------------------
# Entry hint (optional)
# ----------------------------
# Run with:
#   uvicorn flowsearch.search_app:app --host 127.0.0.1 --port 7100
