from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

import flowsearch.search_app as search_app
from flowsearch.blobstore import BlobReadError, BlobStoreError, DirectoryBlobStore
from flowsearch.store import EventStore


@pytest.fixture
def app_state(monkeypatch, tmp_path):
    blobs = DirectoryBlobStore(tmp_path / "data")
    events = EventStore()
    monkeypatch.setattr(search_app, "BLOBS", blobs)
    monkeypatch.setattr(search_app, "EVENTS", events)
    monkeypatch.setattr(search_app, "LAST_INGEST", None)
    monkeypatch.setattr(search_app, "TOKEN", "")
    monkeypatch.setattr(search_app, "MAX_RESULTS", 0)
    return blobs, events


@pytest.fixture
def client(app_state):
    return TestClient(search_app.app)


def _upload(client, *files, headers=None):
    parts = [("myFiles", (name, data, "text/plain")) for name, data in files]
    return client.post("/upload", files=parts, headers=headers or {})


def _search(client, query="", start=0, end=10_000):
    return client.post("/api/search", json={"searchString": query, "startTime": start, "endTime": end})


def test_healthz(client):
    assert client.get("/healthz").json() == {"ok": True}


def test_upload_then_search_end_to_end(client, make_line):
    good = make_line(starttime=100, endtime=200, dstaddr="1.2.3.4", action="ACCEPT").encode()
    bad = b"1 2 3 4 5 6 7 8\n"
    resp = _upload(client, ("a.log", good), ("b.log", bad))
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["uploadedCount"] == 2
    assert body["ingest"]["events"] == 1
    assert body["ingest"]["rejected"] == 1

    resp = _search(client, "dstaddr=1.2.3.4", 50, 250)
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Search successful"
    assert len(body["results"]) == 1
    assert body["results"][0]["dstaddr"] == "1.2.3.4"
    assert body["results"][0]["sourceFile"] == "a.log"
    assert body["foundInFiles"] == ["a.log"]
    assert body["searchTimeTakenMs"] >= 0


def test_upload_accumulates_objects(client, make_line):
    _upload(client, ("a.log", make_line(serialno=1).encode()))
    _upload(client, ("b.log", make_line(serialno=2).encode()))
    body = _search(client).json()
    assert [r["serialno"] for r in body["results"]] == [1, 2]
    assert body["foundInFiles"] == ["a.log", "b.log"]


def test_upload_without_files_is_rejected(client):
    resp = client.post("/upload")
    assert resp.status_code == 400
    assert resp.json()["message"] == "No files uploaded."


def test_upload_requires_token_when_configured(client, monkeypatch, make_line):
    monkeypatch.setattr(search_app, "TOKEN", "s3cret")
    assert _upload(client, ("a.log", make_line().encode())).status_code == 401
    resp = _upload(client, ("a.log", make_line().encode()), headers={"Authorization": "Bearer s3cret"})
    assert resp.status_code == 201


@pytest.mark.parametrize("start,end", [("abc", 100), (0, None), (None, None), ("1.5", 10)])
def test_search_rejects_bad_time_bounds(client, start, end):
    resp = _search(client, "", start, end)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid start or end time."


def test_search_accepts_string_bounds(client, make_line):
    _upload(client, ("a.log", make_line(starttime=100, endtime=200).encode()))
    resp = _search(client, "", "100", "200")
    assert resp.status_code == 200
    assert len(resp.json()["results"]) == 1


def test_search_internal_failure_is_500(client, monkeypatch):
    def boom(*a, **kw):
        raise RuntimeError("scan exploded")
    monkeypatch.setattr(search_app, "run_query", boom)
    resp = _search(client)
    assert resp.status_code == 500
    assert resp.json()["message"] == "Server error during event search."


def test_search_on_empty_store(client):
    body = _search(client, "anything").json()
    assert body["results"] == []
    assert body["foundInFiles"] == []


def test_search_truncates_returned_events(client, monkeypatch, make_line):
    lines = "\n".join(make_line(serialno=i) for i in range(5))
    _upload(client, ("a.log", lines.encode()))
    monkeypatch.setattr(search_app, "MAX_RESULTS", 2)
    body = _search(client).json()
    assert len(body["results"]) == 2
    assert body["matchCount"] == 5
    assert body["truncated"] is True


def test_reload_picks_up_new_blobs(client, app_state, make_line):
    blobs, events = app_state
    blobs.put("late.log", make_line().encode())
    assert len(events) == 0
    resp = client.post("/api/reload")
    assert resp.status_code == 200
    assert resp.json()["events"] == 1
    stats = client.get("/api/stats").json()
    assert stats["events"] == 1
    assert stats["lastIngest"]["objects"] == 1


def test_reload_conflicts_with_running_ingestion(client, app_state):
    _, events = app_state
    with events.ingesting():
        resp = client.post("/api/reload")
    assert resp.status_code == 409


def test_reload_store_failure_is_500(client, monkeypatch):
    class DeadBlobs(DirectoryBlobStore):
        def list_paths(self):
            raise BlobStoreError("offline")
    monkeypatch.setattr(search_app, "BLOBS", DeadBlobs("unused"))
    assert client.post("/api/reload").status_code == 500


def test_startup_loads_existing_blobs(app_state, make_line):
    blobs, events = app_state
    blobs.put("a.log", make_line().encode())
    with TestClient(search_app.app):
        assert len(events) == 1


def test_request_id_header_and_access_log(client, caplog):
    with caplog.at_level(logging.INFO, logger="flowsearch.access"):
        resp = client.get("/healthz", headers={"x-flowsearch-request-id": "abc123"})
    assert resp.headers["x-flowsearch-request-id"] == "abc123"
    lines = [r.getMessage() for r in caplog.records if r.name == "flowsearch.access"]
    assert any('"request_id": "abc123"' in ln and '"status": 200' in ln for ln in lines)
    assert client.get("/healthz").headers["x-flowsearch-request-id"]


class BrokenReadBlobs(DirectoryBlobStore):
    def __init__(self, root, broken):
        super().__init__(root)
        self.broken = set(broken)

    def read(self, path):
        if path in self.broken:
            raise BlobReadError(path, "permission denied")
        return super().read(path)


class FailingWriteBlobs(DirectoryBlobStore):
    def __init__(self, root, fail_on):
        super().__init__(root)
        self.fail_on = fail_on

    def put(self, path, data):
        if path == self.fail_on:
            raise BlobStoreError("disk full")
        return super().put(path, data)


def test_reload_with_unreadable_object_is_500(client, monkeypatch, tmp_path, make_line):
    blobs = BrokenReadBlobs(tmp_path / "data", broken=["broken.log"])
    blobs.put("a.log", make_line().encode())
    blobs.put("broken.log", make_line().encode())
    monkeypatch.setattr(search_app, "BLOBS", blobs)

    resp = client.post("/api/reload")
    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["ingest"]["failed_objects"] == ["broken.log"]
    assert body["ingest"]["events"] == 1
    assert len(_search(client).json()["results"]) == 1


def test_upload_with_unreadable_object_is_500(client, monkeypatch, tmp_path, make_line):
    blobs = BrokenReadBlobs(tmp_path / "data", broken=["broken.log"])
    blobs.put("broken.log", make_line().encode())
    monkeypatch.setattr(search_app, "BLOBS", blobs)

    resp = _upload(client, ("a.log", make_line().encode()))
    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["uploadedCount"] == 1
    assert body["ingest"]["failed_objects"] == ["broken.log"]


def test_upload_name_ending_in_part_is_ingested(client, make_line):
    resp = _upload(client, ("capture.part", make_line().encode()))
    assert resp.status_code == 201
    assert resp.json()["ingest"]["events"] == 1
    assert _search(client).json()["foundInFiles"] == ["capture.part"]


def test_upload_bad_name_writes_nothing(client, app_state, make_line):
    blobs, events = app_state
    resp = _upload(client, ("a.log", make_line().encode()), ("../evil.log", make_line().encode()))
    assert resp.status_code == 400
    assert blobs.list_paths() == []
    assert len(events) == 0


def test_upload_duplicate_names_writes_nothing(client, app_state, make_line):
    blobs, _ = app_state
    resp = _upload(client, ("a.log", make_line().encode()), ("a.log", make_line().encode()))
    assert resp.status_code == 400
    assert "a.log" in resp.json()["message"]
    assert blobs.list_paths() == []


def test_upload_write_failure_still_ingests_stored_files(client, monkeypatch, tmp_path, make_line):
    blobs = FailingWriteBlobs(tmp_path / "data", fail_on="b.log")
    monkeypatch.setattr(search_app, "BLOBS", blobs)

    resp = _upload(client, ("a.log", make_line().encode()), ("b.log", make_line().encode()))
    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["files"] == ["a.log"]
    assert _search(client).json()["foundInFiles"] == ["a.log"]
