# tests/conftest.py
from __future__ import annotations

import pytest

from flowsearch.blobstore import MemoryBlobStore
from flowsearch.store import EventStore


def flow_line(**overrides) -> str:
    fields = dict(
        serialno="2",
        version="123456789010",
        account_id="eni-1235b8ca123456789",
        instance_id="i-0abc",
        srcaddr="172.31.16.139",
        dstaddr="172.31.16.21",
        srcport="20641",
        dstport="22",
        protocol="6",
        packets="20",
        bytes="4249",
        starttime="100",
        endtime="200",
        action="ACCEPT",
        log_status="OK",
    )
    fields.update({k: str(v) for k, v in overrides.items()})
    return " ".join(fields.values())


@pytest.fixture
def make_line():
    return flow_line


@pytest.fixture
def event_store() -> EventStore:
    return EventStore()


@pytest.fixture
def blobs() -> MemoryBlobStore:
    return MemoryBlobStore({
        "a.log": "\n".join([
            flow_line(serialno=1, starttime=100, endtime=200, dstaddr="1.2.3.4", action="ACCEPT"),
            flow_line(serialno=2, starttime=300, endtime=400, dstaddr="10.0.0.55", action="REJECT"),
        ]).encode(),
        "b.log": b"1 2 3 4 5 6 7 8\n",
        "nested/c.log": "\n".join([
            "",
            flow_line(serialno=3, starttime=150, endtime=180, dstaddr="10.0.0.5", action="REJECT"),
            "   ",
        ]).encode(),
    })
