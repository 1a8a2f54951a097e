"""
Raw object storage for uploaded flow-log files.

The search core only reads from here: every ingestion lists the whole store
and parses each object again. Logical paths are POSIX style ("vpc/a.log").
"""
from __future__ import annotations

import logging
import os
import tempfile
import threading
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, List, Union

logger = logging.getLogger(__name__)

# Directory under a DirectoryBlobStore root where writes are staged before the
# rename. Never a valid first path segment.
STAGING_DIR = ".flowsearch-staging"


class BlobStoreError(Exception):
    """The store as a whole could not be read or written."""


class BlobReadError(BlobStoreError):
    """One object could not be read."""
    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


@dataclass(frozen=True)
class SourceObject:
    path: str
    data: bytes


def normalize_logical_path(path: str) -> str:
    """
    "a/b.log", "./a/b.log" and "a\\b.log" all map to "a/b.log".
    Absolute paths, ".." segments and the staging directory are rejected.
    """
    raw = (path or "").replace("\\", "/").strip()
    if not raw:
        raise ValueError("empty object path")
    if raw.startswith("/") or (len(raw) > 1 and raw[1] == ":"):
        raise ValueError(f"absolute object path not allowed: {path!r}")
    parts = [p for p in PurePosixPath(raw).parts if p not in ("", ".")]
    if not parts or any(p == ".." for p in parts):
        raise ValueError(f"invalid object path: {path!r}")
    if parts[0] == STAGING_DIR:
        raise ValueError(f"reserved object path: {path!r}")
    return "/".join(parts)


def _raise(err: OSError) -> None:
    raise err


class BlobStore:
    """Read/write contract used by ingestion and the upload route."""

    def list_paths(self) -> List[str]:
        raise NotImplementedError

    def read(self, path: str) -> bytes:
        raise NotImplementedError

    def put(self, path: str, data: bytes) -> str:
        raise NotImplementedError

    def list_all(self) -> Iterator[SourceObject]:
        for path in self.list_paths():
            yield SourceObject(path=path, data=self.read(path))


class MemoryBlobStore(BlobStore):
    def __init__(self, objects: Union[Dict[str, bytes], None] = None):
        self._objects: "OrderedDict[str, bytes]" = OrderedDict()
        self._lock = threading.Lock()
        for path, data in (objects or {}).items():
            self.put(path, data)

    def list_paths(self) -> List[str]:
        with self._lock:
            return list(self._objects.keys())

    def read(self, path: str) -> bytes:
        with self._lock:
            try:
                return self._objects[path]
            except KeyError:
                raise BlobReadError(path, "no such object") from None

    def put(self, path: str, data: bytes) -> str:
        key = normalize_logical_path(path)
        with self._lock:
            self._objects[key] = bytes(data)
        return key


class DirectoryBlobStore(BlobStore):
    """
    Objects are plain files under `root`. Listing order is sorted by logical
    path so repeated ingestions see the same object order.
    """
    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        return self.root.joinpath(*normalize_logical_path(path).split("/"))

    def list_paths(self) -> List[str]:
        if not self.root.exists():
            return []
        try:
            out = []
            for dirpath, dirnames, filenames in os.walk(self.root, onerror=_raise):
                if Path(dirpath) == self.root and STAGING_DIR in dirnames:
                    dirnames.remove(STAGING_DIR)
                for name in filenames:
                    full = Path(dirpath) / name
                    out.append(full.relative_to(self.root).as_posix())
        except OSError as e:
            raise BlobStoreError(f"cannot list {self.root}: {e}") from e
        return sorted(out)

    def read(self, path: str) -> bytes:
        try:
            return self._resolve(path).read_bytes()
        except (OSError, ValueError) as e:
            raise BlobReadError(path, str(e)) from e

    def put(self, path: str, data: bytes) -> str:
        key = normalize_logical_path(path)
        target = self._resolve(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            staging = self.root / STAGING_DIR
            staging.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=staging)
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                os.replace(tmp, target)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise BlobStoreError(f"cannot write {key}: {e}") from e
        logger.debug("stored object %s (%d bytes)", key, len(data))
        return key
