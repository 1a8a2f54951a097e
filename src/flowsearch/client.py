from __future__ import annotations

import os
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

import requests


class FlowSearchError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(f"HTTP {status}: {message}" if status else message)
        self.status = status
        self.message = message


def collect_upload_files(paths: Iterable[str]) -> List[Tuple[str, str]]:
    """
    (local path, logical name) pairs for an upload. A file is named by its
    basename; a directory is walked and each file named relative to the
    directory's parent, e.g. "logs/vpc/a.log" for `logs/`.
    Raises ValueError when two files would share a logical name.
    """
    out: List[Tuple[str, str]] = []
    for raw in paths:
        p = Path(raw)
        if p.is_dir():
            base = p.resolve().parent
            for dirpath, _dirnames, filenames in os.walk(p):
                for name in sorted(filenames):
                    full = Path(dirpath) / name
                    out.append((str(full), full.resolve().relative_to(base).as_posix()))
        else:
            out.append((str(p), p.name))

    seen: Dict[str, str] = {}
    for local, name in out:
        if name in seen:
            raise ValueError(f"{local} and {seen[name]} would both upload as {name!r}")
        seen[name] = local
    return out


class FlowSearchClient:
    def __init__(self, base_url: str, token: str | None = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def _send(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        send = requests.post if method == "POST" else requests.get
        try:
            resp = send(f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise FlowSearchError(0, f"cannot reach {self.base_url}: {e}") from e
        return self._check(resp)

    def _check(self, resp: requests.Response) -> Dict[str, Any]:
        if resp.status_code >= 400:
            try:
                body = resp.json()
                message = body.get("message") or body.get("detail") or resp.text
            except ValueError:
                message = resp.text
            raise FlowSearchError(resp.status_code, str(message))
        return resp.json()

    def upload(self, paths: Iterable[str]) -> Dict[str, Any]:
        pairs = collect_upload_files(paths)
        with ExitStack() as stack:
            files = [
                ("myFiles", (name, stack.enter_context(open(local, "rb")), "text/plain"))
                for local, name in pairs
            ]
            return self._send("POST", "/upload", files=files, headers=self._headers())

    def search(self, query: str = "", start: Any = 0, end: Any = 0) -> Dict[str, Any]:
        return self._send(
            "POST", "/api/search",
            json={"searchString": query, "startTime": start, "endTime": end},
        )

    def reload(self) -> Dict[str, Any]:
        return self._send("POST", "/api/reload", headers=self._headers())

    def stats(self) -> Dict[str, Any]:
        return self._send("GET", "/api/stats")
