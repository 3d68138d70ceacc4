import threading
import time
from pathlib import Path
from typing import Iterable, Optional

import httpx

from .types import USER_AGENT, FailureRecord


DEFAULT_TIMEOUT = 120.0


def build_client(
    timeout: float = DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        headers={"User-Agent": USER_AGENT},
        timeout=httpx.Timeout(timeout, connect=15.0),
        follow_redirects=True,
        transport=transport,
    )


class FailureLog:
    def __init__(self, path: Path):
        self.path = path
        self.lock = threading.Lock()
        self.header_written = path.exists() and path.stat().st_size > 0

    @staticmethod
    def _safe(value: Optional[object]) -> str:
        if value is None:
            return ""
        return str(value).replace("\t", " ").replace("\r", " ").replace("\n", " ").strip()

    def add(self, failure: FailureRecord) -> None:
        ts = time.strftime("%Y-%m-%d %H:%M:%S")
        fields = [
            ts,
            self._safe(failure.path),
            self._safe(failure.file_size),
            self._safe(failure.status_code),
            self._safe(failure.message),
        ]
        line = "\t".join(fields) + "\n"
        with self.lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                if not self.header_written:
                    f.write("timestamp\tpath\tsize\tstatus\tmessage\n")
                    self.header_written = True
                f.write(line)

    def extend(self, failures: Iterable[FailureRecord]) -> int:
        count = 0
        for failure in failures:
            self.add(failure)
            count += 1
        return count
