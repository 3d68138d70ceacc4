import logging
import os
from pathlib import Path
from typing import BinaryIO, Callable, Optional

import aiofiles
import httpx

from .retry import DEFAULT_RETRY, RetryPolicy, request_with_retry
from .types import DOWNLOAD_HEADERS, STREAM_READ_SIZE, ServerError
from .ui import NULL_OBSERVER, TransferObserver


logger = logging.getLogger(__name__)


class ProgressReader:
    mode = "rb"

    def __init__(self, fileobj: BinaryIO, total: int, on_read: Callable[[int], None]):
        self.fileobj = fileobj
        self.total = total
        self.on_read = on_read
        self.sent = 0

    def fileno(self) -> int:
        return self.fileobj.fileno()

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        pos = self.fileobj.seek(offset, whence)
        self.sent = pos
        return pos

    def tell(self) -> int:
        return self.fileobj.tell()

    def read(self, size: int = -1) -> bytes:
        data = self.fileobj.read(size)
        if data:
            self.sent += len(data)
            self.on_read(self.sent)
        return data


def fraction_reporter(observer: TransferObserver, name: str, total: int) -> Callable[[int], None]:
    def report(done: int) -> None:
        observer.on_progress(name, done / total if total > 0 else 1.0)

    return report


async def read_chunk(path: Path, offset: int, length: int) -> bytes:
    async with aiofiles.open(path, "rb") as f:
        await f.seek(offset)
        return await f.read(length)


def declared_length(response: httpx.Response) -> Optional[int]:
    try:
        value = int(response.headers.get("Content-Length", "0") or "0")
    except ValueError:
        return None
    return value if value > 0 else None


async def stream_once(
    client: httpx.AsyncClient,
    url: str,
    tmp_path: Path,
    expected_size: int,
    observer: TransferObserver,
    label: str,
) -> int:
    async with client.stream("GET", url, headers=DOWNLOAD_HEADERS) as r:
        if not r.is_success:
            raise ServerError(f"Failed to download file: HTTP {r.status_code}", status_code=r.status_code)
        total = declared_length(r) or expected_size
        downloaded = 0
        async with aiofiles.open(tmp_path, "wb") as f:
            async for chunk in r.aiter_bytes(STREAM_READ_SIZE):
                if not chunk:
                    continue
                await f.write(chunk)
                downloaded += len(chunk)
                if total > 0:
                    observer.on_progress(label, min(1.0, downloaded / total))
    observer.on_progress(label, 1.0)
    return downloaded


async def download_to_file(
    client: httpx.AsyncClient,
    url: str,
    out_path: Path,
    expected_size: int = 0,
    observer: TransferObserver = NULL_OBSERVER,
    label: Optional[str] = None,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> int:
    label = label or out_path.name
    out_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = out_path.with_suffix(out_path.suffix + ".part")
    try:
        downloaded = await request_with_retry(
            lambda: stream_once(client, url, tmp_path, expected_size, observer, label),
            retry,
        )
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise
    tmp_path.replace(out_path)
    logger.debug(f"Saved {downloaded} bytes to {out_path}")
    return downloaded
