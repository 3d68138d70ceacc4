import base64
import re
from pathlib import Path

import httpx
import pytest

from bunkr_transfer.decrypt import derive_key, time_bucket, xor_bytes
from bunkr_transfer.retry import RetryPolicy
from bunkr_transfer.types import Session


NO_WAIT = RetryPolicy(retries=5, base_delay=0.0)
UPLOAD_URL = "https://upload.test/api/upload"
API_BASE = "https://dash.test/api"


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def encrypt_url(url: str, timestamp: int) -> str:
    raw = xor_bytes(url.encode("utf-8"), derive_key(time_bucket(timestamp)))
    return base64.b64encode(raw).decode("ascii")


def form_fields(body: bytes) -> dict[str, str]:
    fields: dict[str, str] = {}
    pattern = re.compile(rb'name="([^"]+)"(?:; filename="[^"]*")?\r\n(?:Content-Type: [^\r]+\r\n)?\r\n(.*?)\r\n--', re.S)
    for name, value in pattern.findall(body):
        key = name.decode()
        if key == "files[]":
            continue
        fields[key] = value.decode()
    return fields


def file_part(body: bytes) -> bytes:
    m = re.search(rb'name="files\[\]"; filename="[^"]*"\r\nContent-Type: [^\r]+\r\n\r\n(.*)\r\n--', body, re.S)
    assert m, "request carries no files[] part"
    return m.group(1)


@pytest.fixture
def session() -> Session:
    return Session(
        token="tok123",
        upload_url=UPLOAD_URL,
        max_file_size=95 * 1024 * 1024,
        chunk_size=5 * 1024 * 1024,
        api_base=API_BASE,
    )


@pytest.fixture
def small_session(session: Session) -> Session:
    return Session(
        token=session.token,
        upload_url=session.upload_url,
        max_file_size=1000,
        chunk_size=10,
        api_base=session.api_base,
    )


@pytest.fixture
def write_file(tmp_path: Path):
    def _write(name: str, size: int, fill: bytes = b"x") -> Path:
        path = tmp_path / name
        path.write_bytes((fill * size)[:size])
        return path

    return _write
