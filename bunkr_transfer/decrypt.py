import base64
import binascii
import json

import httpx

from .retry import DEFAULT_RETRY, RetryPolicy, request_with_retry
from .types import RESOLVE_API_URL, RESOLVE_HEADERS, AlbumFile, DecodeError, ParseError, ResolvedLink, ServerError
from .utils import add_query_param


BUCKET_SECONDS = 3600


def time_bucket(timestamp: int) -> int:
    return timestamp // BUCKET_SECONDS


def derive_key(bucket: int) -> bytes:
    return f"SECRET_KEY_{bucket}".encode("ascii")


def xor_bytes(data: bytes, key: bytes) -> bytes:
    return bytes(b ^ key[i % len(key)] for i, b in enumerate(data))


def decrypt_url(encoded_url: str, timestamp: int) -> ResolvedLink:
    bucket = time_bucket(timestamp)
    try:
        raw = base64.b64decode(encoded_url, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Download url is not valid base64: {exc}") from exc
    try:
        url = xor_bytes(raw, derive_key(bucket)).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"Decrypted download url is not UTF-8: {exc}") from exc
    return ResolvedLink(url=url, bucket=bucket)


def parse_resolution(text: str) -> tuple[str, int]:
    if not text.strip().startswith("{"):
        raise ParseError(f"API returned non-JSON response: {text[:200]}")
    try:
        data = json.loads(text)
        encrypted = data["encrypted"]
        timestamp = int(data["timestamp"])
        url = str(data["url"])
    except (ValueError, KeyError, TypeError) as exc:
        raise ParseError(f"Malformed download resolution response: {exc}") from exc
    if not encrypted:
        raise ParseError("Download URL is not encrypted")
    return url, timestamp


async def resolve_download_link(
    client: httpx.AsyncClient,
    file: AlbumFile,
    api_url: str = RESOLVE_API_URL,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> ResolvedLink:
    r = await request_with_retry(
        lambda: client.post(api_url, headers=RESOLVE_HEADERS, json={"id": str(file.id)}),
        retry,
    )
    if not r.is_success:
        raise ServerError(f"Link resolution failed: HTTP {r.status_code}", status_code=r.status_code)
    encoded, timestamp = parse_resolution(r.text)
    link = decrypt_url(encoded, timestamp)
    return ResolvedLink(url=add_query_param(link.url, "n", file.original), bucket=link.bucket)
