import json
import logging
from typing import Any, Optional

import httpx

from .retry import DEFAULT_RETRY, RetryPolicy, request_with_retry
from .types import (
    API_BASE,
    MAX_SIZE_HEADROOM,
    Album,
    AuthError,
    ParseError,
    ServerError,
    Session,
)
from .utils import parse_size


logger = logging.getLogger(__name__)


def read_json(response: httpx.Response, what: str) -> Any:
    try:
        return json.loads(response.text)
    except ValueError as exc:
        raise ParseError(f"Failed to parse {what} response: {exc}") from exc


def ensure_success(response: httpx.Response, what: str) -> None:
    if not response.is_success:
        raise ServerError(
            f"{what} failed with status {response.status_code}: {response.text[:200]}",
            status_code=response.status_code,
        )


async def verify_token(
    client: httpx.AsyncClient,
    token: str,
    api_base: str = API_BASE,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> dict[str, Any]:
    r = await request_with_retry(
        lambda: client.post(f"{api_base}/tokens/verify", data={"token": token}),
        retry,
    )
    if not r.is_success:
        raise AuthError(f"Token verification failed with status {r.status_code}: {r.text[:200]}")
    data = read_json(r, "token verification")
    if not isinstance(data, dict) or not data.get("success"):
        raise AuthError("Invalid API token")
    return data


async def fetch_limits(
    client: httpx.AsyncClient,
    token: str,
    api_base: str = API_BASE,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> tuple[int, int]:
    r = await request_with_retry(
        lambda: client.get(f"{api_base}/check", headers={"token": token}),
        retry,
    )
    ensure_success(r, "Config fetch")
    data = read_json(r, "config")
    try:
        max_size = data["maxSize"]
        chunk_size = data["chunkSize"]["default"]
    except (KeyError, TypeError) as exc:
        raise ParseError(f"Config response is missing {exc}") from exc
    return parse_size(max_size), parse_size(chunk_size)


async def fetch_upload_url(
    client: httpx.AsyncClient,
    token: str,
    api_base: str = API_BASE,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> str:
    r = await request_with_retry(
        lambda: client.get(f"{api_base}/node", headers={"token": token}),
        retry,
    )
    ensure_success(r, "Node fetch")
    data = read_json(r, "node")
    url = data.get("url") if isinstance(data, dict) else None
    if not isinstance(url, str) or not url:
        raise ParseError("Node response has no upload url")
    return url.rstrip("/")


async def bootstrap_session(
    client: httpx.AsyncClient,
    token: str,
    api_base: str = API_BASE,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> Session:
    if not token:
        raise AuthError("No API token provided")
    verified = await verify_token(client, token, api_base, retry)
    logger.debug(f"Token verified for user {verified.get('username')!r}")
    max_size, chunk_size = await fetch_limits(client, token, api_base, retry)
    upload_url = await fetch_upload_url(client, token, api_base, retry)
    session = Session(
        token=token,
        upload_url=upload_url,
        max_file_size=int(max_size * MAX_SIZE_HEADROOM),
        chunk_size=chunk_size,
        api_base=api_base,
    )
    logger.debug(
        f"Session ready: node={session.upload_url} "
        f"max={session.max_file_size} chunk={session.chunk_size}"
    )
    return session


async def list_albums(
    client: httpx.AsyncClient,
    session: Session,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> list[Album]:
    r = await request_with_retry(
        lambda: client.get(f"{session.api_base}/albums", headers=session.headers),
        retry,
    )
    ensure_success(r, "Albums fetch")
    data = read_json(r, "albums")
    raw_albums = data.get("albums") if isinstance(data, dict) else None
    albums: list[Album] = []
    for item in raw_albums or []:
        try:
            albums.append(Album(id=int(item["id"]), name=str(item["name"])))
        except (KeyError, TypeError, ValueError) as exc:
            raise ParseError(f"Malformed album entry: {item!r}") from exc
    return albums


async def find_album_id(
    client: httpx.AsyncClient,
    session: Session,
    name: str,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> Optional[int]:
    wanted = name.lower()
    for album in await list_albums(client, session, retry):
        if album.name.lower() == wanted:
            return album.id
    return None


async def create_album(
    client: httpx.AsyncClient,
    session: Session,
    name: str,
    description: str = "",
    download: bool = True,
    public: bool = True,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> int:
    body = {
        "name": name,
        "description": description,
        "download": download,
        "public": public,
    }
    r = await request_with_retry(
        lambda: client.post(f"{session.api_base}/albums", headers=session.headers, json=body),
        retry,
    )
    ensure_success(r, "Create album")
    data = read_json(r, "create album")
    if not isinstance(data, dict) or data.get("success") is not True:
        raise ServerError("Create album failed: success=false")
    try:
        return int(data["id"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ParseError("Create album response has no id") from exc
