import logging
from typing import Any, Optional

import httpx

from .planner import TransferPlan, plan_transfer
from .retry import DEFAULT_RETRY, PER_FILE_ERRORS, RetryPolicy, request_with_retry
from .session import ensure_success, read_json
from .stream import ProgressReader, fraction_reporter, read_chunk
from .types import (
    ChunkTask,
    FailureRecord,
    ParseError,
    ServerError,
    Session,
    TransferOutcome,
    TransferUnit,
)
from .ui import NULL_OBSERVER, TransferObserver
from .utils import guess_mime


logger = logging.getLogger(__name__)


def uploaded_url(data: Any, what: str) -> str:
    if not isinstance(data, dict):
        raise ParseError(f"Unexpected {what} response: {data!r}")
    if not data.get("success"):
        raise ServerError(f"{what} failed: server returned success=false")
    files = data.get("files") or []
    try:
        url = files[0]["url"]
    except (IndexError, KeyError, TypeError) as exc:
        raise ParseError(f"{what} response has no file url") from exc
    return str(url)


async def upload_single(
    client: httpx.AsyncClient,
    session: Session,
    unit: TransferUnit,
    album_id: Optional[str] = None,
    observer: TransferObserver = NULL_OBSERVER,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> str:
    headers = dict(session.headers)
    if album_id:
        headers["albumid"] = str(album_id)
    mime = guess_mime(unit.path)
    report = fraction_reporter(observer, unit.name, unit.size)

    with unit.path.open("rb") as f:
        body = ProgressReader(f, unit.size, report)

        async def send() -> httpx.Response:
            body.seek(0)
            files = {"files[]": (unit.name, body, mime)}
            return await client.post(session.upload_url, headers=headers, files=files)

        r = await request_with_retry(send, retry)
    ensure_success(r, "Upload request")
    return uploaded_url(read_json(r, "upload"), "Upload")


async def upload_chunk(
    client: httpx.AsyncClient,
    session: Session,
    task: ChunkTask,
    total_chunks: int,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> None:
    data = await read_chunk(task.unit.path, task.offset, task.length)
    fields = {
        "dzuuid": task.batch_id,
        "dzchunkindex": str(task.index),
        "dztotalfilesize": str(task.unit.size),
        "dzchunksize": str(session.chunk_size),
        "dztotalchunkcount": str(total_chunks),
        "dzchunkbyteoffset": str(task.offset),
    }
    files = {"files[]": (task.unit.name, data, "application/octet-stream")}
    r = await request_with_retry(
        lambda: client.post(session.upload_url, headers=session.headers, data=fields, files=files),
        retry,
    )
    if not r.is_success:
        raise ServerError(
            f"Chunk {task.index} upload failed with status {r.status_code}: {r.text[:200]}",
            status_code=r.status_code,
        )


async def finalize_chunks(
    client: httpx.AsyncClient,
    session: Session,
    plan: TransferPlan,
    album_id: Optional[str] = None,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> str:
    body = {
        "files": [
            {
                "uuid": plan.batch_id,
                "original": plan.unit.name,
                "type": guess_mime(plan.unit.path),
                "albumid": int(album_id) if album_id else None,
                "filelength": None,
                "age": None,
            }
        ]
    }
    r = await request_with_retry(
        lambda: client.post(f"{session.upload_url}/finishchunks", headers=session.headers, json=body),
        retry,
    )
    ensure_success(r, "Finish chunks request")
    return uploaded_url(read_json(r, "finish chunks"), "Finish chunks")


async def upload_chunked(
    client: httpx.AsyncClient,
    session: Session,
    plan: TransferPlan,
    album_id: Optional[str] = None,
    observer: TransferObserver = NULL_OBSERVER,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> str:
    total = len(plan.chunks)
    # strictly sequential: index and offset are server-side reassembly state
    for task in plan.chunks:
        await upload_chunk(client, session, task, total, retry)
        observer.on_progress(plan.unit.name, (task.index + 1) / total)
    logger.debug(f"All {total} chunks of {plan.unit.name} sent, finalizing {plan.batch_id}")
    return await finalize_chunks(client, session, plan, album_id, retry)


def failure_for(unit: TransferUnit, exc: Exception) -> FailureRecord:
    return FailureRecord(
        path=str(unit.path),
        message=str(exc) or type(exc).__name__,
        file_size=unit.size,
        status_code=getattr(exc, "status_code", None),
    )


async def upload_unit(
    client: httpx.AsyncClient,
    session: Session,
    unit: TransferUnit,
    album_id: Optional[str] = None,
    observer: TransferObserver = NULL_OBSERVER,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> TransferOutcome:
    observer.on_start(unit.name, unit.size)
    plan = plan_transfer(unit, session.chunk_size)
    try:
        if plan.single_shot:
            url = await upload_single(client, session, unit, album_id, observer, retry)
        else:
            url = await upload_chunked(client, session, plan, album_id, observer, retry)
    except PER_FILE_ERRORS as exc:
        failure = failure_for(unit, exc)
        observer.on_failed(unit.name, failure)
        return TransferOutcome(unit=unit, failure=failure)
    observer.on_complete(unit.name, url)
    return TransferOutcome(unit=unit, url=url)
