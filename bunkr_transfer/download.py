import logging
from pathlib import Path

import httpx

from .decrypt import resolve_download_link
from .retry import DEFAULT_RETRY, PER_FILE_ERRORS, RetryPolicy
from .stream import download_to_file
from .types import AlbumFile, FailureRecord
from .ui import NULL_OBSERVER, TransferObserver
from .utils import clean_filename, unique_path


logger = logging.getLogger(__name__)


def build_target_path(out_dir: Path, file: AlbumFile) -> Path:
    return out_dir / clean_filename(file.original or file.name, fallback=f"{file.id}.bin")


async def download_one(
    client: httpx.AsyncClient,
    file: AlbumFile,
    out_path: Path,
    observer: TransferObserver = NULL_OBSERVER,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> str:
    link = await resolve_download_link(client, file, retry=retry)
    logger.debug(f"Resolved {file.original} (bucket {link.bucket}) -> {link.url}")
    await download_to_file(
        client,
        link.url,
        out_path,
        expected_size=file.size,
        observer=observer,
        label=file.original,
        retry=retry,
    )
    return link.url


async def download_files(
    client: httpx.AsyncClient,
    files: list[AlbumFile],
    out_dir: Path,
    observer: TransferObserver = NULL_OBSERVER,
    skip_existing: bool = True,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> list[FailureRecord]:
    out_dir.mkdir(parents=True, exist_ok=True)
    failures: list[FailureRecord] = []
    for file in files:
        out_path = build_target_path(out_dir, file)
        observer.on_start(file.original, file.size)
        if out_path.exists():
            if skip_existing:
                observer.on_complete(file.original, None)
                continue
            out_path = unique_path(out_path)
        try:
            await download_one(client, file, out_path, observer, retry)
        except PER_FILE_ERRORS as exc:
            failure = FailureRecord(
                path=file.original,
                message=str(exc) or type(exc).__name__,
                file_size=file.size,
                status_code=getattr(exc, "status_code", None),
            )
            failures.append(failure)
            observer.on_failed(file.original, failure)
            continue
        observer.on_complete(file.original, str(out_path))
    return failures
