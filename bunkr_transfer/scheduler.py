import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional

import httpx

from .planner import make_unit
from .retry import DEFAULT_RETRY, RetryPolicy
from .types import BatchResult, FailureRecord, Session, TransferOutcome, TransferUnit
from .ui import NULL_OBSERVER, TransferObserver
from .upload import upload_unit
from .utils import parse_album_id


logger = logging.getLogger(__name__)


def build_units(paths: Iterable[Path]) -> tuple[list[TransferUnit], list[TransferOutcome]]:
    units: list[TransferUnit] = []
    missing: list[TransferOutcome] = []
    for path in paths:
        try:
            units.append(make_unit(path))
        except OSError as exc:
            unit = TransferUnit(path=path, size=0)
            failure = FailureRecord(path=str(path), message=f"File not found: {exc}", file_size=0)
            missing.append(TransferOutcome(unit=unit, failure=failure))
    return units, missing


async def run_bounded(
    units: list[TransferUnit],
    parallelism: int,
    transfer: Callable[[TransferUnit], Awaitable[TransferOutcome]],
) -> list[TransferOutcome]:
    gate = asyncio.Semaphore(max(1, parallelism))

    async def guarded(unit: TransferUnit) -> TransferOutcome:
        async with gate:
            return await transfer(unit)

    return list(await asyncio.gather(*(guarded(unit) for unit in units)))


async def upload_batch(
    client: httpx.AsyncClient,
    session: Session,
    paths: Iterable[Path],
    album_id: Optional[str] = None,
    parallelism: int = 1,
    observer: TransferObserver = NULL_OBSERVER,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> BatchResult:
    album_id = parse_album_id(album_id)
    units, missing = build_units(paths)
    for outcome in missing:
        observer.on_failed(outcome.unit.name, outcome.failure)

    logger.debug(f"Uploading {len(units)} file(s) with parallelism {parallelism}")
    outcomes = await run_bounded(
        units,
        parallelism,
        lambda unit: upload_unit(client, session, unit, album_id, observer, retry),
    )

    result = BatchResult()
    for outcome in missing + outcomes:
        result.outcomes.append(outcome)
        if outcome.failure is not None:
            result.failures.append(outcome.failure)
        else:
            result.urls.append(outcome.url)
    return result
