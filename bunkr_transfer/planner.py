import math
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .types import ChunkTask, TransferUnit


@dataclass(frozen=True)
class TransferPlan:
    unit: TransferUnit
    chunks: list[ChunkTask]

    @property
    def single_shot(self) -> bool:
        return not self.chunks

    @property
    def batch_id(self) -> Optional[str]:
        return self.chunks[0].batch_id if self.chunks else None


def new_batch_id() -> str:
    return str(uuid.uuid4())


def make_unit(path: Path) -> TransferUnit:
    return TransferUnit(path=path, size=path.stat().st_size)


def chunk_count(size: int, chunk_size: int) -> int:
    if chunk_size <= 0:
        raise ValueError("chunk size must be positive")
    return math.ceil(size / chunk_size)


def plan_chunks(unit: TransferUnit, chunk_size: int, batch_id: Optional[str] = None) -> list[ChunkTask]:
    total = chunk_count(unit.size, chunk_size)
    batch_id = batch_id or new_batch_id()
    chunks: list[ChunkTask] = []
    for index in range(total):
        offset = index * chunk_size
        chunks.append(
            ChunkTask(
                unit=unit,
                index=index,
                offset=offset,
                length=min(chunk_size, unit.size - offset),
                batch_id=batch_id,
            )
        )
    return chunks


def plan_transfer(unit: TransferUnit, chunk_size: int) -> TransferPlan:
    if unit.size <= chunk_size:
        return TransferPlan(unit=unit, chunks=[])
    return TransferPlan(unit=unit, chunks=plan_chunks(unit, chunk_size))
