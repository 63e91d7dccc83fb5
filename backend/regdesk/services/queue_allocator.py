"""
Queue number allocation.

CONCURRENCY STRATEGY: Atomic upsert-and-increment
=================================================

Problem:
  Two registrations for the same event read lastNumber=6 at the same time,
  both write 7, and two people walk around with queue number 007.

Solution:
  The counter row is created and incremented by one statement:

    INSERT INTO queue_counters (event_id, prefix, last_number)
    VALUES (:event_id, :prefix, :count)
    ON CONFLICT (event_id, prefix)
    DO UPDATE SET last_number = queue_counters.last_number + :count
    RETURNING last_number

  The database serialises concurrent increments on the row lock, so N
  callers always receive N distinct, contiguous runs. There is no
  read-then-write at the application layer.

  A batch of N groups takes one run of N numbers from a single increment,
  so the numbers of one order are consecutive.

  The increment joins the caller's transaction: if the order insert later
  fails and rolls back, the numbers were never issued to anyone.
  `UNIQUE(event_id, queue_number)` on participant groups stays the final
  safety net.
"""

import re
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from regdesk.core.config import get_settings
from regdesk.core.logging import get_logger
from regdesk.core.metrics import allocation_latency, queue_numbers_allocated
from regdesk.db.session import translate_store_errors
from regdesk.models.queue_counter import QueueCounter

logger = get_logger(__name__)
settings = get_settings()

_QUEUE_NUMBER_RE = re.compile(r"^([A-Za-z]*)(\d+)$")
_PREFIX_RE = re.compile(r"^[A-Za-z]{0,8}$")


def format_queue_number(prefix: str, number: int) -> str:
    """`("U", 7)` -> `"U007"`. Numbers wider than the padding just grow."""
    return f"{prefix}{str(number).zfill(settings.QUEUE_NUMBER_WIDTH)}"


def queue_sort_key(queue_number: str) -> tuple[str, int, str]:
    """Numeric ordering within a prefix: 009 < 010 < 100 < 1000."""
    match = _QUEUE_NUMBER_RE.match(queue_number or "")
    if not match:
        return (queue_number or "", -1, queue_number or "")
    return (match.group(1), int(match.group(2)), queue_number)


def _validate_prefix(prefix: str) -> None:
    if not _PREFIX_RE.match(prefix):
        raise ValueError(f"Queue prefix must be up to 8 letters, got {prefix!r}")


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"No atomic upsert available for dialect {dialect!r}")


async def allocate(
    db: AsyncSession,
    event_id: str,
    prefix: str = "",
    count: int = 1,
) -> list[str]:
    """
    Issue `count` consecutive queue numbers for (event_id, prefix).

    All or nothing: if the increment fails, StoreUnavailable is raised and
    no number is returned.
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    _validate_prefix(prefix)

    insert = _insert_for(db)
    stmt = (
        insert(QueueCounter)
        .values(event_id=event_id, prefix=prefix, last_number=count)
        .on_conflict_do_update(
            index_elements=[QueueCounter.event_id, QueueCounter.prefix],
            set_={"last_number": QueueCounter.last_number + count},
        )
        .returning(QueueCounter.last_number)
    )

    async with translate_store_errors("allocate_queue_numbers"):
        with allocation_latency.time():
            result = await db.execute(stmt)
            last_number = result.scalar_one()

    first_number = last_number - count + 1
    numbers = [format_queue_number(prefix, n) for n in range(first_number, last_number + 1)]

    queue_numbers_allocated.labels(prefix=prefix or "default").inc(count)
    logger.info(
        "queue_numbers_allocated",
        event_id=event_id,
        prefix=prefix,
        first=numbers[0],
        last=numbers[-1],
        count=count,
    )
    return numbers


async def peek_next(db: AsyncSession, event_id: str, prefix: str = "") -> str:
    """
    Next number as it would be issued right now. Display only: the value can
    be taken by another registration before the caller acts on it.
    """
    _validate_prefix(prefix)
    async with translate_store_errors("peek_queue_number"):
        result = await db.execute(
            select(QueueCounter.last_number).where(
                QueueCounter.event_id == event_id,
                QueueCounter.prefix == prefix,
            )
        )
        last_number: Optional[int] = result.scalar_one_or_none()
    return format_queue_number(prefix, (last_number or 0) + 1)
