"""
Tests for queue number allocation, including concurrent callers.
"""

import asyncio

import pytest

from regdesk.services.queue_allocator import (
    allocate,
    format_queue_number,
    peek_next,
    queue_sort_key,
)
from conftest import make_event


def test_format_queue_number_pads_to_three_digits():
    assert format_queue_number("", 1) == "001"
    assert format_queue_number("U", 7) == "U007"
    assert format_queue_number("", 1000) == "1000"


def test_queue_sort_key_is_numeric_within_prefix():
    numbers = ["010", "1000", "002", "100", "009"]
    assert sorted(numbers, key=queue_sort_key) == ["002", "009", "010", "100", "1000"]


@pytest.mark.asyncio
async def test_first_allocation_starts_at_one(db_session, test_event):
    numbers = await allocate(db_session, test_event.id)
    await db_session.commit()
    assert numbers == ["001"]


@pytest.mark.asyncio
async def test_batch_allocation_is_contiguous(db_session, test_event):
    first = await allocate(db_session, test_event.id, count=1)
    batch = await allocate(db_session, test_event.id, count=3)
    await db_session.commit()
    assert first == ["001"]
    assert batch == ["002", "003", "004"]


@pytest.mark.asyncio
async def test_prefixes_have_independent_counters(db_session, test_event):
    default = await allocate(db_session, test_event.id, "", 2)
    upload = await allocate(db_session, test_event.id, "U", 2)
    await db_session.commit()
    assert default == ["001", "002"]
    assert upload == ["U001", "U002"]


@pytest.mark.asyncio
async def test_events_have_independent_counters(db_session):
    a = await make_event(db_session, title="A")
    b = await make_event(db_session, title="B")
    assert await allocate(db_session, a.id) == ["001"]
    assert await allocate(db_session, b.id) == ["001"]
    assert await allocate(db_session, a.id) == ["002"]


@pytest.mark.asyncio
async def test_rolled_back_allocation_is_not_issued(db_session, test_event):
    event_id = test_event.id
    await allocate(db_session, event_id)
    await db_session.rollback()
    assert await allocate(db_session, event_id) == ["001"]


@pytest.mark.asyncio
async def test_invalid_count_and_prefix_rejected(db_session, test_event):
    with pytest.raises(ValueError):
        await allocate(db_session, test_event.id, count=0)
    with pytest.raises(ValueError):
        await allocate(db_session, test_event.id, prefix="U-1")


@pytest.mark.asyncio
async def test_peek_next_does_not_consume(db_session, test_event):
    assert await peek_next(db_session, test_event.id) == "001"
    assert await peek_next(db_session, test_event.id) == "001"
    await allocate(db_session, test_event.id, count=4)
    await db_session.commit()
    assert await peek_next(db_session, test_event.id) == "005"


@pytest.mark.asyncio
async def test_concurrent_allocations_are_distinct_and_contiguous(session_factory, db_session, test_event):
    """
    20 callers in separate sessions and transactions: every number from 001
    to 020 is issued exactly once.
    """

    async def allocate_one():
        async with session_factory() as session:
            numbers = await allocate(session, test_event.id)
            await session.commit()
            return numbers[0]

    results = await asyncio.gather(*(allocate_one() for _ in range(20)))

    assert len(set(results)) == 20
    assert sorted(results, key=queue_sort_key) == [format_queue_number("", n) for n in range(1, 21)]


@pytest.mark.asyncio
async def test_concurrent_batches_do_not_interleave(session_factory, db_session, test_event):
    async def allocate_batch(size):
        async with session_factory() as session:
            numbers = await allocate(session, test_event.id, count=size)
            await session.commit()
            return numbers

    batches = await asyncio.gather(*(allocate_batch(3) for _ in range(5)))

    issued = [n for batch in batches for n in batch]
    assert len(set(issued)) == 15
    for batch in batches:
        values = [queue_sort_key(n)[1] for n in batch]
        assert values == list(range(values[0], values[0] + 3))
