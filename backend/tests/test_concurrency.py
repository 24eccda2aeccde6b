"""
Tests for KeyedLock.
"""
import asyncio

import pytest

from storefront.core.concurrency import KeyedLock


async def test_same_key_is_serialized():
    locks = KeyedLock()
    inside = []
    overlaps = []

    async def work(n: int) -> None:
        async with locks.hold("pi_1"):
            if inside:
                overlaps.append(n)
            inside.append(n)
            await asyncio.sleep(0)
            inside.remove(n)

    await asyncio.gather(*(work(n) for n in range(10)))

    assert overlaps == []
    assert locks.active_keys == 0


async def test_different_keys_run_concurrently():
    locks = KeyedLock()
    entered = asyncio.Event()

    async def first() -> None:
        async with locks.hold("a"):
            await asyncio.wait_for(entered.wait(), timeout=1)

    async def second() -> None:
        async with locks.hold("b"):
            entered.set()

    await asyncio.gather(first(), second())

    assert locks.active_keys == 0


async def test_key_is_dropped_after_last_holder():
    locks = KeyedLock()

    for n in range(100):
        async with locks.hold(f"pi_{n}"):
            assert locks.active_keys == 1

    assert locks.active_keys == 0


async def test_key_kept_while_waiters_remain():
    locks = KeyedLock()
    release = asyncio.Event()

    async def holder() -> None:
        async with locks.hold("pi_1"):
            await release.wait()

    async def waiter() -> None:
        async with locks.hold("pi_1"):
            pass

    tasks = [asyncio.create_task(holder()), asyncio.create_task(waiter())]
    await asyncio.sleep(0)
    assert locks.active_keys == 1

    release.set()
    await asyncio.gather(*tasks)
    assert locks.active_keys == 0


async def test_released_when_block_raises():
    locks = KeyedLock()

    with pytest.raises(RuntimeError):
        async with locks.hold("pi_1"):
            raise RuntimeError("boom")

    assert locks.active_keys == 0
