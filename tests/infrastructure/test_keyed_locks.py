"""KeyedLockRegistry: per-key serialization and entry cleanup."""

import asyncio

from circle_governance.infrastructure.keyed_locks import KeyedLockRegistry


async def test_same_key_is_serialized():
    registry = KeyedLockRegistry()
    order = []

    async def worker(name):
        async with registry.hold("vote", 1):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))
    assert order in (
        ["a-in", "a-out", "b-in", "b-out"],
        ["b-in", "b-out", "a-in", "a-out"],
    )


async def test_different_keys_do_not_block():
    registry = KeyedLockRegistry()
    entered = asyncio.Event()

    async def holder():
        async with registry.hold("vote", 1):
            await asyncio.wait_for(entered.wait(), timeout=1)

    async def other():
        async with registry.hold("vote", 2):
            entered.set()

    await asyncio.gather(holder(), other())


async def test_entries_removed_after_release():
    registry = KeyedLockRegistry()
    async with registry.hold("circle", "c1"):
        assert ("circle", "c1") in registry.active_keys()
    assert registry.active_keys() == []
