"""
请求锁测试
"""
import asyncio

import pytest

from process_engine.core.locks import RequestLockRegistry


def test_same_request_shares_a_lock():
    registry = RequestLockRegistry()
    lock = registry.get("r1")

    assert registry.get("r1") is lock
    assert registry.get("r2") is not lock


@pytest.mark.asyncio
async def test_hold_serializes_same_request():
    registry = RequestLockRegistry()
    order = []

    async def worker(name, request_id):
        async with registry.hold(request_id):
            order.append(f"{name}:in")
            await asyncio.sleep(0.01)
            order.append(f"{name}:out")

    await asyncio.gather(worker("a", "r1"), worker("b", "r1"))

    assert order in (["a:in", "a:out", "b:in", "b:out"], ["b:in", "b:out", "a:in", "a:out"])


@pytest.mark.asyncio
async def test_different_requests_do_not_block():
    registry = RequestLockRegistry()
    order = []

    async def worker(name, request_id):
        async with registry.hold(request_id):
            order.append(f"{name}:in")
            await asyncio.sleep(0.01)
            order.append(f"{name}:out")

    await asyncio.gather(worker("a", "r1"), worker("b", "r2"))

    assert order[:2] == ["a:in", "b:in"]
