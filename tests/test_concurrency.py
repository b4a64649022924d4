"""
同一请求上的并发操作测试
"""
import asyncio
import copy

import pytest

from process_engine.core import ProcessEngine, DefinitionStore
from process_engine.models.request import RequestStatus, TokenStatus
from process_engine.storage.repository import InMemoryDefinitionRepository, InMemoryRequestRepository
from process_engine.exceptions import ConcurrentModificationError, InvalidTokenState

from helpers import start_process, token_at


class SlowRequestRepository(InMemoryRequestRepository):
    """读写之间让出事件循环，放大交错执行的可能"""

    async def get(self, request_id):
        await asyncio.sleep(0)
        request = await super().get(request_id)
        await asyncio.sleep(0)
        return request

    async def save(self, request):
        await asyncio.sleep(0)
        return await super().save(request)


@pytest.fixture
def slow_engine():
    return ProcessEngine(
        definitions=DefinitionStore(InMemoryDefinitionRepository()),
        repository=SlowRequestRepository()
    )


@pytest.mark.asyncio
async def test_parallel_branches_completed_concurrently(slow_engine, parallel_definition):
    await slow_engine.definitions.deploy(parallel_definition)
    request = await start_process(slow_engine, "parallel")
    legal = await token_at(slow_engine, request.id, "legal")
    finance = await token_at(slow_engine, request.id, "finance")

    await asyncio.gather(
        slow_engine.complete_task(legal.id, {"legal_ok": True}),
        slow_engine.complete_task(finance.id, {"finance_ok": True}),
    )

    request = await slow_engine.get_request(request.id)
    assert request.data == {"legal_ok": True, "finance_ok": True}
    assert [t.node_id for t in request.active_tokens()] == ["archive"]
    join = [t for t in request.tokens if t.node_id == "join"]
    assert len(join) == 1
    assert join[0].status == TokenStatus.CLOSED


@pytest.mark.asyncio
async def test_same_token_completed_concurrently(slow_engine, simple_task_definition):
    await slow_engine.definitions.deploy(simple_task_definition)
    request = await start_process(slow_engine, "simple")
    token_id = request.tokens[0].id

    results = await asyncio.gather(
        slow_engine.complete_task(token_id, {"winner": "first"}),
        slow_engine.complete_task(token_id, {"winner": "second"}),
        return_exceptions=True
    )

    failures = [result for result in results if isinstance(result, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InvalidTokenState)
    request = await slow_engine.get_request(request.id)
    assert request.status == RequestStatus.COMPLETED
    assert len(request.tokens) == 1


@pytest.mark.asyncio
async def test_cancel_races_with_completion(slow_engine, parallel_definition):
    await slow_engine.definitions.deploy(parallel_definition)
    request = await start_process(slow_engine, "parallel")
    legal = await token_at(slow_engine, request.id, "legal")

    await asyncio.gather(
        slow_engine.cancel_request(request.id),
        slow_engine.complete_task(legal.id, {}),
        return_exceptions=True
    )

    request = await slow_engine.get_request(request.id)
    assert request.status == RequestStatus.CANCELED
    assert request.active_tokens() == []


@pytest.mark.asyncio
async def test_stale_write_is_rejected(engine, store, simple_task_definition):
    await store.deploy(simple_task_definition)
    request = await start_process(engine, "simple")
    stale = copy.deepcopy(await engine.get_request(request.id))

    await engine.complete_task(request.tokens[0].id, {})

    with pytest.raises(ConcurrentModificationError):
        await engine.repository.save(stale)


@pytest.mark.asyncio
async def test_duplicate_insert_is_rejected(engine, store, simple_task_definition):
    await store.deploy(simple_task_definition)
    request = await start_process(engine, "simple")
    duplicate = copy.deepcopy(request)
    duplicate.lock_version = 0

    with pytest.raises(ConcurrentModificationError):
        await engine.repository.save(duplicate)
