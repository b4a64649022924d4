"""
中间捕获事件测试
"""
import pytest

from process_engine.models.request import RequestStatus, TokenStatus
from process_engine.exceptions import TokenNotFound, TokenNotWaiting

from helpers import (
    create_process, start_process, active_tokens, complete_task, token_at, trigger_catch_event
)


def snapshot(request):
    return (
        request.lock_version,
        dict(request.data),
        [(token.id, token.status) for token in request.tokens],
    )


class TestTriggerCatchEvent:
    """按令牌触发捕获事件"""

    @pytest.mark.asyncio
    async def test_message_catch_waits_for_its_name(self, engine, store, message_definition):
        await store.deploy(message_definition)

        request = await start_process(engine, "message")

        token = request.tokens[0]
        assert token.node_id == "wait_payment"
        assert token.node_type == "intermediateCatchEvent"
        assert token.waiting_for == "payment_received"
        assert token.assignee is None

    @pytest.mark.asyncio
    async def test_trigger_advances_to_next_catch(self, engine, store, message_definition):
        await store.deploy(message_definition)
        request = await start_process(engine, "message")

        token = await engine.trigger_catch_event(request.id, request.tokens[0].id, {"paid": 100})

        assert token.status == TokenStatus.COMPLETED
        assert token.data == {"paid": 100}
        request = await engine.get_request(request.id)
        assert request.data == {"paid": 100}
        assert [t.node_id for t in request.active_tokens()] == ["wait_signal"]
        assert request.active_tokens()[0].waiting_for == "shipped"

        await engine.trigger_catch_event(request.id, request.active_tokens()[0].id)
        assert (await engine.get_request(request.id)).status == RequestStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_trigger_twice_fails(self, engine, store, message_definition):
        await store.deploy(message_definition)
        request = await start_process(engine, "message")
        token_id = request.tokens[0].id
        await engine.trigger_catch_event(request.id, token_id, {"paid": True})
        before = snapshot(await engine.get_request(request.id))

        with pytest.raises(TokenNotWaiting):
            await engine.trigger_catch_event(request.id, token_id, {"paid": False})

        assert snapshot(await engine.get_request(request.id)) == before

    @pytest.mark.asyncio
    async def test_task_token_is_not_waiting(self, engine, store, simple_task_definition):
        await store.deploy(simple_task_definition)
        request = await start_process(engine, "simple")
        before = snapshot(await engine.get_request(request.id))

        with pytest.raises(TokenNotWaiting):
            await engine.trigger_catch_event(request.id, request.tokens[0].id, {"approved": True})

        stored = await engine.get_request(request.id)
        assert snapshot(stored) == before
        assert stored.tokens[0].status == TokenStatus.ACTIVE
        assert len(stored.tokens) == 1

    @pytest.mark.asyncio
    async def test_token_of_another_request(self, engine, store, message_definition):
        await store.deploy(message_definition)
        first = await start_process(engine, "message")
        second = await start_process(engine, "message")

        with pytest.raises(TokenNotFound):
            await engine.trigger_catch_event(first.id, second.tokens[0].id)

    @pytest.mark.asyncio
    async def test_canceled_request(self, engine, store, message_definition):
        await store.deploy(message_definition)
        request = await start_process(engine, "message")
        await engine.cancel_request(request.id)
        before = snapshot(await engine.get_request(request.id))

        with pytest.raises(TokenNotWaiting):
            await engine.trigger_catch_event(request.id, request.tokens[0].id, {"paid": True})

        stored = await engine.get_request(request.id)
        assert snapshot(stored) == before
        assert stored.status == RequestStatus.CANCELED


class TestTriggerEvent:
    """按事件名触发捕获事件"""

    @pytest.mark.asyncio
    async def test_trigger_by_name(self, engine, store, message_definition):
        await create_process(store, message_definition)
        request = await start_process(engine, "message")

        resolved = await engine.trigger_event(request.id, "payment_received", {"paid": 1})

        assert [token.node_id for token in resolved] == ["wait_payment"]
        assert await token_at(engine, request.id, "wait_signal") is not None

    @pytest.mark.asyncio
    async def test_no_waiting_token_changes_nothing(self, engine, store, message_definition):
        await store.deploy(message_definition)
        request = await start_process(engine, "message")

        assert await engine.trigger_event(request.id, "shipped") == []

        stored = await engine.get_request(request.id)
        assert stored.lock_version == request.lock_version
        assert [t.node_id for t in stored.active_tokens()] == ["wait_payment"]

    @pytest.mark.asyncio
    async def test_all_waiting_branches_resolve(self, engine, store):
        await store.deploy({"process": {"id": "broadcast", "nodes": [
            {"id": "start1", "type": "startEvent"},
            {"id": "split", "type": "parallelGateway"},
            {"id": "warehouse", "type": "intermediateCatchEvent", "signal": "go"},
            {"id": "billing", "type": "intermediateCatchEvent", "signal": "go"},
            {"id": "join", "type": "parallelGateway"},
            {"id": "end1", "type": "endEvent"},
        ], "flows": [
            {"from": "start1", "to": "split"},
            {"from": "split", "to": "warehouse"},
            {"from": "split", "to": "billing"},
            {"from": "warehouse", "to": "join"},
            {"from": "billing", "to": "join"},
            {"from": "join", "to": "end1"},
        ]}})
        request = await start_process(engine, "broadcast")

        resolved = await engine.trigger_event(request.id, "go")

        assert sorted(token.node_id for token in resolved) == ["billing", "warehouse"]
        assert (await engine.get_request(request.id)).status == RequestStatus.COMPLETED


class TestTaskThenCatch:
    """任务与捕获事件组合"""

    @pytest.mark.asyncio
    async def test_order_process(self, engine, store, order_bpmn):
        await create_process(store, order_bpmn)
        request = await start_process(engine, "order")
        assert request.tokens[0].assignee == "7"

        await complete_task(engine, request.id, "review", {"approved": True})
        tokens = await active_tokens(engine, request.id)
        assert [token.waiting_for for token in tokens] == ["payment_received"]

        await engine.trigger_event(request.id, "payment_received")
        tokens = await active_tokens(engine, request.id)
        assert [token.node_id for token in tokens] == ["cooldown"]
        assert tokens[0].scheduled_for is not None

    @pytest.mark.asyncio
    async def test_order_rejected(self, engine, store, order_bpmn):
        await store.deploy(order_bpmn)
        request = await start_process(engine, "order")

        await complete_task(engine, request.id, "review", {"approved": False})

        assert (await engine.get_request(request.id)).status == RequestStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_triggered_payload_is_shared_with_later_tasks(self, engine, store):
        await create_process(store, {"process": {"id": "callback", "nodes": [
            {"id": "start1", "type": "startEvent"},
            {"id": "callback", "type": "intermediateCatchEvent", "message": "callback"},
            {"id": "check", "type": "userTask"},
            {"id": "end1", "type": "endEvent"},
        ], "flows": [
            {"from": "start1", "to": "callback"},
            {"from": "callback", "to": "check"},
            {"from": "check", "to": "end1"},
        ]}})
        request = await start_process(engine, "callback", data={"attempt": 1})

        await trigger_catch_event(engine, request.id, "callback", {"status": "ok", "attempt": 2})

        request = await engine.get_request(request.id)
        assert request.data == {"attempt": 2, "status": "ok"}
        assert [t.node_id for t in request.active_tokens()] == ["check"]
