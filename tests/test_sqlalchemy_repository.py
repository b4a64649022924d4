"""
SQLAlchemy 存储测试（SQLite）
"""
import copy
from datetime import timedelta

import pytest
import pytest_asyncio

from process_engine.config import Settings
from process_engine.models.request import RequestStatus, TokenStatus, utcnow
from process_engine.models.security import User
from process_engine.seeds import PermissionSeeder, PERMISSIONS
from process_engine.services import build_database_services
from process_engine.exceptions import ConcurrentModificationError, DefinitionNotFound

from helpers import start_process, complete_task, run_scheduled_tasks


@pytest_asyncio.fixture
async def db_services(tmp_path):
    """使用临时 SQLite 数据库的引擎组件"""
    settings = Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}")
    services = await build_database_services(settings)
    yield services
    await services.close()


class TestDefinitionStorage:
    """流程定义存储测试"""

    @pytest.mark.asyncio
    async def test_versions_are_stored_separately(self, db_services, simple_task_definition,
                                                  order_bpmn):
        store = db_services.definitions
        first = await store.deploy(simple_task_definition)
        second = await store.deploy(simple_task_definition, name="Renamed")
        await store.deploy(order_bpmn)

        assert (first.version, second.version) == (1, 2)

        repository = store.repository
        loaded = await repository.get("simple", 1)
        assert loaded.version == 1
        assert loaded.name == "Simple Task"
        assert loaded.nodes["task1"].assignment.user_id == "42"
        assert (await repository.get("simple")).name == "Renamed"
        assert await repository.latest_version("simple") == 2
        assert await repository.latest_version("missing") == 0

        listed = await store.list()
        assert [(d.id, d.version) for d in listed] == [("order", 1), ("simple", 2)]

    @pytest.mark.asyncio
    async def test_missing_definition(self, db_services):
        with pytest.raises(DefinitionNotFound):
            await db_services.definitions.get("missing")


class TestRequestStorage:
    """流程请求存储测试"""

    @pytest.mark.asyncio
    async def test_request_round_trip(self, db_services, parallel_definition):
        engine = db_services.engine
        await db_services.definitions.deploy(parallel_definition)
        request = await start_process(engine, "parallel", data={"order": 7})

        await complete_task(engine, request.id, "legal", {"legal_ok": True})

        stored = await engine.get_request(request.id)
        assert stored.lock_version == 2
        assert stored.data == {"order": 7, "legal_ok": True}
        assert [t.node_id for t in stored.tokens] == ["legal", "finance", "join"]
        assert stored.tokens[0].status == TokenStatus.COMPLETED
        assert stored.tokens[0].data == {"legal_ok": True}
        assert stored.tokens[1].assignee == "2"
        assert len(stored.tokens[2].arrivals) == 1
        assert stored.assignments["legal"] == "1"

        await complete_task(engine, request.id, "finance")
        await complete_task(engine, request.id, "archive")
        assert (await engine.get_request(request.id)).status == RequestStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_stale_write_is_rejected(self, db_services, simple_task_definition):
        engine = db_services.engine
        await db_services.definitions.deploy(simple_task_definition)
        request = await start_process(engine, "simple")
        stale = copy.deepcopy(await engine.get_request(request.id))

        await engine.complete_task(request.tokens[0].id, {})

        with pytest.raises(ConcurrentModificationError):
            await engine.repository.save(stale)

        duplicate = copy.deepcopy(stale)
        duplicate.lock_version = 0
        with pytest.raises(ConcurrentModificationError):
            await engine.repository.save(duplicate)

    @pytest.mark.asyncio
    async def test_list_filters(self, db_services, simple_task_definition, message_definition):
        engine = db_services.engine
        await db_services.definitions.deploy(simple_task_definition)
        await db_services.definitions.deploy(message_definition)
        first = await start_process(engine, "simple")
        await start_process(engine, "simple")
        await start_process(engine, "message")
        await engine.cancel_request(first.id)

        assert len(await engine.list_requests()) == 3
        assert len(await engine.list_requests(definition_id="simple")) == 2
        canceled = await engine.list_requests(status=RequestStatus.CANCELED)
        assert [r.id for r in canceled] == [first.id]

        assigned = await engine.list_tokens(assignee="42", status=TokenStatus.ACTIVE)
        assert len(assigned) == 1
        assert len(await engine.list_tokens(request_id=first.id)) == 1

    @pytest.mark.asyncio
    async def test_due_timers_and_sweep(self, db_services, timer_definition):
        engine = db_services.engine
        await db_services.definitions.deploy(timer_definition)
        request = await start_process(engine, "timer")

        assert await engine.repository.list_due_timer_tokens(utcnow()) == []
        due = await engine.repository.list_due_timer_tokens(utcnow() + timedelta(hours=2))
        assert [t.id for t in due] == [request.tokens[0].id]

        assert await run_scheduled_tasks(db_services.scheduler, timedelta(hours=2)) == 1
        assert await run_scheduled_tasks(db_services.scheduler, timedelta(hours=2)) == 0

    @pytest.mark.asyncio
    async def test_delete(self, db_services, simple_task_definition):
        engine = db_services.engine
        await db_services.definitions.deploy(simple_task_definition)
        request = await start_process(engine, "simple")

        assert await engine.repository.delete(request.id) is True
        assert await engine.repository.get(request.id) is None
        assert await engine.repository.get_token(request.tokens[0].id) is None
        assert await engine.repository.delete(request.id) is False


class TestPermissionStorage:
    """权限存储测试"""

    @pytest.mark.asyncio
    async def test_seeder_on_database(self, db_services):
        permissions = db_services.permissions
        await permissions.save_user(User(id="1", username="admin"))
        await permissions.save_user(User(id="2", username="second"))

        group = await PermissionSeeder(permissions).run()
        await PermissionSeeder(permissions).run()

        assert await permissions.group_members(group.id) == {"1"}
        assert await permissions.group_permissions(group.id) == set(PERMISSIONS)
        assert len(await permissions.list_permissions()) == len(PERMISSIONS)
        assert await permissions.user_permissions("1") == set(PERMISSIONS)
        assert await permissions.user_permissions("2") == set()
        guard_names = {p.guard_name for p in await permissions.list_permissions()}
        assert guard_names == set(PERMISSIONS)
