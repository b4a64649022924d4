"""
流程定义存储测试
"""
import pytest

from process_engine.exceptions import DefinitionNotFound, DefinitionValidationError


@pytest.mark.asyncio
async def test_each_deploy_is_a_new_version(store, simple_task_definition):
    first = await store.deploy(simple_task_definition)
    second = await store.deploy(simple_task_definition)

    assert (first.version, second.version) == (1, 2)
    assert (await store.get("simple")).version == 2
    assert (await store.get("simple", 1)) is first
    assert [d.version for d in await store.list()] == [2]


@pytest.mark.asyncio
async def test_deploy_with_overrides(store, simple_task_definition):
    definition = await store.deploy(simple_task_definition, definition_id="renamed", name="Renamed")

    assert definition.id == "renamed"
    assert definition.name == "Renamed"
    with pytest.raises(DefinitionNotFound):
        await store.get("simple")


@pytest.mark.asyncio
async def test_unknown_version(store, simple_task_definition):
    await store.deploy(simple_task_definition)

    with pytest.raises(DefinitionNotFound) as exc_info:
        await store.get("simple", 5)
    assert exc_info.value.version == 5


@pytest.mark.asyncio
async def test_definition_without_id(store):
    with pytest.raises(DefinitionValidationError):
        await store.deploy({"process": {"nodes": [
            {"id": "start1", "type": "startEvent"},
            {"id": "end1", "type": "endEvent"},
        ], "flows": [{"from": "start1", "to": "end1"}]}})


def test_validate_reports_problems(store, simple_task_definition):
    assert store.validate(simple_task_definition) == []
    assert store.validate("<not-bpmn") != []
    assert store.validate({"process": {"id": "p", "nodes": []}}) == ["Process has no start event"]
