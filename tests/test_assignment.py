"""
任务分配测试
"""
import pytest

from process_engine.core.assignment import resolve_assignments
from process_engine.core.parser import DefinitionParser


@pytest.fixture
def definition(exclusive_definition):
    return DefinitionParser().parse(exclusive_definition)


def test_user_rules_resolve_to_user_ids(definition):
    resolved = resolve_assignments(definition)

    assert resolved.assignee_for("small_review") == "5"
    assert resolved.assignee_for("review") == "9"
    assert resolved.assignee_for("auto_approve") is None
    assert "gw" not in resolved.assignments


def test_user_map_is_applied(definition):
    resolved = resolve_assignments(definition, {"9": "alice"})

    assert resolved.assignee_for("review") == "alice"
    assert resolved.assignee_for("small_review") == "5"


def test_definition_is_not_modified(definition):
    resolve_assignments(definition, {"9": "alice"})
    assert definition.nodes["review"].assignment.user_id == "9"


def test_resolved_assignments_are_read_only(definition):
    resolved = resolve_assignments(definition)
    with pytest.raises(TypeError):
        resolved.assignments["review"] = "mallory"
