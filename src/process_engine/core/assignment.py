"""
任务分配人解析
"""
from types import MappingProxyType
from typing import Mapping, Optional

from ..models.definition import ProcessDefinition, ResolvedDefinition


def resolve_assignments(definition: ProcessDefinition,
                        user_map: Optional[Mapping[str, str]] = None) -> ResolvedDefinition:
    """
    解析流程定义中每个任务节点的分配人

    规则为 user 且带有用户ID的任务：若该ID在 user_map 中则映射为对应用户，
    否则直接使用该ID；其余任务不分配。不会修改传入的流程定义。
    """
    user_map = user_map or {}
    assignments = {}

    for node in definition.nodes.values():
        if not node.is_task:
            continue
        rule = node.assignment
        if rule.is_user:
            assignee = user_map.get(rule.user_id, rule.user_id)
            assignments[node.id] = str(assignee)
        else:
            assignments[node.id] = None

    return ResolvedDefinition(definition=definition, assignments=MappingProxyType(assignments))
