"""
流程定义模型
"""
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from .request import utcnow


class NodeType(Enum):
    """BPMN 节点类型"""
    START_EVENT = "startEvent"
    END_EVENT = "endEvent"
    TASK = "task"
    USER_TASK = "userTask"
    MANUAL_TASK = "manualTask"
    INTERMEDIATE_CATCH_EVENT = "intermediateCatchEvent"
    EXCLUSIVE_GATEWAY = "exclusiveGateway"
    PARALLEL_GATEWAY = "parallelGateway"
    INCLUSIVE_GATEWAY = "inclusiveGateway"


TASK_TYPES = frozenset({NodeType.TASK, NodeType.USER_TASK, NodeType.MANUAL_TASK})
GATEWAY_TYPES = frozenset({
    NodeType.EXCLUSIVE_GATEWAY,
    NodeType.PARALLEL_GATEWAY,
    NodeType.INCLUSIVE_GATEWAY,
})


class EventTrigger(Enum):
    """事件触发类型"""
    NONE = "none"
    MESSAGE = "message"
    SIGNAL = "signal"
    TIMER = "timer"
    ERROR = "error"
    TERMINATE = "terminate"


class TimerKind(Enum):
    """定时器类型"""
    DURATION = "timeDuration"
    DATE = "timeDate"


@dataclass(frozen=True)
class TimerDefinition:
    """定时器定义"""
    kind: TimerKind
    expression: str


@dataclass(frozen=True)
class AssignmentRule:
    """任务分配规则"""
    type: str = "unassigned"  # user, unassigned
    user_id: Optional[str] = None

    @property
    def is_user(self) -> bool:
        return self.type == "user" and bool(self.user_id)


@dataclass
class FlowNode:
    """流程节点"""
    id: str
    type: NodeType
    name: str = ""
    assignment: AssignmentRule = field(default_factory=AssignmentRule)
    trigger: EventTrigger = EventTrigger.NONE
    event_name: Optional[str] = None  # 消息/信号名称
    timer: Optional[TimerDefinition] = None
    default_flow: Optional[str] = None
    incoming: List[str] = field(default_factory=list)
    outgoing: List[str] = field(default_factory=list)

    @property
    def is_task(self) -> bool:
        return self.type in TASK_TYPES

    @property
    def is_gateway(self) -> bool:
        return self.type in GATEWAY_TYPES

    @property
    def is_catch_event(self) -> bool:
        return self.type == NodeType.INTERMEDIATE_CATCH_EVENT

    @property
    def wait_key(self) -> Optional[str]:
        """捕获事件等待的事件名"""
        if not self.is_catch_event:
            return None
        if self.trigger == EventTrigger.TIMER:
            return self.event_name or self.id
        return self.event_name


@dataclass
class SequenceFlow:
    """顺序流"""
    id: str
    source: str
    target: str
    condition: Optional[str] = None
    name: str = ""


@dataclass
class ProcessDefinition:
    """流程定义（每个版本不可变）"""
    id: str
    name: str = ""
    version: int = 1
    content: str = ""
    nodes: Dict[str, FlowNode] = field(default_factory=dict)
    flows: Dict[str, SequenceFlow] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        """根据ID获取节点"""
        return self.nodes.get(node_id)

    def get_flow(self, flow_id: str) -> Optional[SequenceFlow]:
        return self.flows.get(flow_id)

    def outgoing_flows(self, node_id: str) -> List[SequenceFlow]:
        """获取节点的出口顺序流（按文档顺序）"""
        node = self.nodes.get(node_id)
        if not node:
            return []
        return [self.flows[flow_id] for flow_id in node.outgoing if flow_id in self.flows]

    def start_events(self) -> List[FlowNode]:
        return [node for node in self.nodes.values() if node.type == NodeType.START_EVENT]

    def find_start_event(self, event_name: str) -> Optional[FlowNode]:
        """按ID或名称查找开始事件"""
        node = self.nodes.get(event_name)
        if node and node.type == NodeType.START_EVENT:
            return node
        for node in self.start_events():
            if node.name == event_name:
                return node
        return None

    def can_reach(self, source_id: str, target_id: str) -> bool:
        """检查是否存在从 source 到 target 的路径"""
        if source_id == target_id:
            return True
        visited = {source_id}
        queue = deque([source_id])
        while queue:
            current = queue.popleft()
            for flow in self.outgoing_flows(current):
                if flow.target == target_id:
                    return True
                if flow.target not in visited:
                    visited.add(flow.target)
                    queue.append(flow.target)
        return False

    def validate(self) -> List[str]:
        """验证流程定义的合法性"""
        errors = []

        if not self.start_events():
            errors.append("Process has no start event")

        for flow in self.flows.values():
            if flow.source not in self.nodes:
                errors.append(f"Sequence flow '{flow.id}' source '{flow.source}' not found")
            if flow.target not in self.nodes:
                errors.append(f"Sequence flow '{flow.id}' target '{flow.target}' not found")

        for node in self.nodes.values():
            if node.type == NodeType.START_EVENT:
                if node.incoming:
                    errors.append(f"Start event '{node.id}' has incoming flows")
                if not node.outgoing:
                    errors.append(f"Start event '{node.id}' has no outgoing flow")
            elif node.type == NodeType.END_EVENT:
                if node.outgoing:
                    errors.append(f"End event '{node.id}' has outgoing flows")
            elif node.is_gateway and not node.outgoing:
                errors.append(f"Gateway '{node.id}' has no outgoing flow")

            if node.is_catch_event:
                if node.trigger not in (EventTrigger.MESSAGE, EventTrigger.SIGNAL, EventTrigger.TIMER):
                    errors.append(f"Catch event '{node.id}' has no supported event definition")
                elif node.trigger == EventTrigger.TIMER and node.timer is None:
                    errors.append(f"Timer catch event '{node.id}' has no timer definition")
                elif node.trigger != EventTrigger.TIMER and not node.event_name:
                    errors.append(f"Catch event '{node.id}' has no event name")

            if node.default_flow:
                flow = self.flows.get(node.default_flow)
                if not flow or flow.source != node.id:
                    errors.append(
                        f"Default flow '{node.default_flow}' is not an outgoing flow of '{node.id}'"
                    )
                elif flow.condition:
                    errors.append(f"Default flow '{flow.id}' must not have a condition")

        return errors


@dataclass(frozen=True)
class ResolvedDefinition:
    """绑定了任务分配人的流程定义"""
    definition: ProcessDefinition
    assignments: Mapping[str, Optional[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def assignee_for(self, node_id: str) -> Optional[str]:
        return self.assignments.get(node_id)
