"""Process definition, request and security models"""

from .definition import (
    ProcessDefinition, FlowNode, SequenceFlow, NodeType, EventTrigger,
    TimerKind, TimerDefinition, AssignmentRule, ResolvedDefinition,
    TASK_TYPES, GATEWAY_TYPES
)
from .request import (
    ProcessRequest, ProcessRequestToken, RequestStatus, TokenStatus,
    ExecutionEvent, ExecutionEventType, utcnow
)
from .security import User, Group, Permission

__all__ = [
    "ProcessDefinition",
    "FlowNode",
    "SequenceFlow",
    "NodeType",
    "EventTrigger",
    "TimerKind",
    "TimerDefinition",
    "AssignmentRule",
    "ResolvedDefinition",
    "TASK_TYPES",
    "GATEWAY_TYPES",
    "ProcessRequest",
    "ProcessRequestToken",
    "RequestStatus",
    "TokenStatus",
    "ExecutionEvent",
    "ExecutionEventType",
    "utcnow",
    "User",
    "Group",
    "Permission"
]
