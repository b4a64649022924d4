"""
API 请求和响应模型
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.definition import ProcessDefinition
from ..models.request import ProcessRequest, ProcessRequestToken, utcnow


class TaskStatusEnum(str, Enum):
    """任务更新允许的状态（API）"""
    COMPLETED = "COMPLETED"


class RequestUpdateStatusEnum(str, Enum):
    """请求更新允许的状态（API）"""
    CANCELED = "CANCELED"


# 流程定义相关模型

class ProcessDeployRequest(BaseModel):
    """部署流程定义请求"""
    id: Optional[str] = Field(None, description="流程ID，缺省时使用文档中的ID")
    name: Optional[str] = Field(None, description="流程名称")
    bpmn: Optional[str] = Field(None, description="BPMN XML 或 YAML/JSON 文档")
    definition: Optional[Dict[str, Any]] = Field(None, description="字典格式的流程定义")

    @model_validator(mode="after")
    def check_source(self):
        if (self.bpmn is None) == (self.definition is None):
            raise ValueError("Exactly one of 'bpmn' or 'definition' is required")
        return self

    @property
    def source(self):
        return self.bpmn if self.bpmn is not None else self.definition


class FlowNodeInfo(BaseModel):
    """节点信息"""
    id: str
    type: str
    name: str = ""
    event_name: Optional[str] = None
    assigned_user: Optional[str] = None


class SequenceFlowInfo(BaseModel):
    """顺序流信息"""
    id: str
    source: str
    target: str
    condition: Optional[str] = None


class ProcessResponse(BaseModel):
    """流程定义响应"""
    id: str = Field(..., description="流程ID")
    name: str = Field("", description="流程名称")
    version: int = Field(..., description="版本号")
    node_count: int = Field(..., description="节点数量")
    start_events: List[str] = Field(default_factory=list, description="开始事件ID")
    created_at: datetime = Field(..., description="创建时间")

    @classmethod
    def from_definition(cls, definition: ProcessDefinition) -> "ProcessResponse":
        return cls(
            id=definition.id,
            name=definition.name,
            version=definition.version,
            node_count=len(definition.nodes),
            start_events=[node.id for node in definition.start_events()],
            created_at=definition.created_at
        )


class ProcessDetailResponse(ProcessResponse):
    """流程定义详情响应"""
    nodes: List[FlowNodeInfo] = Field(default_factory=list, description="节点列表")
    flows: List[SequenceFlowInfo] = Field(default_factory=list, description="顺序流列表")

    @classmethod
    def from_definition(cls, definition: ProcessDefinition) -> "ProcessDetailResponse":
        summary = ProcessResponse.from_definition(definition)
        return cls(
            **summary.model_dump(),
            nodes=[
                FlowNodeInfo(
                    id=node.id,
                    type=node.type.value,
                    name=node.name,
                    event_name=node.event_name,
                    assigned_user=node.assignment.user_id if node.assignment.is_user else None
                )
                for node in definition.nodes.values()
            ],
            flows=[
                SequenceFlowInfo(
                    id=flow.id,
                    source=flow.source,
                    target=flow.target,
                    condition=flow.condition
                )
                for flow in definition.flows.values()
            ]
        )


# 请求与令牌相关模型

class TaskUpdateRequest(BaseModel):
    """更新任务请求"""
    status: TaskStatusEnum = Field(..., description="目标状态")
    data: Dict[str, Any] = Field(default_factory=dict, description="提交的数据")


class RequestUpdateRequest(BaseModel):
    """更新流程请求"""
    status: RequestUpdateStatusEnum = Field(..., description="目标状态")


class TokenResponse(BaseModel):
    """令牌响应"""
    id: str = Field(..., description="令牌ID")
    process_request_id: str = Field(..., description="流程请求ID")
    element_id: str = Field(..., description="所在节点ID")
    element_type: str = Field(..., description="节点类型")
    status: str = Field(..., description="令牌状态")
    user_id: Optional[str] = Field(None, description="分配的用户")
    data: Dict[str, Any] = Field(default_factory=dict, description="本地数据")
    sequence: int = Field(0, description="创建顺序")
    waiting_for: Optional[str] = Field(None, description="等待的事件名")
    scheduled_for: Optional[datetime] = Field(None, description="定时器到期时间")
    created_at: datetime = Field(..., description="创建时间")
    completed_at: Optional[datetime] = Field(None, description="结束时间")

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_token(cls, token: ProcessRequestToken) -> "TokenResponse":
        return cls(
            id=token.id,
            process_request_id=token.request_id,
            element_id=token.node_id,
            element_type=token.node_type,
            status=token.status.value,
            user_id=token.assignee,
            data=token.data,
            sequence=token.sequence,
            waiting_for=token.waiting_for,
            scheduled_for=token.scheduled_for,
            created_at=token.created_at,
            completed_at=token.completed_at
        )


class RequestResponse(BaseModel):
    """流程请求响应"""
    id: str = Field(..., description="流程请求ID")
    process_id: str = Field(..., description="流程ID")
    process_version: int = Field(..., description="流程版本")
    name: str = Field("", description="名称")
    status: str = Field(..., description="请求状态")
    data: Dict[str, Any] = Field(default_factory=dict, description="请求数据")
    error_message: Optional[str] = Field(None, description="错误信息")
    tokens: List[TokenResponse] = Field(default_factory=list, description="令牌（按创建顺序）")
    created_at: datetime = Field(..., description="创建时间")
    updated_at: datetime = Field(..., description="更新时间")
    completed_at: Optional[datetime] = Field(None, description="结束时间")

    @classmethod
    def from_request(cls, request: ProcessRequest) -> "RequestResponse":
        return cls(
            id=request.id,
            process_id=request.definition_id,
            process_version=request.definition_version,
            name=request.name,
            status=request.status.value,
            data=request.data,
            error_message=request.error_message,
            tokens=[TokenResponse.from_token(token) for token in request.tokens],
            created_at=request.created_at,
            updated_at=request.updated_at,
            completed_at=request.completed_at
        )


# 通用模型

class ErrorResponse(BaseModel):
    """错误响应"""
    error: str = Field(..., description="错误类型")
    message: str = Field(..., description="错误信息")
    details: Optional[Dict[str, Any]] = Field(None, description="错误详情")
    request_id: Optional[str] = Field(None, description="请求ID")
    timestamp: datetime = Field(default_factory=utcnow, description="时间戳")


class PaginatedResponse(BaseModel):
    """分页响应"""
    offset: int = Field(..., description="偏移量")
    limit: int = Field(..., description="每页数量")
    items: List[Any] = Field(..., description="数据项")


class HealthCheckResponse(BaseModel):
    """健康检查响应"""
    status: str = Field(..., description="健康状态", examples=["healthy", "unhealthy"])
    version: str = Field(..., description="版本号")
    timestamp: datetime = Field(default_factory=utcnow, description="时间戳")
    checks: Dict[str, bool] = Field(default_factory=dict, description="各组件检查结果")
