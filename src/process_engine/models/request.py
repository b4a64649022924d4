"""
流程请求与令牌模型
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4


def utcnow() -> datetime:
    """当前 UTC 时间（不带时区信息，与数据库保持一致）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class RequestStatus(Enum):
    """流程请求状态"""
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"
    CANCELED = "CANCELED"


class TokenStatus(Enum):
    """令牌状态"""
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CLOSED = "CLOSED"
    FAILING = "FAILING"


@dataclass
class ProcessRequestToken:
    """流程令牌"""
    id: str = field(default_factory=lambda: str(uuid4()))
    request_id: str = ""
    node_id: str = ""
    node_type: str = ""
    status: TokenStatus = TokenStatus.ACTIVE
    assignee: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    sequence: int = 0
    waiting_for: Optional[str] = None  # 等待的捕获事件名
    scheduled_for: Optional[datetime] = None  # 定时器到期时间
    arrivals: List[str] = field(default_factory=list)  # 汇聚网关已到达的入口流
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == TokenStatus.ACTIVE

    def complete(self, data: Dict[str, Any] = None):
        """完成令牌"""
        self.status = TokenStatus.COMPLETED
        self.data = dict(data or {})
        self.completed_at = utcnow()

    def close(self):
        """关闭令牌（被汇聚网关取代或被取消）"""
        self.status = TokenStatus.CLOSED
        self.completed_at = utcnow()


@dataclass
class ProcessRequest:
    """流程请求（流程实例）"""
    id: str = field(default_factory=lambda: str(uuid4()))
    definition_id: str = ""
    definition_version: int = 1
    name: str = ""
    status: RequestStatus = RequestStatus.ACTIVE
    data: Dict[str, Any] = field(default_factory=dict)
    assignments: Dict[str, Optional[str]] = field(default_factory=dict)
    tokens: List[ProcessRequestToken] = field(default_factory=list)
    error_message: Optional[str] = None
    lock_version: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == RequestStatus.ACTIVE

    def get_token(self, token_id: str) -> Optional[ProcessRequestToken]:
        for token in self.tokens:
            if token.id == token_id:
                return token
        return None

    def active_tokens(self) -> List[ProcessRequestToken]:
        return [token for token in self.tokens if token.is_active]

    def active_token_at(self, node_id: str) -> Optional[ProcessRequestToken]:
        for token in self.tokens:
            if token.node_id == node_id and token.is_active:
                return token
        return None

    def add_token(self, token: ProcessRequestToken) -> ProcessRequestToken:
        """添加令牌，序号即创建顺序"""
        token.request_id = self.id
        token.sequence = len(self.tokens)
        self.tokens.append(token)
        return token

    def merge_data(self, data: Dict[str, Any]):
        """合并数据（同名键后写入者覆盖）"""
        if data:
            self.data.update(data)
        self.updated_at = utcnow()

    def complete(self):
        """完成请求"""
        self.status = RequestStatus.COMPLETED
        self.completed_at = utcnow()
        self.updated_at = self.completed_at

    def cancel(self):
        """取消请求"""
        self.status = RequestStatus.CANCELED
        self.completed_at = utcnow()
        self.updated_at = self.completed_at

    def fail(self, error_message: str):
        """请求出错"""
        self.status = RequestStatus.ERROR
        self.error_message = error_message
        self.completed_at = utcnow()
        self.updated_at = self.completed_at


class ExecutionEventType(Enum):
    """执行事件类型"""
    REQUEST_STARTED = "request_started"
    TOKEN_CREATED = "token_created"
    TASK_COMPLETED = "task_completed"
    CATCH_EVENT_TRIGGERED = "catch_event_triggered"
    TOKEN_CLOSED = "token_closed"
    REQUEST_COMPLETED = "request_completed"
    REQUEST_CANCELED = "request_canceled"
    REQUEST_ERROR = "request_error"


@dataclass
class ExecutionEvent:
    """执行事件"""
    event_type: ExecutionEventType
    request_id: str
    token_id: Optional[str] = None
    node_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)
