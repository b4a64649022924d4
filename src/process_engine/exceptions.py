"""
流程引擎异常定义
"""
from typing import Optional


class ProcessEngineError(Exception):
    """流程引擎基础异常"""
    kind = "process_engine_error"
    status_code = 400


class DefinitionParseError(ProcessEngineError):
    """流程定义解析异常"""
    kind = "definition_parse_error"
    status_code = 422


class DefinitionValidationError(ProcessEngineError):
    """流程定义验证异常"""
    kind = "definition_validation_error"
    status_code = 422

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__(f"Process definition validation failed: {self.errors}")


class DefinitionNotFound(ProcessEngineError):
    """流程定义不存在"""
    kind = "definition_not_found"
    status_code = 404

    def __init__(self, definition_id: str, version: Optional[int] = None):
        self.definition_id = definition_id
        self.version = version
        msg = f"Process definition '{definition_id}' not found"
        if version is not None:
            msg += f" (version {version})"
        super().__init__(msg)


class StartEventNotFound(ProcessEngineError):
    """开始事件不存在"""
    kind = "start_event_not_found"
    status_code = 404

    def __init__(self, definition_id: str, event_name: str):
        self.definition_id = definition_id
        self.event_name = event_name
        super().__init__(
            f"Start event '{event_name}' not found in process definition '{definition_id}'"
        )


class RequestNotFound(ProcessEngineError):
    """流程请求不存在"""
    kind = "request_not_found"
    status_code = 404

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Process request '{request_id}' not found")


class TokenNotFound(ProcessEngineError):
    """令牌不存在"""
    kind = "token_not_found"
    status_code = 404

    def __init__(self, token_id: str, request_id: Optional[str] = None):
        self.token_id = token_id
        self.request_id = request_id
        msg = f"Token '{token_id}' not found"
        if request_id:
            msg += f" in process request '{request_id}'"
        super().__init__(msg)


class InvalidTokenState(ProcessEngineError):
    """令牌状态或节点类型不允许当前操作"""
    kind = "invalid_token_state"
    status_code = 422

    def __init__(self, token_id: str, message: str):
        self.token_id = token_id
        super().__init__(f"Token '{token_id}': {message}")


class TokenNotWaiting(ProcessEngineError):
    """令牌未处于等待捕获事件的状态"""
    kind = "token_not_waiting"
    status_code = 422

    def __init__(self, token_id: str, message: str = None):
        self.token_id = token_id
        msg = f"Token '{token_id}' is not waiting on a catch event"
        if message:
            msg += f": {message}"
        super().__init__(msg)


class ConcurrentNodeReentry(ProcessEngineError):
    """同一节点已存在活动令牌"""
    kind = "concurrent_node_reentry"
    status_code = 409

    def __init__(self, request_id: str, node_id: str):
        self.request_id = request_id
        self.node_id = node_id
        super().__init__(
            f"Node '{node_id}' already has an active token in process request '{request_id}'"
        )


class InvalidRequestState(ProcessEngineError):
    """流程请求状态不允许当前操作"""
    kind = "invalid_request_state"
    status_code = 409

    def __init__(self, request_id: str, status: str, message: str = None):
        self.request_id = request_id
        self.status = status
        msg = f"Process request '{request_id}' is {status}"
        if message:
            msg += f": {message}"
        super().__init__(msg)


class FlowResolutionError(ProcessEngineError):
    """顺序流选择失败"""
    kind = "flow_resolution_error"
    status_code = 422

    def __init__(self, node_id: str, message: str):
        self.node_id = node_id
        super().__init__(f"Cannot leave node '{node_id}': {message}")


class ConditionEvaluationError(FlowResolutionError):
    """条件表达式评估失败"""
    kind = "condition_evaluation_error"

    def __init__(self, expression: str, cause: Exception):
        self.expression = expression
        self.cause = cause
        self.node_id = None
        ProcessEngineError.__init__(
            self, f"Failed to evaluate condition '{expression}': {cause}"
        )


class ConcurrentModificationError(ProcessEngineError):
    """流程请求已被其他写入者修改"""
    kind = "concurrent_modification"
    status_code = 409

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Process request '{request_id}' was modified concurrently")
