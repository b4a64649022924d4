"""
流程执行引擎

令牌在顺序流上推进：任务与中间捕获事件产生等待中的令牌，网关负责分支与汇聚，
结束事件终止分支。每个操作都在请求的私有副本上进行，最后一次性保存。
"""
import logging
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Mapping, Optional

from ..models.definition import (
    ProcessDefinition, FlowNode, SequenceFlow, NodeType, EventTrigger
)
from ..models.request import (
    ProcessRequest, ProcessRequestToken, RequestStatus, TokenStatus,
    ExecutionEvent, ExecutionEventType, utcnow
)
from ..exceptions import (
    StartEventNotFound, RequestNotFound, TokenNotFound, InvalidTokenState,
    TokenNotWaiting, ConcurrentNodeReentry, InvalidRequestState, FlowResolutionError
)
from ..events import EventBus
from ..monitoring import TracingManager
from ..storage.repository import RequestRepository
from .assignment import resolve_assignments
from .conditions import ConditionEvaluator
from .definitions import DefinitionStore
from .locks import RequestLockRegistry
from .timers import schedule_for, is_due


logger = logging.getLogger(__name__)


class _Advancement:
    """单次操作内的令牌推进"""

    max_steps = 1000

    def __init__(self, definition: ProcessDefinition, request: ProcessRequest,
                 evaluator: ConditionEvaluator, now: datetime):
        self.definition = definition
        self.request = request
        self.evaluator = evaluator
        self.now = now
        self.events: List[ExecutionEvent] = []
        self.pending: Deque[SequenceFlow] = deque()

    def emit(self, event_type: ExecutionEventType, token: ProcessRequestToken = None,
             node_id: str = None, data: Dict[str, Any] = None):
        self.events.append(ExecutionEvent(
            event_type=event_type,
            request_id=self.request.id,
            token_id=token.id if token else None,
            node_id=node_id or (token.node_id if token else None),
            data=dict(data or {})
        ))

    def resolve(self, token: ProcessRequestToken, node: FlowNode,
                data: Optional[Dict[str, Any]], event_type: ExecutionEventType):
        """完成等待中的令牌并继续推进"""
        data = dict(data or {})
        self.request.merge_data(data)
        token.complete(data)
        self.emit(event_type, token, data=data)
        self.advance(self.select_flows(node))
        self.finish()

    def advance(self, flows: List[SequenceFlow]):
        """沿顺序流推进，直到所有分支都停在等待节点或结束"""
        self.pending.extend(flows)
        steps = 0
        while self.pending:
            while self.pending:
                if not self.request.is_active:
                    self.pending.clear()
                    return
                flow = self.pending.popleft()
                steps += 1
                if steps > self.max_steps:
                    raise FlowResolutionError(
                        flow.source, "sequence flows loop without reaching a waiting node"
                    )
                target = self.definition.get_node(flow.target)
                if target is None:
                    raise FlowResolutionError(flow.source, f"target '{flow.target}' does not exist")
                self.pending.extend(self.enter(target, flow))

            # 其余分支结束后，可能有包容网关可以汇聚
            self._fire_ready_inclusive_joins()

    def finish(self):
        """没有活动令牌时完成请求"""
        if self.request.is_active and not self.request.active_tokens():
            self.request.complete()
            self.emit(ExecutionEventType.REQUEST_COMPLETED)

    def enter(self, node: FlowNode, flow: SequenceFlow) -> List[SequenceFlow]:
        """进入节点，返回需要继续推进的顺序流"""
        if node.type == NodeType.END_EVENT:
            self._reach_end(node)
            return []

        if node.is_task:
            self.create_token(node, assignee=self.request.assignments.get(node.id))
            return []

        if node.is_catch_event:
            if node.trigger == EventTrigger.TIMER:
                try:
                    scheduled_for = schedule_for(node.timer, self.now)
                except (ValueError, OverflowError) as e:
                    raise FlowResolutionError(node.id, f"cannot schedule timer: {e}") from e
                self.create_token(node, scheduled_for=scheduled_for)
            else:
                self.create_token(node, waiting_for=node.wait_key)
            return []

        if node.is_gateway:
            return self._enter_gateway(node, flow)

        raise FlowResolutionError(flow.source, f"sequence flow cannot enter '{node.type.value}' '{node.id}'")

    def create_token(self, node: FlowNode, **kwargs) -> ProcessRequestToken:
        """在节点上创建活动令牌（同一节点同时只能有一个活动令牌）"""
        if self.request.active_token_at(node.id) is not None:
            raise ConcurrentNodeReentry(self.request.id, node.id)

        token = self.request.add_token(ProcessRequestToken(
            node_id=node.id,
            node_type=node.type.value,
            **kwargs
        ))
        self.emit(ExecutionEventType.TOKEN_CREATED, token)
        return token

    def close_token(self, token: ProcessRequestToken):
        token.close()
        self.emit(ExecutionEventType.TOKEN_CLOSED, token)

    def select_flows(self, node: FlowNode) -> List[SequenceFlow]:
        """选择离开节点时要走的顺序流"""
        outgoing = self.definition.outgoing_flows(node.id)
        if node.type == NodeType.PARALLEL_GATEWAY:
            return outgoing

        default = self.definition.get_flow(node.default_flow) if node.default_flow else None
        candidates = [flow for flow in outgoing if flow is not default]

        if node.type == NodeType.EXCLUSIVE_GATEWAY:
            for flow in candidates:
                if self._holds(flow):
                    return [flow]
            if default is not None:
                return [default]
            raise FlowResolutionError(node.id, "no outgoing condition holds and there is no default flow")

        if node.type == NodeType.INCLUSIVE_GATEWAY:
            selected = [flow for flow in candidates if self._holds(flow)]
            if selected:
                return selected
            if default is not None:
                return [default]
            raise FlowResolutionError(node.id, "no outgoing condition holds and there is no default flow")

        # 活动与事件：无条件的流总是选中，默认流仅在没有条件成立时选中
        selected = []
        condition_met = False
        for flow in candidates:
            if not flow.condition:
                selected.append(flow)
            elif self._holds(flow):
                selected.append(flow)
                condition_met = True
        if default is not None and not condition_met:
            selected.append(default)
        if outgoing and not selected:
            raise FlowResolutionError(node.id, "no outgoing condition holds and there is no default flow")
        return selected

    def _holds(self, flow: SequenceFlow) -> bool:
        if not flow.condition:
            return True
        return self.evaluator.evaluate(flow.condition, self.request.data)

    def _reach_end(self, node: FlowNode):
        if node.trigger == EventTrigger.TERMINATE:
            for token in self.request.active_tokens():
                self.close_token(token)
            self.request.complete()
            self.emit(ExecutionEventType.REQUEST_COMPLETED, node_id=node.id)
        elif node.trigger == EventTrigger.ERROR:
            for token in self.request.active_tokens():
                self.close_token(token)
            message = f"Error end event '{node.id}' reached"
            if node.event_name:
                message += f" ({node.event_name})"
            self.request.fail(message)
            self.emit(ExecutionEventType.REQUEST_ERROR, node_id=node.id, data={"error": message})

    def _enter_gateway(self, node: FlowNode, flow: SequenceFlow) -> List[SequenceFlow]:
        # 排他网关与单入口网关不汇聚
        if node.type == NodeType.EXCLUSIVE_GATEWAY or len(node.incoming) <= 1:
            return self.select_flows(node)

        token = self.request.active_token_at(node.id)
        if token is None:
            token = self.create_token(node)
        if flow.id in token.arrivals:
            raise ConcurrentNodeReentry(self.request.id, node.id)
        token.arrivals.append(flow.id)

        if node.type == NodeType.PARALLEL_GATEWAY:
            ready = set(node.incoming) <= set(token.arrivals)
        else:
            ready = self._inclusive_join_ready(node, token)

        if not ready:
            return []
        self.close_token(token)
        return self.select_flows(node)

    def _inclusive_join_ready(self, node: FlowNode, join_token: ProcessRequestToken) -> bool:
        """没有其他活动令牌或待推进的顺序流能到达该网关时即可汇聚"""
        for token in self.request.active_tokens():
            if token is join_token:
                continue
            if self.definition.can_reach(token.node_id, node.id):
                return False
        for flow in self.pending:
            if self.definition.can_reach(flow.target, node.id):
                return False
        return True

    def _fire_ready_inclusive_joins(self):
        for token in self.request.active_tokens():
            if token.node_type != NodeType.INCLUSIVE_GATEWAY.value or not token.arrivals:
                continue
            node = self.definition.get_node(token.node_id)
            if self._inclusive_join_ready(node, token):
                self.close_token(token)
                self.pending.extend(self.select_flows(node))


class ProcessEngine:
    """流程执行引擎"""

    def __init__(
        self,
        definitions: DefinitionStore,
        repository: RequestRepository,
        event_bus: EventBus = None,
        evaluator: ConditionEvaluator = None,
        locks: RequestLockRegistry = None,
        tracer: TracingManager = None
    ):
        self.definitions = definitions
        self.repository = repository
        self.event_bus = event_bus or EventBus()
        self.evaluator = evaluator or ConditionEvaluator()
        self.locks = locks or RequestLockRegistry()
        self.tracer = tracer or TracingManager()

    async def start(
        self,
        definition_id: str,
        start_event_name: str,
        input_data: Dict[str, Any] = None,
        user_map: Mapping[str, str] = None
    ) -> ProcessRequest:
        """
        启动流程请求

        Args:
            definition_id: 流程定义ID（使用最新版本）
            start_event_name: 开始事件的ID或名称
            input_data: 合并进请求数据的输入
            user_map: 任务分配用户ID映射

        Returns:
            ProcessRequest: 新建的流程请求
        """
        with self.tracer.span("start", definition_id=definition_id):
            definition = await self.definitions.get(definition_id)
            start_event = definition.find_start_event(start_event_name)
            if start_event is None:
                raise StartEventNotFound(definition_id, start_event_name)

            resolved = resolve_assignments(definition, user_map)
            request = ProcessRequest(
                definition_id=definition.id,
                definition_version=definition.version,
                name=definition.name,
                data=dict(input_data or {}),
                assignments=dict(resolved.assignments)
            )

            run = _Advancement(definition, request, self.evaluator, utcnow())
            run.emit(ExecutionEventType.REQUEST_STARTED, node_id=start_event.id, data=request.data)
            # 只沿开始事件的第一条出口流推进
            run.advance(definition.outgoing_flows(start_event.id)[:1])
            run.finish()

            await self._commit(request, run)
            logger.info(
                f"Started process request '{request.id}' of '{definition.id}' "
                f"version {definition.version} from '{start_event.id}'"
            )
            return request

    async def complete_task(self, token_id: str,
                            submitted_data: Dict[str, Any] = None) -> ProcessRequestToken:
        """完成任务令牌"""
        with self.tracer.span("complete_task", token_id=token_id):
            request_id = await self._request_id_for_token(token_id)
            async with self.locks.hold(request_id):
                request = await self._load_request(request_id)
                token = request.get_token(token_id)
                if token is None:
                    raise TokenNotFound(token_id)

                definition = await self._definition_for(request)
                node = definition.get_node(token.node_id)
                if not request.is_active:
                    raise InvalidTokenState(token_id, f"process request is {request.status.value}")
                if not token.is_active:
                    raise InvalidTokenState(token_id, f"token is {token.status.value}")
                if node is None or not node.is_task:
                    raise InvalidTokenState(token_id, f"node '{token.node_id}' is not a task")

                run = _Advancement(definition, request, self.evaluator, utcnow())
                run.resolve(token, node, submitted_data, ExecutionEventType.TASK_COMPLETED)
                await self._commit(request, run)

            logger.info(f"Completed task '{token.node_id}' (token '{token_id}') of request '{request_id}'")
            return token

    async def trigger_catch_event(self, request_id: str, token_id: str,
                                  event_payload: Dict[str, Any] = None) -> ProcessRequestToken:
        """触发指定令牌上的中间捕获事件"""
        with self.tracer.span("trigger_catch_event", request_id=request_id, token_id=token_id):
            async with self.locks.hold(request_id):
                request = await self._load_request(request_id)
                token = request.get_token(token_id)
                if token is None:
                    raise TokenNotFound(token_id, request_id)

                definition = await self._definition_for(request)
                node = definition.get_node(token.node_id)
                if not request.is_active:
                    raise TokenNotWaiting(token_id, f"process request is {request.status.value}")
                if not token.is_active:
                    raise TokenNotWaiting(token_id, f"token is {token.status.value}")
                if node is None or not node.is_catch_event:
                    raise TokenNotWaiting(token_id, f"node '{token.node_id}' is not a catch event")

                run = _Advancement(definition, request, self.evaluator, utcnow())
                run.resolve(token, node, event_payload, ExecutionEventType.CATCH_EVENT_TRIGGERED)
                await self._commit(request, run)

            logger.info(f"Triggered catch event '{token.node_id}' (token '{token_id}') of request '{request_id}'")
            return token

    async def trigger_event(self, request_id: str, event_name: str,
                            payload: Dict[str, Any] = None) -> List[ProcessRequestToken]:
        """按事件名触发请求中所有等待该事件的令牌，没有等待者时不做任何修改"""
        with self.tracer.span("trigger_event", request_id=request_id, event_name=event_name):
            async with self.locks.hold(request_id):
                request = await self._load_request(request_id)
                waiting = [
                    token for token in request.active_tokens()
                    if token.waiting_for is not None and token.waiting_for == event_name
                ]
                if not waiting:
                    logger.debug(f"No token of request '{request_id}' is waiting for '{event_name}'")
                    return []

                definition = await self._definition_for(request)
                run = _Advancement(definition, request, self.evaluator, utcnow())
                resolved = []
                for token in waiting:
                    # 前一个令牌的推进可能已经结束了请求
                    if not token.is_active or not request.is_active:
                        continue
                    node = definition.get_node(token.node_id)
                    run.resolve(token, node, payload, ExecutionEventType.CATCH_EVENT_TRIGGERED)
                    resolved.append(token)
                await self._commit(request, run)

            logger.info(f"Event '{event_name}' resolved {len(resolved)} tokens of request '{request_id}'")
            return resolved

    async def fire_due_timer(self, request_id: str, token_id: str,
                             now: datetime = None) -> Optional[ProcessRequestToken]:
        """触发到期的定时器令牌；令牌已结束或未到期时不做任何事"""
        now = now or utcnow()
        async with self.locks.hold(request_id):
            request = await self.repository.get(request_id)
            if request is None or not request.is_active:
                return None
            token = request.get_token(token_id)
            if token is None or not token.is_active or not is_due(now, token.scheduled_for):
                return None

            definition = await self._definition_for(request)
            node = definition.get_node(token.node_id)
            if node is None or not node.is_catch_event or node.trigger != EventTrigger.TIMER:
                return None

            with self.tracer.span("fire_due_timer", request_id=request_id, token_id=token_id):
                run = _Advancement(definition, request, self.evaluator, now)
                run.resolve(token, node, {}, ExecutionEventType.CATCH_EVENT_TRIGGERED)
                await self._commit(request, run)

        logger.info(f"Fired timer '{token.node_id}' (token '{token_id}') of request '{request_id}'")
        return token

    async def cancel_request(self, request_id: str) -> ProcessRequest:
        """取消流程请求：关闭所有活动令牌"""
        with self.tracer.span("cancel_request", request_id=request_id):
            async with self.locks.hold(request_id):
                request = await self._load_request(request_id)
                if not request.is_active:
                    raise InvalidRequestState(
                        request_id, request.status.value, "only active requests can be canceled"
                    )

                definition = await self._definition_for(request)
                run = _Advancement(definition, request, self.evaluator, utcnow())
                for token in request.active_tokens():
                    run.close_token(token)
                request.cancel()
                run.emit(ExecutionEventType.REQUEST_CANCELED)
                await self._commit(request, run)

            logger.info(f"Canceled process request '{request_id}'")
            return request

    async def delete_request(self, request_id: str):
        """删除流程请求（管理操作）"""
        async with self.locks.hold(request_id):
            if not await self.repository.delete(request_id):
                raise RequestNotFound(request_id)
        logger.info(f"Deleted process request '{request_id}'")

    async def get_request(self, request_id: str) -> ProcessRequest:
        return await self._load_request(request_id)

    async def get_token(self, token_id: str) -> ProcessRequestToken:
        token = await self.repository.get_token(token_id)
        if token is None:
            raise TokenNotFound(token_id)
        return token

    async def list_requests(self, definition_id: str = None, status: RequestStatus = None,
                            offset: int = 0, limit: int = 100) -> List[ProcessRequest]:
        return await self.repository.list(
            definition_id=definition_id, status=status, offset=offset, limit=limit
        )

    async def list_tokens(self, request_id: str = None, status: TokenStatus = None,
                          assignee: str = None, offset: int = 0,
                          limit: int = 100) -> List[ProcessRequestToken]:
        return await self.repository.list_tokens(
            request_id=request_id, status=status, assignee=assignee, offset=offset, limit=limit
        )

    async def _request_id_for_token(self, token_id: str) -> str:
        token = await self.repository.get_token(token_id)
        if token is None:
            raise TokenNotFound(token_id)
        return token.request_id

    async def _load_request(self, request_id: str) -> ProcessRequest:
        request = await self.repository.get(request_id)
        if request is None:
            raise RequestNotFound(request_id)
        return request

    async def _definition_for(self, request: ProcessRequest) -> ProcessDefinition:
        """请求始终使用启动时的流程定义版本"""
        return await self.definitions.get(request.definition_id, request.definition_version)

    async def _commit(self, request: ProcessRequest, run: _Advancement):
        """保存请求，成功后发布状态变化事件"""
        await self.repository.save(request)
        for event in run.events:
            await self.event_bus.publish(event)
