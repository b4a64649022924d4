"""
测试辅助函数
"""
from datetime import timedelta
from typing import Any, Dict, List, Optional

from process_engine.api.middleware import create_access_token
from process_engine.core import ProcessEngine, DefinitionStore, TimerScheduler
from process_engine.models.definition import ProcessDefinition
from process_engine.models.request import ProcessRequest, ProcessRequestToken, utcnow


async def start_process(engine: ProcessEngine, definition_id: str,
                        start_event: str = "start1",
                        data: Dict[str, Any] = None) -> ProcessRequest:
    return await engine.start(definition_id, start_event, data or {})


async def active_tokens(engine: ProcessEngine, request_id: str) -> List[ProcessRequestToken]:
    request = await engine.get_request(request_id)
    return request.active_tokens()


async def token_at(engine: ProcessEngine, request_id: str,
                   node_id: str) -> Optional[ProcessRequestToken]:
    """请求中指定节点上的活动令牌"""
    request = await engine.get_request(request_id)
    return request.active_token_at(node_id)


async def complete_task(engine: ProcessEngine, request_id: str, node_id: str,
                        data: Dict[str, Any] = None) -> ProcessRequestToken:
    token = await token_at(engine, request_id, node_id)
    assert token is not None, f"no active token at '{node_id}'"
    return await engine.complete_task(token.id, data or {})


async def run_scheduled_tasks(scheduler: TimerScheduler, advance: timedelta) -> int:
    """把时钟拨快后执行一次定时器扫描"""
    return await scheduler.run_once(now=utcnow() + advance)


async def create_process(store: DefinitionStore, definition: Any) -> ProcessDefinition:
    return await store.deploy(definition)


async def trigger_catch_event(engine: ProcessEngine, request_id: str, node_id: str,
                              payload: Dict[str, Any] = None) -> ProcessRequestToken:
    token = await token_at(engine, request_id, node_id)
    assert token is not None, f"no active token at '{node_id}'"
    return await engine.trigger_catch_event(request_id, token.id, payload or {})


def api_headers(user_id: str, secret_key: str) -> Dict[str, str]:
    """带 Bearer 令牌的请求头"""
    return {"Authorization": f"Bearer {create_access_token(user_id, secret_key)}"}
