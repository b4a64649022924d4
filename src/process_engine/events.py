"""
执行事件总线
"""
import asyncio
import logging
from typing import Callable, Dict, List

from .models.request import ExecutionEvent, ExecutionEventType


logger = logging.getLogger(__name__)


class EventBus:
    """按事件类型分发的事件总线，订阅者只能订阅明确的事件类型"""

    def __init__(self):
        self.subscribers: Dict[ExecutionEventType, List[Callable]] = {}

    async def publish(self, event: ExecutionEvent):
        """发布事件"""
        subscribers = list(self.subscribers.get(event.event_type, []))

        # 异步通知所有订阅者
        tasks = [
            asyncio.create_task(self._notify_subscriber(subscriber, event))
            for subscriber in subscribers
        ]
        if tasks:
            await asyncio.gather(*tasks)

        logger.debug(
            f"Published '{event.event_type.value}' for request '{event.request_id}' "
            f"to {len(subscribers)} subscribers"
        )

    def subscribe(self, event_type: ExecutionEventType, handler: Callable):
        """订阅事件"""
        if not isinstance(event_type, ExecutionEventType):
            raise TypeError(f"Expected an ExecutionEventType, got {event_type!r}")
        self.subscribers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed to '{event_type.value}'")

    def unsubscribe(self, event_type: ExecutionEventType, handler: Callable):
        """取消订阅"""
        handlers = self.subscribers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self.subscribers[event_type]

    async def _notify_subscriber(self, subscriber: Callable, event: ExecutionEvent):
        """通知订阅者"""
        try:
            if asyncio.iscoroutinefunction(subscriber):
                await subscriber(event)
            else:
                subscriber(event)
        except Exception as e:
            logger.error(
                f"Error notifying subscriber for '{event.event_type.value}': {e}",
                exc_info=True
            )
