"""
定时器调度器：周期性扫描到期的定时器令牌
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from ..models.request import utcnow
from ..exceptions import ProcessEngineError
from .engine import ProcessEngine


logger = logging.getLogger(__name__)


class TimerScheduler:
    """定时器调度器"""

    def __init__(self, engine: ProcessEngine, interval: float = 1.0):
        self.engine = engine
        self.interval = interval
        self._scheduler_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    async def run_once(self, now: datetime = None) -> int:
        """
        执行一次扫描

        已经被其他写入者关闭的令牌会被静默跳过，因此重复扫描没有副作用。

        Returns:
            int: 本次触发的定时器数量
        """
        now = now or utcnow()
        due_tokens = await self.engine.repository.list_due_timer_tokens(now)

        fired = 0
        for token in due_tokens:
            try:
                result = await self.engine.fire_due_timer(token.request_id, token.id, now)
            except ProcessEngineError as e:
                logger.error(
                    f"Failed to fire timer token '{token.id}' of request '{token.request_id}': {e}",
                    exc_info=True
                )
                continue
            if result is not None:
                fired += 1

        if fired:
            logger.info(f"Timer sweep fired {fired} of {len(due_tokens)} due tokens")
        return fired

    async def start(self):
        """启动调度器"""
        if self._scheduler_task:
            return

        self._stop_event.clear()
        self._scheduler_task = asyncio.create_task(self._scheduler_loop())
        logger.info("Timer scheduler started")

    async def stop(self):
        """停止调度器"""
        if not self._scheduler_task:
            return

        self._stop_event.set()
        await self._scheduler_task
        self._scheduler_task = None
        logger.info("Timer scheduler stopped")

    @property
    def running(self) -> bool:
        return self._scheduler_task is not None

    async def _scheduler_loop(self):
        """调度器主循环"""
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Timer sweep error: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
