"""
服务组装
"""
import logging
from dataclasses import dataclass
from typing import Optional

from .config import Settings
from .core.definitions import DefinitionStore
from .core.engine import ProcessEngine
from .core.scheduler import TimerScheduler
from .events import EventBus
from .monitoring import EventLogger, MetricsRecorder, TracingManager, register_default_hooks
from .storage.repository import (
    PermissionRepository, InMemoryDefinitionRepository,
    InMemoryRequestRepository, InMemoryPermissionRepository
)
from .storage.sqlalchemy_repository import (
    DatabaseManager, SQLAlchemyDefinitionRepository,
    SQLAlchemyRequestRepository, SQLAlchemyPermissionRepository
)


logger = logging.getLogger(__name__)


@dataclass
class ProcessServices:
    """一组协同工作的引擎组件"""
    engine: ProcessEngine
    definitions: DefinitionStore
    permissions: PermissionRepository
    scheduler: TimerScheduler
    event_bus: EventBus
    metrics: MetricsRecorder
    db_manager: Optional[DatabaseManager] = None

    async def close(self):
        await self.scheduler.stop()
        if self.db_manager is not None:
            await self.db_manager.close()


def _assemble(definitions: DefinitionStore, requests, permissions: PermissionRepository,
              sweep_interval: float, db_manager: DatabaseManager = None) -> ProcessServices:
    event_bus = EventBus()
    metrics = MetricsRecorder()
    register_default_hooks(event_bus, EventLogger(), metrics)

    engine = ProcessEngine(
        definitions=definitions,
        repository=requests,
        event_bus=event_bus,
        tracer=TracingManager(metrics)
    )
    return ProcessServices(
        engine=engine,
        definitions=definitions,
        permissions=permissions,
        scheduler=TimerScheduler(engine, interval=sweep_interval),
        event_bus=event_bus,
        metrics=metrics,
        db_manager=db_manager
    )


def build_in_memory_services(sweep_interval: float = 1.0) -> ProcessServices:
    """内存存储的组件（测试与演示使用）"""
    return _assemble(
        DefinitionStore(InMemoryDefinitionRepository()),
        InMemoryRequestRepository(),
        InMemoryPermissionRepository(),
        sweep_interval
    )


async def build_database_services(settings: Settings) -> ProcessServices:
    """数据库存储的组件"""
    db_manager = DatabaseManager(settings.database_url)
    await db_manager.initialize()
    logger.info(f"Connected to database {db_manager.engine.url.render_as_string(hide_password=True)}")

    return _assemble(
        DefinitionStore(SQLAlchemyDefinitionRepository(db_manager)),
        SQLAlchemyRequestRepository(db_manager),
        SQLAlchemyPermissionRepository(db_manager),
        settings.timer_sweep_interval,
        db_manager
    )
