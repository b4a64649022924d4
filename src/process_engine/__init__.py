"""
Process Engine - BPMN 流程执行服务
"""

__version__ = "0.1.0"

from .core.engine import ProcessEngine
from .core.definitions import DefinitionStore
from .core.scheduler import TimerScheduler
from .core.parser import DefinitionParser
from .models.definition import ProcessDefinition
from .models.request import ProcessRequest, ProcessRequestToken, RequestStatus, TokenStatus

__all__ = [
    "ProcessEngine",
    "DefinitionStore",
    "TimerScheduler",
    "DefinitionParser",
    "ProcessDefinition",
    "ProcessRequest",
    "ProcessRequestToken",
    "RequestStatus",
    "TokenStatus"
]
