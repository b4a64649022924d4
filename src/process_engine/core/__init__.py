"""Core execution components"""

from .engine import ProcessEngine
from .definitions import DefinitionStore
from .parser import DefinitionParser
from .scheduler import TimerScheduler
from .assignment import resolve_assignments
from .conditions import ConditionEvaluator
from .locks import RequestLockRegistry

__all__ = [
    "ProcessEngine",
    "DefinitionStore",
    "DefinitionParser",
    "TimerScheduler",
    "resolve_assignments",
    "ConditionEvaluator",
    "RequestLockRegistry"
]
