"""API routers"""

from . import processes, tasks, requests, monitoring

__all__ = ["processes", "tasks", "requests", "monitoring"]
