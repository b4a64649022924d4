"""HTTP API"""

from .app import create_app, API_PREFIX

__all__ = ["create_app", "API_PREFIX"]
