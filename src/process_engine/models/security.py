"""
用户与权限模型
"""
from dataclasses import dataclass
from typing import Optional


@dataclass
class User:
    """用户"""
    id: str
    username: str = ""
    is_administrator: bool = False
    status: str = "ACTIVE"

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"


@dataclass
class Group:
    """用户组"""
    id: str
    name: str


@dataclass
class Permission:
    """权限"""
    id: str
    name: str
    guard_name: Optional[str] = None
