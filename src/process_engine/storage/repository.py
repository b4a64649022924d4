"""
存储仓库接口定义
"""
import copy
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Set

from ..models.definition import ProcessDefinition
from ..models.request import (
    ProcessRequest, ProcessRequestToken, RequestStatus, TokenStatus, utcnow
)
from ..models.security import User, Group, Permission
from ..exceptions import ConcurrentModificationError


class DefinitionRepository(ABC):
    """流程定义存储仓库接口"""

    @abstractmethod
    async def save(self, definition: ProcessDefinition) -> int:
        """保存流程定义的一个新版本"""
        pass

    @abstractmethod
    async def get(self, definition_id: str, version: int = None) -> Optional[ProcessDefinition]:
        """获取流程定义（默认最新版本）"""
        pass

    @abstractmethod
    async def latest_version(self, definition_id: str) -> int:
        """获取最新版本号，不存在时返回 0"""
        pass

    @abstractmethod
    async def list(self, offset: int = 0, limit: int = 100) -> List[ProcessDefinition]:
        """列出每个流程定义的最新版本"""
        pass


class RequestRepository(ABC):
    """流程请求存储仓库接口"""

    @abstractmethod
    async def save(self, request: ProcessRequest) -> int:
        """
        保存流程请求及其全部令牌

        lock_version 为 0 表示新请求；否则仅当存储中的版本与之相同时写入，
        成功后返回新的 lock_version，版本不一致时抛出 ConcurrentModificationError。
        """
        pass

    @abstractmethod
    async def get(self, request_id: str) -> Optional[ProcessRequest]:
        """获取流程请求"""
        pass

    @abstractmethod
    async def get_token(self, token_id: str) -> Optional[ProcessRequestToken]:
        """获取令牌"""
        pass

    @abstractmethod
    async def list(
        self,
        definition_id: str = None,
        status: RequestStatus = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[ProcessRequest]:
        """列出流程请求"""
        pass

    @abstractmethod
    async def list_tokens(
        self,
        request_id: str = None,
        status: TokenStatus = None,
        assignee: str = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[ProcessRequestToken]:
        """列出令牌"""
        pass

    @abstractmethod
    async def list_due_timer_tokens(self, now: datetime) -> List[ProcessRequestToken]:
        """列出已到期的定时器令牌（仅限活动请求中的活动令牌）"""
        pass

    @abstractmethod
    async def delete(self, request_id: str) -> bool:
        """删除流程请求"""
        pass


class PermissionRepository(ABC):
    """用户与权限存储仓库接口"""

    @abstractmethod
    async def save_user(self, user: User) -> str:
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def first_user(self) -> Optional[User]:
        """获取最早创建的用户"""
        pass

    @abstractmethod
    async def get_or_create_group(self, name: str) -> Group:
        pass

    @abstractmethod
    async def get_or_create_permission(self, name: str) -> Permission:
        pass

    @abstractmethod
    async def assign_permission(self, group_id: str, permission_id: str):
        """将权限授予用户组（重复授予无副作用）"""
        pass

    @abstractmethod
    async def add_member(self, group_id: str, user_id: str):
        """将用户加入用户组（重复加入无副作用）"""
        pass

    @abstractmethod
    async def list_permissions(self) -> List[Permission]:
        pass

    @abstractmethod
    async def group_permissions(self, group_id: str) -> Set[str]:
        pass

    @abstractmethod
    async def group_members(self, group_id: str) -> Set[str]:
        pass

    @abstractmethod
    async def user_permissions(self, user_id: str) -> Set[str]:
        """获取用户通过所在用户组获得的权限名"""
        pass


# 内存实现（用于测试）
class InMemoryDefinitionRepository(DefinitionRepository):
    """内存流程定义仓库实现"""

    def __init__(self):
        self.definitions: Dict[str, Dict[int, ProcessDefinition]] = {}

    async def save(self, definition: ProcessDefinition) -> int:
        versions = self.definitions.setdefault(definition.id, {})
        if definition.version in versions:
            raise ValueError(
                f"Process definition '{definition.id}' version {definition.version} already exists"
            )
        versions[definition.version] = definition
        return definition.version

    async def get(self, definition_id: str, version: int = None) -> Optional[ProcessDefinition]:
        versions = self.definitions.get(definition_id)
        if not versions:
            return None
        if version is None:
            version = max(versions)
        return versions.get(version)

    async def latest_version(self, definition_id: str) -> int:
        versions = self.definitions.get(definition_id)
        return max(versions) if versions else 0

    async def list(self, offset: int = 0, limit: int = 100) -> List[ProcessDefinition]:
        latest = [versions[max(versions)] for versions in self.definitions.values()]
        return latest[offset:offset + limit]


class InMemoryRequestRepository(RequestRepository):
    """内存流程请求仓库实现，读写均复制对象，未保存的修改不会泄漏"""

    def __init__(self):
        self.requests: Dict[str, ProcessRequest] = {}
        self.token_index: Dict[str, str] = {}

    async def save(self, request: ProcessRequest) -> int:
        stored = self.requests.get(request.id)
        if request.lock_version == 0:
            if stored is not None:
                raise ConcurrentModificationError(request.id)
        elif stored is None or stored.lock_version != request.lock_version:
            raise ConcurrentModificationError(request.id)

        request.lock_version += 1
        request.updated_at = utcnow()
        self.requests[request.id] = copy.deepcopy(request)
        for token in request.tokens:
            self.token_index[token.id] = request.id
        return request.lock_version

    async def get(self, request_id: str) -> Optional[ProcessRequest]:
        request = self.requests.get(request_id)
        return copy.deepcopy(request) if request else None

    async def get_token(self, token_id: str) -> Optional[ProcessRequestToken]:
        request = self.requests.get(self.token_index.get(token_id, ""))
        if not request:
            return None
        token = request.get_token(token_id)
        return copy.deepcopy(token) if token else None

    async def list(
        self,
        definition_id: str = None,
        status: RequestStatus = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[ProcessRequest]:
        results = []
        for request in self.requests.values():
            if definition_id and request.definition_id != definition_id:
                continue
            if status and request.status != status:
                continue
            results.append(request)

        results.sort(key=lambda r: r.created_at)
        return [copy.deepcopy(r) for r in results[offset:offset + limit]]

    async def list_tokens(
        self,
        request_id: str = None,
        status: TokenStatus = None,
        assignee: str = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[ProcessRequestToken]:
        results = []
        for request in self.requests.values():
            if request_id and request.id != request_id:
                continue
            for token in request.tokens:
                if status and token.status != status:
                    continue
                if assignee and token.assignee != assignee:
                    continue
                results.append(token)

        results.sort(key=lambda t: (t.created_at, t.sequence))
        return [copy.deepcopy(t) for t in results[offset:offset + limit]]

    async def list_due_timer_tokens(self, now: datetime) -> List[ProcessRequestToken]:
        results = []
        for request in self.requests.values():
            if request.status != RequestStatus.ACTIVE:
                continue
            for token in request.tokens:
                if token.is_active and token.scheduled_for is not None \
                        and token.scheduled_for <= now:
                    results.append(copy.deepcopy(token))

        results.sort(key=lambda t: t.scheduled_for)
        return results

    async def delete(self, request_id: str) -> bool:
        request = self.requests.pop(request_id, None)
        if request is None:
            return False
        for token in request.tokens:
            self.token_index.pop(token.id, None)
        return True


class InMemoryPermissionRepository(PermissionRepository):
    """内存权限仓库实现"""

    def __init__(self):
        self.users: Dict[str, User] = {}
        self.groups: Dict[str, Group] = {}
        self.permissions: Dict[str, Permission] = {}
        self.group_permission_ids: Dict[str, Set[str]] = {}
        self.members: Dict[str, Set[str]] = {}

    async def save_user(self, user: User) -> str:
        self.users[user.id] = user
        return user.id

    async def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    async def first_user(self) -> Optional[User]:
        return next(iter(self.users.values()), None)

    async def get_or_create_group(self, name: str) -> Group:
        for group in self.groups.values():
            if group.name == name:
                return group
        group = Group(id=str(len(self.groups) + 1), name=name)
        self.groups[group.id] = group
        return group

    async def get_or_create_permission(self, name: str) -> Permission:
        for permission in self.permissions.values():
            if permission.name == name:
                return permission
        permission = Permission(id=str(len(self.permissions) + 1), name=name, guard_name=name)
        self.permissions[permission.id] = permission
        return permission

    async def assign_permission(self, group_id: str, permission_id: str):
        self.group_permission_ids.setdefault(group_id, set()).add(permission_id)

    async def add_member(self, group_id: str, user_id: str):
        self.members.setdefault(group_id, set()).add(user_id)

    async def list_permissions(self) -> List[Permission]:
        return list(self.permissions.values())

    async def group_permissions(self, group_id: str) -> Set[str]:
        return {
            self.permissions[permission_id].name
            for permission_id in self.group_permission_ids.get(group_id, set())
        }

    async def group_members(self, group_id: str) -> Set[str]:
        return set(self.members.get(group_id, set()))

    async def user_permissions(self, user_id: str) -> Set[str]:
        names = set()
        for group_id, user_ids in self.members.items():
            if user_id in user_ids:
                names |= await self.group_permissions(group_id)
        return names
