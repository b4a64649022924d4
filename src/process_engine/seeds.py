"""
权限初始化数据
"""
import logging
from typing import Optional

from .models.security import Group
from .storage.repository import PermissionRepository


logger = logging.getLogger(__name__)


ALL_PERMISSIONS_GROUP = "All Permissions"

PERMISSIONS = [
    'home',
    'documents.create',
    'documents.destroy',
    'documents.edit',
    'documents.show',
    'environment_variables.create',
    'environment_variables.destroy',
    'environment_variables.edit',
    'environment_variables.show',
    'forms.create',
    'forms.destroy',
    'forms.edit',
    'forms.show',
    'group_members.destroy',
    'group_members.show',
    'group_members.create',
    'group_members.edit',
    'groups.create',
    'groups.destroy',
    'groups.edit',
    'groups.show',
    'notifications',
    'preferences.create',
    'preferences.destroy',
    'preferences.edit',
    'preferences.show',
    'process_categories.destroy',
    'process_categories.show',
    'process_categories.create',
    'process_categories.edit',
    'processes.create',
    'processes.destroy',
    'processes.edit',
    'processes.show',
    'profile.edit',
    'profile.show',
    'requests.destroy',
    'requests.edit',
    'requests.show',
    'requests.create',
    'requests.watch',
    'script.preview',
    'scripts.create',
    'scripts.destroy',
    'scripts.edit',
    'scripts.show',
    'users.create',
    'users.destroy',
    'users.edit',
    'users.show',
]


class PermissionSeeder:
    """创建“所有权限”用户组，登记全部权限并授予该组，再把指定用户加入该组"""

    def __init__(self, repository: PermissionRepository):
        self.repository = repository

    async def run(self, user_id: Optional[str] = None) -> Group:
        if user_id is None:
            user = await self.repository.first_user()
            if user is None:
                raise ValueError("Cannot seed permissions: no user exists")
            user_id = user.id

        group = await self.repository.get_or_create_group(ALL_PERMISSIONS_GROUP)
        await self.repository.add_member(group.id, user_id)

        for name in PERMISSIONS:
            permission = await self.repository.get_or_create_permission(name)
            await self.repository.assign_permission(group.id, permission.id)

        logger.info(
            f"Seeded {len(PERMISSIONS)} permissions into group '{group.name}' for user '{user_id}'"
        )
        return group
