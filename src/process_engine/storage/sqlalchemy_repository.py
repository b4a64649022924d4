"""
SQLAlchemy 仓库实现
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional, Set

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import selectinload

from ..core.parser import DefinitionParser
from ..models.definition import ProcessDefinition
from ..models.request import (
    ProcessRequest, ProcessRequestToken, RequestStatus, TokenStatus, utcnow
)
from ..models.security import User, Group, Permission
from ..exceptions import ConcurrentModificationError
from .repository import DefinitionRepository, RequestRepository, PermissionRepository
from .sqlalchemy_models import (
    ProcessDefinitionRecord,
    ProcessRequestRecord,
    ProcessRequestTokenRecord,
    UserRecord,
    GroupRecord,
    GroupMemberRecord,
    PermissionRecord,
    PermissionAssignmentRecord,
    Base
)


logger = logging.getLogger(__name__)


class DatabaseManager:
    """数据库管理器"""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine: Optional[AsyncEngine] = None
        self.async_session_maker = None

    async def initialize(self, create_tables: bool = True):
        """初始化数据库连接"""
        options = {"echo": False, "pool_pre_ping": True}
        if not self.database_url.startswith("sqlite"):
            options.update(pool_size=20, max_overflow=10)
        self.engine = create_async_engine(self.database_url, **options)

        self.async_session_maker = async_sessionmaker(
            self.engine,
            expire_on_commit=False
        )

        if create_tables:
            await self.create_tables()

    async def create_tables(self):
        """创建表（开发环境）"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self):
        """关闭数据库连接"""
        if self.engine:
            await self.engine.dispose()

    @asynccontextmanager
    async def get_session(self):
        """获取数据库会话，退出时提交，异常时回滚"""
        async with self.async_session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


class SQLAlchemyDefinitionRepository(DefinitionRepository):
    """SQLAlchemy 流程定义仓库实现，读取时重新解析存储的文档"""

    def __init__(self, db_manager: DatabaseManager, parser: DefinitionParser = None):
        self.db = db_manager
        self.parser = parser or DefinitionParser()

    async def save(self, definition: ProcessDefinition) -> int:
        """保存流程定义"""
        async with self.db.get_session() as session:
            session.add(ProcessDefinitionRecord(
                id=definition.id,
                version=definition.version,
                name=definition.name,
                content=definition.content,
                created_at=definition.created_at
            ))
            await session.flush()
        return definition.version

    async def get(self, definition_id: str, version: int = None) -> Optional[ProcessDefinition]:
        """获取流程定义"""
        async with self.db.get_session() as session:
            query = select(ProcessDefinitionRecord).where(ProcessDefinitionRecord.id == definition_id)
            if version is None:
                query = query.order_by(ProcessDefinitionRecord.version.desc()).limit(1)
            else:
                query = query.where(ProcessDefinitionRecord.version == version)
            result = await session.execute(query)
            record = result.scalar_one_or_none()

        if not record:
            return None
        return self._record_to_definition(record)

    async def latest_version(self, definition_id: str) -> int:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(func.max(ProcessDefinitionRecord.version))
                .where(ProcessDefinitionRecord.id == definition_id)
            )
            return result.scalar() or 0

    async def list(self, offset: int = 0, limit: int = 100) -> List[ProcessDefinition]:
        """列出每个流程定义的最新版本"""
        async with self.db.get_session() as session:
            latest = (
                select(
                    ProcessDefinitionRecord.id,
                    func.max(ProcessDefinitionRecord.version).label('version')
                )
                .group_by(ProcessDefinitionRecord.id)
                .subquery()
            )
            result = await session.execute(
                select(ProcessDefinitionRecord)
                .join(latest, (ProcessDefinitionRecord.id == latest.c.id)
                      & (ProcessDefinitionRecord.version == latest.c.version))
                .order_by(ProcessDefinitionRecord.id)
                .offset(offset)
                .limit(limit)
            )
            records = result.scalars().all()

        return [self._record_to_definition(record) for record in records]

    def _record_to_definition(self, record: ProcessDefinitionRecord) -> ProcessDefinition:
        definition = self.parser.parse(record.content, definition_id=record.id)
        definition.version = record.version
        definition.name = record.name
        definition.created_at = record.created_at
        return definition


class SQLAlchemyRequestRepository(RequestRepository):
    """SQLAlchemy 流程请求仓库实现"""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    async def save(self, request: ProcessRequest) -> int:
        """在一个事务中保存请求与令牌，使用 lock_version 做乐观并发控制"""
        now = utcnow()
        new_version = request.lock_version + 1

        async with self.db.get_session() as session:
            if request.lock_version == 0:
                record = ProcessRequestRecord(id=request.id, created_at=request.created_at)
                self._apply_request(record, request, new_version, now)
                session.add(record)
                for token in request.tokens:
                    session.add(self._token_to_record(token))
                try:
                    await session.flush()
                except IntegrityError as e:
                    raise ConcurrentModificationError(request.id) from e
            else:
                result = await session.execute(
                    update(ProcessRequestRecord)
                    .where(
                        ProcessRequestRecord.id == request.id,
                        ProcessRequestRecord.lock_version == request.lock_version
                    )
                    .values(
                        status=request.status.value,
                        data=request.data,
                        assignments=request.assignments,
                        error_message=request.error_message,
                        lock_version=new_version,
                        updated_at=now,
                        completed_at=request.completed_at
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConcurrentModificationError(request.id)

                existing = await session.execute(
                    select(ProcessRequestTokenRecord)
                    .where(ProcessRequestTokenRecord.request_id == request.id)
                )
                records = {record.id: record for record in existing.scalars()}
                for token in request.tokens:
                    record = records.get(token.id)
                    if record is None:
                        session.add(self._token_to_record(token))
                    else:
                        self._apply_token(record, token)

        request.lock_version = new_version
        request.updated_at = now
        return new_version

    async def get(self, request_id: str) -> Optional[ProcessRequest]:
        """获取流程请求"""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(ProcessRequestRecord)
                .options(selectinload(ProcessRequestRecord.tokens))
                .where(ProcessRequestRecord.id == request_id)
            )
            record = result.scalar_one_or_none()

        if not record:
            return None
        return self._record_to_request(record)

    async def get_token(self, token_id: str) -> Optional[ProcessRequestToken]:
        """获取令牌"""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(ProcessRequestTokenRecord).where(ProcessRequestTokenRecord.id == token_id)
            )
            record = result.scalar_one_or_none()

        if not record:
            return None
        return self._record_to_token(record)

    async def list(
        self,
        definition_id: str = None,
        status: RequestStatus = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[ProcessRequest]:
        """列出流程请求"""
        async with self.db.get_session() as session:
            query = select(ProcessRequestRecord).options(selectinload(ProcessRequestRecord.tokens))
            if definition_id:
                query = query.where(ProcessRequestRecord.definition_id == definition_id)
            if status:
                query = query.where(ProcessRequestRecord.status == status.value)
            query = query.order_by(ProcessRequestRecord.created_at).offset(offset).limit(limit)

            result = await session.execute(query)
            records = result.scalars().all()

        return [self._record_to_request(record) for record in records]

    async def list_tokens(
        self,
        request_id: str = None,
        status: TokenStatus = None,
        assignee: str = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[ProcessRequestToken]:
        """列出令牌"""
        async with self.db.get_session() as session:
            query = select(ProcessRequestTokenRecord)
            if request_id:
                query = query.where(ProcessRequestTokenRecord.request_id == request_id)
            if status:
                query = query.where(ProcessRequestTokenRecord.status == status.value)
            if assignee:
                query = query.where(ProcessRequestTokenRecord.assignee == assignee)
            query = query.order_by(
                ProcessRequestTokenRecord.created_at,
                ProcessRequestTokenRecord.sequence
            ).offset(offset).limit(limit)

            result = await session.execute(query)
            records = result.scalars().all()

        return [self._record_to_token(record) for record in records]

    async def list_due_timer_tokens(self, now: datetime) -> List[ProcessRequestToken]:
        """列出已到期的定时器令牌"""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(ProcessRequestTokenRecord)
                .join(ProcessRequestRecord, ProcessRequestTokenRecord.request_id == ProcessRequestRecord.id)
                .where(
                    ProcessRequestRecord.status == RequestStatus.ACTIVE.value,
                    ProcessRequestTokenRecord.status == TokenStatus.ACTIVE.value,
                    ProcessRequestTokenRecord.scheduled_for.isnot(None),
                    ProcessRequestTokenRecord.scheduled_for <= now
                )
                .order_by(ProcessRequestTokenRecord.scheduled_for)
            )
            records = result.scalars().all()

        return [self._record_to_token(record) for record in records]

    async def delete(self, request_id: str) -> bool:
        """删除流程请求及其令牌"""
        async with self.db.get_session() as session:
            await session.execute(
                delete(ProcessRequestTokenRecord)
                .where(ProcessRequestTokenRecord.request_id == request_id)
            )
            result = await session.execute(
                delete(ProcessRequestRecord).where(ProcessRequestRecord.id == request_id)
            )
            return result.rowcount > 0

    def _apply_request(self, record: ProcessRequestRecord, request: ProcessRequest,
                       lock_version: int, now: datetime):
        record.definition_id = request.definition_id
        record.definition_version = request.definition_version
        record.name = request.name
        record.status = request.status.value
        record.data = request.data
        record.assignments = request.assignments
        record.error_message = request.error_message
        record.lock_version = lock_version
        record.updated_at = now
        record.completed_at = request.completed_at

    def _token_to_record(self, token: ProcessRequestToken) -> ProcessRequestTokenRecord:
        record = ProcessRequestTokenRecord(
            id=token.id,
            request_id=token.request_id,
            sequence=token.sequence,
            node_id=token.node_id,
            node_type=token.node_type,
            created_at=token.created_at
        )
        self._apply_token(record, token)
        return record

    def _apply_token(self, record: ProcessRequestTokenRecord, token: ProcessRequestToken):
        record.status = token.status.value
        record.assignee = token.assignee
        record.data = dict(token.data)
        record.waiting_for = token.waiting_for
        record.scheduled_for = token.scheduled_for
        record.arrivals = list(token.arrivals)
        record.completed_at = token.completed_at

    def _record_to_request(self, record: ProcessRequestRecord) -> ProcessRequest:
        return ProcessRequest(
            id=record.id,
            definition_id=record.definition_id,
            definition_version=record.definition_version,
            name=record.name,
            status=RequestStatus(record.status),
            data=dict(record.data or {}),
            assignments=dict(record.assignments or {}),
            tokens=[self._record_to_token(token) for token in record.tokens],
            error_message=record.error_message,
            lock_version=record.lock_version,
            created_at=record.created_at,
            updated_at=record.updated_at,
            completed_at=record.completed_at
        )

    def _record_to_token(self, record: ProcessRequestTokenRecord) -> ProcessRequestToken:
        return ProcessRequestToken(
            id=record.id,
            request_id=record.request_id,
            node_id=record.node_id,
            node_type=record.node_type,
            status=TokenStatus(record.status),
            assignee=record.assignee,
            data=dict(record.data or {}),
            sequence=record.sequence,
            waiting_for=record.waiting_for,
            scheduled_for=record.scheduled_for,
            arrivals=list(record.arrivals or []),
            created_at=record.created_at,
            completed_at=record.completed_at
        )


class SQLAlchemyPermissionRepository(PermissionRepository):
    """SQLAlchemy 用户与权限仓库实现"""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    async def save_user(self, user: User) -> str:
        async with self.db.get_session() as session:
            record = await session.get(UserRecord, user.id)
            if record is None:
                record = UserRecord(id=user.id, created_at=utcnow())
                session.add(record)
            record.username = user.username
            record.is_administrator = user.is_administrator
            record.status = user.status
        return user.id

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self.db.get_session() as session:
            record = await session.get(UserRecord, user_id)
        return self._record_to_user(record) if record else None

    async def first_user(self) -> Optional[User]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(UserRecord).order_by(UserRecord.created_at, UserRecord.id).limit(1)
            )
            record = result.scalar_one_or_none()
        return self._record_to_user(record) if record else None

    async def get_or_create_group(self, name: str) -> Group:
        async with self.db.get_session() as session:
            result = await session.execute(select(GroupRecord).where(GroupRecord.name == name))
            record = result.scalar_one_or_none()
            if record is None:
                record = GroupRecord(name=name)
                session.add(record)
                await session.flush()
            return Group(id=str(record.id), name=record.name)

    async def get_or_create_permission(self, name: str) -> Permission:
        async with self.db.get_session() as session:
            result = await session.execute(select(PermissionRecord).where(PermissionRecord.name == name))
            record = result.scalar_one_or_none()
            if record is None:
                record = PermissionRecord(name=name, guard_name=name)
                session.add(record)
                await session.flush()
            return Permission(id=str(record.id), name=record.name, guard_name=record.guard_name)

    async def assign_permission(self, group_id: str, permission_id: str):
        async with self.db.get_session() as session:
            result = await session.execute(
                select(PermissionAssignmentRecord).where(
                    PermissionAssignmentRecord.group_id == int(group_id),
                    PermissionAssignmentRecord.permission_id == int(permission_id)
                )
            )
            if result.scalar_one_or_none() is None:
                session.add(PermissionAssignmentRecord(
                    group_id=int(group_id),
                    permission_id=int(permission_id)
                ))

    async def add_member(self, group_id: str, user_id: str):
        async with self.db.get_session() as session:
            result = await session.execute(
                select(GroupMemberRecord).where(
                    GroupMemberRecord.group_id == int(group_id),
                    GroupMemberRecord.user_id == user_id
                )
            )
            if result.scalar_one_or_none() is None:
                session.add(GroupMemberRecord(group_id=int(group_id), user_id=user_id))

    async def list_permissions(self) -> List[Permission]:
        async with self.db.get_session() as session:
            result = await session.execute(select(PermissionRecord).order_by(PermissionRecord.id))
            records = result.scalars().all()
        return [
            Permission(id=str(record.id), name=record.name, guard_name=record.guard_name)
            for record in records
        ]

    async def group_permissions(self, group_id: str) -> Set[str]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(PermissionRecord.name)
                .join(PermissionAssignmentRecord,
                      PermissionAssignmentRecord.permission_id == PermissionRecord.id)
                .where(PermissionAssignmentRecord.group_id == int(group_id))
            )
            return set(result.scalars().all())

    async def group_members(self, group_id: str) -> Set[str]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(GroupMemberRecord.user_id).where(GroupMemberRecord.group_id == int(group_id))
            )
            return set(result.scalars().all())

    async def user_permissions(self, user_id: str) -> Set[str]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(PermissionRecord.name)
                .join(PermissionAssignmentRecord,
                      PermissionAssignmentRecord.permission_id == PermissionRecord.id)
                .join(GroupMemberRecord,
                      GroupMemberRecord.group_id == PermissionAssignmentRecord.group_id)
                .where(GroupMemberRecord.user_id == user_id)
            )
            return set(result.scalars().all())

    def _record_to_user(self, record: UserRecord) -> User:
        return User(
            id=record.id,
            username=record.username,
            is_administrator=record.is_administrator,
            status=record.status
        )
