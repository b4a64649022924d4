"""
SQLAlchemy 数据库模型定义
"""
from sqlalchemy import (
    Column, String, Text, Boolean, Integer, DateTime, ForeignKey,
    UniqueConstraint, CheckConstraint, Index, JSON
)
from sqlalchemy.orm import declarative_base, relationship


Base = declarative_base()


class ProcessDefinitionRecord(Base):
    """流程定义模型（每个版本一行）"""
    __tablename__ = 'process_definitions'

    pk = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(255), nullable=False)
    version = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False, default='')
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint('id', 'version', name='unique_process_definition_version'),
        CheckConstraint('version > 0', name='check_definition_version'),
        Index('idx_process_definitions_id', 'id'),
    )


class ProcessRequestRecord(Base):
    """流程请求模型"""
    __tablename__ = 'process_requests'

    id = Column(String(36), primary_key=True)
    definition_id = Column(String(255), nullable=False)
    definition_version = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False, default='')
    status = Column(String(20), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    assignments = Column(JSON, nullable=False, default=dict)
    error_message = Column(Text)
    lock_version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime)

    # 关系
    tokens = relationship(
        "ProcessRequestTokenRecord",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="ProcessRequestTokenRecord.sequence"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'COMPLETED', 'ERROR', 'CANCELED')",
            name='check_request_status'
        ),
        Index('idx_process_requests_definition', 'definition_id', 'definition_version'),
        Index('idx_process_requests_status', 'status'),
    )


class ProcessRequestTokenRecord(Base):
    """流程令牌模型"""
    __tablename__ = 'process_request_tokens'

    id = Column(String(36), primary_key=True)
    request_id = Column(String(36), ForeignKey('process_requests.id', ondelete='CASCADE'), nullable=False)
    sequence = Column(Integer, nullable=False)
    node_id = Column(String(255), nullable=False)
    node_type = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False)
    assignee = Column(String(255))
    data = Column(JSON, nullable=False, default=dict)
    waiting_for = Column(String(255))
    scheduled_for = Column(DateTime)
    arrivals = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime)

    # 关系
    request = relationship("ProcessRequestRecord", back_populates="tokens")

    __table_args__ = (
        UniqueConstraint('request_id', 'sequence', name='unique_token_sequence'),
        CheckConstraint(
            "status IN ('ACTIVE', 'COMPLETED', 'CLOSED', 'FAILING')",
            name='check_token_status'
        ),
        Index('idx_tokens_request_id', 'request_id'),
        Index('idx_tokens_status_scheduled', 'status', 'scheduled_for'),
        Index('idx_tokens_assignee', 'assignee'),
    )


class UserRecord(Base):
    """用户模型"""
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True)
    username = Column(String(255), nullable=False, default='')
    is_administrator = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default='ACTIVE')
    created_at = Column(DateTime, nullable=False)


class GroupRecord(Base):
    """用户组模型"""
    __tablename__ = 'groups'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True)


class GroupMemberRecord(Base):
    """用户组成员模型"""
    __tablename__ = 'group_members'

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey('groups.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)

    __table_args__ = (
        UniqueConstraint('group_id', 'user_id', name='unique_group_member'),
    )


class PermissionRecord(Base):
    """权限模型"""
    __tablename__ = 'permissions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True)
    guard_name = Column(String(255))


class PermissionAssignmentRecord(Base):
    """权限分配模型（授予用户组）"""
    __tablename__ = 'permission_assignments'

    id = Column(Integer, primary_key=True, autoincrement=True)
    permission_id = Column(Integer, ForeignKey('permissions.id', ondelete='CASCADE'), nullable=False)
    group_id = Column(Integer, ForeignKey('groups.id', ondelete='CASCADE'), nullable=False)

    __table_args__ = (
        UniqueConstraint('permission_id', 'group_id', name='unique_permission_assignment'),
    )
