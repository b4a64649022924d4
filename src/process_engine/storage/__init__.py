"""Storage layer"""

from .repository import (
    DefinitionRepository, RequestRepository, PermissionRepository,
    InMemoryDefinitionRepository, InMemoryRequestRepository, InMemoryPermissionRepository
)
from .sqlalchemy_repository import (
    DatabaseManager, SQLAlchemyDefinitionRepository,
    SQLAlchemyRequestRepository, SQLAlchemyPermissionRepository
)

__all__ = [
    "DefinitionRepository",
    "RequestRepository",
    "PermissionRepository",
    "InMemoryDefinitionRepository",
    "InMemoryRequestRepository",
    "InMemoryPermissionRepository",
    "DatabaseManager",
    "SQLAlchemyDefinitionRepository",
    "SQLAlchemyRequestRepository",
    "SQLAlchemyPermissionRepository"
]
