"""
流程定义存储
"""
import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..models.definition import ProcessDefinition
from ..storage.repository import DefinitionRepository
from ..exceptions import (
    DefinitionNotFound, DefinitionValidationError, DefinitionParseError
)
from .parser import DefinitionParser


logger = logging.getLogger(__name__)


class DefinitionStore:
    """流程定义存储，每次部署产生一个不可变的新版本"""

    def __init__(self, repository: DefinitionRepository, parser: DefinitionParser = None):
        self.repository = repository
        self.parser = parser or DefinitionParser()
        self._cache: Dict[Tuple[str, int], ProcessDefinition] = {}
        self._deploy_lock = asyncio.Lock()

    async def deploy(self, source: Union[str, Path, Dict[str, Any]],
                     definition_id: Optional[str] = None,
                     name: Optional[str] = None) -> ProcessDefinition:
        """
        部署流程定义

        Args:
            source: BPMN XML、YAML/JSON 字符串、字典或文件路径
            definition_id: 指定流程ID（覆盖文档中的ID）
            name: 指定流程名称

        Returns:
            ProcessDefinition: 新存储的版本
        """
        definition = self.parser.parse(source, definition_id=definition_id)
        if not definition.id:
            raise DefinitionValidationError(["Process definition has no id"])
        if name:
            definition.name = name

        async with self._deploy_lock:
            latest = await self.repository.latest_version(definition.id)
            definition.version = latest + 1
            await self.repository.save(definition)

        self._cache[(definition.id, definition.version)] = definition
        logger.info(f"Deployed process definition '{definition.id}' version {definition.version}")
        return definition

    async def get(self, definition_id: str, version: Optional[int] = None) -> ProcessDefinition:
        """获取流程定义（默认最新版本）"""
        if version is not None:
            cached = self._cache.get((definition_id, version))
            if cached is not None:
                return cached

        definition = await self.repository.get(definition_id, version)
        if definition is None:
            raise DefinitionNotFound(definition_id, version)

        self._cache[(definition.id, definition.version)] = definition
        return definition

    async def list(self, offset: int = 0, limit: int = 100) -> List[ProcessDefinition]:
        return await self.repository.list(offset=offset, limit=limit)

    def validate(self, source: Union[str, Path, Dict[str, Any]]) -> List[str]:
        """验证流程定义而不存储，返回问题列表"""
        try:
            self.parser.parse(source)
        except DefinitionValidationError as e:
            return e.errors
        except DefinitionParseError as e:
            return [str(e)]
        return []
