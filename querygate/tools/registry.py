"""
Tool registry
Maps tool names to tools with a fixed invocation contract
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from ..context.models import ConversationContext
from ..exceptions import DuplicateToolError, ToolNotFoundError
from ..security.models import ParameterSemantics

logger = logging.getLogger(__name__)


@dataclass
class ToolDescriptor:
    """Public description of a tool"""
    name: str
    description: str
    parameters: Dict[str, Any]
    parameter_semantics: Dict[str, ParameterSemantics] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
            "parameter_semantics": {name: kind.value for name, kind in self.parameter_semantics.items()}
        }


class Tool(ABC):
    """A named capability invoked with parameters and the caller's context"""

    descriptor: ToolDescriptor

    @property
    def name(self) -> str:
        return self.descriptor.name

    @abstractmethod
    async def invoke(self, params: Dict[str, Any], context: Optional[ConversationContext]) -> Dict[str, Any]:
        pass


class ToolRegistry:
    """Ownership-checked name to tool mapping

    The registry adds no retry or timeout of its own: whatever the tool
    returns or raises reaches the caller unchanged.
    """

    def __init__(self):
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise DuplicateToolError(tool.name)
        self._tools[tool.name] = tool
        logger.info(f"Registered tool: {tool.name}")

    def get(self, name: str) -> Tool:
        if (tool := self._tools.get(name)) is None:
            raise ToolNotFoundError(name)
        return tool

    def list(self) -> List[Dict[str, Any]]:
        return [tool.descriptor.to_dict() for tool in self._tools.values()]

    async def execute(
        self,
        name: str,
        params: Dict[str, Any],
        context: Optional[ConversationContext] = None
    ) -> Dict[str, Any]:
        return await self.get(name).invoke(params, context)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
