"""
GatewayHandler module for querygate
Implements the JSON-RPC methods on top of the request processor and context store
"""
import logging
import time
import uuid
from typing import Any, Dict, Optional

from .context.store import ContextStore
from .processor import RequestProcessor
from .tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

MODEL_NAME = "querygate"


def _require_user_id(params: Dict[str, Any]) -> str:
    user_id = params.get("user_id")
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValueError("Missing required parameter: user_id")
    return user_id


class GatewayHandler:
    """Handles querygate methods"""

    def __init__(self, processor: RequestProcessor, store: ContextStore, registry: ToolRegistry):
        self.processor = processor
        self.store = store
        self.registry = registry

    async def handle_chat(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Handle chat request: one turn wrapped in a chat.completion envelope"""
        user_id = _require_user_id(params)
        messages = params.get("messages")
        if not isinstance(messages, list) or not messages:
            raise ValueError("Missing required parameter: messages")

        message = await self.processor.handle_turn(user_id, messages)

        return {
            "id": f"chat_{uuid.uuid4().hex}",
            "object": "chat.completion",
            "created": int(time.time()),
            "model": MODEL_NAME,
            "choices": [
                {
                    "index": 0,
                    "message": message,
                    "finish_reason": "stop"
                }
            ]
        }

    async def handle_list_tools(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Handle tools/list request"""
        return {"tools": self.registry.list()}

    async def handle_tool_call(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Handle tools/call request through the gated dispatcher"""
        user_id = _require_user_id(params)
        if not (name := params.get("name")):
            raise ValueError("Missing required parameter: name")

        arguments = params.get("parameters", params.get("arguments", {}))
        if not isinstance(arguments, dict):
            raise ValueError("parameters must be an object")

        return await self.processor.dispatch_tool_call(user_id, name, arguments)

    async def handle_context_get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        context = await self.store.get(_require_user_id(params))
        return context.to_dict()

    async def handle_context_update(self, params: Dict[str, Any]) -> Dict[str, Any]:
        user_id = _require_user_id(params)
        changes = params.get("changes")
        if not isinstance(changes, dict):
            raise ValueError("Missing required parameter: changes")

        context = await self.store.update(user_id, changes)
        return context.to_dict()

    async def handle_context_clear(self, params: Dict[str, Any]) -> Dict[str, Any]:
        user_id = _require_user_id(params)
        await self.store.clear(user_id)
        return {"cleared": True, "user_id": user_id}

    async def handle_context_memory(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Handle context/memory request: append a long-term memory block"""
        user_id = _require_user_id(params)
        if "content" not in params:
            raise ValueError("Missing required parameter: content")

        metadata = params.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValueError("metadata must be an object")

        await self.store.add_memory_block(user_id, params["content"], metadata)
        return await self.store.generate_model_context(user_id)
