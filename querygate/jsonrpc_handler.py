"""
JSONRPCHandler module for querygate
Handles JSON-RPC protocol wrapping for gateway methods
"""
import logging
from typing import Any, Callable, Dict, Optional

from .gateway_handler import GatewayHandler

logger = logging.getLogger(__name__)


class JSONRPCHandler:
    """Handles JSON-RPC protocol wrapping"""

    def __init__(self, gateway_handler: GatewayHandler):
        self.gateway_handler = gateway_handler
        self._method_handlers = self._setup_method_handlers()

    def _setup_method_handlers(self) -> Dict[str, Callable]:
        """Setup mapping of methods to handlers"""
        return {
            "chat": self.gateway_handler.handle_chat,
            "tools/list": self.gateway_handler.handle_list_tools,
            "tools/call": self.gateway_handler.handle_tool_call,
            "context/get": self.gateway_handler.handle_context_get,
            "context/update": self.gateway_handler.handle_context_update,
            "context/clear": self.gateway_handler.handle_context_clear,
            "context/memory": self.gateway_handler.handle_context_memory,
        }

    async def handle_request(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Handle incoming JSON-RPC request"""
        method = data.get("method", "")
        params = data.get("params") or {}

        # Notifications carry no id and get no response
        if "id" not in data:
            self._handle_notification(method, params)
            return None

        request_id = data.get("id")

        if not isinstance(params, dict):
            return self._create_error_response(request_id, -32602, "Invalid params", "params must be an object")

        try:
            if handler := self._method_handlers.get(method):
                response = await handler(params)
                return self._create_success_response(request_id, response)

            return self._create_error_response(
                request_id,
                -32601,
                f"Method not found: {method}"
            )

        except ValueError as e:
            logger.warning(f"Invalid params for {method}: {e}")
            return self._create_error_response(request_id, -32602, "Invalid params", str(e))
        except Exception as e:
            logger.error(f"Error handling request: {e}", exc_info=True)
            return self._create_error_response(
                request_id,
                -32603,
                "Internal error",
                str(e)
            )

    def _handle_notification(self, method: str, params: Dict[str, Any]) -> None:
        """Handle notifications (requests without id)"""
        match method:
            case "notifications/cancelled":
                logger.info(f"Received cancellation notification: {params}")
            case _:
                logger.info(f"Unhandled notification: {method}")

    def _create_success_response(self, request_id: Any, result: Any) -> Dict[str, Any]:
        """Create a successful JSON-RPC response"""
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "result": result
        }

    def _create_error_response(
        self,
        request_id: Any,
        code: int,
        message: str,
        data: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create an error JSON-RPC response"""
        error: Dict[str, Any] = {
            "code": code,
            "message": message
        }

        if data:
            error["data"] = data

        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "error": error
        }
