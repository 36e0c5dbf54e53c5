"""
Unit tests for the JSON-RPC and gateway handlers
"""
from unittest.mock import AsyncMock, Mock

import pytest

from querygate.context import ContextStore
from querygate.database import QueryResult
from querygate.exporter import ScriptExporter
from querygate.gateway_handler import GatewayHandler
from querygate.jsonrpc_handler import JSONRPCHandler
from querygate.processor import RequestProcessor
from querygate.security import SecurityGate
from querygate.tools import ToolRegistry, register_sql_tools
from querygate.translator import Translation


class TestJSONRPCHandler:
    """Test cases for JSONRPCHandler class"""

    @pytest.fixture
    def mock_gateway_handler(self):
        """Fixture for mock GatewayHandler"""
        return AsyncMock(spec=GatewayHandler)

    @pytest.fixture
    def jsonrpc_handler(self, mock_gateway_handler):
        """Fixture for JSONRPCHandler instance"""
        return JSONRPCHandler(mock_gateway_handler)

    @pytest.mark.asyncio
    async def test_handle_request_chat(self, jsonrpc_handler, mock_gateway_handler):
        """Test handling chat request"""
        mock_gateway_handler.handle_chat.return_value = {"object": "chat.completion"}
        params = {"user_id": "alice", "messages": [{"role": "user", "content": "hi"}]}

        response = await jsonrpc_handler.handle_request({
            "jsonrpc": "2.0",
            "method": "chat",
            "params": params,
            "id": 1
        })

        assert response == {"jsonrpc": "2.0", "id": 1, "result": {"object": "chat.completion"}}
        mock_gateway_handler.handle_chat.assert_called_once_with(params)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method, handler_name", [
        ("tools/list", "handle_list_tools"),
        ("tools/call", "handle_tool_call"),
        ("context/get", "handle_context_get"),
        ("context/update", "handle_context_update"),
        ("context/clear", "handle_context_clear"),
        ("context/memory", "handle_context_memory"),
    ])
    async def test_methods_routed(self, jsonrpc_handler, mock_gateway_handler, method, handler_name):
        """Test that each method reaches its handler"""
        getattr(mock_gateway_handler, handler_name).return_value = {"ok": True}

        response = await jsonrpc_handler.handle_request({"jsonrpc": "2.0", "method": method, "id": 7})

        assert response["result"] == {"ok": True}
        getattr(mock_gateway_handler, handler_name).assert_called_once_with({})

    @pytest.mark.asyncio
    async def test_handle_request_unknown_method(self, jsonrpc_handler):
        """Test handling unknown method"""
        response = await jsonrpc_handler.handle_request({
            "jsonrpc": "2.0",
            "method": "unknown/method",
            "id": 3
        })

        assert response["error"]["code"] == -32601
        assert "Method not found" in response["error"]["message"]

    @pytest.mark.asyncio
    async def test_handle_request_invalid_params(self, jsonrpc_handler, mock_gateway_handler):
        """Test that ValueError from a handler maps to invalid params"""
        mock_gateway_handler.handle_chat.side_effect = ValueError("Missing required parameter: user_id")

        response = await jsonrpc_handler.handle_request({"jsonrpc": "2.0", "method": "chat", "id": 4})

        assert response["error"]["code"] == -32602
        assert response["error"]["data"] == "Missing required parameter: user_id"

    @pytest.mark.asyncio
    async def test_handle_request_params_not_object(self, jsonrpc_handler, mock_gateway_handler):
        response = await jsonrpc_handler.handle_request({
            "jsonrpc": "2.0",
            "method": "chat",
            "params": ["alice"],
            "id": 5
        })

        assert response["error"]["code"] == -32602
        mock_gateway_handler.handle_chat.assert_not_called()

    @pytest.mark.asyncio
    async def test_handle_request_exception(self, jsonrpc_handler, mock_gateway_handler):
        """Test handling request that raises exception"""
        mock_gateway_handler.handle_list_tools.side_effect = Exception("Test error")

        response = await jsonrpc_handler.handle_request({"jsonrpc": "2.0", "method": "tools/list", "id": 6})

        assert response["error"]["code"] == -32603
        assert response["error"]["message"] == "Internal error"
        assert response["error"]["data"] == "Test error"

    @pytest.mark.asyncio
    async def test_handle_notification(self, jsonrpc_handler, mock_gateway_handler):
        """Test handling notification (no id)"""
        response = await jsonrpc_handler.handle_request({
            "jsonrpc": "2.0",
            "method": "notifications/cancelled",
            "params": {"requestId": 1}
        })

        assert response is None
        mock_gateway_handler.handle_chat.assert_not_called()


class TestGatewayHandler:
    """Test cases for GatewayHandler class"""

    @pytest.fixture
    def store(self):
        return ContextStore()

    @pytest.fixture
    def gateway_handler(self, store, tmp_path):
        translator = Mock()
        translator.translate = AsyncMock(return_value=Translation(sql_query="SELECT * FROM products"))
        executor = Mock()
        executor.execute = AsyncMock(return_value=QueryResult(rows=[{"id": 1}], row_count=1))
        gate = SecurityGate()

        registry = register_sql_tools(ToolRegistry(), translator, executor, ScriptExporter(tmp_path), gate)
        processor = RequestProcessor(gate, store, registry, translator, executor)
        return GatewayHandler(processor, store, registry)

    @pytest.mark.asyncio
    async def test_handle_chat_envelope(self, gateway_handler):
        result = await gateway_handler.handle_chat({
            "user_id": "alice",
            "messages": [{"role": "user", "content": "Show me all products"}]
        })

        assert result["id"].startswith("chat_")
        assert result["object"] == "chat.completion"
        assert isinstance(result["created"], int)
        assert result["model"] == "querygate"
        choice = result["choices"][0]
        assert choice["index"] == 0
        assert choice["finish_reason"] == "stop"
        assert choice["message"]["metadata"]["sql_query"] == "SELECT * FROM products"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [
        {"messages": [{"role": "user", "content": "hi"}]},
        {"user_id": "alice"},
        {"user_id": "alice", "messages": []},
    ])
    async def test_handle_chat_missing_params(self, gateway_handler, params):
        with pytest.raises(ValueError):
            await gateway_handler.handle_chat(params)

    @pytest.mark.asyncio
    async def test_handle_list_tools(self, gateway_handler):
        result = await gateway_handler.handle_list_tools({})

        assert [tool["name"] for tool in result["tools"]] == [
            "sql_generator", "sql_executor", "workbench_export"
        ]

    @pytest.mark.asyncio
    async def test_handle_tool_call(self, gateway_handler):
        result = await gateway_handler.handle_tool_call({
            "user_id": "alice",
            "name": "sql_executor",
            "arguments": {"sql": "SELECT id FROM products"}
        })

        assert result["name"] == "sql_executor"
        assert result["result"]["rows"] == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_handle_tool_call_missing_name(self, gateway_handler):
        with pytest.raises(ValueError):
            await gateway_handler.handle_tool_call({"user_id": "alice"})

    @pytest.mark.asyncio
    async def test_context_methods(self, gateway_handler):
        updated = await gateway_handler.handle_context_update({
            "user_id": "alice",
            "changes": {"session_entities": {"table": "products"}}
        })
        assert updated["session_entities"] == {"table": "products"}

        fetched = await gateway_handler.handle_context_get({"user_id": "alice"})
        assert fetched["session_entities"] == {"table": "products"}

        model_context = await gateway_handler.handle_context_memory({
            "user_id": "alice",
            "content": "prefers metric units"
        })
        assert model_context["relevant_memory"][0]["content"] == "prefers metric units"

        cleared = await gateway_handler.handle_context_clear({"user_id": "alice"})
        assert cleared == {"cleared": True, "user_id": "alice"}
        assert (await gateway_handler.handle_context_get({"user_id": "alice"}))["session_entities"] == {}

    @pytest.mark.asyncio
    async def test_context_update_requires_changes(self, gateway_handler):
        with pytest.raises(ValueError):
            await gateway_handler.handle_context_update({"user_id": "alice", "changes": "nope"})
