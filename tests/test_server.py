"""
Integration tests for querygate_server module
"""
import asyncio
import json
from unittest.mock import AsyncMock, Mock, patch

import pytest

from querygate.config import GatewayConfig, TranslatorConfig
from querygate.exceptions import QueryExecutionError
from querygate_server import build_translator, process_request, read_requests, run_sweeper, setup_components


class TestProcessRequest:
    """Test cases for process_request"""

    @pytest.fixture
    def mock_jsonrpc_handler(self):
        handler = Mock()
        handler.handle_request = AsyncMock(return_value={"jsonrpc": "2.0", "id": 1, "result": {}})
        return handler

    @pytest.mark.asyncio
    async def test_request_with_id(self, mock_jsonrpc_handler):
        request = {"jsonrpc": "2.0", "method": "tools/list", "id": 1}

        response = await process_request(json.dumps(request), mock_jsonrpc_handler)

        assert response == {"jsonrpc": "2.0", "id": 1, "result": {}}
        mock_jsonrpc_handler.handle_request.assert_called_once_with(request)

    @pytest.mark.asyncio
    async def test_notification_gets_no_response(self, mock_jsonrpc_handler):
        mock_jsonrpc_handler.handle_request.return_value = None

        response = await process_request('{"jsonrpc": "2.0", "method": "notifications/cancelled"}',
                                         mock_jsonrpc_handler)

        assert response is None

    @pytest.mark.asyncio
    async def test_parse_error(self, mock_jsonrpc_handler):
        """Test that broken JSON-RPC input gets a parse error"""
        response = await process_request('{"jsonrpc": "2.0", "method": ', mock_jsonrpc_handler)

        assert response["error"]["code"] == -32700
        assert response["id"] is None
        mock_jsonrpc_handler.handle_request.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_json_noise_ignored(self, mock_jsonrpc_handler):
        """Test that stray non-JSON lines are dropped silently"""
        assert await process_request("hello there", mock_jsonrpc_handler) is None

    @pytest.mark.asyncio
    async def test_non_object_request(self, mock_jsonrpc_handler):
        response = await process_request("[1, 2]", mock_jsonrpc_handler)

        assert response["error"]["code"] == -32600


class TestBuildTranslator:
    """Test cases for build_translator"""

    @pytest.mark.asyncio
    async def test_configured_schema_used_without_introspection(self):
        config = GatewayConfig(translator=TranslatorConfig(api_key="key"))
        executor = Mock()
        executor.fetch_schema = AsyncMock()

        with patch("querygate_server.GeminiTranslator.from_config") as mock_from_config:
            await build_translator(config, executor)

        executor.fetch_schema.assert_not_called()
        mock_from_config.assert_called_once_with(config.translator, None)

    @pytest.mark.asyncio
    async def test_introspected_schema(self):
        config = GatewayConfig(translator=TranslatorConfig(api_key="key", introspect_schema=True))
        executor = Mock()
        executor.fetch_schema = AsyncMock(return_value={"users": [{"name": "id", "data_type": "int"}]})

        with patch("querygate_server.GeminiTranslator.from_config") as mock_from_config:
            await build_translator(config, executor)

        mock_from_config.assert_called_once_with(config.translator, "Table: users\nColumns: id (INT)\n")

    @pytest.mark.asyncio
    async def test_introspection_failure_falls_back(self):
        config = GatewayConfig(translator=TranslatorConfig(api_key="key", introspect_schema=True))
        executor = Mock()
        executor.fetch_schema = AsyncMock(side_effect=QueryExecutionError("Database connection failed"))

        with patch("querygate_server.GeminiTranslator.from_config") as mock_from_config:
            await build_translator(config, executor)

        mock_from_config.assert_called_once_with(config.translator, None)


class TestSetupComponents:
    """Test cases for setup_components"""

    @pytest.mark.asyncio
    async def test_setup_and_list_tools(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({
            "translator": {"api_key": "key"},
            "export": {"scripts_dir": str(tmp_path / "exports")}
        }))

        with patch("langchain_google_genai.ChatGoogleGenerativeAI"):
            config, store, executor, jsonrpc_handler = await setup_components(config_path)

        response = await process_request(
            json.dumps({"jsonrpc": "2.0", "method": "tools/list", "id": 1}),
            jsonrpc_handler
        )

        assert config.context.backend == "memory"
        assert [tool["name"] for tool in response["result"]["tools"]] == [
            "sql_generator", "sql_executor", "workbench_export"
        ]
        await executor.close()
        await store.close()


class TestRunSweeper:
    """Test cases for the periodic context sweep"""

    @pytest.mark.asyncio
    async def test_sweeps_until_shutdown(self):
        calls = []

        async def sweep():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("redis down")
            return 0

        store = Mock()
        store.sweep_expired = AsyncMock(side_effect=sweep)
        shutdown_event = asyncio.Event()

        task = asyncio.create_task(run_sweeper(store, 0.01, shutdown_event))
        await asyncio.sleep(0.1)
        shutdown_event.set()
        await asyncio.wait_for(task, timeout=1.0)

        # The first failure did not stop the loop
        assert store.sweep_expired.call_count >= 2


class TestReadRequests:
    """Test cases for the stdin request loop"""

    @pytest.fixture
    def release(self):
        return asyncio.Event()

    @pytest.fixture
    def slow_chat_handler(self, release):
        async def handle_request(data):
            if data["method"] == "chat":
                await release.wait()
            return {"jsonrpc": "2.0", "id": data["id"], "result": {"method": data["method"]}}

        handler = Mock()
        handler.handle_request = AsyncMock(side_effect=handle_request)
        return handler

    @staticmethod
    def feed(reader, *requests):
        for request in requests:
            reader.feed_data(json.dumps(request).encode() + b"\n")

    @staticmethod
    async def wait_for_responses(written, count):
        for _ in range(100):
            if len(written) >= count:
                return
            await asyncio.sleep(0.01)

    @pytest.mark.asyncio
    async def test_slow_request_does_not_delay_later_ones(self, slow_chat_handler, release):
        reader = asyncio.StreamReader()
        self.feed(
            reader,
            {"jsonrpc": "2.0", "method": "chat", "params": {}, "id": 1},
            {"jsonrpc": "2.0", "method": "tools/list", "id": 2}
        )
        shutdown_event = asyncio.Event()
        written = []

        task = asyncio.create_task(read_requests(reader, slow_chat_handler, shutdown_event, written.append))
        await self.wait_for_responses(written, 1)

        # tools/list answered while chat is still waiting
        assert [response["id"] for response in written] == [2]

        release.set()
        reader.feed_eof()
        await asyncio.wait_for(task, timeout=2.0)

        assert [response["id"] for response in written] == [2, 1]
        assert shutdown_event.is_set()

    @pytest.mark.asyncio
    async def test_unfinished_requests_cancelled_after_drain_timeout(self, slow_chat_handler):
        reader = asyncio.StreamReader()
        self.feed(reader, {"jsonrpc": "2.0", "method": "chat", "params": {}, "id": 1})
        reader.feed_eof()
        written = []

        await asyncio.wait_for(
            read_requests(reader, slow_chat_handler, asyncio.Event(), written.append, drain_timeout=0.05),
            timeout=2.0
        )

        assert written == []

    @pytest.mark.asyncio
    async def test_cancel_stops_in_flight_requests(self, slow_chat_handler):
        reader = asyncio.StreamReader()
        self.feed(reader, {"jsonrpc": "2.0", "method": "chat", "params": {}, "id": 1})
        written = []

        task = asyncio.create_task(read_requests(reader, slow_chat_handler, asyncio.Event(), written.append))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0)
        assert written == []
        slow_chat_handler.handle_request.assert_called_once()

    @pytest.mark.asyncio
    async def test_handler_crash_does_not_stop_loop(self):
        handler = Mock()
        handler.handle_request = AsyncMock(side_effect=[
            RuntimeError("boom"),
            {"jsonrpc": "2.0", "id": 2, "result": {}}
        ])
        reader = asyncio.StreamReader()
        self.feed(
            reader,
            {"jsonrpc": "2.0", "method": "tools/list", "id": 1},
            {"jsonrpc": "2.0", "method": "tools/list", "id": 2}
        )
        reader.feed_eof()
        written = []

        await asyncio.wait_for(read_requests(reader, handler, asyncio.Event(), written.append), timeout=2.0)

        assert [response["id"] for response in written] == [2]
