#!/usr/bin/env python3
"""
querygate
Answers natural language questions with SQL over stdio JSON-RPC,
behind injection and sensitive-data gates
"""
import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set, Tuple

from dotenv import load_dotenv

from querygate.config import ConfigurationManager, GatewayConfig
from querygate.context import ContextStore
from querygate.database import MySQLExecutor, describe_schema
from querygate.exceptions import QueryExecutionError
from querygate.exporter import ScriptExporter
from querygate.gateway_handler import GatewayHandler
from querygate.jsonrpc_handler import JSONRPCHandler
from querygate.processor import RequestProcessor
from querygate.security import SecurityGate
from querygate.security.redaction import ResultRedactor
from querygate.tools import ToolRegistry, register_sql_tools
from querygate.translator import GeminiTranslator

# Logs go to stderr; stdout carries JSON-RPC responses only
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


async def build_translator(config: GatewayConfig, executor: MySQLExecutor) -> GeminiTranslator:
    """Create the translator, optionally describing the live schema in its prompt"""
    schema_description = None

    if config.translator.introspect_schema:
        try:
            schema_description = describe_schema(await executor.fetch_schema())
            logger.info("Using introspected database schema in translator prompt")
        except QueryExecutionError as e:
            logger.error(f"Schema introspection failed, using configured schema: {e}")

    return GeminiTranslator.from_config(config.translator, schema_description)


async def setup_components(config_path: Path) -> Tuple[GatewayConfig, ContextStore, MySQLExecutor, JSONRPCHandler]:
    """Initialize and setup all components.

    Returns:
        Tuple of (config, context_store, executor, jsonrpc_handler)
    """
    config = ConfigurationManager(config_path).load()

    store = ContextStore.from_config(config.context)
    executor = MySQLExecutor(config.database)
    translator = await build_translator(config, executor)
    gate = SecurityGate()
    redactor = ResultRedactor.from_config(config.security)

    registry = register_sql_tools(
        ToolRegistry(),
        translator=translator,
        executor=executor,
        exporter=ScriptExporter(config.export.scripts_dir, config.export.default_script_name),
        gate=gate,
        redactor=redactor,
        translate_timeout=config.translator.timeout,
        execute_timeout=config.database.timeout
    )

    processor = RequestProcessor(
        gate=gate,
        store=store,
        registry=registry,
        translator=translator,
        executor=executor,
        redactor=redactor,
        translate_timeout=config.translator.timeout,
        execute_timeout=config.database.timeout
    )
    jsonrpc_handler = JSONRPCHandler(GatewayHandler(processor, store, registry))

    return config, store, executor, jsonrpc_handler


async def process_request(line: str, jsonrpc_handler: JSONRPCHandler) -> Optional[Dict[str, Any]]:
    """Process a single request line.

    Returns:
        The JSON-RPC response, or None for notifications and ignored input
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        # Only answer parse errors for input that looks like JSON-RPC
        if line.startswith('{') and any(key in line for key in ('jsonrpc', 'method')):
            return {
                "jsonrpc": "2.0",
                "id": None,
                "error": {
                    "code": -32700,
                    "message": "Parse error"
                }
            }
        logger.warning(f"Ignoring non-JSON input: {line[:50]}...")
        return None

    if not isinstance(data, dict):
        return {
            "jsonrpc": "2.0",
            "id": None,
            "error": {
                "code": -32600,
                "message": "Invalid Request"
            }
        }

    response = await jsonrpc_handler.handle_request(data)

    if "id" in data and response is not None:
        return response
    return None


def write_stdout(response: Dict[str, Any]) -> None:
    print(json.dumps(response, default=str))
    sys.stdout.flush()


async def respond(
    line: str,
    jsonrpc_handler: JSONRPCHandler,
    write_response: Callable[[Dict[str, Any]], None],
    write_lock: asyncio.Lock
) -> None:
    try:
        response = await process_request(line, jsonrpc_handler)
    except Exception as e:
        logger.error(f"Unhandled error processing request: {e}", exc_info=True)
        return

    if response:
        # One response per line, never interleaved
        async with write_lock:
            write_response(response)


async def read_requests(
    stdin_reader: asyncio.StreamReader,
    jsonrpc_handler: JSONRPCHandler,
    shutdown_event: asyncio.Event,
    write_response: Callable[[Dict[str, Any]], None] = write_stdout,
    drain_timeout: float = 30.0
) -> None:
    """Read request lines and handle each one in its own task.

    A slow turn for one user does not hold up requests behind it. When stdin
    closes, requests already in flight get drain_timeout seconds to finish.
    """
    in_flight: Set[asyncio.Task] = set()
    write_lock = asyncio.Lock()

    try:
        while not shutdown_event.is_set():
            try:
                # Wake up every second to check for shutdown
                line_bytes = await asyncio.wait_for(stdin_reader.readline(), timeout=1.0)

                if not line_bytes:
                    logger.info("Stdin closed - client disconnected, initiating shutdown")
                    break

                line = line_bytes.decode().strip()
                if not line:
                    continue

                task = asyncio.create_task(respond(line, jsonrpc_handler, write_response, write_lock))
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)

            except asyncio.TimeoutError:
                continue
            except Exception as e:
                if shutdown_event.is_set():
                    break
                logger.error(f"Error reading stdin: {e}")
                break

        if in_flight:
            logger.info(f"Waiting for {len(in_flight)} in-flight requests")
            _, unfinished = await asyncio.wait(set(in_flight), timeout=drain_timeout)
            for task in unfinished:
                task.cancel()
            if unfinished:
                logger.warning(f"Cancelled {len(unfinished)} requests still running at shutdown")
    except asyncio.CancelledError:
        for task in list(in_flight):
            task.cancel()
        raise

    shutdown_event.set()


async def run_sweeper(store: ContextStore, interval_seconds: float, shutdown_event: asyncio.Event) -> None:
    """Delete expired contexts every interval until shutdown"""
    while not shutdown_event.is_set():
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            try:
                await store.sweep_expired()
            except Exception as e:
                logger.error(f"Context sweep failed: {e}")


async def main() -> None:
    """Main entry point for stdio mode"""
    logger.info("querygate starting in stdio mode")

    parser = argparse.ArgumentParser(description="querygate")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.json"),
        help="Configuration file path (default: config.json)"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    args = parser.parse_args()

    logging.getLogger().setLevel(getattr(logging, args.log_level))
    load_dotenv()

    config, store, executor, jsonrpc_handler = await setup_components(args.config)

    shutdown_event = asyncio.Event()

    def signal_handler(signum: int, _) -> None:
        logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    try:
        loop = asyncio.get_running_loop()

        stdin_reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(stdin_reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin)

        stdin_task = asyncio.create_task(read_requests(stdin_reader, jsonrpc_handler, shutdown_event))
        sweeper_task = asyncio.create_task(
            run_sweeper(store, config.context.sweep_interval_minutes * 60, shutdown_event)
        )
        shutdown_task = asyncio.create_task(shutdown_event.wait())

        _, pending = await asyncio.wait(
            [stdin_task, shutdown_task],
            return_when=asyncio.FIRST_COMPLETED
        )
        shutdown_event.set()

        logger.info("Main loop exiting, cancelling remaining tasks...")

        for task in (*pending, sweeper_task):
            task.cancel()
            try:
                await asyncio.wait_for(task, timeout=2.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    finally:
        try:
            await asyncio.wait_for(executor.close(), timeout=10.0)
            await asyncio.wait_for(store.close(), timeout=10.0)
        except asyncio.TimeoutError:
            logger.error("Resource cleanup timed out")
        except Exception as e:
            logger.error(f"Error during cleanup: {e}")

        logger.info("querygate shutdown complete")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
