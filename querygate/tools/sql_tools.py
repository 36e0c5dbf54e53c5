"""
Built-in SQL tools: generation, execution and script export
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from ..context.models import ConversationContext
from ..database import QueryExecutor
from ..exceptions import TranslationError
from ..exporter import ScriptExporter
from ..security.gate import SecurityGate
from ..security.models import ParameterSemantics
from ..security.redaction import ResultRedactor
from ..translator import TranslationContext, Translator
from .registry import Tool, ToolDescriptor, ToolRegistry

logger = logging.getLogger(__name__)


def _require_string(params: Dict[str, Any], name: str) -> str:
    value = params.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Missing required parameter: {name}")
    return value


class SqlGeneratorTool(Tool):
    """Converts a question to SQL and screens the result without running it"""

    descriptor = ToolDescriptor(
        name="sql_generator",
        description="Converts natural language to SQL query",
        parameters={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Natural language query to convert to SQL"}
            },
            "required": ["query"]
        },
        parameter_semantics={"query": ParameterSemantics.NATURAL_LANGUAGE}
    )

    def __init__(self, translator: Translator, gate: SecurityGate, timeout: Optional[float] = None):
        self.translator = translator
        self.gate = gate
        self.timeout = timeout

    async def invoke(self, params: Dict[str, Any], context: Optional[ConversationContext]) -> Dict[str, Any]:
        query = _require_string(params, "query")
        translation = await asyncio.wait_for(
            self.translator.translate(query, TranslationContext.from_conversation(context)),
            timeout=self.timeout
        )

        if not translation.sql_query:
            raise TranslationError("The question could not be converted to SQL")

        # Generated SQL goes through the same gates as the natural language path
        self.gate.check_sql(translation.sql_query)
        self.gate.check_sensitivity(query, translation.sql_query)
        return translation.to_dict()


class SqlExecutorTool(Tool):
    """Runs SQL and returns redacted rows"""

    descriptor = ToolDescriptor(
        name="sql_executor",
        description="Executes SQL queries against the database",
        parameters={
            "type": "object",
            "properties": {
                "sql": {"type": "string", "description": "SQL query to execute"}
            },
            "required": ["sql"]
        },
        parameter_semantics={"sql": ParameterSemantics.SQL}
    )

    def __init__(
        self,
        executor: QueryExecutor,
        redactor: Optional[ResultRedactor] = None,
        timeout: Optional[float] = None
    ):
        self.executor = executor
        self.redactor = redactor
        self.timeout = timeout

    async def invoke(self, params: Dict[str, Any], context: Optional[ConversationContext]) -> Dict[str, Any]:
        sql = _require_string(params, "sql")
        result = await asyncio.wait_for(self.executor.execute(sql), timeout=self.timeout)

        output = result.to_dict()
        if self.redactor is not None:
            redaction = self.redactor.redact(result.rows)
            output["rows"] = redaction.rows
            output["redacted_columns"] = redaction.redacted_columns
        return output


class WorkbenchExportTool(Tool):
    """Exports SQL into a script file for a desktop SQL tool"""

    descriptor = ToolDescriptor(
        name="workbench_export",
        description="Exports SQL query to a script file for MySQL Workbench",
        parameters={
            "type": "object",
            "properties": {
                "sql": {"type": "string", "description": "SQL query to export"},
                "scriptName": {"type": "string", "description": "Name of the script file"}
            },
            "required": ["sql"]
        },
        parameter_semantics={"sql": ParameterSemantics.SQL}
    )

    def __init__(self, exporter: ScriptExporter):
        self.exporter = exporter

    async def invoke(self, params: Dict[str, Any], context: Optional[ConversationContext]) -> Dict[str, Any]:
        sql = _require_string(params, "sql")
        result = await self.exporter.export(sql, params.get("scriptName"))
        return result.to_dict()


def register_sql_tools(
    registry: ToolRegistry,
    translator: Translator,
    executor: QueryExecutor,
    exporter: ScriptExporter,
    gate: SecurityGate,
    redactor: Optional[ResultRedactor] = None,
    translate_timeout: Optional[float] = None,
    execute_timeout: Optional[float] = None
) -> ToolRegistry:
    registry.register(SqlGeneratorTool(translator, gate, timeout=translate_timeout))
    registry.register(SqlExecutorTool(executor, redactor, timeout=execute_timeout))
    registry.register(WorkbenchExportTool(exporter))
    return registry
