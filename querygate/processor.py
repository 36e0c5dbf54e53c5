"""
Request processor
Runs one conversation turn through the security gates, the translator and
the executor, then records the turn in the context store
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Dict, List, Optional, Tuple, TypeVar

from .context.models import ConversationContext
from .context.store import ContextStore
from .database import QueryExecutor, QueryResult
from .exceptions import QueryGateError, TranslationError, ValidationBlocked
from .schema_queries import build_schema_query, describe_schema_result, is_schema_question
from .security.gate import SecurityGate
from .security.models import AlertType, SecurityAlert, Severity
from .security.redaction import ResultRedactor
from .tools.registry import ToolRegistry
from .translator import TranslationContext, Translator

logger = logging.getLogger(__name__)

T = TypeVar("T")

BLOCKED_INTENT = "SECURITY_BLOCKED"


class TurnState(str, Enum):
    RECEIVED = "received"
    DISPATCH_TOOL_CALLS = "dispatch_tool_calls"
    VALIDATE_NL = "validate_nl"
    TRANSLATE = "translate"
    VALIDATE_SQL = "validate_sql"
    ASSESS_SENSITIVITY = "assess_sensitivity"
    EXECUTE = "execute"
    UPDATE_CONTEXT = "update_context"
    RESPONDED = "responded"
    BLOCKED = "blocked"
    ERROR = "error"


INJECTION_BLOCK_MESSAGE = (
    "Your request was blocked because it contains patterns associated with SQL injection "
    "or restricted database operations. Please ask your question in plain language."
)
SENSITIVE_INPUT_BLOCK_MESSAGE = (
    "Your request references sensitive or restricted information and cannot be processed. "
    "Try rephrasing it, for example as a count or an audit question."
)
SQL_BLOCK_MESSAGE = (
    "The query generated for your request did not pass a security check. "
    "Please rephrase your question."
)
SENSITIVE_ACCESS_BLOCK_MESSAGE = (
    "Your request asks for sensitive data directly, which is not allowed. "
    "Aggregate or audit questions, such as counts or when something changed, are permitted."
)


def block_message(alert: SecurityAlert) -> str:
    """Pick the user-facing wording for a blocked turn"""
    match alert.type:
        case AlertType.INPUT_VALIDATION if alert.severity is Severity.HIGH:
            return INJECTION_BLOCK_MESSAGE
        case AlertType.INPUT_VALIDATION:
            return SENSITIVE_INPUT_BLOCK_MESSAGE
        case AlertType.SQL_VALIDATION:
            return SQL_BLOCK_MESSAGE
        case _:
            return SENSITIVE_ACCESS_BLOCK_MESSAGE


@dataclass
class Turn:
    """State of one turn as it moves through the pipeline"""
    user_id: str
    state: TurnState = TurnState.RECEIVED
    transitions: List[TurnState] = field(default_factory=lambda: [TurnState.RECEIVED])
    warnings: List[str] = field(default_factory=list)

    def advance(self, state: TurnState) -> None:
        logger.debug(f"Turn for user {self.user_id}: {self.state.value} -> {state.value}")
        self.state = state
        self.transitions.append(state)


def parse_tool_call(call: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
    """Read name and parameters from either a flat or a function-style tool call"""
    function = call.get("function") or {}
    name = call.get("name") or function.get("name")
    if not name:
        raise ValueError("Tool call is missing a name")

    params = call.get("parameters")
    if params is None:
        params = function.get("arguments", {})
    if isinstance(params, str):
        try:
            params = json.loads(params) if params.strip() else {}
        except json.JSONDecodeError as e:
            raise ValueError(f"Tool call arguments are not valid JSON: {e}") from e
    if not isinstance(params, dict):
        raise ValueError("Tool call parameters must be an object")

    return name, params


class RequestProcessor:
    """Orchestrates a turn: tool dispatch or the natural language pipeline"""

    def __init__(
        self,
        gate: SecurityGate,
        store: ContextStore,
        registry: ToolRegistry,
        translator: Translator,
        executor: QueryExecutor,
        redactor: Optional[ResultRedactor] = None,
        translate_timeout: Optional[float] = 30,
        execute_timeout: Optional[float] = 30
    ):
        self.gate = gate
        self.store = store
        self.registry = registry
        self.translator = translator
        self.executor = executor
        self.redactor = redactor
        self.translate_timeout = translate_timeout
        self.execute_timeout = execute_timeout

    async def handle_turn(self, user_id: str, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Process the latest message of a conversation and build the assistant reply"""
        if not messages:
            raise ValueError("messages must contain at least one message")

        turn = Turn(user_id=user_id)
        last_message = messages[-1]

        if tool_calls := last_message.get("tool_calls"):
            turn.advance(TurnState.DISPATCH_TOOL_CALLS)
            results = await self.dispatch_tool_calls(user_id, tool_calls)
            turn.advance(TurnState.RESPONDED)
            return {
                "role": "assistant",
                "content": None,
                "tool_call_results": results,
                "metadata": {"state": turn.state.value}
            }

        text = last_message.get("content") or ""
        try:
            return await self._handle_natural_language(turn, text)
        except ValidationBlocked as e:
            turn.advance(TurnState.BLOCKED)
            return self._blocked_response(turn, e.alert)
        except asyncio.TimeoutError:
            logger.error(f"Turn for user {user_id} timed out in state {turn.state.value}")
            turn.advance(TurnState.ERROR)
            return self._error_response(turn, "The request timed out", retryable=True)
        except QueryGateError as e:
            logger.error(f"Turn for user {user_id} failed in state {turn.state.value}: {e}")
            turn.advance(TurnState.ERROR)
            return self._error_response(turn, str(e), retryable=e.retryable)

    async def _handle_natural_language(self, turn: Turn, text: str) -> Dict[str, Any]:
        turn.advance(TurnState.VALIDATE_NL)
        self._note_warning(turn, self.gate.check_input(text).warning)

        if is_schema_question(text):
            return await self._answer_schema_question(turn, text)

        context = await self.store.get(turn.user_id)

        turn.advance(TurnState.TRANSLATE)
        translation = await self._bounded(
            self.translator.translate(text, TranslationContext.from_conversation(context)),
            self.translate_timeout
        )
        if not (sql := translation.sql_query):
            raise TranslationError("The question could not be converted to SQL")

        turn.advance(TurnState.VALIDATE_SQL)
        self._note_warning(turn, self.gate.check_sql(sql).warning)

        turn.advance(TurnState.ASSESS_SENSITIVITY)
        self._note_warning(turn, self.gate.check_sensitivity(text, sql).warning)

        turn.advance(TurnState.EXECUTE)
        result = await self._bounded(self.executor.execute(sql), self.execute_timeout)
        results = self._present_result(result)

        content = (
            f"I converted your question to SQL and executed it: \n\n{sql}\n\n"
            f"The query returned {result.row_count} rows."
        )

        turn.advance(TurnState.UPDATE_CONTEXT)
        await self._record_turn(turn.user_id, text, sql, result, content)

        turn.advance(TurnState.RESPONDED)
        return {
            "role": "assistant",
            "content": content,
            "metadata": {
                "sql_query": sql,
                "entities": translation.entities,
                "intent": translation.intent,
                "results": results,
                "warnings": turn.warnings,
                "state": turn.state.value
            }
        }

    async def _answer_schema_question(self, turn: Turn, text: str) -> Dict[str, Any]:
        # The query is built here rather than by the model, so it skips translation and assessment
        schema_query = build_schema_query(text)
        logger.info(f"Answering schema question for user {turn.user_id} with {schema_query.kind} query")

        turn.advance(TurnState.EXECUTE)
        result = await self._bounded(self.executor.execute(schema_query.sql), self.execute_timeout)
        content = describe_schema_result(schema_query, result.rows)

        turn.advance(TurnState.UPDATE_CONTEXT)
        await self._record_turn(turn.user_id, text, schema_query.sql, result, content)

        turn.advance(TurnState.RESPONDED)
        return {
            "role": "assistant",
            "content": content,
            "metadata": {
                "sql_query": schema_query.sql,
                "entities": [schema_query.table] if schema_query.table else [],
                "intent": "SCHEMA_INFO",
                "results": result.to_dict(),
                "warnings": turn.warnings,
                "state": turn.state.value
            }
        }

    async def _record_turn(self, user_id: str, text: str, sql: str, result: QueryResult, content: str) -> None:
        await self.store.update(user_id, {
            "last_query": text,
            "last_sql": sql,
            "last_result": {
                "row_count": result.row_count,
                "summary": f"Returned {result.row_count} rows"
            },
            "message_history": [
                {"role": "user", "content": text},
                {"role": "assistant", "content": content},
            ]
        })

    def _present_result(self, result: QueryResult) -> Dict[str, Any]:
        results = result.to_dict()
        if self.redactor is not None:
            redaction = self.redactor.redact(result.rows)
            results["rows"] = redaction.rows
            results["redacted_columns"] = redaction.redacted_columns
        return results

    async def dispatch_tool_calls(self, user_id: str, tool_calls: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Run tool calls concurrently; results keep the order of the calls"""
        context = await self.store.get(user_id)
        return list(await asyncio.gather(*(
            self._dispatch_one(call, context) for call in tool_calls
        )))

    async def dispatch_tool_call(self, user_id: str, name: str, params: Dict[str, Any]) -> Dict[str, Any]:
        context = await self.store.get(user_id)
        return await self._dispatch_one({"id": None, "name": name, "parameters": params}, context)

    async def _dispatch_one(self, call: Dict[str, Any], context: ConversationContext) -> Dict[str, Any]:
        call_id = call.get("id")
        name = call.get("name") or (call.get("function") or {}).get("name")

        try:
            name, params = parse_tool_call(call)
            tool = self.registry.get(name)
            self.gate.check_parameters(tool.descriptor.parameter_semantics, params)
            result = await self.registry.execute(name, params, context)
            return {"tool_call_id": call_id, "name": name, "result": result}

        except ValidationBlocked as e:
            error = {
                "type": "blocked",
                "message": block_message(e.alert),
                "security_alert": e.alert.to_dict()
            }
        except asyncio.TimeoutError:
            logger.error(f"Tool call {name} timed out")
            error = {"type": "timeout", "message": f"Tool {name} timed out", "retryable": True}
        except ValueError as e:
            error = {"type": "invalid_params", "message": str(e)}
        except QueryGateError as e:
            logger.error(f"Tool call {name} failed: {e}")
            error = {"type": type(e).__name__, "message": str(e), "retryable": e.retryable}
        except Exception as e:
            # One broken tool must not take its sibling calls down with it
            logger.error(f"Unexpected error in tool call {name}: {e}", exc_info=True)
            error = {"type": "internal", "message": f"Tool {name} failed unexpectedly"}

        return {"tool_call_id": call_id, "name": name, "error": error}

    @staticmethod
    async def _bounded(operation: Awaitable[T], timeout: Optional[float]) -> T:
        return await asyncio.wait_for(operation, timeout=timeout)

    @staticmethod
    def _note_warning(turn: Turn, warning: Optional[str]) -> None:
        if warning:
            turn.warnings.append(warning)

    @staticmethod
    def _blocked_response(turn: Turn, alert: SecurityAlert) -> Dict[str, Any]:
        return {
            "role": "assistant",
            "content": block_message(alert),
            "metadata": {
                "intent": BLOCKED_INTENT,
                "security_alert": alert.to_dict(),
                "state": turn.state.value
            }
        }

    @staticmethod
    def _error_response(turn: Turn, message: str, retryable: bool) -> Dict[str, Any]:
        return {
            "role": "assistant",
            "content": f"Error processing your request: {message}",
            "metadata": {
                "error": message,
                "retryable": retryable,
                "state": turn.state.value
            }
        }
