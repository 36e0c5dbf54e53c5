"""
Natural language to SQL translation
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from .config import TranslatorConfig
from .context.models import ConversationContext
from .exceptions import TranslationError

logger = logging.getLogger(__name__)

SCHEMA_DESCRIPTION = """\
Table: users
Columns: id (INT, PRIMARY KEY), name (VARCHAR), email (VARCHAR), created_at (DATETIME)

Table: products
Columns: id (INT, PRIMARY KEY), name (VARCHAR), price (DECIMAL), category_id (INT, FOREIGN KEY)

Table: categories
Columns: id (INT, PRIMARY KEY), name (VARCHAR)

Table: orders
Columns: id (INT, PRIMARY KEY), user_id (INT, FOREIGN KEY), created_at (DATETIME), total (DECIMAL)

Table: order_items
Columns: id (INT, PRIMARY KEY), order_id (INT, FOREIGN KEY), product_id (INT, FOREIGN KEY), quantity (INT), price (DECIMAL)
"""

SYSTEM_PROMPT = """\
You are an expert SQL developer. Convert the user's question into a single MySQL query.

Database schema:
{schema}

Security requirements:
1. Generate read-only SELECT queries only.
2. Never generate DROP, DELETE, UPDATE, INSERT, ALTER, GRANT or any statement that modifies data or permissions.
3. Never combine multiple statements with semicolons.
4. Never return password hashes, credentials, tokens or other secrets.
5. If the question cannot be answered safely with a SELECT query, return null for sqlQuery.

Respond with a JSON object only, in this exact format:
{{"sqlQuery": "SELECT ...", "entities": ["table or column names used"], "intent": "short description of what the user wants"}}
"""

SUMMARY_PREVIEW_LENGTH = 200

JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass
class TranslationContext:
    """Short-term context from the previous turn"""
    last_query: Optional[str] = None
    last_sql: Optional[str] = None
    last_result_summary: Optional[str] = None

    @classmethod
    def from_conversation(cls, context: Optional[ConversationContext]) -> "TranslationContext":
        if context is None:
            return cls()
        return cls(
            last_query=context.last_query,
            last_sql=context.last_sql,
            last_result_summary=context.last_result_summary
        )

    @property
    def is_empty(self) -> bool:
        return not (self.last_query or self.last_sql)


@dataclass
class Translation:
    sql_query: Optional[str]
    entities: List[str] = field(default_factory=list)
    intent: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"sql_query": self.sql_query, "entities": self.entities, "intent": self.intent}


class Translator(ABC):
    """Interface for natural language to SQL translators"""

    @abstractmethod
    async def translate(self, text: str, context: TranslationContext) -> Translation:
        """Translate a question into SQL. Raises TranslationError on failure."""
        pass


def parse_translation(content: str) -> Translation:
    """Best-effort parse of a model reply into a Translation.

    The first {...} block in the reply is decoded as JSON. Anything that
    does not decode, or decodes to the wrong shape, raises TranslationError.
    The parser never guesses SQL from free text.
    """
    if not (match := JSON_OBJECT.search(content or "")):
        raise TranslationError("Model response did not contain a JSON object")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise TranslationError(f"Model response contained malformed JSON: {e}") from e

    if not isinstance(data, dict):
        raise TranslationError("Model response JSON was not an object")

    sql_query = data.get("sqlQuery", data.get("sql_query"))
    if sql_query is not None and not isinstance(sql_query, str):
        raise TranslationError("sqlQuery in model response was not a string")

    entities = data.get("entities") or []
    if not isinstance(entities, list):
        entities = [entities]

    return Translation(
        sql_query=sql_query.strip() if sql_query else None,
        entities=[str(entity) for entity in entities],
        intent=str(data.get("intent") or "")
    )


def _message_text(content: Any) -> str:
    # Chat models return either a string or a list of content parts
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
        )
    return str(content)


class GeminiTranslator(Translator):
    """Translator backed by a LangChain chat model, Gemini by default"""

    def __init__(self, llm: BaseChatModel, schema_description: str = SCHEMA_DESCRIPTION):
        self.llm = llm
        self.schema_description = schema_description

    @classmethod
    def from_config(cls, config: TranslatorConfig, schema_description: Optional[str] = None) -> "GeminiTranslator":
        from langchain_google_genai import ChatGoogleGenerativeAI

        llm = ChatGoogleGenerativeAI(
            model=config.model,
            google_api_key=config.require_api_key(),
            temperature=config.temperature,
            top_p=config.top_p,
            top_k=config.top_k
        )
        return cls(llm, schema_description or config.schema_description or SCHEMA_DESCRIPTION)

    def build_user_message(self, text: str, context: TranslationContext) -> str:
        if context.is_empty:
            return text

        lines = [
            f"Previous query: {context.last_query or ''}",
            f"Previous SQL: {context.last_sql or ''}",
        ]
        if context.last_result_summary:
            lines.append(
                f"Previous result summary: {json.dumps(context.last_result_summary)[:SUMMARY_PREVIEW_LENGTH]}"
            )
        lines.append(f"Current query: {text}")
        return "\n".join(lines)

    async def translate(self, text: str, context: TranslationContext) -> Translation:
        messages = [
            SystemMessage(content=SYSTEM_PROMPT.format(schema=self.schema_description)),
            HumanMessage(content=self.build_user_message(text, context)),
        ]

        try:
            response = await self.llm.ainvoke(messages)
        except Exception as e:
            logger.error(f"Translation request failed: {e}")
            raise TranslationError(f"Language model request failed: {e}") from e

        translation = parse_translation(_message_text(response.content))
        logger.debug(f"Translated question to SQL: {translation.sql_query}")
        return translation
