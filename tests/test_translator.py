"""Tests for natural language to SQL translation"""
from unittest.mock import AsyncMock, Mock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from querygate.config import TranslatorConfig
from querygate.exceptions import ConfigurationError, TranslationError
from querygate.translator import (
    SCHEMA_DESCRIPTION,
    GeminiTranslator,
    TranslationContext,
    parse_translation,
)


class TestParseTranslation:
    """Test cases for parse_translation"""

    def test_plain_json(self):
        translation = parse_translation(
            '{"sqlQuery": "SELECT * FROM users", "entities": ["users"], "intent": "list users"}'
        )

        assert translation.sql_query == "SELECT * FROM users"
        assert translation.entities == ["users"]
        assert translation.intent == "list users"

    def test_json_inside_code_fence(self):
        content = 'Here you go:\n```json\n{"sqlQuery": " SELECT 1 ", "intent": "test"}\n```'
        translation = parse_translation(content)

        assert translation.sql_query == "SELECT 1"
        assert translation.entities == []

    def test_snake_case_key_accepted(self):
        assert parse_translation('{"sql_query": "SELECT 1"}').sql_query == "SELECT 1"

    def test_null_sql(self):
        """Test that a model refusal parses to an empty translation"""
        assert parse_translation('{"sqlQuery": null, "intent": "unsafe"}').sql_query is None

    @pytest.mark.parametrize("content", [
        "SELECT * FROM users",
        "",
        '{"sqlQuery": "SELECT 1",}',
        '{"sqlQuery": 42}',
    ])
    def test_unparseable_replies(self, content):
        """Test that free text is never treated as SQL"""
        with pytest.raises(TranslationError):
            parse_translation(content)


class TestGeminiTranslator:
    """Test cases for GeminiTranslator"""

    @pytest.fixture
    def llm(self):
        llm = Mock()
        llm.ainvoke = AsyncMock(return_value=AIMessage(
            content='{"sqlQuery": "SELECT * FROM products", "entities": ["products"], "intent": "list"}'
        ))
        return llm

    def test_user_message_without_context(self, llm):
        translator = GeminiTranslator(llm)
        assert translator.build_user_message("Show me products", TranslationContext()) == "Show me products"

    def test_user_message_with_context(self, llm):
        translator = GeminiTranslator(llm)
        context = TranslationContext(
            last_query="Show me users",
            last_sql="SELECT * FROM users",
            last_result_summary="x" * 500
        )

        message = translator.build_user_message("Only active ones", context)
        lines = message.split("\n")

        assert lines[0] == "Previous query: Show me users"
        assert lines[1] == "Previous SQL: SELECT * FROM users"
        assert lines[2].startswith("Previous result summary: ")
        assert len(lines[2]) == len("Previous result summary: ") + 200
        assert lines[3] == "Current query: Only active ones"

    @pytest.mark.asyncio
    async def test_translate(self, llm):
        translator = GeminiTranslator(llm)

        translation = await translator.translate("Show me products", TranslationContext())

        assert translation.sql_query == "SELECT * FROM products"
        messages = llm.ainvoke.call_args[0][0]
        assert isinstance(messages[0], SystemMessage)
        assert SCHEMA_DESCRIPTION in messages[0].content
        assert isinstance(messages[1], HumanMessage)
        assert messages[1].content == "Show me products"

    @pytest.mark.asyncio
    async def test_content_parts_are_joined(self, llm):
        llm.ainvoke.return_value = AIMessage(content=[
            {"type": "text", "text": '{"sqlQuery": '},
            {"type": "text", "text": '"SELECT 2"}'},
        ])

        translation = await GeminiTranslator(llm).translate("q", TranslationContext())

        assert translation.sql_query == "SELECT 2"

    @pytest.mark.asyncio
    async def test_model_failure_is_translation_error(self, llm):
        llm.ainvoke.side_effect = RuntimeError("quota exceeded")

        with pytest.raises(TranslationError, match="quota exceeded"):
            await GeminiTranslator(llm).translate("q", TranslationContext())

    def test_from_config(self):
        config = TranslatorConfig(api_key="key", model="gemini-1.5-flash")

        with patch("langchain_google_genai.ChatGoogleGenerativeAI") as mock_chat:
            translator = GeminiTranslator.from_config(config, schema_description="Table: t")

        mock_chat.assert_called_once_with(
            model="gemini-1.5-flash",
            google_api_key="key",
            temperature=0.1,
            top_p=0.8,
            top_k=40
        )
        assert translator.llm is mock_chat.return_value
        assert translator.schema_description == "Table: t"

    def test_from_config_requires_api_key(self):
        with pytest.raises(ConfigurationError):
            GeminiTranslator.from_config(TranslatorConfig())
