"""
Schema questions
Builds introspection queries for questions about tables and columns,
without going through the translator
"""
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Pattern, Sequence

from .security.patterns import SCHEMA_QUESTION_PATTERNS, matches_any

TABLE_LIST_QUERY = (
    "SELECT table_name AS table_name FROM information_schema.tables "
    "WHERE table_schema = DATABASE() ORDER BY table_name"
)

TABLE_COLUMNS_QUERY = (
    "SELECT column_name AS column_name, data_type AS data_type, is_nullable AS is_nullable, "
    "column_key AS column_key FROM information_schema.columns "
    "WHERE table_schema = DATABASE() AND table_name = '{table}' ORDER BY ordinal_position"
)

ALL_COLUMNS_QUERY = (
    "SELECT table_name AS table_name, column_name AS column_name, data_type AS data_type "
    "FROM information_schema.columns WHERE table_schema = DATABASE() "
    "ORDER BY table_name, ordinal_position"
)

TABLE_LISTING: Pattern[str] = re.compile(r"\b(?:show|list)\b.*\btables\b", re.IGNORECASE)

# Each pattern captures a candidate table name
TABLE_REFERENCES: Sequence[Pattern[str]] = (
    re.compile(r"\bdescribe\s+(?:the\s+)?(\w+)\s+table\b", re.IGNORECASE),
    re.compile(r"\bdescribe\s+(?:the\s+)?table\s+(\w+)", re.IGNORECASE),
    re.compile(r"\bcolumns?\s+(?:in|of|for)\s+(?:the\s+)?(\w+)", re.IGNORECASE),
    re.compile(r"\bstructure\s+of\s+(?:the\s+)?(\w+)", re.IGNORECASE),
    re.compile(r"\b(\w+)\s+table\s+structure\b", re.IGNORECASE),
)

NOT_TABLE_NAMES = frozenset({"table", "tables", "database", "schema", "all", "each", "every", "this", "my"})


@dataclass
class SchemaQuery:
    kind: str  # "tables", "table_columns" or "all_columns"
    sql: str
    table: Optional[str] = None


def is_schema_question(text: str) -> bool:
    return matches_any(SCHEMA_QUESTION_PATTERNS, text)


def extract_table_name(text: str) -> Optional[str]:
    for pattern in TABLE_REFERENCES:
        if (match := pattern.search(text)) and match.group(1).lower() not in NOT_TABLE_NAMES:
            return match.group(1)
    return None


def build_schema_query(text: str) -> SchemaQuery:
    """Choose the introspection query for a schema question.

    The table name is restricted to word characters, so it is safe to
    inline into the query string.
    """
    if TABLE_LISTING.search(text):
        return SchemaQuery(kind="tables", sql=TABLE_LIST_QUERY)

    if table := extract_table_name(text):
        return SchemaQuery(kind="table_columns", sql=TABLE_COLUMNS_QUERY.format(table=table), table=table)

    return SchemaQuery(kind="all_columns", sql=ALL_COLUMNS_QUERY)


def format_table(rows: Sequence[Dict[str, Any]]) -> str:
    """Render rows as an aligned plain-text table"""
    if not rows:
        return "(no rows)"

    columns: List[str] = list(rows[0].keys())
    cells = [[("" if row.get(column) is None else str(row.get(column))) for column in columns] for row in rows]
    widths = [
        max(len(column), *(len(line[index]) for line in cells))
        for index, column in enumerate(columns)
    ]

    def render(values: Sequence[str]) -> str:
        return " | ".join(value.ljust(width) for value, width in zip(values, widths)).rstrip()

    lines = [render(columns), "-+-".join("-" * width for width in widths)]
    lines.extend(render(line) for line in cells)
    return "\n".join(lines)


def describe_schema_result(query: SchemaQuery, rows: Sequence[Dict[str, Any]]) -> str:
    match query.kind:
        case "tables":
            heading = "Tables in the database:"
        case "table_columns":
            heading = f"Columns of table {query.table}:"
        case _:
            heading = "Columns by table:"
    return f"{heading}\n\n{format_table(rows)}"
