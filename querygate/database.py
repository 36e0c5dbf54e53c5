"""
Query execution against MySQL
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiomysql

from .config import DatabaseConfig
from .exceptions import QueryExecutionError

logger = logging.getLogger(__name__)

SCHEMA_COLUMNS_QUERY = (
    "SELECT table_name AS table_name, column_name AS column_name, data_type AS data_type "
    "FROM information_schema.columns WHERE table_schema = DATABASE() "
    "ORDER BY table_name, ordinal_position"
)


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]]
    row_count: int
    fields: List[Dict[str, str]] = field(default_factory=list)
    truncated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rows": self.rows,
            "row_count": self.row_count,
            "fields": self.fields,
            "truncated": self.truncated
        }


class QueryExecutor(ABC):
    """Interface for SQL executors"""

    @abstractmethod
    async def execute(self, sql: str) -> QueryResult:
        """Run a query. Raises QueryExecutionError on failure."""
        pass

    async def close(self) -> None:
        pass


def _describe_fields(description: Optional[Any]) -> List[Dict[str, str]]:
    # cursor.description rows are (name, type_code, ...) per DB-API
    if not description:
        return []
    return [{"name": column[0], "data_type": str(column[1])} for column in description]


class MySQLExecutor(QueryExecutor):
    """Executes queries over a lazily created aiomysql pool"""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._pool: Optional[aiomysql.Pool] = None

    async def _get_pool(self) -> aiomysql.Pool:
        if self._pool is None:
            try:
                self._pool = await aiomysql.create_pool(
                    host=self.config.host,
                    port=self.config.port,
                    user=self.config.user,
                    password=self.config.password,
                    db=self.config.name,
                    maxsize=self.config.pool_size,
                    autocommit=True,
                    cursorclass=aiomysql.DictCursor
                )
            except aiomysql.Error as e:
                logger.error(f"Failed to connect to MySQL at {self.config.host}:{self.config.port}: {e}")
                raise QueryExecutionError(f"Database connection failed: {e}") from e
            logger.info(f"Connected to MySQL at {self.config.host}:{self.config.port}")
        return self._pool

    async def execute(self, sql: str) -> QueryResult:
        pool = await self._get_pool()

        try:
            async with pool.acquire() as conn:
                async with conn.cursor() as cursor:
                    await cursor.execute(sql)
                    rows = list(await cursor.fetchall())
                    fields = _describe_fields(cursor.description)
        except aiomysql.Error as e:
            logger.error(f"Query execution failed: {e}")
            raise QueryExecutionError(f"Query execution failed: {e}") from e

        row_count = len(rows)
        truncated = 0 < self.config.max_rows < row_count
        if truncated:
            logger.warning(f"Query returned {row_count} rows, truncating to {self.config.max_rows}")
            rows = rows[:self.config.max_rows]

        return QueryResult(rows=rows, row_count=row_count, fields=fields, truncated=truncated)

    async def fetch_schema(self) -> Dict[str, List[Dict[str, str]]]:
        """Map each table in the current database to its columns"""
        result = await self.execute(SCHEMA_COLUMNS_QUERY)
        schema: Dict[str, List[Dict[str, str]]] = {}
        for row in result.rows:
            schema.setdefault(row["table_name"], []).append({
                "name": row["column_name"],
                "data_type": row["data_type"]
            })
        return schema

    async def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            await self._pool.wait_closed()
            self._pool = None
            logger.info("MySQL pool closed")


def describe_schema(schema: Dict[str, List[Dict[str, str]]]) -> str:
    """Render an introspected schema in the translator prompt format"""
    blocks = []
    for table, columns in schema.items():
        column_list = ", ".join(f"{column['name']} ({column['data_type'].upper()})" for column in columns)
        blocks.append(f"Table: {table}\nColumns: {column_list}\n")
    return "\n".join(blocks)
